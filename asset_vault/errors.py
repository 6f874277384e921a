class AssetVaultError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AssetVaultError):
    """Required input is missing or malformed."""

    code = "bad_request"
    status_code = 400


class NotFoundError(AssetVaultError):
    code = "not_found"
    status_code = 404


class ConflictError(AssetVaultError):
    code = "conflict"
    status_code = 409


class ExternalStoreError(AssetVaultError):
    """A single call to the blob store, the metadata store or the mail API failed."""

    code = "store_error"
    status_code = 502


class MetadataWriteError(ExternalStoreError):
    code = "metadata_write_failed"


def require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()
