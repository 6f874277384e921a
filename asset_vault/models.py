from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, Field, computed_field


@dataclass
class LocalFile:
    """A file already spooled to local disk by the HTTP boundary."""

    path: str
    filename: str
    size: int
    content_type: str | None = None


@dataclass
class BlobObject:
    public_id: str
    url: str
    resource_type: str


class UploadedAsset(BaseModel):
    public_id: str
    url: str
    resource_type: str
    filename: str


class UploadResult(BaseModel):
    uploaded: list[UploadedAsset]
    inserted_ids: list[str]
    requested_count: int
    uploaded_count: int


class DeleteItem(BaseModel):
    public_id: str = Field(min_length=1)
    asset_id: str = Field(min_length=1)


class DeleteRequest(BaseModel):
    assets: list[DeleteItem]


class ItemOutcome(BaseModel):
    public_id: str
    asset_id: str
    blob_deleted: bool
    metadata_deleted: bool

    @computed_field
    @property
    def status(self) -> Literal["success", "partial", "failure"]:
        if self.blob_deleted and self.metadata_deleted:
            return "success"
        if self.blob_deleted or self.metadata_deleted:
            return "partial"
        return "failure"


class DeletionResult(BaseModel):
    requested: list[DeleteItem]
    blob_deleted: list[str]
    metadata_deleted: list[str]
    outcomes: list[ItemOutcome]
    requested_count: int
    success_count: int


class PurgeResult(BaseModel):
    message: str
    assets: DeletionResult
    folder_deleted: bool
    skipped: list[str] = []


class AssetPage(BaseModel):
    assets: list[dict[str, Any]]
    user: dict[str, Any] | None
    select_limit: int
    page: int
    page_size: int


class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str


class PasswordUpdateRequest(BaseModel):
    password: str


class VerificationCodeResponse(BaseModel):
    email: str
    code: str
