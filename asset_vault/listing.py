import logging

from pymongo import DESCENDING

from asset_vault.errors import ValidationError, require_text
from asset_vault.models import AssetPage
from asset_vault.repository import MetadataStore
from asset_vault.timestamps import to_display

logger = logging.getLogger(__name__)

SECRET_FIELDS = ("password",)


def normalize_document(document: dict | None, tz_name: str, *, strip: tuple[str, ...] = ()) -> dict | None:
    if document is None:
        return None
    normalized = dict(document)
    for key in strip:
        normalized.pop(key, None)
    if "_id" in normalized:
        normalized["_id"] = str(normalized["_id"])
    if "created_at" in normalized:
        normalized["created_at"] = to_display(normalized["created_at"], tz_name)
    return normalized


def list_assets(
    metadata_store: MetadataStore,
    owner_id: str,
    page: int = 1,
    page_size: int = 50,
    *,
    select_limit: int = 10,
    tz_name: str = "Asia/Kolkata",
    assets_collection: str = "assets",
    users_collection: str = "users",
) -> AssetPage:
    """Return one newest-first page of an owner's assets with their profile.

    A page past the end is not an error; it yields no assets.
    """
    owner_id = require_text(owner_id, "email")
    if not isinstance(page, int) or page < 1:
        raise ValidationError("page must be a positive integer")
    if not isinstance(page_size, int) or page_size < 1:
        raise ValidationError("page_size must be a positive integer")

    skip = (page - 1) * page_size
    documents = metadata_store.find(
        assets_collection,
        {"email": owner_id},
        sort=[("created_at", DESCENDING)],
        skip=skip,
        limit=page_size,
    )
    user = metadata_store.find_one(users_collection, {"email": owner_id})
    logger.debug(f"Listed {len(documents)} assets for {owner_id} (page {page})")

    return AssetPage(
        assets=[normalize_document(doc, tz_name) for doc in documents],
        user=normalize_document(user, tz_name, strip=SECRET_FIELDS),
        select_limit=select_limit,
        page=page,
        page_size=page_size,
    )
