"""Keeps the blob store and the metadata store in step for uploads and deletes.

Neither store is rolled back when the other fails. Every operation instead
reports exactly which store reflects the change for every item.
"""

import logging
import os
from collections.abc import Iterable, Sequence

from pydantic import ValidationError as SchemaError

from asset_vault.errors import ExternalStoreError, MetadataWriteError, NotFoundError, ValidationError, require_text
from asset_vault.models import DeleteItem, DeletionResult, ItemOutcome, LocalFile, PurgeResult, UploadedAsset, UploadResult
from asset_vault.repository import MetadataStore
from asset_vault.storage import BlobStore, owner_folder
from asset_vault.timestamps import utc_now_text

logger = logging.getLogger(__name__)


def release_temp_file(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning(f"Could not remove temp file {path}: {exc}")


class AssetReconciler:
    def __init__(
        self,
        blob_store: BlobStore,
        metadata_store: MetadataStore,
        *,
        assets_collection: str = "assets",
        users_collection: str = "users",
    ):
        self.blob_store = blob_store
        self.metadata_store = metadata_store
        self.assets_collection = assets_collection
        self.users_collection = users_collection

    def upload_assets(self, owner_id: str, files: Sequence[LocalFile]) -> UploadResult:
        owner_id = require_text(owner_id, "email")
        if not files:
            raise ValidationError("files are required")

        folder = owner_folder(owner_id)
        uploaded: list[UploadedAsset] = []
        staged: list[dict] = []
        for local_file in files:
            try:
                blob = self.blob_store.upload(local_file.path, folder, local_file.filename)
            except ExternalStoreError as exc:
                logger.warning(f"Blob upload of {local_file.filename} for {owner_id} failed: {exc}")
                continue
            finally:
                release_temp_file(local_file.path)

            uploaded.append(
                UploadedAsset(
                    public_id=blob.public_id,
                    url=blob.url,
                    resource_type=blob.resource_type,
                    filename=local_file.filename,
                )
            )
            staged.append(
                {
                    "email": owner_id,
                    "filename": local_file.filename,
                    "url": blob.url,
                    "public_id": blob.public_id,
                    "resource_type": blob.resource_type,
                    "created_at": utc_now_text(),
                }
            )

        inserted_ids: list[str] = []
        if staged:
            try:
                inserted_ids = self.metadata_store.insert_many(self.assets_collection, staged)
            except ExternalStoreError as exc:
                logger.error(f"Metadata insert of {len(staged)} assets for {owner_id} failed: {exc}")
                raise MetadataWriteError(
                    f"{len(staged)} files reached the blob store but their metadata was not saved"
                ) from exc

        logger.info(f"Uploaded {len(uploaded)} of {len(files)} files for {owner_id}")
        return UploadResult(
            uploaded=uploaded,
            inserted_ids=inserted_ids,
            requested_count=len(files),
            uploaded_count=len(uploaded),
        )

    def delete_assets(self, items: Iterable) -> DeletionResult:
        requested = _parse_delete_items(items)
        if not requested:
            raise ValidationError("assets to delete are required")
        return self._reconcile_deletion(requested)

    def purge_owner(self, owner_id: str) -> PurgeResult:
        owner_id = require_text(owner_id, "email")
        folder = owner_folder(owner_id)

        documents = self.metadata_store.find(self.assets_collection, {"email": owner_id})
        requested: list[DeleteItem] = []
        skipped: list[str] = []
        for doc in documents:
            public_id = doc.get("public_id")
            if not isinstance(public_id, str) or not public_id:
                logger.warning(f"Asset {doc.get('_id')} of {owner_id} has no public_id, skipping")
                skipped.append(str(doc.get("_id")))
                continue
            requested.append(DeleteItem(public_id=public_id, asset_id=str(doc["_id"])))
        assets = self._reconcile_deletion(requested)

        folder_deleted = True
        try:
            self.blob_store.delete_folder(folder)
        except ExternalStoreError as exc:
            folder_deleted = False
            logger.warning(f"Folder {folder} was not deleted: {exc}")

        if self.metadata_store.delete_one(self.users_collection, {"email": owner_id}) != 1:
            raise NotFoundError("user not found")

        logger.info(f"Purged {owner_id}: {assets.success_count} of {assets.requested_count} assets removed")
        return PurgeResult(message="user deleted", assets=assets, folder_deleted=folder_deleted, skipped=skipped)

    def _reconcile_deletion(self, requested: list[DeleteItem]) -> DeletionResult:
        outcomes = [self._delete_one(item) for item in requested]
        blob_deleted = [o.public_id for o in outcomes if o.blob_deleted]
        metadata_deleted = [o.asset_id for o in outcomes if o.metadata_deleted]
        return DeletionResult(
            requested=requested,
            blob_deleted=blob_deleted,
            metadata_deleted=metadata_deleted,
            outcomes=outcomes,
            requested_count=len(requested),
            success_count=len(metadata_deleted),
        )

    def _delete_one(self, item: DeleteItem) -> ItemOutcome:
        blob_deleted = False
        try:
            blob_deleted = self.blob_store.delete(item.public_id) == "ok"
        except ExternalStoreError as exc:
            logger.warning(f"Blob delete of {item.public_id} failed: {exc}")

        metadata_deleted = False
        try:
            metadata_deleted = self.metadata_store.delete_one(self.assets_collection, {"_id": item.asset_id}) == 1
        except ExternalStoreError as exc:
            logger.warning(f"Metadata delete of {item.asset_id} failed: {exc}")

        outcome = ItemOutcome(
            public_id=item.public_id,
            asset_id=item.asset_id,
            blob_deleted=blob_deleted,
            metadata_deleted=metadata_deleted,
        )
        if outcome.status != "success":
            logger.warning(f"Asset {item.asset_id} ({item.public_id}) delete was {outcome.status}")
        return outcome


def _parse_delete_items(items) -> list[DeleteItem]:
    if items is None or isinstance(items, (str, bytes, dict)):
        raise ValidationError("assets must be a list")
    parsed = []
    for item in items:
        if isinstance(item, DeleteItem):
            parsed.append(item)
            continue
        try:
            parsed.append(DeleteItem.model_validate(item))
        except SchemaError as exc:
            raise ValidationError("each asset needs a public_id and an asset_id") from exc
    return parsed
