import logging
from typing import Any, Protocol

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import PyMongoError

from asset_vault.config import Settings
from asset_vault.errors import ExternalStoreError

logger = logging.getLogger(__name__)


class MetadataStore(Protocol):
    def init(self) -> None: ...

    def insert_one(self, collection: str, document: dict) -> str: ...

    def insert_many(self, collection: str, documents: list[dict]) -> list[str]: ...

    def find(
        self,
        collection: str,
        filter: dict,
        sort: list[tuple[str, int]] | None = None,
        skip: int = 0,
        limit: int = 0,
    ) -> list[dict]: ...

    def find_one(self, collection: str, filter: dict) -> dict | None: ...

    def update_one(self, collection: str, filter: dict, values: dict) -> int: ...

    def delete_one(self, collection: str, filter: dict) -> int: ...


def _coerce_filter(filter: dict) -> dict:
    value = filter.get("_id")
    if isinstance(value, str) and ObjectId.is_valid(value):
        return {**filter, "_id": ObjectId(value)}
    return filter


class MongoMetadataStore:
    """Asset and user documents in MongoDB."""

    def __init__(
        self,
        connection_string: str,
        database: str,
        *,
        assets_collection: str = "assets",
        users_collection: str = "users",
    ):
        self.client = MongoClient(connection_string)
        self.db = self.client[database]
        self.assets_collection = assets_collection
        self.users_collection = users_collection

    def init(self) -> None:
        try:
            self.db[self.assets_collection].create_index([("email", ASCENDING), ("created_at", DESCENDING)])
            self.db[self.assets_collection].create_index([("public_id", ASCENDING)])
            self.db[self.users_collection].create_index([("email", ASCENDING)], unique=True)
        except PyMongoError as exc:
            logger.error(f"Error initializing MongoDB collections: {exc}")
            raise ExternalStoreError(f"metadata store init failed: {exc}") from exc
        logger.info(f"Connected to MongoDB database: {self.db.name}")

    def insert_one(self, collection: str, document: dict) -> str:
        try:
            result = self.db[collection].insert_one(dict(document))
        except PyMongoError as exc:
            raise ExternalStoreError(f"insert into {collection} failed: {exc}") from exc
        return str(result.inserted_id)

    def insert_many(self, collection: str, documents: list[dict]) -> list[str]:
        try:
            result = self.db[collection].insert_many([dict(doc) for doc in documents])
        except PyMongoError as exc:
            raise ExternalStoreError(f"insert into {collection} failed: {exc}") from exc
        return [str(inserted_id) for inserted_id in result.inserted_ids]

    def find(
        self,
        collection: str,
        filter: dict,
        sort: list[tuple[str, int]] | None = None,
        skip: int = 0,
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        try:
            cursor = self.db[collection].find(_coerce_filter(filter))
            if sort:
                cursor = cursor.sort(sort)
            return list(cursor.skip(skip).limit(limit))
        except PyMongoError as exc:
            raise ExternalStoreError(f"query on {collection} failed: {exc}") from exc

    def find_one(self, collection: str, filter: dict) -> dict | None:
        try:
            return self.db[collection].find_one(_coerce_filter(filter))
        except PyMongoError as exc:
            raise ExternalStoreError(f"query on {collection} failed: {exc}") from exc

    def update_one(self, collection: str, filter: dict, values: dict) -> int:
        try:
            result = self.db[collection].update_one(_coerce_filter(filter), {"$set": values})
        except PyMongoError as exc:
            raise ExternalStoreError(f"update on {collection} failed: {exc}") from exc
        return result.matched_count

    def delete_one(self, collection: str, filter: dict) -> int:
        try:
            result = self.db[collection].delete_one(_coerce_filter(filter))
        except PyMongoError as exc:
            raise ExternalStoreError(f"delete on {collection} failed: {exc}") from exc
        return result.deleted_count


def build_metadata_store(settings: Settings) -> MetadataStore:
    return MongoMetadataStore(
        settings.mongodb_uri,
        settings.mongodb_database,
        assets_collection=settings.assets_collection,
        users_collection=settings.users_collection,
    )
