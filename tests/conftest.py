from collections import defaultdict
from pathlib import Path
from uuid import uuid4

import pytest

from asset_vault.errors import ExternalStoreError
from asset_vault.models import BlobObject, LocalFile
from asset_vault.reconciler import AssetReconciler
from asset_vault.storage import resource_type_for


class FakeBlobStore:
    def __init__(self, events=None):
        self.objects: dict[str, str] = {}
        self.events = events if events is not None else []
        self.fail_uploads: set[str] = set()
        self.fail_deletes: set[str] = set()
        self.fail_folder = False

    def init(self) -> None:
        pass

    def seed(self, public_id: str, folder: str = "owners/test") -> None:
        self.objects[public_id] = folder

    def upload(self, local_path: str, folder: str, filename: str | None = None) -> BlobObject:
        name = filename or Path(local_path).name
        self.events.append(("blob.upload", name))
        if name in self.fail_uploads:
            raise ExternalStoreError(f"upload of {name} failed")
        Path(local_path).read_bytes()
        public_id = f"{folder}/{uuid4().hex}"
        self.objects[public_id] = folder
        return BlobObject(public_id=public_id, url=f"https://blobs.test/{public_id}", resource_type=resource_type_for(name))

    def delete(self, public_id: str) -> str:
        self.events.append(("blob.delete", public_id))
        if public_id in self.fail_deletes:
            raise ExternalStoreError(f"delete of {public_id} failed")
        if self.objects.pop(public_id, None) is None:
            return "not found"
        return "ok"

    def delete_folder(self, folder: str) -> None:
        self.events.append(("blob.delete_folder", folder))
        if self.fail_folder:
            raise ExternalStoreError(f"delete of folder {folder} failed")
        doomed = [key for key, owner in self.objects.items() if owner == folder]
        if not doomed:
            raise ExternalStoreError(f"folder {folder} not found")
        for key in doomed:
            del self.objects[key]


class FakeMetadataStore:
    def __init__(self, events=None):
        self.collections: dict[str, list[dict]] = defaultdict(list)
        self.events = events if events is not None else []
        self.fail_inserts = False
        self.fail_deletes: set[str] = set()

    def init(self) -> None:
        pass

    def seed(self, collection: str, document: dict) -> dict:
        document = {"_id": uuid4().hex, **document}
        self.collections[collection].append(document)
        return document

    @staticmethod
    def _matches(document: dict, filter: dict) -> bool:
        return all(document.get(key) == value for key, value in filter.items())

    def insert_one(self, collection: str, document: dict) -> str:
        return self.seed(collection, document)["_id"]

    def insert_many(self, collection: str, documents: list[dict]) -> list[str]:
        if self.fail_inserts:
            raise ExternalStoreError(f"insert into {collection} failed")
        return [self.seed(collection, doc)["_id"] for doc in documents]

    def find(self, collection, filter, sort=None, skip=0, limit=0):
        docs = [dict(doc) for doc in self.collections[collection] if self._matches(doc, filter)]
        for key, direction in reversed(sort or []):
            docs.sort(key=lambda doc, key=key: doc.get(key), reverse=direction < 0)
        docs = docs[skip:]
        return docs[:limit] if limit else docs

    def find_one(self, collection, filter):
        docs = self.find(collection, filter, limit=1)
        return docs[0] if docs else None

    def update_one(self, collection, filter, values) -> int:
        for doc in self.collections[collection]:
            if self._matches(doc, filter):
                doc.update(values)
                return 1
        return 0

    def delete_one(self, collection, filter) -> int:
        self.events.append(("metadata.delete", collection, filter.get("_id", filter.get("email"))))
        if filter.get("_id") in self.fail_deletes:
            raise ExternalStoreError(f"delete on {collection} failed")
        for index, doc in enumerate(self.collections[collection]):
            if self._matches(doc, filter):
                del self.collections[collection][index]
                return 1
        return 0


class RecordingMailer:
    def __init__(self):
        self.sent = []

    def send(self, to: str, subject: str, html: str) -> None:
        self.sent.append({"to": to, "subject": subject, "html": html})


@pytest.fixture
def events():
    return []


@pytest.fixture
def blob_store(events):
    return FakeBlobStore(events)


@pytest.fixture
def metadata_store(events):
    return FakeMetadataStore(events)


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def reconciler(blob_store, metadata_store):
    return AssetReconciler(blob_store, metadata_store)


@pytest.fixture
def make_files(tmp_path):
    def _make(*names: str) -> list[LocalFile]:
        files = []
        for name in names:
            path = tmp_path / f"{uuid4().hex}-{name}"
            path.write_bytes(f"content of {name}".encode("utf-8"))
            files.append(LocalFile(path=str(path), filename=name, size=path.stat().st_size))
        return files

    return _make
