import glob
import logging
import mimetypes
import shutil
from pathlib import Path
from typing import Protocol
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from asset_vault.config import Settings
from asset_vault.errors import ExternalStoreError, ValidationError
from asset_vault.models import BlobObject

logger = logging.getLogger(__name__)

OWNER_FOLDER_ROOT = "owners"


def owner_folder(owner_id: str) -> str:
    """Folder every blob of ``owner_id`` lives under.

    Uploads, folder removal on purge, and public ids all derive from this.
    Owner ids that could name another folder are rejected.
    """
    owner_id = owner_id.strip()
    if not owner_id or "/" in owner_id or "\\" in owner_id or ".." in owner_id or owner_id == ".":
        raise ValidationError(f"invalid owner id: {owner_id!r}")
    return f"{OWNER_FOLDER_ROOT}/{owner_id}"


def resource_type_for(filename: str, content_type: str | None = None) -> str:
    guessed = content_type or mimetypes.guess_type(filename)[0] or ""
    if guessed.startswith("image/"):
        return "image"
    if guessed.startswith(("video/", "audio/")):
        return "video"
    return "raw"


class BlobStore(Protocol):
    def init(self) -> None: ...

    def upload(self, local_path: str, folder: str, filename: str | None = None) -> BlobObject: ...

    def delete(self, public_id: str) -> str: ...

    def delete_folder(self, folder: str) -> None: ...


class LocalBlobStore:
    """Blob store on the local filesystem, used for development and tests."""

    def __init__(self, root_dir: str, base_url: str = ""):
        self.root = Path(root_dir)
        self.base_url = base_url.rstrip("/")

    def init(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def _contained(self, relative: str) -> Path | None:
        if Path(relative).is_absolute():
            return None
        root = self.root.resolve()
        path = (root / relative).resolve()
        if path == root or not path.is_relative_to(root):
            return None
        return path

    def _folder_dir(self, folder: str) -> Path:
        folder_path = self._contained(folder)
        if folder_path is None:
            raise ExternalStoreError(f"folder {folder} is outside the blob root")
        folder_path.mkdir(parents=True, exist_ok=True)
        return folder_path

    def _find(self, public_id: str) -> Path | None:
        target = self._contained(public_id)
        if target is None:
            return None
        for candidate in target.parent.glob(f"{glob.escape(target.name)}*"):
            if candidate.is_file() and candidate.stem == target.name:
                return candidate
        return None

    def upload(self, local_path: str, folder: str, filename: str | None = None) -> BlobObject:
        name = filename or Path(local_path).name
        blob_name = uuid4().hex
        suffix = Path(name).suffix
        try:
            target = self._folder_dir(folder) / f"{blob_name}{suffix}"
            shutil.copyfile(local_path, target)
        except OSError as exc:
            raise ExternalStoreError(f"upload of {name} failed: {exc}") from exc

        public_id = f"{folder}/{blob_name}"
        return BlobObject(
            public_id=public_id,
            url=f"{self.base_url}/{public_id}{suffix}",
            resource_type=resource_type_for(name),
        )

    def delete(self, public_id: str) -> str:
        path = self._find(public_id)
        if path is None:
            return "not found"
        try:
            path.unlink()
        except OSError as exc:
            raise ExternalStoreError(f"delete of {public_id} failed: {exc}") from exc
        return "ok"

    def delete_folder(self, folder: str) -> None:
        folder_path = self._contained(folder)
        if folder_path is None:
            raise ExternalStoreError(f"folder {folder} is outside the blob root")
        if not folder_path.is_dir():
            raise ExternalStoreError(f"folder {folder} not found")
        try:
            shutil.rmtree(folder_path)
        except OSError as exc:
            raise ExternalStoreError(f"delete of folder {folder} failed: {exc}") from exc


class S3BlobStore:
    def __init__(self, bucket: str, *, region: str, endpoint_url: str | None = None, base_url: str = ""):
        if not bucket:
            raise ValueError("S3 bucket name is not set")
        self.bucket = bucket
        self.client = boto3.client("s3", region_name=region, endpoint_url=endpoint_url)
        self.base_url = base_url.rstrip("/") or f"https://{bucket}.s3.{region}.amazonaws.com"

    def init(self) -> None:
        logger.info(f"Using S3 bucket: {self.bucket}")

    def upload(self, local_path: str, folder: str, filename: str | None = None) -> BlobObject:
        name = filename or Path(local_path).name
        public_id = f"{folder}/{uuid4().hex}{Path(name).suffix}"
        content_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
        try:
            with open(local_path, "rb") as file_data:
                self.client.put_object(
                    Bucket=self.bucket,
                    Key=public_id,
                    Body=file_data,
                    ContentType=content_type,
                    CacheControl="no-cache",
                )
        except (OSError, BotoCoreError, ClientError) as exc:
            raise ExternalStoreError(f"upload of {name} failed: {exc}") from exc

        return BlobObject(
            public_id=public_id,
            url=f"{self.base_url}/{public_id}",
            resource_type=resource_type_for(name, content_type),
        )

    def delete(self, public_id: str) -> str:
        try:
            self.client.head_object(Bucket=self.bucket, Key=public_id)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return "not found"
            raise ExternalStoreError(f"delete of {public_id} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise ExternalStoreError(f"delete of {public_id} failed: {exc}") from exc

        try:
            self.client.delete_object(Bucket=self.bucket, Key=public_id)
        except (BotoCoreError, ClientError) as exc:
            raise ExternalStoreError(f"delete of {public_id} failed: {exc}") from exc
        return "ok"

    def delete_folder(self, folder: str) -> None:
        prefix = folder.rstrip("/") + "/"
        removed = 0
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys = [{"Key": item["Key"]} for item in page.get("Contents", [])]
                if not keys:
                    continue
                self.client.delete_objects(Bucket=self.bucket, Delete={"Objects": keys, "Quiet": True})
                removed += len(keys)
        except (BotoCoreError, ClientError) as exc:
            raise ExternalStoreError(f"delete of folder {folder} failed: {exc}") from exc
        if not removed:
            raise ExternalStoreError(f"folder {folder} not found")


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.storage_backend == "s3":
        return S3BlobStore(
            settings.s3_bucket_name,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
        )
    if settings.storage_backend == "local":
        return LocalBlobStore(settings.storage_dir, base_url=settings.public_base_url)
    raise ValueError(f"unknown storage backend: {settings.storage_backend}")
