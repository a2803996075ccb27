"""AWS S3 storage for files attached to bots."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import CONFIG
from ..logger import tagged


class StorageError(RuntimeError):
    """Raised when the object store rejects or fails a request."""


class StorageFileNotFound(StorageError):
    """Raised when a stored object no longer exists."""


class StorageNotConfiguredError(StorageError):
    """Raised when no bucket is configured."""


_storage_log = tagged("storage")


@dataclass
class StoredObject:
    """A readable handle on an object fetched from the bucket."""

    body: Any
    content_length: Optional[int] = None

    def iter_chunks(self, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        try:
            for chunk in self.body.iter_chunks(chunk_size=chunk_size):
                yield chunk
        finally:
            self.body.close()


class S3StorageService:
    """Handle bot file uploads, downloads and deletes via AWS S3."""

    def __init__(self, client: Any = None, bucket_name: Optional[str] = None, key_prefix: Optional[str] = None):
        self.bucket_name = bucket_name or getattr(CONFIG, "s3_bucket_name", None)
        if not self.bucket_name:
            raise StorageNotConfiguredError("S3_BUCKET_NAME must be set to store bot files")
        self.key_prefix = (key_prefix if key_prefix is not None else CONFIG.s3_key_prefix).strip("/")
        self.s3_client = client or boto3.client(
            's3',
            aws_access_key_id=CONFIG.s3_access_key_id,
            aws_secret_access_key=CONFIG.s3_secret_access_key,
            region_name=CONFIG.s3_region,
            endpoint_url=CONFIG.s3_endpoint_url,
        )

    def object_key(self, key: str, file_type: str) -> str:
        name = f"{key}.{file_type}"
        return f"{self.key_prefix}/{name}" if self.key_prefix else name

    def put_object(self, key: str, file_type: str, data: bytes, *, content_type: Optional[str] = None) -> str:
        object_key = self.object_key(key, file_type)
        extra = {"ContentType": content_type} if content_type else {}
        try:
            self.s3_client.put_object(Bucket=self.bucket_name, Key=object_key, Body=data, **extra)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Couldn't upload file: {exc}") from exc
        _storage_log("stored object", key=object_key, size=len(data))
        return object_key

    def open_object(self, key: str, file_type: str) -> StoredObject:
        object_key = self.object_key(key, file_type)
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=object_key)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in {"NoSuchKey", "404"}:
                raise StorageFileNotFound(f"Stored file {object_key} does not exist") from exc
            raise StorageError(f"Couldn't download the file: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Couldn't download the file: {exc}") from exc
        return StoredObject(body=response["Body"], content_length=response.get("ContentLength"))

    def delete_object(self, key: str, file_type: str) -> None:
        object_key = self.object_key(key, file_type)
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=object_key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Couldn't remove the file: {exc}") from exc
        _storage_log("deleted object", key=object_key)


_storage_service: Optional[S3StorageService] = None


def get_storage_service() -> S3StorageService:
    """Get the global storage service instance."""
    global _storage_service
    if _storage_service is None:
        _storage_service = S3StorageService()
    return _storage_service


def reset_storage_service() -> None:
    global _storage_service
    _storage_service = None


__all__ = [
    "S3StorageService",
    "StorageError",
    "StorageFileNotFound",
    "StorageNotConfiguredError",
    "StoredObject",
    "get_storage_service",
    "reset_storage_service",
]
