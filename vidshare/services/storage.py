"""Object storage abstractions for interacting with MinIO."""

from __future__ import annotations

from functools import lru_cache
from io import BytesIO
from typing import Iterable, Protocol
from urllib.parse import urlparse

import structlog
from minio import Minio
from minio.deleteobjects import DeleteObject
from minio.error import MinioException, S3Error
from urllib3.exceptions import HTTPError

from ..core.config import get_settings
from .errors import StorageReadFailure, StorageWriteFailure

logger = structlog.get_logger()

_NETWORK_ERRORS = (MinioException, HTTPError, OSError)


class StorageConfigurationError(RuntimeError):
    """Raised when storage configuration is invalid."""


class ObjectStorage(Protocol):
    """Operations the transfer pipelines need from remote storage."""

    def upload(
        self, key: str, data: bytes, *, content_type: str, overwrite: bool = True
    ) -> None: ...

    def download(self, key: str) -> bytes: ...

    def delete(self, keys: Iterable[str]) -> None: ...

    def list(self, prefix: str = "", search: str | None = None) -> list[str]: ...


class MinioStorageService:
    """Bucket-scoped wrapper around MinIO used by the upload and fetch pipelines."""

    def __init__(self, *, client: Minio, bucket: str) -> None:
        self._client = client
        self._bucket = bucket
        self._ensure_bucket()

    def _ensure_bucket(self) -> None:
        try:
            if not self._client.bucket_exists(self._bucket):
                self._client.make_bucket(self._bucket)
        except S3Error as exc:
            raise StorageConfigurationError(
                f"Unable to ensure bucket '{self._bucket}': {exc}"
            ) from exc

    def object_exists(self, key: str) -> bool:
        """Missing keys are False; any other S3 error propagates."""
        try:
            self._client.stat_object(self._bucket, key)
            return True
        except S3Error as exc:
            if exc.code in {"NoSuchKey", "NoSuchObject"}:
                return False
            raise

    def upload(
        self, key: str, data: bytes, *, content_type: str, overwrite: bool = True
    ) -> None:
        """Store ``data`` under ``key``; S3 semantics already replace existing objects."""

        if not overwrite and self.object_exists(key):
            raise StorageWriteFailure(
                f"Object '{key}' already exists", details={"key": key}
            )
        try:
            self._client.put_object(
                self._bucket,
                key,
                BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except _NETWORK_ERRORS as exc:
            raise StorageWriteFailure(str(exc), details={"key": key}) from exc

    def download(self, key: str) -> bytes:
        response = None
        try:
            response = self._client.get_object(self._bucket, key)
            return response.read()
        except _NETWORK_ERRORS as exc:
            raise StorageReadFailure(str(exc), details={"key": key}) from exc
        finally:
            if response is not None:
                response.close()
                response.release_conn()

    def delete(self, keys: Iterable[str]) -> None:
        """Best-effort removal; failures are logged and ignored."""

        targets = [DeleteObject(key) for key in keys]
        if not targets:
            return
        try:
            for error in self._client.remove_objects(self._bucket, targets):
                logger.warning(
                    "storage.delete_failed", key=error.name, error=error.message
                )
        except _NETWORK_ERRORS as exc:
            logger.warning("storage.delete_failed", keys=len(targets), error=str(exc))

    def list(self, prefix: str = "", search: str | None = None) -> list[str]:
        try:
            names = [
                obj.object_name
                for obj in self._client.list_objects(
                    self._bucket, prefix=prefix or None, recursive=True
                )
            ]
        except _NETWORK_ERRORS as exc:
            raise StorageReadFailure(str(exc), details={"prefix": prefix}) from exc
        if search:
            names = [name for name in names if search in name]
        return names


@lru_cache
def build_storage_service() -> MinioStorageService:
    """Instantiate a storage service from application settings."""

    settings = get_settings()
    if not all(
        [
            settings.s3_endpoint_url,
            settings.s3_access_key,
            settings.s3_secret_key,
        ]
    ):
        raise StorageConfigurationError("S3/MinIO environment variables are not fully set")

    parsed = urlparse(str(settings.s3_endpoint_url))
    secure = (
        settings.s3_secure
        if settings.s3_secure is not None
        else parsed.scheme == "https"
    )
    client = Minio(
        parsed.netloc,
        access_key=settings.s3_access_key,
        secret_key=settings.s3_secret_key,
        secure=secure,
        region=settings.s3_region,
    )
    return MinioStorageService(client=client, bucket=settings.storage_bucket)
