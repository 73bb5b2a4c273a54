"""Blob store — durable object storage for commit archives.

Two backends share the :class:`BlobStore` interface:

- :class:`S3BlobStore` — any S3-compatible service via boto3.  boto3 is
  synchronous, so every call is pushed to a worker thread.
- :class:`LocalBlobStore` — a directory tree, for development and tests.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath

import boto3
import structlog
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from commitsync.exceptions import StoreError

log = structlog.get_logger("commitsync.storage")

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class BlobStore(ABC):
    """Key → bytes storage."""

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> None:
        """Store *data* under *key*, replacing any existing object.

        Raises :class:`StoreError` on failure.
        """

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return the object under *key*, or None if it does not exist."""

    @abstractmethod
    async def exists(self, key: str) -> bool: ...


# ── S3 ────────────────────────────────────────────────────────────────────


class S3BlobStore(BlobStore):
    def __init__(
        self,
        bucket: str,
        *,
        endpoint: str | None = None,
        region: str | None = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        max_attempts: int = 3,
        client=None,
    ) -> None:
        self.bucket = bucket
        self.endpoint = endpoint
        if client is None:
            config = BotoConfig(
                signature_version="s3v4",
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                retries={"max_attempts": max_attempts, "mode": "adaptive"},
            )
            client = boto3.client(
                "s3", endpoint_url=endpoint, region_name=region, config=config
            )
        self._client = client

    @classmethod
    def from_env(cls) -> S3BlobStore:
        return cls(
            os.environ.get("COMMITSYNC_S3_BUCKET", "commitsync-archives"),
            endpoint=os.environ.get("COMMITSYNC_S3_ENDPOINT") or None,
            region=os.environ.get("COMMITSYNC_S3_REGION") or None,
        )

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as exc:
            raise StoreError(f"upload of {key} to s3://{self.bucket} failed: {exc}") from exc
        log.debug("blob.put", backend="s3", key=key, size=len(data))

    async def get(self, key: str) -> bytes | None:
        def _read() -> bytes:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()

        try:
            return await asyncio.to_thread(_read)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                return None
            raise StoreError(f"download of {key} from s3://{self.bucket} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreError(f"download of {key} from s3://{self.bucket} failed: {exc}") from exc

    async def exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self._client.head_object, Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                return False
            raise StoreError(f"head of {key} in s3://{self.bucket} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreError(f"head of {key} in s3://{self.bucket} failed: {exc}") from exc
        return True


# ── local filesystem ──────────────────────────────────────────────────────


class LocalBlobStore(BlobStore):
    """Objects stored as files under *root*; keys are relative POSIX paths."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    @classmethod
    def from_env(cls) -> LocalBlobStore:
        return cls(os.environ.get("COMMITSYNC_LOCAL_BLOB_DIR", "/tmp/commitsync-blobs"))

    def _path(self, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not parts or PurePosixPath(key).is_absolute() or ".." in parts:
            raise StoreError(f"invalid blob key: {key!r}")
        return self.root.joinpath(*parts)

    def _write(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp, target)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        target = self._path(key)
        try:
            await asyncio.to_thread(self._write, target, data)
        except OSError as exc:
            raise StoreError(f"write of {key} failed: {exc}") from exc
        log.debug("blob.put", backend="local", key=key, size=len(data))

    async def get(self, key: str) -> bytes | None:
        target = self._path(key)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreError(f"read of {key} failed: {exc}") from exc

    async def exists(self, key: str) -> bool:
        return self._path(key).is_file()


def blob_store_from_env() -> BlobStore:
    """Pick the backend named by ``COMMITSYNC_BLOB_BACKEND`` (``s3`` or ``local``)."""
    backend = os.environ.get("COMMITSYNC_BLOB_BACKEND", "s3").lower()
    if backend == "local":
        return LocalBlobStore.from_env()
    if backend == "s3":
        return S3BlobStore.from_env()
    raise ValueError(f"unknown COMMITSYNC_BLOB_BACKEND: {backend!r}")
