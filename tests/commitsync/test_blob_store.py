"""Tests for blob store backends."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from commitsync.exceptions import StoreError
from commitsync.storage.blob_store import (
    LocalBlobStore,
    S3BlobStore,
    blob_store_from_env,
)


def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, "op")


class TestLocalBlobStore:
    @pytest.mark.asyncio
    async def test_put_get_exists(self, tmp_path):
        store = LocalBlobStore(tmp_path)
        key = "commits/r1/abc.zip"
        assert not await store.exists(key)
        await store.put(key, b"PK\x03\x04", "application/zip")
        assert await store.exists(key)
        assert await store.get(key) == b"PK\x03\x04"
        assert (tmp_path / "commits" / "r1" / "abc.zip").is_file()

    @pytest.mark.asyncio
    async def test_put_overwrites(self, tmp_path):
        store = LocalBlobStore(tmp_path)
        await store.put("k", b"one", "text/plain")
        await store.put("k", b"two", "text/plain")
        assert await store.get("k") == b"two"

    @pytest.mark.asyncio
    async def test_missing_key(self, tmp_path):
        assert await LocalBlobStore(tmp_path).get("nope") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["../escape", "/abs/path", "a/../../b", ""])
    async def test_rejects_traversal(self, tmp_path, key):
        with pytest.raises(StoreError):
            await LocalBlobStore(tmp_path / "root").put(key, b"x", "text/plain")


class TestS3BlobStore:
    @pytest.mark.asyncio
    async def test_put_sends_content_type(self):
        client = MagicMock()
        store = S3BlobStore("bucket", client=client)
        await store.put("commits/r/s.zip", b"data", "application/zip")
        client.put_object.assert_called_once_with(
            Bucket="bucket", Key="commits/r/s.zip", Body=b"data", ContentType="application/zip"
        )

    @pytest.mark.asyncio
    async def test_put_failure_is_store_error(self):
        client = MagicMock()
        client.put_object.side_effect = _client_error("AccessDenied")
        with pytest.raises(StoreError, match="commits/r/s.zip"):
            await S3BlobStore("bucket", client=client).put("commits/r/s.zip", b"x", "a/b")

    @pytest.mark.asyncio
    async def test_get(self):
        client = MagicMock()
        client.get_object.return_value = {"Body": MagicMock(read=MagicMock(return_value=b"zip"))}
        assert await S3BlobStore("bucket", client=client).get("k") == b"zip"

    @pytest.mark.asyncio
    async def test_get_missing(self):
        client = MagicMock()
        client.get_object.side_effect = _client_error("NoSuchKey")
        assert await S3BlobStore("bucket", client=client).get("k") is None

    @pytest.mark.asyncio
    async def test_exists(self):
        client = MagicMock()
        store = S3BlobStore("bucket", client=client)
        assert await store.exists("k")
        client.head_object.side_effect = _client_error("404")
        assert not await store.exists("k")

    @pytest.mark.asyncio
    async def test_exists_other_error(self):
        client = MagicMock()
        client.head_object.side_effect = _client_error("403")
        with pytest.raises(StoreError):
            await S3BlobStore("bucket", client=client).exists("k")


class TestBlobStoreFromEnv:
    def test_local_backend(self, monkeypatch, tmp_path):
        monkeypatch.setenv("COMMITSYNC_BLOB_BACKEND", "local")
        monkeypatch.setenv("COMMITSYNC_LOCAL_BLOB_DIR", str(tmp_path))
        store = blob_store_from_env()
        assert isinstance(store, LocalBlobStore)
        assert store.root == tmp_path

    def test_unknown_backend(self, monkeypatch):
        monkeypatch.setenv("COMMITSYNC_BLOB_BACKEND", "ftp")
        with pytest.raises(ValueError, match="ftp"):
            blob_store_from_env()
