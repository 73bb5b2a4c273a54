"""Blob storage backends for commit archives."""

from commitsync.storage.blob_store import BlobStore, LocalBlobStore, S3BlobStore, blob_store_from_env

__all__ = ["BlobStore", "LocalBlobStore", "S3BlobStore", "blob_store_from_env"]
