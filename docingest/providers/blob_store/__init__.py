"""Blob store providers for uploaded file bytes."""

from docingest.providers.blob_store.local_blob_store import LocalBlobStore

__all__ = ["LocalBlobStore"]
