from .base import BlobStore, generate_storage_key
from .local import LocalBlobStore
from .minio_store import MinioBlobStore

__all__ = ["BlobStore", "LocalBlobStore", "MinioBlobStore", "generate_storage_key"]
