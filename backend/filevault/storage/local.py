import logging
import os
import shutil
from typing import BinaryIO

from starlette.concurrency import run_in_threadpool

from filevault.core.exceptions import BlobNotFound, BlobStorageError
from filevault.storage.base import BlobStore, generate_storage_key

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class LocalBlobStore(BlobStore):
    """Blobs as files under a date-partitioned directory tree."""

    def __init__(self, base_path: str, base_url: str):
        self.base_path = os.path.abspath(base_path)
        self.base_url = base_url.rstrip("/")
        os.makedirs(self.base_path, exist_ok=True)

    def _full_path(self, storage_key: str) -> str:
        full = os.path.abspath(os.path.join(self.base_path, storage_key))
        if os.path.commonpath([full, self.base_path]) != self.base_path:
            raise BlobStorageError(f"Storage key escapes the storage root: {storage_key}")
        return full

    def _write(self, content: BinaryIO, storage_key: str) -> None:
        full = self._full_path(storage_key)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        try:
            with open(full, "xb") as out:
                shutil.copyfileobj(content, out, CHUNK_SIZE)
        except BaseException:
            try:
                os.remove(full)
            except FileNotFoundError:
                pass
            raise

    async def put(self, content: BinaryIO, logical_name: str, content_type: str) -> tuple[str, str]:
        storage_key = generate_storage_key(logical_name)
        try:
            await run_in_threadpool(self._write, content, storage_key)
        except OSError as e:
            raise BlobStorageError(f"Failed to write {storage_key}: {e}") from e
        logger.debug("Stored blob %s (%s)", storage_key, content_type)
        return storage_key, self.resolve_url(storage_key)

    async def delete(self, storage_key: str) -> None:
        full = self._full_path(storage_key)
        try:
            await run_in_threadpool(os.remove, full)
        except FileNotFoundError as e:
            raise BlobNotFound(storage_key) from e
        except OSError as e:
            raise BlobStorageError(f"Failed to delete {storage_key}: {e}") from e

    def resolve_url(self, storage_key: str) -> str:
        return f"{self.base_url}/{storage_key}"

    async def ping(self) -> None:
        if not os.access(self.base_path, os.W_OK):
            raise BlobStorageError(f"Storage root is not writable: {self.base_path}")
