import abc
import os
import uuid
from datetime import datetime
from typing import BinaryIO

from filevault.utils.timeutils import utcnow


def generate_storage_key(logical_name: str, now: datetime | None = None) -> str:
    """
    Fresh blob key ``YYYY/MM/DD/<uuid4>[.ext]`` partitioned by UTC date.

    The layout is part of previously issued public URLs and must not change.
    """
    now = now or utcnow()
    key = f"{now:%Y/%m/%d}/{uuid.uuid4()}"
    ext = os.path.splitext(logical_name or "")[1]
    if ext and len(ext) <= 16 and "/" not in ext and "\\" not in ext:
        key += ext.lower()
    return key


class BlobStore(abc.ABC):
    """Key-addressed byte storage. Keys are always generated by the store."""

    @abc.abstractmethod
    async def put(self, content: BinaryIO, logical_name: str, content_type: str) -> tuple[str, str]:
        """Store ``content`` under a new key. Returns ``(storage_key, public_url)``."""

    @abc.abstractmethod
    async def delete(self, storage_key: str) -> None:
        """
        Remove a blob.

        Raises:
            BlobNotFound: the key does not exist.
            BlobStorageError: the backend failed.
        """

    @abc.abstractmethod
    def resolve_url(self, storage_key: str) -> str:
        """Public URL for a key."""

    async def ping(self) -> None:
        """Health probe; raises when the backend is unusable."""
