import abc


class CacheBackend(abc.ABC):
    """
    Key-value lookaside cache with per-entry TTL.

    Values are opaque bytes. ``get`` returns ``None`` for a miss, whether the key
    was never set or has expired. Backend failures raise ``CacheError``.
    """

    @abc.abstractmethod
    async def set(self, key: str, value: bytes, ttl: float) -> None:
        ...

    @abc.abstractmethod
    async def get(self, key: str) -> bytes | None:
        ...

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abc.abstractmethod
    async def close(self) -> None:
        ...

    async def start(self) -> None:
        """Start background maintenance, if the backend has any."""

    async def ping(self) -> None:
        """Health probe; raises ``CacheError`` when unreachable."""
