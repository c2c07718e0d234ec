import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from filevault.cache.base import CacheBackend
from filevault.core.exceptions import CacheError

logger = logging.getLogger(__name__)


class RedisCache(CacheBackend):
    """Cache backed by Redis; expiry is enforced by the server."""

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str, timeout: float = 2.0) -> "RedisCache":
        client = redis.Redis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client)

    async def ping(self) -> None:
        try:
            await self.client.ping()
        except RedisError as e:
            raise CacheError(f"Failed to connect to Redis: {e}") from e

    async def set(self, key: str, value: bytes, ttl: float) -> None:
        try:
            await self.client.set(key, value, px=max(1, int(ttl * 1000)))
        except RedisError as e:
            raise CacheError(f"Failed to set {key}: {e}") from e

    async def get(self, key: str) -> bytes | None:
        try:
            return await self.client.get(key)
        except RedisError as e:
            raise CacheError(f"Failed to get {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except RedisError as e:
            raise CacheError(f"Failed to delete {key}: {e}") from e

    async def close(self) -> None:
        try:
            await self.client.aclose()
        except RedisError as e:
            logger.warning("Error closing Redis connection: %s", e)
