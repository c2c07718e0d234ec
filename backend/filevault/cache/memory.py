import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from filevault.cache.base import CacheBackend

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL = 60.0
LOCK_STRIPES = 64


@dataclass
class CacheEntry:
    value: bytes
    expires_at: float


class MemoryCache(CacheBackend):
    """
    In-process cache. Operations on a key are serialized by one of a fixed set
    of striped locks, so unrelated keys never contend on a single global lock.
    """

    def __init__(
        self,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._data: dict[str, CacheEntry] = {}
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]
        self._clock = clock
        self.sweep_interval = sweep_interval
        self._sweeper: asyncio.Task | None = None

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % LOCK_STRIPES]

    async def set(self, key: str, value: bytes, ttl: float) -> None:
        entry = CacheEntry(value=value, expires_at=self._clock() + ttl)
        with self._lock_for(key):
            self._data[key] = entry

    async def get(self, key: str) -> bytes | None:
        with self._lock_for(key):
            entry = self._data.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._data[key]
                return None
            return entry.value

    async def delete(self, key: str) -> None:
        with self._lock_for(key):
            self._data.pop(key, None)

    def evict_expired(self) -> int:
        """Drop every expired entry. Returns the number evicted."""
        now = self._clock()
        evicted = 0
        for key in list(self._data.keys()):
            with self._lock_for(key):
                entry = self._data.get(key)
                if entry is not None and now >= entry.expires_at:
                    del self._data[key]
                    evicted += 1
        return evicted

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            evicted = self.evict_expired()
            if evicted:
                logger.debug("Evicted %s expired cache entries", evicted)

    async def start(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def close(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
