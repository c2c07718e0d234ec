import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from filevault.cache.base import CacheBackend
from filevault.core.exceptions import CacheError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int = 0
    retry_after: int = 0


class RateLimiter:
    """
    Fixed-window request counter stored in the lookaside cache.

    The window opens with the first request of an identity and closes
    ``window_seconds`` later. The count is read, checked and written back
    without any atomic increment, so concurrent bursts may be slightly
    over-admitted. A cache failure or an evicted window admits the request.
    """

    def __init__(
        self,
        cache: CacheBackend,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ):
        self.cache = cache
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock

    @staticmethod
    def key(identity: str) -> str:
        return f"ratelimit:{identity}"

    def _decode(self, raw: bytes | None) -> tuple[int, float] | None:
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            return int(data["count"]), float(data["reset_at"])
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding malformed rate limit window: %r", raw)
            return None

    async def check(self, identity: str) -> RateDecision:
        key = self.key(identity)
        now = self._clock()

        try:
            raw = await self.cache.get(key)
        except CacheError as e:
            logger.warning("Rate limit lookup failed for %s, allowing: %s", identity, e)
            return RateDecision(allowed=True, remaining=self.max_requests - 1)

        window = self._decode(raw)
        if window is None or window[1] <= now:
            count, reset_at = 0, now + self.window_seconds
        else:
            count, reset_at = window

        if count >= self.max_requests:
            retry_after = max(1, math.ceil(reset_at - now))
            return RateDecision(allowed=False, remaining=0, retry_after=retry_after)

        count += 1
        payload = json.dumps({"count": count, "reset_at": reset_at}).encode()
        try:
            await self.cache.set(key, payload, reset_at - now)
        except CacheError as e:
            logger.warning("Rate limit update failed for %s: %s", identity, e)
        return RateDecision(allowed=True, remaining=self.max_requests - count)

    async def allow(self, identity: str) -> bool:
        return (await self.check(identity)).allowed
