"""Fixed-window request limiters keyed by client identifier.

A client's window opens on its first request and lasts `window_seconds`; every
request inside the window (rejected ones included) counts towards `limit`.
"""

import math
import time
from dataclasses import dataclass
from typing import Callable


Clock = Callable[[], float]


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def retry_after(self, now: float) -> int:
        return max(0, math.ceil(self.reset_at - now))


@dataclass
class _Window:
    count: int
    reset_at: float


class InMemoryRateLimiter:
    """Process-local limiter; counters live for the process lifetime."""

    def __init__(self, limit: int, window_seconds: float, clock: Clock = time.time) -> None:
        self.limit = int(limit)
        self.window_seconds = float(window_seconds)
        self.clock = clock
        self._windows: dict[str, _Window] = {}
        self._next_sweep = clock() + self.window_seconds

    def _sweep(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if window.reset_at <= now]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self.window_seconds

    async def hit(self, key: str) -> RateLimitDecision:
        # No awaits below: the read-modify-write is atomic on the event loop.
        now = self.clock()
        if now >= self._next_sweep:
            self._sweep(now)
        window = self._windows.get(key)
        if window is None or window.reset_at <= now:
            window = _Window(count=0, reset_at=now + self.window_seconds)
            self._windows[key] = window
        window.count += 1
        return RateLimitDecision(
            allowed=window.count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - window.count),
            reset_at=window.reset_at,
        )

    async def reset(self, key: str) -> None:
        self._windows.pop(key, None)

    async def close(self) -> None:
        self._windows.clear()


class RedisRateLimiter:
    """Limiter shared by every gateway process through Redis INCR + EXPIRE."""

    def __init__(
        self,
        client,
        limit: int,
        window_seconds: int,
        clock: Clock = time.time,
        prefix: str = "ratelimit",
    ) -> None:
        self.client = client
        self.limit = int(limit)
        self.window_seconds = int(window_seconds)
        self.clock = clock
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, limit: int, window_seconds: int, **kwargs) -> "RedisRateLimiter":
        from redis import asyncio as aioredis

        return cls(aioredis.Redis.from_url(url, decode_responses=True), limit, window_seconds, **kwargs)

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def hit(self, key: str) -> RateLimitDecision:
        redis_key = self._key(key)
        now = self.clock()
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.incr(redis_key)
            pipe.ttl(redis_key)
            count, ttl = await pipe.execute()
        if ttl is None or ttl < 0:
            # First hit of a new window (or a key that lost its expiry).
            await self.client.expire(redis_key, self.window_seconds)
            ttl = self.window_seconds
        count = int(count)
        return RateLimitDecision(
            allowed=count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_at=now + ttl,
        )

    async def reset(self, key: str) -> None:
        await self.client.delete(self._key(key))

    async def close(self) -> None:
        await self.client.aclose()
