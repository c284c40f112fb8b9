"""
GenBridge SG — Fixed-window rate limiting.

Each (scope, user) pair gets ``limit`` requests per window.  The first request
opens the window; once the limit is reached every further request is
rejected until the window expires.  There is no automatic retry anywhere
behind a rejection.

Two backends:

  RedisRateLimiter     INCR + EXPIRE, shared across processes and restarts
  InMemoryRateLimiter  per-process dict, resets on restart

``get_rate_limiter()`` returns the Redis variant once ``configure_rate_limiter``
has been handed a client (done in the app lifespan when ``REDIS_URL`` is
set), otherwise the in-memory one.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import structlog

logger = structlog.get_logger("genbridge.rate_limit")

_KEY_PREFIX = "genbridge:ratelimit:"

# Expired in-memory windows are dropped at most this often.
_SWEEP_INTERVAL_SECONDS = 60.0


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_in: int  # seconds until the window closes
    limit: int

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_in),
        }


class RateLimiter(Protocol):
    async def check(self, scope: str, user_id: Any, limit: int, window_seconds: int) -> RateLimitResult: ...


class InMemoryRateLimiter:
    """Process-local counters keyed by ``scope:user``."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._windows: dict[str, tuple[int, float]] = {}
        self._next_sweep = 0.0

    async def check(self, scope: str, user_id: Any, limit: int, window_seconds: int) -> RateLimitResult:
        key = f"{scope}:{user_id}"
        now = self._clock()
        self._sweep(now)
        count, reset_at = self._windows.get(key, (0, 0.0))

        if count == 0 or now > reset_at:
            reset_at = now + window_seconds
            self._windows[key] = (1, reset_at)
            return RateLimitResult(True, limit - 1, window_seconds, limit)

        reset_in = max(0, math.ceil(reset_at - now))
        if count >= limit:
            logger.info("rate_limit_exceeded", scope=scope, user_id=str(user_id))
            return RateLimitResult(False, 0, reset_in, limit)

        count += 1
        self._windows[key] = (count, reset_at)
        return RateLimitResult(True, limit - count, reset_in, limit)

    def reset(self) -> None:
        self._windows.clear()

    @property
    def window_count(self) -> int:
        return len(self._windows)

    def _sweep(self, now: float) -> None:
        if now < self._next_sweep:
            return
        expired = [key for key, (_, reset_at) in self._windows.items() if reset_at < now]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + _SWEEP_INTERVAL_SECONDS
        if expired:
            logger.debug("rate_limit_windows_evicted", count=len(expired))


class RedisRateLimiter:
    """Counters in Redis; the key's TTL is the window."""

    def __init__(self, redis_client: Any) -> None:
        self._redis = redis_client

    async def check(self, scope: str, user_id: Any, limit: int, window_seconds: int) -> RateLimitResult:
        key = f"{_KEY_PREFIX}{scope}:{user_id}"

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.ttl(key)
            count, ttl = await pipe.execute()

        if count == 1 or ttl is None or ttl < 0:
            await self._redis.expire(key, window_seconds)
            ttl = window_seconds

        if count > limit:
            logger.info("rate_limit_exceeded", scope=scope, user_id=str(user_id))
            return RateLimitResult(False, 0, int(ttl), limit)

        return RateLimitResult(True, limit - count, int(ttl), limit)


_default_limiter: RateLimiter = InMemoryRateLimiter()
_configured_limiter: RateLimiter | None = None


def configure_rate_limiter(redis_client: Any | None) -> None:
    global _configured_limiter
    _configured_limiter = RedisRateLimiter(redis_client) if redis_client is not None else None
    logger.info("rate_limiter_configured", backend="redis" if redis_client is not None else "memory")


def get_rate_limiter() -> RateLimiter:
    return _configured_limiter or _default_limiter
