"""Fixed-window rate limiting for the order-submission endpoints.

The window is fixed, not sliding: a burst straddling a window boundary can be
admitted at close to twice the configured maximum. This matches the behaviour
the storefront has always had and is kept until product decides otherwise.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from threading import Lock
from typing import Any, Protocol

import redis

from storefront_core.core.settings import settings

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    """Admission control keyed by caller (usually the client IP)."""

    def allow(self, key: str) -> bool: ...


@dataclass
class RateLimitBucket:
    """Requests seen for one key in its current window."""

    count: int
    window_start: float


class InMemoryRateLimiter:
    """Process-local fixed-window limiter.

    Suitable for single-instance deployments only; buckets whose window has
    elapsed are evicted periodically so idle callers do not accumulate.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        *,
        max_buckets: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_buckets = max_buckets
        self._clock = clock
        self._buckets: dict[str, RateLimitBucket] = {}
        self._lock = Lock()
        self._last_purge = clock()

    def allow(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            self._maybe_purge(now)
            bucket = self._buckets.get(key)
            if bucket is None or now - bucket.window_start > self.window_seconds:
                self._buckets[key] = RateLimitBucket(count=1, window_start=now)
                return True
            bucket.count += 1
            return bucket.count <= self.max_requests

    def __len__(self) -> int:
        return len(self._buckets)

    def _maybe_purge(self, now: float) -> None:
        """Drop expired buckets once per window or when the map grows too large."""
        if len(self._buckets) < self.max_buckets and now - self._last_purge < self.window_seconds:
            return
        expired = [
            key
            for key, bucket in self._buckets.items()
            if now - bucket.window_start > self.window_seconds
        ]
        for key in expired:
            del self._buckets[key]
        self._last_purge = now
        if expired:
            logger.debug("Evicted %d expired rate-limit buckets", len(expired))


class RedisRateLimiter:
    """Fixed-window limiter shared between instances through Redis.

    The first INCR of a window sets the key expiry, so the window opens at the
    first request and the key disappears on its own. Redis failures degrade to
    the process-local limiter rather than rejecting traffic.
    """

    def __init__(
        self,
        client: Any,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        *,
        prefix: str = "ratelimit",
        fallback: InMemoryRateLimiter | None = None,
    ) -> None:
        self._redis = client
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.prefix = prefix
        self._fallback = fallback if fallback is not None else InMemoryRateLimiter(
            max_requests, window_seconds
        )

    def allow(self, key: str) -> bool:
        if self._redis is not None:
            redis_key = f"{self.prefix}:{key}"
            try:
                count = int(self._redis.incr(redis_key))
                if count == 1:
                    self._redis.pexpire(redis_key, int(self.window_seconds * 1000))
                return count <= self.max_requests
            except redis.RedisError as exc:
                logger.warning("Redis rate limiter unavailable, using local buckets: %s", exc)
                self._redis = None
        return self._fallback.allow(key)


@lru_cache
def get_rate_limiter() -> RateLimiter:
    """Return the shared rate limiter for order submission."""
    if settings.redis_url:
        return RedisRateLimiter(
            redis.from_url(settings.redis_url),
            settings.rate_limit_max_requests,
            settings.rate_limit_window_seconds,
        )
    return InMemoryRateLimiter(
        settings.rate_limit_max_requests,
        settings.rate_limit_window_seconds,
        max_buckets=settings.rate_limit_max_buckets,
    )
