"""Business logic services for the storefront core."""

from .activity import SessionActivityReporter
from .idempotency import InMemoryIdempotencyStore, RedisIdempotencyStore
from .orders import OrderService
from .rate_limiter import InMemoryRateLimiter, RedisRateLimiter
from .record_store import RecordStoreClient
from .sessions import SessionService
from .sweep import InactivitySweepScheduler

__all__ = [
    "SessionActivityReporter",
    "InMemoryIdempotencyStore",
    "RedisIdempotencyStore",
    "OrderService",
    "InMemoryRateLimiter",
    "RedisRateLimiter",
    "RecordStoreClient",
    "SessionService",
    "InactivitySweepScheduler",
]
