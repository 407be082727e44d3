"""Idempotency cache for order submissions.

A successful submission stores its response under an idempotency key; a
retry with the same key inside the TTL replays that response verbatim instead
of reaching the payment provider again.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from threading import Lock
from typing import Any, Protocol

import redis

from storefront_core.core.settings import settings
from storefront_core.utils.hash import blake3_hexdigest

logger = logging.getLogger(__name__)


class IdempotencyStore(Protocol):
    """Short-lived key to response memo."""

    def get(self, key: str) -> dict[str, Any] | None: ...

    def set(self, key: str, response: dict[str, Any]) -> None: ...


@dataclass
class IdempotencyEntry:
    response: dict[str, Any]
    stored_at: float


class InMemoryIdempotencyStore:
    """Process-local store with lazy expiry on lookup and purge on write."""

    def __init__(
        self,
        ttl_seconds: float = 600.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._store: dict[str, IdempotencyEntry] = {}
        self._lock = Lock()

    def get(self, key: str) -> dict[str, Any] | None:
        """Return the cached response for key, or None if not found/expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if self._clock() - entry.stored_at > self._ttl:
                del self._store[key]
                return None
            return entry.response

    def set(self, key: str, response: dict[str, Any]) -> None:
        """Cache a response, replacing any previous entry for the key."""
        with self._lock:
            self._cleanup_expired()
            self._store[key] = IdempotencyEntry(response=response, stored_at=self._clock())

    def __len__(self) -> int:
        return len(self._store)

    def _cleanup_expired(self) -> None:
        """Remove expired entries (called under lock)."""
        now = self._clock()
        expired = [k for k, v in self._store.items() if now - v.stored_at > self._ttl]
        for k in expired:
            del self._store[k]


class RedisIdempotencyStore:
    """Idempotency entries shared between instances, expired by Redis itself."""

    def __init__(
        self,
        client: Any,
        ttl_seconds: float = 600.0,
        *,
        prefix: str = "idem",
        fallback: InMemoryIdempotencyStore | None = None,
    ) -> None:
        self._redis = client
        self._ttl = ttl_seconds
        self.prefix = prefix
        self._fallback = (
            fallback if fallback is not None else InMemoryIdempotencyStore(ttl_seconds)
        )

    def get(self, key: str) -> dict[str, Any] | None:
        if self._redis is not None:
            try:
                raw = self._redis.get(f"{self.prefix}:{key}")
                return json.loads(raw) if raw else None
            except redis.RedisError as exc:
                logger.warning("Redis idempotency store unavailable, using local cache: %s", exc)
                self._redis = None
        return self._fallback.get(key)

    def set(self, key: str, response: dict[str, Any]) -> None:
        if self._redis is not None:
            try:
                self._redis.set(
                    f"{self.prefix}:{key}",
                    json.dumps(response),
                    px=int(self._ttl * 1000),
                )
                return
            except redis.RedisError as exc:
                logger.warning("Redis idempotency store unavailable, using local cache: %s", exc)
                self._redis = None
        self._fallback.set(key, response)


def derive_idempotency_key(document_number: str, first_item_ref: str) -> str:
    """Fallback key when the caller sent no ``Idempotency-Key`` header.

    Distinct orders by the same customer for the same first product collide
    inside the TTL; this is an accepted heuristic.
    """
    return f"{document_number}-{first_item_ref}"


def scoped_key(provider: str, key: str) -> str:
    """Namespace a key per provider and bound its length."""
    return blake3_hexdigest(f"{provider}:{key}".encode())


@lru_cache
def get_idempotency_store() -> IdempotencyStore:
    """Return the shared idempotency store."""
    if settings.redis_url:
        return RedisIdempotencyStore(
            redis.from_url(settings.redis_url),
            settings.idempotency_ttl_seconds,
        )
    return InMemoryIdempotencyStore(settings.idempotency_ttl_seconds)
