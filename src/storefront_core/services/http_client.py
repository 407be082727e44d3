"""Resilient HTTP client shared by the record store and payment providers.

Wraps a single request/response exchange with:

- a hard per-attempt timeout
- bounded retries on network failures and 5xx responses
- a linear backoff (``base_delay * attempt``) between attempts
- request metrics for the system status endpoint

4xx responses are final and surface immediately as ``UpstreamPermanentError``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from storefront_core.services.errors import (
    NetworkError,
    UnknownNetworkError,
    UpstreamError,
    UpstreamPermanentError,
    UpstreamTransientError,
)

logger = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400
HTTP_INTERNAL_SERVER_ERROR = 500
HTTP_MAX_STATUS = 600


@dataclass
class RequestMetrics:
    """Counters describing outbound traffic through a client."""

    request_count: int = 0
    attempt_count: int = 0
    retry_count: int = 0
    success_count: int = 0
    error_count: int = 0
    error_counts_by_type: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def record_attempt(self, *, retry: bool) -> None:
        self.attempt_count += 1
        if retry:
            self.retry_count += 1

    def record_outcome(self, success: bool, error_type: str | None = None) -> None:
        self.request_count += 1
        if success:
            self.success_count += 1
        else:
            self.error_count += 1
            if error_type:
                self.error_counts_by_type[error_type] += 1

    def snapshot(self) -> dict[str, Any]:
        return {
            "request_count": self.request_count,
            "attempt_count": self.attempt_count,
            "retry_count": self.retry_count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "error_counts_by_type": dict(self.error_counts_by_type),
        }


@dataclass(frozen=True)
class RetryPolicy:
    """Timeout and retry bounds for one logical call."""

    timeout_seconds: float = 10.0
    max_retries: int = 2
    base_delay: float = 0.25

    def delay_for(self, attempt: int) -> float:
        """Return the pause before retry number ``attempt`` (1-based)."""
        return self.base_delay * attempt


class ResilientClient:
    """Async HTTP client applying a ``RetryPolicy`` to every request."""

    def __init__(
        self,
        *,
        name: str,
        base_url: str = "",
        headers: Mapping[str, str] | None = None,
        policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.name = name
        self.base_url = base_url
        self.policy = policy or RetryPolicy()
        self._headers = dict(headers or {})
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self.metrics = RequestMetrics()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    headers=self._headers,
                    timeout=httpx.Timeout(self.policy.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any | None = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        policy: RetryPolicy | None = None,
    ) -> httpx.Response:
        """Send a request, retrying transient failures according to the policy.

        Returns the first response below 400. Raises ``UpstreamPermanentError``
        for 4xx, and after exhausting retries the last ``UpstreamTransientError``
        or ``NetworkError`` observed.
        """
        active = policy or self.policy
        client = await self._ensure_client()
        endpoint = f"{method} {url}"
        last_error: UpstreamError | None = None
        last_cause: BaseException | None = None

        for attempt in range(active.max_retries + 1):
            if attempt:
                delay = active.delay_for(attempt)
                logger.info(
                    "%s: retrying %s (attempt %d/%d) in %.2fs",
                    self.name,
                    endpoint,
                    attempt + 1,
                    active.max_retries + 1,
                    delay,
                )
                await asyncio.sleep(delay)

            self.metrics.record_attempt(retry=attempt > 0)
            started = time.monotonic()
            try:
                response = await asyncio.wait_for(
                    client.request(method, url, json=json, params=params, headers=headers),
                    timeout=active.timeout_seconds,
                )
            except (httpx.TransportError, TimeoutError) as exc:
                timed_out = isinstance(exc, (TimeoutError, httpx.TimeoutException))
                logger.warning(
                    "%s: %s failed after %.3fs (%s): %r",
                    self.name,
                    endpoint,
                    time.monotonic() - started,
                    "timeout" if timed_out else "network",
                    exc,
                )
                last_error = NetworkError(f"{self.name} request failed: {exc!r}")
                last_cause = exc
                continue

            status = response.status_code
            if HTTP_INTERNAL_SERVER_ERROR <= status < HTTP_MAX_STATUS:
                logger.warning("%s: %s responded with %d", self.name, endpoint, status)
                last_error = UpstreamTransientError(
                    f"{self.name} responded with {status}",
                    status_code=status,
                    body=response.text,
                )
                last_cause = None
                continue

            if status >= HTTP_BAD_REQUEST:
                self.metrics.record_outcome(False, f"http_{status}")
                raise UpstreamPermanentError(
                    f"{self.name} responded with {status}",
                    status_code=status,
                    body=response.text,
                )

            self.metrics.record_outcome(True)
            return response

        if last_error is None:
            last_error = UnknownNetworkError(f"{self.name} request failed: unknown network error")
        error_type = (
            f"http_{last_error.upstream_status}" if last_error.upstream_status else "network_error"
        )
        self.metrics.record_outcome(False, error_type)
        raise last_error from last_cause

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None
