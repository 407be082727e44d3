"""Exception taxonomy shared by the order-submission and session services."""

from __future__ import annotations

from typing import Any


class StorefrontError(RuntimeError):
    """Base exception for all storefront core failures."""

    status_code: int = 500


class ValidationError(StorefrontError):
    """Raised when an inbound payload does not satisfy its schema."""

    status_code = 400

    def __init__(self, message: str, issues: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.issues = issues or []


class RateLimitExceeded(StorefrontError):
    """Raised when a caller exceeded its request allowance for the window."""

    status_code = 429


class ConfigurationError(StorefrontError):
    """Raised at request time when required credentials or endpoints are missing."""

    status_code = 500


class UpstreamError(StorefrontError):
    """Base class for failures reported by the record store or a payment provider.

    Carries the upstream HTTP status (when one was received) and the raw body so
    callers can propagate provider-specific detail.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        super().__init__(message)
        self.upstream_status = status_code
        self.body = body


class UpstreamTransientError(UpstreamError):
    """Network failure or 5xx response; retried before being surfaced."""


class NetworkError(UpstreamTransientError):
    """Connection-level failure (refused, reset, timed out)."""


class UnknownNetworkError(NetworkError):
    """Retries were exhausted without capturing a structured error."""


class UpstreamPermanentError(UpstreamError):
    """4xx response; final, never retried."""


class ProviderError(StorefrontError):
    """A payment provider rejected or failed a transaction."""

    def __init__(self, provider: str, status_code: int, details: str = "") -> None:
        super().__init__(f"{provider} API error: {status_code}")
        self.provider = provider
        self.status_code = status_code
        self.details = details


class NotFoundNoOp(StorefrontError):
    """No session exists for the IP; the update is skipped rather than failed."""

    status_code = 200


class OrderNotFoundError(StorefrontError):
    """No order exists for the requested external reference."""

    status_code = 404
