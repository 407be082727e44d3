"""Operational status endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from storefront_core.api.v1.dependencies import (
    PaymentProvidersDep,
    RateLimiterDep,
    RecordStoreDep,
    SweepSchedulerDep,
)
from storefront_core.core.settings import settings

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/status")
async def get_system_status(
    store: RecordStoreDep,
    providers: PaymentProvidersDep,
    rate_limiter: RateLimiterDep,
    scheduler: SweepSchedulerDep,
) -> dict[str, Any]:
    """Return a sanitized snapshot of runtime state.

    Excludes credentials; reports outbound request metrics per upstream, the
    guard configuration, and the inactivity sweep state.
    """
    upstreams: dict[str, Any] = {}
    store_http = getattr(store, "http", None)
    if store_http is not None:
        upstreams["record_store"] = store_http.metrics.snapshot()
    for name, provider in providers.items():
        upstreams[name] = provider.metrics.snapshot()

    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "debug": settings.debug,
        },
        "record_store": {"configured": settings.record_store_configured},
        "guards": {
            "rate_limiter": type(rate_limiter).__name__,
            "rate_limit": {
                "max_requests": settings.rate_limit_max_requests,
                "window_seconds": settings.rate_limit_window_seconds,
            },
            "idempotency_ttl_seconds": settings.idempotency_ttl_seconds,
            "shared_state": settings.redis_url is not None,
        },
        "upstreams": upstreams,
        "scheduler": scheduler.status(),
    }
