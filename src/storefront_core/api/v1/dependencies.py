"""Shared API dependencies."""

from typing import Annotated

from fastapi import Depends

from storefront_core.services.idempotency import IdempotencyStore, get_idempotency_store
from storefront_core.services.orders import OrderService
from storefront_core.services.payments import PaymentProvider, get_payment_providers
from storefront_core.services.rate_limiter import RateLimiter, get_rate_limiter
from storefront_core.services.record_store import RecordStore, get_record_store
from storefront_core.services.sessions import SessionService, get_session_service
from storefront_core.services.sweep import InactivitySweepScheduler, get_sweep_scheduler

RecordStoreDep = Annotated[RecordStore, Depends(get_record_store)]
SessionServiceDep = Annotated[SessionService, Depends(get_session_service)]
SweepSchedulerDep = Annotated[InactivitySweepScheduler, Depends(get_sweep_scheduler)]
RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter)]
IdempotencyStoreDep = Annotated[IdempotencyStore, Depends(get_idempotency_store)]
PaymentProvidersDep = Annotated[dict[str, PaymentProvider], Depends(get_payment_providers)]


def get_order_service(
    store: RecordStoreDep,
    sessions: SessionServiceDep,
    rate_limiter: RateLimiterDep,
    idempotency: IdempotencyStoreDep,
) -> OrderService:
    """Assemble the order service from the shared collaborators."""
    return OrderService(
        store=store,
        sessions=sessions,
        rate_limiter=rate_limiter,
        idempotency=idempotency,
    )


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
