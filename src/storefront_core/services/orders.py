"""Order submission and payment status reconciliation.

``OrderService.submit`` is the guarded path every checkout takes:

1. rate limit per client IP
2. idempotency lookup (a hit replays the cached response)
3. payment provider transaction
4. order + customer records written to the record store
5. the visitor's session ``createOrder`` latch set (best effort)
6. response cached under the idempotency key
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from storefront_core.core.settings import settings
from storefront_core.schemas.order import OrderData
from storefront_core.schemas.session import SessionUpdate
from storefront_core.services.errors import (
    OrderNotFoundError,
    RateLimitExceeded,
    UpstreamError,
)
from storefront_core.services.idempotency import (
    IdempotencyStore,
    derive_idempotency_key,
    scoped_key,
)
from storefront_core.services.payments import PaymentProvider
from storefront_core.services.rate_limiter import RateLimiter
from storefront_core.services.record_store import RecordStore, eq_filter, record_id
from storefront_core.services.sessions import SessionService
from storefront_core.utils.locks import KeyedLock
from storefront_core.utils.time import isoformat, utcnow

logger = logging.getLogger(__name__)

PAID_STATUS = "paid"


@dataclass(frozen=True)
class SubmissionResult:
    """Response body of a submission and whether it was replayed from cache."""

    body: dict[str, Any]
    replayed: bool = False


class OrderService:
    """Coordinates the rate limiter, idempotency cache, providers and records."""

    def __init__(
        self,
        *,
        store: RecordStore,
        sessions: SessionService,
        rate_limiter: RateLimiter,
        idempotency: IdempotencyStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.rate_limiter = rate_limiter
        self.idempotency = idempotency
        self._clock = clock
        self._locks = KeyedLock()

    def check_rate_limit(self, client_ip: str) -> None:
        if not self.rate_limiter.allow(client_ip):
            logger.warning("Rate limit exceeded for %s", client_ip)
            raise RateLimitExceeded("Too many requests")

    @staticmethod
    def idempotency_key(order: OrderData, header_value: str | None) -> str:
        if header_value:
            return header_value
        return derive_idempotency_key(order.customer.document.number, order.items[0].external_ref)

    async def submit(
        self,
        provider: PaymentProvider,
        order: OrderData,
        *,
        idempotency_key: str | None = None,
    ) -> SubmissionResult:
        """Create a provider transaction for an already rate-limited, validated order."""
        key = scoped_key(provider.name, self.idempotency_key(order, idempotency_key))
        async with self._locks.hold(key):
            cached = self.idempotency.get(key)
            if cached is not None:
                logger.info(
                    "Replaying %s submission for order %s", provider.name, order.external_ref
                )
                return SubmissionResult(body=cached, replayed=True)

            artifact = await provider.create_transaction(order)
            order_id = await self._persist(provider, artifact)
            await self._latch_session(order.ip)

            body = {
                "success": True,
                "providerData": artifact,
                "recordStoreOrderId": order_id,
                "productIds": order.product_ids(),
            }
            self.idempotency.set(key, body)
            return SubmissionResult(body=body)

    async def _persist(self, provider: PaymentProvider, artifact: dict[str, Any]) -> int | str:
        created = await self.store.create_record(
            settings.orders_table_id, provider.order_record(artifact)
        )
        order_id = record_id(created)
        if order_id is None:
            raise UpstreamError("Failed to get order ID from record store response")

        customer = await self.store.create_record(
            settings.customers_table_id, provider.customer_record(artifact)
        )
        logger.info(
            "Stored %s order %s (customer %s)", provider.name, order_id, record_id(customer)
        )
        return order_id

    async def _latch_session(self, ip: str) -> None:
        """Flag the visitor's session as having ordered; never fails the checkout."""
        try:
            await self.sessions.update(ip, SessionUpdate(create_order=True))
        except Exception:
            logger.exception("Failed to flag session for IP %s after order", ip)

    async def update_status(self, external_ref: str, status: str) -> dict[str, Any]:
        """Record a payment status change for the order with ``external_ref``."""
        page = await self.store.list_records(
            settings.orders_table_id, where=eq_filter("external_ref", external_ref), limit=1
        )
        if not page.items:
            raise OrderNotFoundError(f"Order not found with external_ref: {external_ref}")

        order_id = record_id(page.items[0])
        paid_at = isoformat(self._clock()) if status == PAID_STATUS else None
        response = await self.store.patch_record(
            settings.orders_table_id,
            {"Id": order_id, "status": status, "paid_at": paid_at},
        )
        logger.info("Order %s (%s) status set to %s", order_id, external_ref, status)
        return {"success": True, "Id": record_id(response) or order_id}
