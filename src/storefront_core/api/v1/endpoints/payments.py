"""Order submission endpoints, one per payment provider."""

from __future__ import annotations

import logging
from typing import Annotated, Any

import pydantic
from fastapi import APIRouter, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from storefront_core.api.v1.dependencies import OrderServiceDep, PaymentProvidersDep
from storefront_core.schemas.order import OrderStatusUpdate, PaymentRequest
from storefront_core.services.errors import (
    ConfigurationError,
    OrderNotFoundError,
    ProviderError,
    RateLimitExceeded,
    StorefrontError,
    ValidationError,
)
from storefront_core.utils.client_ip import get_client_ip

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


def _failure(status_code: int, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse({"success": False, "error": error, **extra}, status_code=status_code)


async def _parse_payment_request(request: Request) -> PaymentRequest:
    try:
        raw = await request.json()
    except ValueError:
        raw = None
    try:
        return PaymentRequest.model_validate(raw)
    except pydantic.ValidationError as exc:
        raise ValidationError(
            "Invalid request payload",
            exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc


@router.post("/payments/{provider_name}")
async def submit_payment(
    provider_name: str,
    request: Request,
    providers: PaymentProvidersDep,
    orders: OrderServiceDep,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
) -> JSONResponse:
    """Create a payment transaction for a checkout order.

    Returns the provider artifact together with the record store order id.
    Retries carrying the same idempotency key within the TTL receive the
    original response without reaching the provider again.
    """
    provider = providers.get(provider_name)
    if provider is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown payment provider: {provider_name}",
        )

    try:
        orders.check_rate_limit(get_client_ip(request))
    except RateLimitExceeded as exc:
        return _failure(status.HTTP_429_TOO_MANY_REQUESTS, str(exc))

    try:
        payload = await _parse_payment_request(request)
    except ValidationError as exc:
        return _failure(exc.status_code, str(exc), issues=exc.issues)

    try:
        result = await orders.submit(
            provider, payload.order_data, idempotency_key=idempotency_key
        )
    except ProviderError as exc:
        return _failure(exc.status_code, str(exc), details=exc.details)
    except ConfigurationError as exc:
        logger.error("Payment provider %s is not configured: %s", provider_name, exc)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))
    except StorefrontError as exc:
        logger.exception("Order submission through %s failed", provider_name)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or "Internal Server Error")

    return JSONResponse(result.body)


@router.post("/orders/status")
async def update_order_status(payload: OrderStatusUpdate, orders: OrderServiceDep) -> dict[str, Any]:
    """Record a payment status change reported for an order."""
    try:
        return await orders.update_status(payload.external_ref, payload.status)
    except OrderNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StorefrontError as exc:
        logger.exception("Failed to update order %s", payload.external_ref)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update order status",
        ) from exc
