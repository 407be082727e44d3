"""Payment provider clients.

Each provider turns a validated ``OrderData`` into a provider transaction and
maps the returned artifact onto the order and customer records kept in the
record store. Credentials are checked when a transaction is requested, so a
misconfigured provider fails its submissions without preventing startup.
"""

from __future__ import annotations

import base64
import json
import logging
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any

from storefront_core.core.settings import settings
from storefront_core.schemas.order import OrderData
from storefront_core.services.errors import (
    ConfigurationError,
    ProviderError,
    UpstreamPermanentError,
    UpstreamTransientError,
)
from storefront_core.services.http_client import RequestMetrics, ResilientClient, RetryPolicy

logger = logging.getLogger(__name__)


def _basic_auth(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {token}"


def _metadata_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


class PaymentProvider(ABC):
    """A payment gateway able to create transactions."""

    name: str
    display_name: str
    transactions_path: str

    def __init__(self, http: ResilientClient | None = None) -> None:
        self._http = http or ResilientClient(
            name=self.name,
            base_url=self.base_url,
            headers={"Content-Type": "application/json", "accept": "application/json"},
            policy=RetryPolicy(
                timeout_seconds=settings.payment_timeout_seconds,
                max_retries=settings.payment_max_retries,
                base_delay=settings.payment_retry_base_delay,
            ),
        )

    @property
    @abstractmethod
    def base_url(self) -> str: ...

    @abstractmethod
    def authorization(self) -> str:
        """Return the Authorization header value, or raise ConfigurationError."""

    def build_payload(self, order: OrderData) -> dict[str, Any]:
        return order.to_wire()

    def parse_response(self, payload: dict[str, Any]) -> dict[str, Any]:
        return payload

    async def create_transaction(self, order: OrderData) -> dict[str, Any]:
        """Create a transaction and return the provider artifact.

        Raises:
            ConfigurationError: credentials are missing.
            ProviderError: the provider answered with a non-2xx status.
            NetworkError: the provider was unreachable after retries.
        """
        authorization = self.authorization()
        try:
            response = await self._http.request(
                "POST",
                self.transactions_path,
                json=self.build_payload(order),
                headers={"Authorization": authorization},
            )
        except (UpstreamPermanentError, UpstreamTransientError) as exc:
            if exc.upstream_status is None:
                raise
            logger.warning(
                "%s rejected transaction for order %s with %d",
                self.display_name,
                order.external_ref,
                exc.upstream_status,
            )
            raise ProviderError(self.display_name, exc.upstream_status, exc.body) from exc
        return self.parse_response(response.json())

    @abstractmethod
    def order_record(self, artifact: dict[str, Any]) -> dict[str, Any]:
        """Map a provider artifact to an orders-table record."""

    def customer_record(self, artifact: dict[str, Any]) -> dict[str, Any]:
        """Map a provider artifact to a customers-table record."""
        customer = artifact.get("customer") or {}
        document = customer.get("document") or {}
        return {
            "name": customer.get("name"),
            "email": customer.get("email"),
            "phone": customer.get("phone"),
            "document_number": document.get("number"),
            "document_type": str(document.get("type") or "").lower(),
            "external_ref": str(customer.get("id", "")),
        }

    @property
    def metrics(self) -> RequestMetrics:
        return self._http.metrics

    async def close(self) -> None:
        await self._http.close()


class BlackCatProvider(PaymentProvider):
    """Black Cat Pagamentos; the order is forwarded unchanged."""

    name = "blackcat"
    display_name = "Black Cat"
    transactions_path = "/v1/transactions"

    @property
    def base_url(self) -> str:
        return settings.blackcat_base_url

    def authorization(self) -> str:
        if not (settings.blackcat_public_key and settings.blackcat_secret_key):
            raise ConfigurationError("Missing server configuration (Black Cat credentials)")
        return _basic_auth(settings.blackcat_public_key, settings.blackcat_secret_key)

    def order_record(self, artifact: dict[str, Any]) -> dict[str, Any]:
        customer = artifact.get("customer") or {}
        shipping = artifact.get("shipping") or {}
        return {
            "tenant_id": artifact.get("tenantId"),
            "company_id": artifact.get("companyId"),
            "amount": artifact.get("amount"),
            "currency": artifact.get("currency"),
            "authorization_code": artifact.get("authorizationCode"),
            "base_price": artifact.get("basePrice"),
            "external_ref": artifact.get("externalRef"),
            "installments": artifact.get("installments"),
            "interest_rate": artifact.get("interestRate"),
            "ip": artifact.get("ip"),
            "paid_amount": artifact.get("paidAmount"),
            "paid_at": artifact.get("paidAt"),
            "payment_method": artifact.get("paymentMethod"),
            "postback_url": artifact.get("postbackUrl"),
            "redirect_url": artifact.get("redirectUrl"),
            "refunded_amount": artifact.get("refundedAmount"),
            "refunded_at": artifact.get("refundedAt"),
            "refused_reason": artifact.get("refusedReason"),
            "return_url": artifact.get("returnUrl"),
            "secure_id": artifact.get("secureId"),
            "secure_url": artifact.get("secureUrl"),
            "status": artifact.get("status"),
            "traceable": artifact.get("traceable"),
            "metadata": _metadata_string(artifact.get("metadata")),
            "customer_id": customer.get("id"),
            "billing_address_id": customer.get("id") if customer.get("address") else 0,
            "shipping_address_id": customer.get("id") if shipping.get("address") else 0,
        }


class HyperCashProvider(PaymentProvider):
    """HyperCash Brasil; PIX-only, the artifact arrives under ``data``."""

    name = "hypercash"
    display_name = "Hyper Cash"
    transactions_path = "/api/user/transactions"

    @property
    def base_url(self) -> str:
        return settings.hypercash_base_url

    def authorization(self) -> str:
        if not settings.hypercash_secret_key:
            raise ConfigurationError("Missing server configuration (HyperCash credentials)")
        return _basic_auth("x", settings.hypercash_secret_key)

    def build_payload(self, order: OrderData) -> dict[str, Any]:
        wire = order.to_wire()
        customer = wire["customer"]
        try:
            metadata: Any = json.loads(order.metadata)
        except ValueError:
            metadata = order.metadata
        return {
            "amount": wire["amount"],
            "currency": "BRL",
            "paymentMethod": "PIX",
            "pix": {"expiresInDays": 1},
            "customer": {
                "name": customer["name"],
                "email": customer["email"],
                "phone": customer["phone"],
                "document": {"number": customer["document"]["number"], "type": "CPF"},
            },
            "shipping": wire["shipping"],
            "items": wire["items"],
            "metadata": metadata,
            "ip": wire["ip"],
        }

    def parse_response(self, payload: dict[str, Any]) -> dict[str, Any]:
        return payload.get("data") or payload

    def order_record(self, artifact: dict[str, Any]) -> dict[str, Any]:
        customer = artifact.get("customer") or {}
        document = customer.get("document") or {}
        address = (artifact.get("shipping") or {}).get("address") or {}
        return {
            "tenant_id": artifact.get("id"),
            "company_id": settings.hypercash_company_id,
            "amount": artifact.get("amount"),
            "currency": artifact.get("currency"),
            "authorization_code": None,
            "base_price": None,
            "external_ref": artifact.get("id"),
            "interest_rate": None,
            "ip": artifact.get("ip"),
            "paid_amount": 0,
            "paid_at": None,
            "payment_method": artifact.get("paymentMethod"),
            "postback_url": None,
            "redirect_url": None,
            "refunded_amount": artifact.get("refundedAmount"),
            "refunded_at": None,
            "refused_reason": artifact.get("refusedReason"),
            "return_url": None,
            "secure_id": artifact.get("secureId") or "",
            "secure_url": artifact.get("secureUrl") or "",
            "status": str(artifact.get("status") or "").lower(),
            "traceable": artifact.get("traceable"),
            "metadata": _metadata_string(artifact.get("metadata")),
            "customer_id": document.get("number"),
            "billing_address_id": address.get("zipCode"),
            "shipping_address_id": address.get("zipCode"),
        }


@lru_cache
def get_payment_providers() -> dict[str, PaymentProvider]:
    """Return the configured payment providers keyed by route name."""
    providers: list[PaymentProvider] = [BlackCatProvider(), HyperCashProvider()]
    return {provider.name: provider for provider in providers}
