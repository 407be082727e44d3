# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Iterator, Mapping
from datetime import UTC, datetime
from itertools import count
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

os.environ.setdefault("SWEEP_AUTOSTART", "false")
os.environ.setdefault("RECORD_STORE_BASE_URL", "http://records.test")
os.environ.setdefault("RECORD_STORE_API_TOKEN", "test-token")
os.environ.setdefault("BLACKCAT_PUBLIC_KEY", "pk_test")
os.environ.setdefault("BLACKCAT_SECRET_KEY", "sk_test")
os.environ.setdefault("HYPERCASH_SECRET_KEY", "hc_test")

from storefront_core.core.settings import settings
from storefront_core.main import app as fastapi_app
from storefront_core.schemas.order import OrderData
from storefront_core.services.errors import UpstreamError
from storefront_core.services.idempotency import InMemoryIdempotencyStore, get_idempotency_store
from storefront_core.services.payments import PaymentProvider, get_payment_providers
from storefront_core.services.rate_limiter import InMemoryRateLimiter, get_rate_limiter
from storefront_core.services.record_store import RecordPage, get_record_store, record_id
from storefront_core.services.sessions import SessionService, get_session_service
from storefront_core.services.sweep import InactivitySweepScheduler, get_sweep_scheduler

FIXED_NOW = datetime(2025, 1, 15, 12, 0, 0, tzinfo=UTC)


def _parse_where(where: str | None) -> tuple[str, str] | None:
    if not where:
        return None
    column, op, value = where.strip("()").split(",", 2)
    assert op == "eq", f"unsupported filter operator {op!r}"
    return column, value


def _matches(record: Mapping[str, Any], condition: tuple[str, str] | None) -> bool:
    if condition is None:
        return True
    column, expected = condition
    actual = record.get(column)
    if isinstance(actual, bool):
        actual = "true" if actual else "false"
    return str(actual) == expected


class FakeRecordStore:
    """In-memory record store speaking the ``(col,eq,val)`` filter dialect."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_patch_ids: set[Any] = set()
        self.fail_list = False
        self._ids = count(1)

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def seed(self, table: str, **record: Any) -> dict[str, Any]:
        row = {"Id": next(self._ids), **record}
        self.rows(table).append(row)
        return row

    def count_calls(self, kind: str) -> int:
        return sum(1 for call, _ in self.calls if call == kind)

    async def list_records(
        self,
        table: str,
        *,
        where: str | None = None,
        limit: int = 1000,
        offset: int = 0,
    ) -> RecordPage:
        self.calls.append(("list", table))
        if self.fail_list:
            raise UpstreamError("record store unavailable")
        condition = _parse_where(where)
        items = [dict(row) for row in self.rows(table) if _matches(row, condition)]
        return RecordPage(items=items[offset : offset + limit], page_info={})

    async def count_records(self, table: str, *, where: str | None = None) -> int:
        self.calls.append(("count", table))
        condition = _parse_where(where)
        return sum(1 for row in self.rows(table) if _matches(row, condition))

    async def create_record(self, table: str, data: Mapping[str, Any]) -> dict[str, Any]:
        self.calls.append(("create", table))
        row = self.seed(table, **data)
        return {"Id": row["Id"]}

    async def patch_record(self, table: str, data: Mapping[str, Any]) -> dict[str, Any]:
        self.calls.append(("patch", table))
        target = record_id(data)
        if target in self.fail_patch_ids:
            raise UpstreamError(f"patch failed for {target}")
        for row in self.rows(table):
            if row["Id"] == target:
                row.update(data)
                return {"Id": target}
        raise UpstreamError(f"record {target} not found")

    async def close(self) -> None:
        return None


class FakeProvider(PaymentProvider):
    """Provider double that records calls instead of reaching the network."""

    transactions_path = "/transactions"

    def __init__(self, name: str = "blackcat") -> None:
        self.name = name
        self.display_name = name.title()
        super().__init__()
        self.orders: list[OrderData] = []
        self.error: Exception | None = None

    @property
    def base_url(self) -> str:
        return "http://provider.test"

    def authorization(self) -> str:
        return "Basic dGVzdDp0ZXN0"

    async def create_transaction(self, order: OrderData) -> dict[str, Any]:
        self.orders.append(order)
        if self.error is not None:
            raise self.error
        return {
            "id": f"tx-{len(self.orders)}",
            "status": "waiting_payment",
            "amount": order.amount,
            "externalRef": order.external_ref,
            "customer": {
                "id": 77,
                "name": order.customer.name,
                "email": order.customer.email,
                "phone": order.customer.phone,
                "document": {"number": order.customer.document.number, "type": "CPF"},
            },
        }

    @property
    def calls(self) -> int:
        return len(self.orders)

    def order_record(self, artifact: dict[str, Any]) -> dict[str, Any]:
        return {
            "external_ref": artifact["externalRef"],
            "status": artifact["status"],
            "amount": artifact["amount"],
        }


def make_order_payload(**overrides: Any) -> dict[str, Any]:
    """Return a valid ``orderData`` body as the checkout sends it."""
    order: dict[str, Any] = {
        "amount": 15990,
        "paymentMethod": "pix",
        "pix": {"expiresInDays": 1},
        "items": [
            {
                "title": "Camiseta",
                "unitPrice": 15990,
                "quantity": 1,
                "tangible": True,
                "externalRef": "42",
            }
        ],
        "shipping": {
            "fee": 0,
            "address": {
                "street": "Rua das Flores",
                "streetNumber": "100",
                "neighborhood": "Centro",
                "city": "Sao Paulo",
                "state": "SP",
                "zipCode": "01001000",
                "country": "BR",
                "complement": "",
            },
        },
        "customer": {
            "name": "Maria Silva",
            "email": "maria@example.com",
            "phone": "11999998888",
            "document": {"number": "12345678909", "type": "cpf"},
        },
        "metadata": {"source": "checkout"},
        "externalRef": "order-1",
        "ip": "203.0.113.7",
    }
    order.update(overrides)
    return {"orderData": order}


@pytest.fixture()
def order_payload() -> dict[str, Any]:
    return make_order_payload()


@pytest.fixture()
def record_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture()
def session_service(record_store: FakeRecordStore) -> SessionService:
    return SessionService(record_store, clock=lambda: FIXED_NOW)


@pytest.fixture()
def sweep_scheduler(session_service: SessionService) -> InactivitySweepScheduler:
    return InactivitySweepScheduler(
        session_service,
        interval_seconds=300,
        inactivity_timeout_seconds=300,
        page_size=1000,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture()
def rate_limiter() -> InMemoryRateLimiter:
    return InMemoryRateLimiter(max_requests=10, window_seconds=60)


@pytest.fixture()
def idempotency_store() -> InMemoryIdempotencyStore:
    return InMemoryIdempotencyStore(ttl_seconds=600)


@pytest.fixture()
def providers() -> dict[str, FakeProvider]:
    return {"blackcat": FakeProvider("blackcat"), "hypercash": FakeProvider("hypercash")}


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    record_store: FakeRecordStore,
    session_service: SessionService,
    sweep_scheduler: InactivitySweepScheduler,
    rate_limiter: InMemoryRateLimiter,
    idempotency_store: InMemoryIdempotencyStore,
    providers: dict[str, FakeProvider],
) -> Iterator[None]:
    overrides = {
        get_record_store: lambda: record_store,
        get_session_service: lambda: session_service,
        get_sweep_scheduler: lambda: sweep_scheduler,
        get_rate_limiter: lambda: rate_limiter,
        get_idempotency_store: lambda: idempotency_store,
        get_payment_providers: lambda: providers,
    }
    app.dependency_overrides.update(overrides)
    try:
        yield
    finally:
        for dependency in overrides:
            app.dependency_overrides.pop(dependency, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def sessions_table() -> str:
    return settings.sessions_table_id


@pytest.fixture()
def orders_table() -> str:
    return settings.orders_table_id
