"""Record store client for the hosted NocoDB-style database.

Only the table/record operations the core relies on are exposed: list (with a
``where`` filter), count, create and patch-by-identity. Every call goes through
``ResilientClient`` so transient failures are retried transparently.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Protocol

import httpx

from storefront_core.core.settings import settings
from storefront_core.services.errors import ConfigurationError, UpstreamError
from storefront_core.services.http_client import ResilientClient, RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000


def eq_filter(column: str, value: object) -> str:
    """Build a NocoDB equality filter such as ``(ip,eq,1.2.3.4)``."""
    if isinstance(value, bool):
        value = "true" if value else "false"
    return f"({column},eq,{value})"


def record_id(payload: Mapping[str, Any]) -> int | str | None:
    """Return the identity of a record, whichever casing the store used."""
    if not isinstance(payload, Mapping):
        raise UpstreamError(f"Expected a record object, got {type(payload).__name__}")
    return payload.get("Id", payload.get("id"))


def _json_object(response: httpx.Response, operation: str) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise UpstreamError(f"Record store returned invalid JSON for {operation}") from exc
    if not isinstance(payload, dict):
        raise UpstreamError(
            f"Record store returned {type(payload).__name__} for {operation}, expected an object"
        )
    return payload


@dataclass(frozen=True)
class RecordPage:
    """One page of records returned by ``list_records``."""

    items: list[dict[str, Any]]
    page_info: dict[str, Any] = field(default_factory=dict)


class RecordStore(Protocol):
    """Contract consumed by the session and order services."""

    async def list_records(
        self,
        table: str,
        *,
        where: str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> RecordPage: ...

    async def count_records(self, table: str, *, where: str | None = None) -> int: ...

    async def create_record(self, table: str, data: Mapping[str, Any]) -> dict[str, Any]: ...

    async def patch_record(self, table: str, data: Mapping[str, Any]) -> dict[str, Any]: ...


class RecordStoreClient:
    """HTTP implementation of ``RecordStore`` over the NocoDB v2 API."""

    def __init__(
        self,
        base_url: str | None = None,
        api_token: str | None = None,
        *,
        http: ResilientClient | None = None,
    ) -> None:
        self.base_url = base_url if base_url is not None else settings.record_store_base_url
        token = api_token if api_token is not None else settings.record_store_api_token
        self._http = http or ResilientClient(
            name="record-store",
            base_url=self.base_url or "",
            headers={"Content-Type": "application/json", "xc-token": token},
            policy=RetryPolicy(
                timeout_seconds=settings.record_store_timeout_seconds,
                max_retries=settings.record_store_max_retries,
                base_delay=settings.record_store_retry_base_delay,
            ),
        )

    @property
    def http(self) -> ResilientClient:
        return self._http

    def _require_configured(self) -> None:
        if not self.base_url:
            raise ConfigurationError("Record store base URL is not configured")

    @staticmethod
    def _records_path(table: str) -> str:
        return f"/api/v2/tables/{table}/records"

    async def list_records(
        self,
        table: str,
        *,
        where: str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> RecordPage:
        self._require_configured()
        params: dict[str, Any] = {"limit": limit, "shuffle": 0, "offset": offset}
        if where:
            params["where"] = where
        response = await self._http.request("GET", self._records_path(table), params=params)
        payload = _json_object(response, "list")
        items = payload.get("list") or []
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise UpstreamError(f"Record store returned a malformed page for table {table}")
        return RecordPage(
            items=items,
            page_info=dict(payload.get("pageInfo") or {}),
        )

    async def count_records(self, table: str, *, where: str | None = None) -> int:
        self._require_configured()
        params: dict[str, Any] = {}
        if where:
            params["where"] = where
        response = await self._http.request(
            "GET", f"{self._records_path(table)}/count", params=params
        )
        return int(_json_object(response, "count").get("count", 0))

    async def create_record(self, table: str, data: Mapping[str, Any]) -> dict[str, Any]:
        self._require_configured()
        response = await self._http.request("POST", self._records_path(table), json=dict(data))
        payload = _json_object(response, "create")
        if record_id(payload) is None:
            raise UpstreamError(f"Record store did not return an id for table {table}")
        return payload

    async def patch_record(self, table: str, data: Mapping[str, Any]) -> dict[str, Any]:
        self._require_configured()
        if record_id(data) is None:
            raise ValueError("patch_record requires an Id in the payload")
        response = await self._http.request("PATCH", self._records_path(table), json=dict(data))
        return _json_object(response, "patch")

    async def close(self) -> None:
        await self._http.close()


@lru_cache
def get_record_store() -> RecordStoreClient:
    """Return the shared record store client."""
    return RecordStoreClient()
