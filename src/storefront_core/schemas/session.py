"""Session tracking schemas.

Aliases mirror the column names of the sessions table in the record store.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .common import metadata_to_string

DeviceType = Literal["Desktop", "Iphone", "Android"]


class _SessionFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_content: str | None = None
    utm_term: str | None = None
    last_page: str | None = Field(default=None, alias="lastPage")
    device_type: DeviceType | None = Field(default=None, alias="deviceType")
    finger_print: str | None = Field(default=None, alias="fingerPrint")
    metadata: str | None = None

    @field_validator("metadata", mode="before")
    @classmethod
    def _normalize_metadata(cls, value: object) -> object:
        return metadata_to_string(value)

    def record_fields(self) -> dict[str, Any]:
        """Fields explicitly provided by the caller, keyed by column name."""
        return self.model_dump(by_alias=True, exclude_unset=True, exclude={"ip"})


class SessionCreate(_SessionFields):
    """First sighting of a visitor; ``ip`` defaults to the caller's address."""

    ip: str | None = None


class SessionUpdate(_SessionFields):
    """Incremental update merged into the visitor's session.

    Omitted fields are left untouched; ``status`` and ``createOrder`` follow
    the reconciliation rules of ``SessionService.update``.
    """

    ip: str | None = None
    status: bool | None = None
    create_order: bool | None = Field(default=None, alias="createOrder")

    def record_fields(self) -> dict[str, Any]:
        fields = super().record_fields()
        for column in ("status", "createOrder"):
            if column in fields and fields[column] is None:
                del fields[column]
        return fields


class SessionStatusUpdate(BaseModel):
    """Explicit activity transition (e.g. a disconnect signal)."""

    ip: str = Field(..., min_length=1)
    status: bool = False


class SchedulerControl(BaseModel):
    """Control message for the inactivity sweep scheduler."""

    action: str
    interval: int | None = Field(
        default=None,
        gt=0,
        description="Sweep interval in milliseconds",
    )
