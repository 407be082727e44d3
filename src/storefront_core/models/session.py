"""Session records as stored in the record store."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from storefront_core.utils.time import parse_timestamp


@dataclass(frozen=True)
class SessionRecord:
    """One visitor, keyed by client IP.

    ``raw`` keeps every column returned by the record store so attribution
    fields round-trip to API callers untouched.
    """

    id: int | str | None
    ip: str
    status: bool
    create_order: bool
    last_activity: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> SessionRecord:
        return cls(
            id=record.get("Id", record.get("id")),
            ip=str(record.get("ip") or ""),
            status=bool(record.get("status")),
            create_order=record.get("createOrder") is True,
            last_activity=record.get("lastActivity"),
            created_at=record.get("CreatedAt"),
            updated_at=record.get("UpdatedAt"),
            raw=dict(record),
        )

    @property
    def activity_marker(self) -> Any:
        """Best available activity timestamp: last activity, update, then creation."""
        return self.last_activity or self.updated_at or self.created_at

    def last_seen(self) -> datetime | None:
        """Parsed activity timestamp, or None when missing or unparsable."""
        return parse_timestamp(self.activity_marker)


@dataclass(frozen=True)
class SessionUpdateResult:
    """Identity of the patched session; ``id == 0`` means no session existed."""

    id: int | str
    applied: bool = True

    @classmethod
    def not_found(cls) -> SessionUpdateResult:
        return cls(id=0, applied=False)
