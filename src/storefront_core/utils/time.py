"""Time utilities for record timestamps."""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def isoformat(moment: datetime) -> str:
    """Render a timestamp the way the record store stores it (ISO-8601, UTC)."""
    return moment.astimezone(UTC).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: object) -> datetime | None:
    """Parse a record store timestamp, returning None when it is unusable.

    Accepts ISO-8601 strings (with ``Z``, an offset, or a space separator) and
    datetime instances. Naive values are assumed to be UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
