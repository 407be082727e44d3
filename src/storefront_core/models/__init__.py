"""Record store entities used by the storefront core."""

from .session import SessionRecord, SessionUpdateResult

__all__ = ["SessionRecord", "SessionUpdateResult"]
