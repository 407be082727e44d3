"""API endpoint modules for version 1."""

from .payments import router as payments_router
from .sessions import router as sessions_router
from .system import router as system_router

__all__ = [
    "payments_router",
    "sessions_router",
    "system_router",
]
