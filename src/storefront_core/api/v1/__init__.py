"""Version 1 API endpoints."""

from .endpoints import payments_router, sessions_router, system_router

__all__ = [
    "payments_router",
    "sessions_router",
    "system_router",
]
