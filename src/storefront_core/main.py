# src/storefront_core/main.py
"""Main entry point for the Storefront Core application."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from storefront_core import __version__
from storefront_core.api.v1 import payments_router, sessions_router, system_router
from storefront_core.core.settings import settings
from storefront_core.services.payments import get_payment_providers
from storefront_core.services.record_store import get_record_store
from storefront_core.services.sweep import get_sweep_scheduler

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Session lifecycle and idempotent order submission API",
    version=__version__,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(payments_router, prefix="/api/v1")
app.include_router(sessions_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


async def _autostart_sweep(delay: float) -> None:
    await asyncio.sleep(delay)
    try:
        await get_sweep_scheduler().start()
    except Exception:
        logger.exception("Failed to start the inactivity sweep")


@app.on_event("startup")
async def on_startup() -> None:
    if settings.sweep_autostart:
        app.state.sweep_autostart = asyncio.create_task(
            _autostart_sweep(settings.sweep_start_delay_seconds)
        )
    else:
        app.state.sweep_autostart = None


@app.on_event("shutdown")
async def on_shutdown() -> None:
    task: asyncio.Task[None] | None = getattr(app.state, "sweep_autostart", None)
    if task is not None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
    await get_sweep_scheduler().stop()
    await get_record_store().close()
    for provider in get_payment_providers().values():
        await provider.close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "description": "Session lifecycle and idempotent order submission API",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("storefront_core.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
