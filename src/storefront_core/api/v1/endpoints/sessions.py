"""Visitor session endpoints: tracking signals and the inactivity sweep."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from storefront_core.api.v1.dependencies import SessionServiceDep, SweepSchedulerDep
from storefront_core.schemas.session import (
    SchedulerControl,
    SessionCreate,
    SessionStatusUpdate,
    SessionUpdate,
)
from storefront_core.services.errors import StorefrontError
from storefront_core.utils.client_ip import get_client_ip

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/session", tags=["sessions"])

SCHEDULER_ACTIONS = ("start", "stop")


def _internal_error(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


@router.get("/check")
async def check_session(
    request: Request,
    sessions: SessionServiceDep,
    ip: Annotated[str | None, Query()] = None,
) -> dict[str, int]:
    """Count the sessions stored for an IP (defaults to the caller's)."""
    target = ip or get_client_ip(request)
    try:
        count = await sessions.count_by_ip(target)
    except StorefrontError as exc:
        logger.exception("Failed to check session for IP %s", target)
        raise _internal_error("Failed to check session") from exc
    return {"count": count}


@router.post("/create")
async def create_session(
    payload: SessionCreate, request: Request, sessions: SessionServiceDep
) -> dict[str, Any]:
    """Create the caller's session unless one already exists."""
    ip = payload.ip or get_client_ip(request)
    try:
        session, created = await sessions.create_if_absent(ip, payload)
    except StorefrontError as exc:
        logger.exception("Failed to create session for IP %s", ip)
        raise _internal_error("Failed to create session") from exc
    return {"success": True, "created": created, "Id": session.id, "session": session.raw}


@router.post("/update")
async def update_session(
    payload: SessionUpdate, request: Request, sessions: SessionServiceDep
) -> dict[str, Any]:
    """Merge a heartbeat or activity signal into the caller's session.

    Unknown visitors are not an error; the response then carries ``Id: 0``.
    """
    ip = payload.ip or get_client_ip(request)
    try:
        result = await sessions.update(ip, payload)
    except StorefrontError as exc:
        logger.exception("Failed to update session for IP %s", ip)
        raise _internal_error("Failed to update session") from exc
    return {"Id": result.id, "applied": result.applied}


@router.post("/update-status")
async def update_session_status(
    payload: SessionStatusUpdate, sessions: SessionServiceDep
) -> dict[str, Any]:
    """Explicitly mark a session active or inactive."""
    try:
        result = await sessions.update_status(payload.ip, payload.status)
    except StorefrontError as exc:
        logger.exception("Failed to update session status for IP %s", payload.ip)
        raise _internal_error("Failed to update session status") from exc
    return {
        "success": True,
        "Id": result.id,
        "message": f"Status updated to {str(payload.status).lower()}",
    }


@router.post("/monitor")
async def run_sweep(scheduler: SweepSchedulerDep) -> JSONResponse:
    """Run one inactivity sweep immediately."""
    report = await scheduler.run_once()
    if not report.success:
        return JSONResponse(
            {"success": False, "error": report.error or "Sweep failed"},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    return JSONResponse(
        {
            "success": True,
            "processed": report.processed,
            "markedInactive": report.marked_inactive,
            "totalActive": report.total_active,
        }
    )


@router.get("/monitor")
async def sweep_status(
    scheduler: SweepSchedulerDep, sessions: SessionServiceDep
) -> dict[str, Any]:
    """Report how many sessions are active and the sweep configuration."""
    try:
        active = await sessions.list_active(scheduler.page_size)
    except StorefrontError as exc:
        logger.exception("Failed to list active sessions")
        raise _internal_error("Failed to check monitoring status") from exc
    return {
        "success": True,
        "activeSessionsCount": len(active),
        "monitoringActive": scheduler.running,
        "inactivityTimeout": scheduler.inactivity_timeout_seconds,
    }


@router.post("/scheduler")
async def control_scheduler(
    payload: SchedulerControl, scheduler: SweepSchedulerDep
) -> JSONResponse:
    """Start or stop the periodic sweep; ``interval`` is in milliseconds."""
    if payload.action not in SCHEDULER_ACTIONS:
        return JSONResponse(
            {"success": False, "error": 'Invalid action. Use "start" or "stop"'},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    if payload.action == "stop":
        if not await scheduler.stop():
            return JSONResponse({"success": False, "message": "Scheduler is not running"})
        return JSONResponse({"success": True, "message": "Scheduler stopped"})

    interval_seconds = payload.interval / 1000 if payload.interval else None
    if not await scheduler.start(interval_seconds):
        return JSONResponse({"success": False, "message": "Scheduler is already running"})
    return JSONResponse(
        {
            "success": True,
            "message": "Scheduler started",
            "interval": int(scheduler.interval_seconds * 1000),
            "intervalInSeconds": scheduler.interval_seconds,
        }
    )


@router.get("/scheduler")
async def scheduler_status(scheduler: SweepSchedulerDep) -> dict[str, Any]:
    """Return the scheduler state and the outcome of its latest sweep."""
    return {"success": True, **scheduler.status()}
