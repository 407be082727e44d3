"""Background sweep that deactivates abandoned sessions.

The ``InactivitySweepScheduler`` periodically scans active sessions and flags
those whose last activity is older than the inactivity timeout. It can be
started and stopped at runtime through the scheduler control endpoint and is
started automatically when the application boots.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime
from functools import lru_cache
from typing import Any

from storefront_core.core.settings import settings
from storefront_core.models.session import SessionRecord
from storefront_core.services.sessions import SessionService, get_session_service
from storefront_core.utils.time import utcnow

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Outcome of one sweep pass."""

    success: bool = True
    processed: int = 0
    marked_inactive: int = 0
    total_active: int = 0
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class InactivitySweepScheduler:
    """Periodically marks stale sessions inactive."""

    def __init__(
        self,
        sessions: SessionService | None = None,
        *,
        interval_seconds: float | None = None,
        inactivity_timeout_seconds: float | None = None,
        page_size: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.sessions = sessions or get_session_service()
        self.default_interval_seconds = interval_seconds or settings.sweep_interval_seconds
        self.interval_seconds = self.default_interval_seconds
        self.inactivity_timeout_seconds = (
            inactivity_timeout_seconds or settings.inactivity_timeout_seconds
        )
        self.page_size = page_size or settings.sweep_page_size
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        self._running = False
        self.last_report: SweepReport | None = None

    @property
    def running(self) -> bool:
        return self._running

    def is_stale(self, session: SessionRecord, now: datetime) -> bool:
        """Return True when the session's activity is older than the timeout.

        Sessions without a usable timestamp are treated as stale.
        """
        last_seen = session.last_seen()
        if last_seen is None:
            logger.warning(
                "Session %s (IP: %s) has no usable activity timestamp (%r), marking inactive",
                session.id,
                session.ip,
                session.activity_marker,
            )
            return True
        elapsed = (now - last_seen).total_seconds()
        logger.debug(
            "Session %s (IP: %s) last active %.0fs ago", session.id, session.ip, elapsed
        )
        return elapsed > self.inactivity_timeout_seconds

    async def run_once(self) -> SweepReport:
        """Run a single sweep pass; failures are logged and reported, never raised."""
        report = SweepReport()
        try:
            active = await self.sessions.list_active(self.page_size)
        except Exception as exc:
            logger.exception("Failed to fetch active sessions")
            report.success = False
            report.error = str(exc)
            self.last_report = report
            return report

        report.total_active = len(active)
        now = self._clock()
        for session in active:
            report.processed += 1
            if not self.is_stale(session, now):
                continue
            try:
                await self.sessions.mark_inactive(session)
            except Exception:
                logger.exception("Failed to mark session %s inactive", session.id)
                continue
            report.marked_inactive += 1
            logger.info("Session %s (IP: %s) marked inactive", session.id, session.ip)

        logger.info(
            "Sweep finished: %d sessions processed, %d marked inactive",
            report.processed,
            report.marked_inactive,
        )
        self.last_report = report
        return report

    async def start(self, interval_seconds: float | None = None) -> bool:
        """Start sweeping; returns False if the scheduler is already running.

        One sweep runs immediately before the periodic loop is scheduled.
        """
        if self._running:
            return False

        self._running = True
        self.interval_seconds = interval_seconds or self.default_interval_seconds
        self._stopping.clear()
        await self.run_once()
        if self._running:
            self._task = asyncio.create_task(self._run())
            logger.info("Inactivity sweep started (every %.0fs)", self.interval_seconds)
        return True

    async def stop(self) -> bool:
        """Stop sweeping; returns False if the scheduler was not running."""
        if not self._running:
            return False

        self._running = False
        self._stopping.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Inactivity sweep loop exited with an error")
            self._task = None
        logger.info("Inactivity sweep stopped")
        return True

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except TimeoutError:
                try:
                    await self.run_once()
                except Exception:
                    logger.exception("Inactivity sweep tick failed")

    def status(self) -> dict[str, Any]:
        return {
            "isActive": self._running,
            "hasInterval": self._task is not None,
            "interval": self.interval_seconds,
            "inactivityTimeout": self.inactivity_timeout_seconds,
            "lastReport": self.last_report.as_dict() if self.last_report else None,
        }


@lru_cache
def get_sweep_scheduler() -> InactivitySweepScheduler:
    """Return the process-wide sweep scheduler."""
    return InactivitySweepScheduler()
