"""Client-side session activity reporter.

Drives the session endpoints the way a storefront page does: a heartbeat
while the page is in the foreground, throttled activity pings, explicit
transitions on visibility changes, and a best-effort "going away" signal when
the page unloads. Losing focus or visibility never marks the session
inactive; only ``disconnect`` and ``going_away`` do.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

logger = logging.getLogger(__name__)

UPDATE_PATH = "/api/v1/session/update"
UPDATE_STATUS_PATH = "/api/v1/session/update-status"


class SessionActivityReporter:
    """Sends session signals for one visitor to the storefront API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        ip: str,
        *,
        heartbeat_interval: float = 60.0,
        activity_throttle: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self.ip = ip
        self.heartbeat_interval = heartbeat_interval
        self.activity_throttle = activity_throttle
        self._clock = clock
        self._last_activity_sent: float | None = None
        self._heartbeat: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[Any]] = set()

    async def _send(self, path: str, payload: dict[str, Any]) -> bool:
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Session signal to %s failed: %s", path, exc)
            return False
        return True

    async def heartbeat(self) -> bool:
        """Refresh ``lastActivity`` and keep the session active."""
        return await self._send(UPDATE_PATH, {"ip": self.ip})

    async def record_activity(self, **fields: Any) -> bool:
        """Report user activity, at most once per throttle period.

        Returns False when the signal was throttled or failed.
        """
        now = self._clock()
        if (
            self._last_activity_sent is not None
            and now - self._last_activity_sent < self.activity_throttle
        ):
            return False
        self._last_activity_sent = now
        return await self._send(UPDATE_PATH, {"ip": self.ip, **fields})

    async def set_visible(self, visible: bool) -> None:
        """Handle focus/visibility changes.

        Becoming visible marks the session active and resumes the heartbeat;
        becoming hidden only pauses the heartbeat.
        """
        if visible:
            await self._send(UPDATE_PATH, {"ip": self.ip, "status": True})
            self.start_heartbeat()
        else:
            await self.stop_heartbeat()

    async def disconnect(self) -> bool:
        """Explicitly mark the session inactive."""
        await self.stop_heartbeat()
        return await self._send(UPDATE_STATUS_PATH, {"ip": self.ip, "status": False})

    def going_away(self) -> asyncio.Task[bool]:
        """Fire-and-forget inactive signal for page unload.

        The send is scheduled immediately and never awaited here; the task is
        retained only so it is not garbage collected mid-flight.
        """
        task = asyncio.get_running_loop().create_task(
            self._send(UPDATE_STATUS_PATH, {"ip": self.ip, "status": False})
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def start_heartbeat(self) -> None:
        if self._heartbeat is None or self._heartbeat.done():
            self._heartbeat = asyncio.get_running_loop().create_task(self._heartbeat_loop())

    async def stop_heartbeat(self) -> None:
        if self._heartbeat is None:
            return
        self._heartbeat.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._heartbeat
        self._heartbeat = None

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            await self.heartbeat()
