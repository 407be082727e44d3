"""Session reconciliation service.

Tracks one session per client IP in the record store. Clients send repeated
and possibly out-of-order signals (heartbeats, activity pings, focus changes,
unload beacons); this service folds them into the stored record while keeping
two invariants:

- ``createOrder`` is a write-once latch: once true it is never reset.
- any update without an explicit ``status=false`` revives the session.

All writes for one IP go through a per-IP lock, and the current state and the
record identity are read in a single lookup, so concurrent updates for the
same visitor cannot interleave inside this process.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from functools import lru_cache

from storefront_core.core.settings import settings
from storefront_core.models.session import SessionRecord, SessionUpdateResult
from storefront_core.schemas.session import SessionCreate, SessionUpdate
from storefront_core.services.errors import NotFoundNoOp
from storefront_core.services.record_store import (
    RecordStore,
    eq_filter,
    get_record_store,
    record_id,
)
from storefront_core.utils.locks import KeyedLock
from storefront_core.utils.time import isoformat, utcnow

logger = logging.getLogger(__name__)


class SessionService:
    """Create, reconcile and deactivate visitor sessions."""

    def __init__(
        self,
        store: RecordStore,
        *,
        table: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.table = table or settings.sessions_table_id
        self._clock = clock
        self._locks = KeyedLock()

    def _now(self) -> str:
        return isoformat(self._clock())

    async def find_by_ip(self, ip: str) -> SessionRecord | None:
        """Return the session for an IP, or None when the visitor is unknown."""
        page = await self.store.list_records(self.table, where=eq_filter("ip", ip), limit=1)
        if not page.items:
            return None
        session = SessionRecord.from_record(page.items[0])
        if session.id is None:
            return None
        return session

    async def _require(self, ip: str) -> SessionRecord:
        session = await self.find_by_ip(ip)
        if session is None:
            raise NotFoundNoOp(f"No session for IP {ip}")
        return session

    async def count_by_ip(self, ip: str) -> int:
        """Return how many session records exist for an IP."""
        return await self.store.count_records(self.table, where=eq_filter("ip", ip))

    async def create_if_absent(
        self, ip: str, attrs: SessionCreate | None = None
    ) -> tuple[SessionRecord, bool]:
        """Create the visitor's session unless one already exists.

        Returns the session and whether this call created it. The first writer
        wins; later calls return the stored record unchanged.
        """
        async with self._locks.hold(ip):
            existing = await self.find_by_ip(ip)
            if existing is not None:
                logger.debug("Session %s already exists for IP %s", existing.id, ip)
                return existing, False

            data = {
                **(attrs.record_fields() if attrs else {}),
                "ip": ip,
                "status": True,
                "createOrder": False,
                "lastActivity": self._now(),
            }
            created = await self.store.create_record(self.table, data)
            session = SessionRecord.from_record({**data, "Id": record_id(created)})
            logger.info("Created session %s for IP %s", session.id, ip)
            return session, True

    async def update(self, ip: str, patch: SessionUpdate) -> SessionUpdateResult:
        """Merge an incremental update into the session for ``ip``.

        A missing session is not an error: the update is skipped and the
        zero-id sentinel is returned.
        """
        fields = patch.record_fields()

        async with self._locks.hold(ip):
            try:
                current = await self._require(ip)
            except NotFoundNoOp:
                logger.warning("No session found for IP %s. Skipping update.", ip)
                return SessionUpdateResult.not_found()

            if "createOrder" in fields and current.create_order:
                logger.warning(
                    "Ignoring createOrder=%r for session %s: already latched to true",
                    fields["createOrder"],
                    current.id,
                )
                del fields["createOrder"]

            if fields.get("status") is False:
                logger.info("Session %s (IP: %s) marked inactive", current.id, ip)
            else:
                fields["status"] = True
            fields["lastActivity"] = self._now()

            response = await self.store.patch_record(self.table, {"Id": current.id, **fields})
            return SessionUpdateResult(id=record_id(response) or current.id)

    async def update_status(self, ip: str, status: bool = False) -> SessionUpdateResult:
        """Apply an explicit active/inactive transition."""
        return await self.update(ip, SessionUpdate(status=status))

    async def list_active(self, limit: int | None = None) -> list[SessionRecord]:
        """Return sessions currently flagged active (one bounded page)."""
        page = await self.store.list_records(
            self.table,
            where=eq_filter("status", True),
            limit=limit or settings.sweep_page_size,
        )
        return [SessionRecord.from_record(item) for item in page.items]

    async def mark_inactive(self, session: SessionRecord) -> None:
        """Flag a session inactive on behalf of the sweep."""
        async with self._locks.hold(session.ip):
            await self.store.patch_record(
                self.table,
                {"Id": session.id, "status": False, "lastActivity": self._now()},
            )


@lru_cache
def get_session_service() -> SessionService:
    """Return the shared session service (its per-IP locks must be shared too)."""
    return SessionService(get_record_store())
