"""Tests for the inactivity sweep scheduler."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from conftest import FIXED_NOW
from storefront_core.services.sweep import InactivitySweepScheduler


def _ago(**delta: float) -> str:
    return (FIXED_NOW - timedelta(**delta)).isoformat().replace("+00:00", "Z")


@pytest.mark.asyncio
async def test_stale_session_is_marked_inactive(
    sweep_scheduler: InactivitySweepScheduler, record_store, sessions_table: str
) -> None:
    stale = record_store.seed(sessions_table, ip="10.0.0.1", status=True, lastActivity=_ago(minutes=6))
    fresh = record_store.seed(sessions_table, ip="10.0.0.2", status=True, lastActivity=_ago(minutes=1))

    report = await sweep_scheduler.run_once()

    assert report.success is True
    assert report.total_active == 2
    assert report.processed == 2
    assert report.marked_inactive == 1
    assert stale["status"] is False
    assert stale["lastActivity"] == "2025-01-15T12:00:00Z"
    assert fresh["status"] is True


@pytest.mark.asyncio
async def test_timeout_boundary_is_exclusive(
    sweep_scheduler: InactivitySweepScheduler, record_store, sessions_table: str
) -> None:
    session = record_store.seed(sessions_table, ip="10.0.0.1", status=True, lastActivity=_ago(minutes=5))

    report = await sweep_scheduler.run_once()

    assert report.marked_inactive == 0
    assert session["status"] is True


@pytest.mark.asyncio
async def test_falls_back_to_updated_then_created_timestamps(
    sweep_scheduler: InactivitySweepScheduler, record_store, sessions_table: str
) -> None:
    by_update = record_store.seed(
        sessions_table, ip="10.0.0.1", status=True, UpdatedAt=_ago(minutes=1), CreatedAt=_ago(hours=2)
    )
    by_creation = record_store.seed(
        sessions_table, ip="10.0.0.2", status=True, CreatedAt=_ago(hours=2)
    )

    await sweep_scheduler.run_once()

    assert by_update["status"] is True
    assert by_creation["status"] is False


@pytest.mark.asyncio
async def test_missing_or_invalid_timestamp_is_stale(
    sweep_scheduler: InactivitySweepScheduler, record_store, sessions_table: str
) -> None:
    missing = record_store.seed(sessions_table, ip="10.0.0.1", status=True)
    invalid = record_store.seed(sessions_table, ip="10.0.0.2", status=True, lastActivity="not-a-date")

    report = await sweep_scheduler.run_once()

    assert report.marked_inactive == 2
    assert missing["status"] is False
    assert invalid["status"] is False


@pytest.mark.asyncio
async def test_per_session_failure_does_not_abort_sweep(
    sweep_scheduler: InactivitySweepScheduler, record_store, sessions_table: str
) -> None:
    broken = record_store.seed(sessions_table, ip="10.0.0.1", status=True, lastActivity=_ago(hours=1))
    other = record_store.seed(sessions_table, ip="10.0.0.2", status=True, lastActivity=_ago(hours=1))
    record_store.fail_patch_ids.add(broken["Id"])

    report = await sweep_scheduler.run_once()

    assert report.processed == 2
    assert report.marked_inactive == 1
    assert broken["status"] is True
    assert other["status"] is False


@pytest.mark.asyncio
async def test_fetch_failure_is_reported(
    sweep_scheduler: InactivitySweepScheduler, record_store
) -> None:
    record_store.fail_list = True

    report = await sweep_scheduler.run_once()

    assert report.success is False
    assert report.error == "record store unavailable"
    assert sweep_scheduler.last_report is report


@pytest.mark.asyncio
async def test_start_and_stop_are_idempotent(
    sweep_scheduler: InactivitySweepScheduler, record_store, sessions_table: str
) -> None:
    stale = record_store.seed(sessions_table, ip="10.0.0.1", status=True, lastActivity=_ago(hours=1))

    assert await sweep_scheduler.start(60) is True
    assert await sweep_scheduler.start(60) is False
    assert stale["status"] is False
    assert sweep_scheduler.status()["isActive"] is True
    assert sweep_scheduler.status()["hasInterval"] is True
    assert sweep_scheduler.interval_seconds == 60

    assert await sweep_scheduler.stop() is True
    assert await sweep_scheduler.stop() is False
    assert sweep_scheduler.status()["isActive"] is False
    assert sweep_scheduler.status()["hasInterval"] is False


@pytest.mark.asyncio
async def test_periodic_loop_sweeps_again(
    sweep_scheduler: InactivitySweepScheduler, record_store
) -> None:
    await sweep_scheduler.start(0.01)
    await asyncio.sleep(0.05)
    await sweep_scheduler.stop()

    assert record_store.count_calls("list") >= 2


@pytest.mark.asyncio
async def test_restart_without_interval_uses_default(
    sweep_scheduler: InactivitySweepScheduler,
) -> None:
    await sweep_scheduler.start(60)
    await sweep_scheduler.stop()

    await sweep_scheduler.start()
    try:
        assert sweep_scheduler.interval_seconds == 300
    finally:
        await sweep_scheduler.stop()


@pytest.mark.asyncio
async def test_failed_tick_does_not_kill_the_loop(
    sweep_scheduler: InactivitySweepScheduler, record_store, mocker
) -> None:
    original = record_store.list_records
    calls: list[str] = []

    async def flaky(table: str, **kwargs):
        calls.append(table)
        if len(calls) == 2:
            raise AttributeError("'list' object has no attribute 'get'")
        return await original(table, **kwargs)

    mocker.patch.object(record_store, "list_records", new=flaky)

    await sweep_scheduler.start(0.01)
    await asyncio.sleep(0.1)

    assert len(calls) >= 3
    assert sweep_scheduler.status()["isActive"] is True
    assert sweep_scheduler.last_report.success is True
    assert await sweep_scheduler.stop() is True
