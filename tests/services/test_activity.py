"""Tests for the client-side session activity reporter."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
import pytest_asyncio

from storefront_core.services import SessionActivityReporter
from storefront_core.services.activity import UPDATE_PATH, UPDATE_STATUS_PATH

IP = "203.0.113.7"


class Recorder:
    def __init__(self, status_code: int = 200) -> None:
        self.requests: list[tuple[str, dict]] = []
        self.status_code = status_code

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.url.path, json.loads(request.content)))
        return httpx.Response(self.status_code, json={"Id": 1})


@pytest.fixture()
def recorder() -> Recorder:
    return Recorder()


@pytest_asyncio.fixture
async def http(recorder: Recorder):
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(recorder), base_url="http://storefront.test"
    ) as client:
        yield client


@pytest.mark.asyncio
async def test_activity_is_throttled(http, recorder: Recorder) -> None:
    now = [0.0]
    reporter = SessionActivityReporter(http, IP, activity_throttle=30, clock=lambda: now[0])

    assert await reporter.record_activity(lastPage="/") is True
    now[0] = 10
    assert await reporter.record_activity(lastPage="/cart") is False
    now[0] = 31
    assert await reporter.record_activity(lastPage="/checkout") is True

    assert recorder.requests == [
        (UPDATE_PATH, {"ip": IP, "lastPage": "/"}),
        (UPDATE_PATH, {"ip": IP, "lastPage": "/checkout"}),
    ]


@pytest.mark.asyncio
async def test_hidden_page_does_not_mark_inactive(http, recorder: Recorder) -> None:
    reporter = SessionActivityReporter(http, IP, heartbeat_interval=60)

    await reporter.set_visible(True)
    await reporter.set_visible(False)

    assert recorder.requests == [(UPDATE_PATH, {"ip": IP, "status": True})]


@pytest.mark.asyncio
async def test_heartbeat_runs_while_visible(http, recorder: Recorder) -> None:
    reporter = SessionActivityReporter(http, IP, heartbeat_interval=0.01)

    reporter.start_heartbeat()
    await asyncio.sleep(0.05)
    await reporter.stop_heartbeat()

    heartbeats = [payload for path, payload in recorder.requests if path == UPDATE_PATH]
    assert len(heartbeats) >= 2
    assert all(payload == {"ip": IP} for payload in heartbeats)


@pytest.mark.asyncio
async def test_disconnect_sends_inactive_status(http, recorder: Recorder) -> None:
    reporter = SessionActivityReporter(http, IP)

    assert await reporter.disconnect() is True
    assert recorder.requests == [(UPDATE_STATUS_PATH, {"ip": IP, "status": False})]


@pytest.mark.asyncio
async def test_going_away_is_fire_and_forget(http, recorder: Recorder) -> None:
    reporter = SessionActivityReporter(http, IP)

    task = reporter.going_away()

    assert recorder.requests == []
    assert await task is True
    assert recorder.requests == [(UPDATE_STATUS_PATH, {"ip": IP, "status": False})]


@pytest.mark.asyncio
async def test_failed_signal_is_reported_not_raised(http, recorder: Recorder) -> None:
    recorder.status_code = 503
    reporter = SessionActivityReporter(http, IP)

    assert await reporter.heartbeat() is False
