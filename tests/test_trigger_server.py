# tests/test_trigger_server.py

from __future__ import annotations

import pytest
from aiohttp import test_utils

from taskpulse.api.trigger_server import TriggerServer
from taskpulse.tasks.task_models import CycleReport, TaskFailure
from taskpulse.tasks.task_scheduler import DispatchError


class FakeDispatcher:
    def __init__(self, report: CycleReport | None = None, error: Exception | None = None) -> None:
        self.report = report or CycleReport()
        self.error = error
        self.calls = 0

    async def run_cycle(self, max_batch: int | None = None) -> CycleReport:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.report


def _client(dispatcher: FakeDispatcher, secret: str | None = "s3cret") -> test_utils.TestClient:
    server = TriggerServer(dispatcher, secret=secret)
    return test_utils.TestClient(test_utils.TestServer(server.build_app()))


@pytest.mark.asyncio
async def test_run_returns_cycle_report() -> None:
    report = CycleReport(
        processed=3,
        succeeded=1,
        failed=1,
        skipped=1,
        failures=[TaskFailure(task_id=9, owner_id="u1", task_type="reminder", error="boom")],
    )
    dispatcher = FakeDispatcher(report)

    async with _client(dispatcher) as client:
        resp = await client.post("/api/cron/run", headers={"Authorization": "Bearer s3cret"})
        body = await resp.json()

    assert resp.status == 200
    assert body["success"] is True
    assert (body["processed"], body["succeeded"], body["failed"], body["skipped"]) == (3, 1, 1, 1)
    assert body["failures"][0]["task_id"] == 9
    assert dispatcher.calls == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer nope"}, {"Authorization": "s3cret"}])
async def test_run_rejects_bad_secret(headers: dict[str, str]) -> None:
    dispatcher = FakeDispatcher()

    async with _client(dispatcher) as client:
        resp = await client.post("/api/cron/run", headers=headers)
        body = await resp.json()

    assert resp.status == 401
    assert body["success"] is False
    assert dispatcher.calls == 0


@pytest.mark.asyncio
async def test_run_unavailable_without_configured_secret() -> None:
    dispatcher = FakeDispatcher()

    async with _client(dispatcher, secret=None) as client:
        resp = await client.post("/api/cron/run", headers={"Authorization": "Bearer "})

    assert resp.status == 503
    assert dispatcher.calls == 0


@pytest.mark.asyncio
async def test_run_reports_aborted_cycle() -> None:
    dispatcher = FakeDispatcher(error=DispatchError("task store unavailable: locked"))

    async with _client(dispatcher) as client:
        resp = await client.post("/api/cron/run", headers={"Authorization": "Bearer s3cret"})
        body = await resp.json()

    assert resp.status == 500
    assert body == {"success": False, "error": "task store unavailable: locked"}


@pytest.mark.asyncio
async def test_health_needs_no_auth() -> None:
    async with _client(FakeDispatcher()) as client:
        resp = await client.get("/api/health")
        assert resp.status == 200
        assert await resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_run_is_post_only() -> None:
    async with _client(FakeDispatcher()) as client:
        resp = await client.get("/api/cron/run")
        assert resp.status == 405
