# tests/conftest.py

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from types import SimpleNamespace

import pytest

from taskpulse.core.state import AppState
from taskpulse.history.store import HistoryStore
from taskpulse.nudge.behavior_store import BehaviorStore
from taskpulse.nudge.engine import NudgeEngine
from taskpulse.tasks.task_handlers import build_handler_registry
from taskpulse.tasks.task_scheduler import TaskDispatcher
from taskpulse.tasks.task_store import TaskStore

from .fakes import FakeChannel, FakeClock, FakeGenerator


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI commands.

    We intentionally use a SimpleNamespace rather than reading the environment,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskpulse-test",
        timezone="UTC",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        behavior_db_path=tmp_path / "behavior.sqlite3",
        history_db_path=tmp_path / "history.sqlite3",
        batch_limit=50,
        lease_seconds=300.0,
        lease_duration_ms=300_000,
        retry_delay_seconds=0.0,
        poll_interval_seconds=60.0,
        daily_check_hour_utc=9,
        nudge_interval_hours=6.0,
        nudge_min_hours_between=24.0,
        nudge_max_consecutive=None,
        nudge_personalize_min_level=4,
        default_locale="en",
    )


@pytest.fixture()
def task_store(settings: SimpleNamespace, clock: FakeClock) -> Iterator[TaskStore]:
    """Real SQLite store: its correctness is part of what we want to test."""
    store = TaskStore(settings.tasks_db_path, clock=clock).open()
    yield store
    store.close()


@pytest.fixture()
def behavior_store(settings: SimpleNamespace, clock: FakeClock) -> Iterator[BehaviorStore]:
    store = BehaviorStore(settings.behavior_db_path, tz="UTC", clock=clock).open()
    yield store
    store.close()


@pytest.fixture()
def history_store(settings: SimpleNamespace, clock: FakeClock) -> Iterator[HistoryStore]:
    store = HistoryStore(settings.history_db_path, clock=clock).open()
    yield store
    store.close()


@pytest.fixture()
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture()
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    clock: FakeClock,
    task_store: TaskStore,
    behavior_store: BehaviorStore,
    history_store: HistoryStore,
    channel: FakeChannel,
    generator: FakeGenerator,
) -> AppState:
    """AppState wired with real stores and deterministic delivery/LLM fakes."""
    engine = NudgeEngine(behavior_store, tz="UTC", clock=clock)
    handlers = build_handler_registry(
        channel=channel,
        generator=generator,
        conversation_log=history_store,
        nudge_engine=engine,
    )
    dispatcher = TaskDispatcher(task_store, handlers, audit_log=history_store)
    return AppState(
        settings=settings,
        task_store=task_store,
        behavior=behavior_store,
        history=history_store,
        channel=channel,
        generator=generator,
        nudge_engine=engine,
        dispatcher=dispatcher,
    )
