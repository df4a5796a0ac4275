# tests/test_task_api.py

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from taskpulse.tasks import task_api
from taskpulse.tasks.task_store import TaskStore

from .fakes import T0


def _utc(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, timezone.utc)


def test_next_daily_run_today_or_tomorrow() -> None:
    # T0 is 2023-11-14 22:13 UTC
    assert _utc(task_api.next_daily_run(T0, 23)) == datetime(2023, 11, 14, 23, tzinfo=timezone.utc)
    assert _utc(task_api.next_daily_run(T0, 9)) == datetime(2023, 11, 15, 9, tzinfo=timezone.utc)
    with pytest.raises(ValueError):
        task_api.next_daily_run(T0, 24)


def test_schedule_daily_check_is_idempotent(task_store: TaskStore) -> None:
    first = task_api.schedule_daily_check(task_store, "u1")
    again = task_api.schedule_daily_check(task_store, "u1", hour_utc=5)

    assert again.id == first.id
    assert first.interval_ms == task_api.DAY_MS
    assert _utc(first.next_run_at).hour == 9
    assert task_store.count_tasks() == 1


def test_schedule_reminder(task_store: TaskStore) -> None:
    task = task_api.schedule_reminder(task_store, "u1", "stretch", delay_minutes=15)
    assert task.next_run_at == T0 + 900
    assert task.interval_ms is None
    assert task.payload == {"message": "stretch"}

    at = task_api.schedule_reminder(task_store, "u1", "later", run_at=T0 + 5)
    assert at.next_run_at == T0 + 5

    with pytest.raises(ValueError):
        task_api.schedule_reminder(task_store, "u1", "   ")


def test_schedule_nudges_is_idempotent(task_store: TaskStore) -> None:
    task = task_api.schedule_nudges(task_store, "u1", interval_hours=6, locale="fi", personalize=True)
    again = task_api.schedule_nudges(task_store, "u1")

    assert again.id == task.id
    assert task.interval_ms == 6 * task_api.HOUR_MS
    assert task.next_run_at == T0 + 6 * 3600
    assert task.payload == {"personalize": True, "locale": "fi"}


def test_cancel_task_checks_owner(task_store: TaskStore) -> None:
    task = task_api.schedule_reminder(task_store, "u1", "mine")

    assert task_api.cancel_task(task_store, "intruder", task.id) is False
    assert task_api.cancel_task(task_store, "u1", 999) is False
    assert task_api.cancel_task(task_store, "u1", task.id) is True
    assert task_store.get_task(task.id) is None


def test_disable_notifications_removes_everything_of_owner(task_store: TaskStore) -> None:
    task_api.schedule_daily_check(task_store, "u1")
    task_api.schedule_nudges(task_store, "u1")
    task_api.schedule_reminder(task_store, "u1", "x")
    task_api.schedule_reminder(task_store, "u2", "y")

    assert task_api.disable_notifications(task_store, "u1") == 3
    assert task_api.list_owner_tasks(task_store, "u1") == []
    assert len(task_api.list_owner_tasks(task_store, "u2")) == 1
