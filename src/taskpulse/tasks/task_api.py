# src/taskpulse/tasks/task_api.py

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from ..core.ports import TaskRepo
from .task_models import ScheduledTask, TaskType

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000
HOUR_MS = 60 * 60 * 1000


def next_daily_run(now_ts: float, hour_utc: int) -> float:
    """Next occurrence of hour_utc:00 UTC strictly after now (today or tomorrow)."""
    if not 0 <= int(hour_utc) <= 23:
        raise ValueError("hour_utc must be in 0..23")
    now = datetime.fromtimestamp(now_ts, timezone.utc)
    run = now.replace(hour=int(hour_utc), minute=0, second=0, microsecond=0)
    if run <= now:
        run += timedelta(days=1)
    return run.timestamp()


def schedule_daily_check(store: TaskRepo, owner_id: str, *, hour_utc: int = 9) -> ScheduledTask:
    """
    Enable daily check-ins for an owner (idempotent).

    If the owner already has a daily check, that task is returned unchanged.
    """
    existing = store.find_by_owner_and_type(owner_id, TaskType.DAILY_CHECK.value)
    if existing is not None:
        logger.info("Daily check already scheduled for owner=%s (task %s)", owner_id, existing.id)
        return existing

    task = store.create_task(
        owner_id=owner_id,
        task_type=TaskType.DAILY_CHECK.value,
        next_run_at=next_daily_run(store.now(), hour_utc),
        interval_ms=DAY_MS,
    )
    logger.info("Daily check scheduled for owner=%s at %s", owner_id, task.next_run_at)
    return task


def schedule_reminder(
    store: TaskRepo,
    owner_id: str,
    message: str,
    *,
    run_at: float | None = None,
    delay_minutes: float = 0,
) -> ScheduledTask:
    """One-shot reminder delivered verbatim at run_at (or after delay_minutes)."""
    if not message or not message.strip():
        raise ValueError("message is required")
    if run_at is None:
        run_at = store.now() + max(0.0, float(delay_minutes)) * 60

    return store.create_task(
        owner_id=owner_id,
        task_type=TaskType.REMINDER.value,
        next_run_at=run_at,
        payload={"message": message},
    )


def schedule_nudges(
    store: TaskRepo,
    owner_id: str,
    *,
    interval_hours: float = 6.0,
    locale: str | None = None,
    personalize: bool = False,
) -> ScheduledTask:
    """
    Recurring nudge evaluation for an owner (idempotent).

    The task runs every interval_hours; each run decides by itself whether a
    nudge actually goes out.
    """
    existing = store.find_by_owner_and_type(owner_id, TaskType.NUDGE.value)
    if existing is not None:
        return existing

    payload: dict[str, object] = {"personalize": bool(personalize)}
    if locale:
        payload["locale"] = locale

    interval_ms = max(1, int(float(interval_hours) * HOUR_MS))
    return store.create_task(
        owner_id=owner_id,
        task_type=TaskType.NUDGE.value,
        next_run_at=store.now() + interval_ms / 1000.0,
        interval_ms=interval_ms,
        payload=payload,
    )


def list_owner_tasks(store: TaskRepo, owner_id: str) -> list[ScheduledTask]:
    return store.list_by_owner(owner_id)


def cancel_task(store: TaskRepo, owner_id: str, task_id: int) -> bool:
    """Delete one of the owner's tasks. Tasks of other owners are left alone."""
    task = store.get_task(task_id)
    if task is None or task.owner_id != owner_id:
        return False
    return store.delete(task_id)


def disable_notifications(store: TaskRepo, owner_id: str) -> int:
    """Remove every scheduled task of the owner. Returns how many were removed."""
    n = store.delete_by_owner(owner_id)
    logger.info("Notifications disabled for owner=%s (%d task(s) removed)", owner_id, n)
    return n
