# src/taskpulse/tasks/retry_policy.py

"""
What happens to a task after its handler failed.

The dispatcher only calls `on_failure`; swapping the policy changes retry
behavior without touching the dispatch contract.
"""

from __future__ import annotations

import logging
from typing import Protocol

from ..core.ports import TaskRepo
from .task_models import ScheduledTask

logger = logging.getLogger(__name__)


class RetryPolicy(Protocol):
    def on_failure(self, store: TaskRepo, task: ScheduledTask, error: BaseException) -> None: ...


class ImmediateRetryPolicy:
    """
    No backoff: drop the lease and leave scheduling fields alone.

    The task stays due, so the next cycle picks it up again. A persistently
    failing task costs one dispatch slot per cycle until fixed or deleted.
    """

    def on_failure(self, store: TaskRepo, task: ScheduledTask, error: BaseException) -> None:
        store.release_lease(task.id)


class DelayedRetryPolicy:
    """Drop the lease and push next_run_at forward by a fixed delay."""

    def __init__(self, delay_seconds: float) -> None:
        if delay_seconds <= 0:
            raise ValueError("delay_seconds must be positive")
        self.delay_seconds = float(delay_seconds)

    def on_failure(self, store: TaskRepo, task: ScheduledTask, error: BaseException) -> None:
        next_run_at = store.now() + self.delay_seconds
        store.reschedule(task.id, next_run_at)
        logger.debug("Task %s retry delayed until %s", task.id, next_run_at)


def retry_policy_from_settings(settings) -> RetryPolicy:
    delay = float(getattr(settings, "retry_delay_seconds", 0.0) or 0.0)
    if delay > 0:
        return DelayedRetryPolicy(delay)
    return ImmediateRetryPolicy()
