# src/taskpulse/tasks/task_scheduler.py

from __future__ import annotations

"""
Task dispatcher.

One cycle:
- fetches ready tasks (due, not leased),
- takes the lease on each (losers count as skipped),
- runs the handler for the task type,
- completes the task on success, hands it to the retry policy on failure.

Units of one cycle run concurrently and are isolated from each other: one
task's exception never cancels another or the cycle. Nothing survives between
cycles except what is in the store, so cycles may overlap freely (e.g. two
cron firings at once); the lease keeps each task single-runner.
"""

import asyncio
import logging
from collections.abc import Mapping
from enum import Enum

from ..core.ports import AuditLog, TaskRepo
from .retry_policy import ImmediateRetryPolicy, RetryPolicy
from .task_handlers import HandlerOutcome, TaskHandler, TaskHandlerError
from .task_models import CycleReport, ScheduledTask, TaskFailure

logger = logging.getLogger(__name__)

DEFAULT_LEASE_MS = 5 * 60 * 1000
DEFAULT_BATCH_LIMIT = 50


class DispatchError(RuntimeError):
    """The cycle could not run at all (store unavailable)."""


class UnitStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class TaskDispatcher:
    def __init__(
        self,
        store: TaskRepo,
        handlers: Mapping[str, TaskHandler],
        *,
        audit_log: AuditLog | None = None,
        retry_policy: RetryPolicy | None = None,
        lease_duration_ms: int = DEFAULT_LEASE_MS,
        batch_limit: int = DEFAULT_BATCH_LIMIT,
    ) -> None:
        self._store = store
        self._handlers = dict(handlers)
        self._audit = audit_log
        self._retry = retry_policy or ImmediateRetryPolicy()
        self.lease_duration_ms = int(lease_duration_ms)
        self.batch_limit = max(1, int(batch_limit))

    async def run_cycle(self, max_batch: int | None = None) -> CycleReport:
        limit = self.batch_limit if max_batch is None else max(1, int(max_batch))

        try:
            tasks = await asyncio.to_thread(self._store.list_ready, limit)
        except Exception as e:
            logger.exception("list_ready failed; cycle aborted")
            raise DispatchError(f"task store unavailable: {e}") from e

        report = CycleReport(processed=len(tasks))
        if not tasks:
            logger.debug("No ready tasks")
            return report

        logger.info("Dispatching %d ready task(s)", len(tasks))
        results = await asyncio.gather(
            *(self._run_one(task) for task in tasks),
            return_exceptions=True,
        )

        for task, result in zip(tasks, results):
            if isinstance(result, BaseException):
                # _run_one already isolates handler errors; this is a store error
                # while leasing/completing/retrying this particular task.
                logger.error("Task %s unit crashed: %r", task.id, result)
                report.failed += 1
                report.failures.append(
                    TaskFailure(task.id, task.owner_id, task.task_type, str(result) or repr(result))
                )
                continue

            status, error = result
            if status is UnitStatus.SUCCEEDED:
                report.succeeded += 1
            elif status is UnitStatus.SKIPPED:
                report.skipped += 1
            else:
                report.failed += 1
                report.failures.append(TaskFailure(task.id, task.owner_id, task.task_type, error))

        logger.info(
            "Cycle finished: %d succeeded, %d failed, %d skipped",
            report.succeeded,
            report.failed,
            report.skipped,
        )
        return report

    async def _run_one(self, task: ScheduledTask) -> tuple[UnitStatus, str]:
        leased = await asyncio.to_thread(self._store.acquire_lease, task.id, self.lease_duration_ms)
        if not leased:
            logger.info("Task %s already leased, skipping", task.id)
            return UnitStatus.SKIPPED, ""

        handler = self._handlers.get(task.task_type)
        outcome = None
        try:
            if handler is None:
                logger.warning("Unknown task type %r (task %s); treating as done", task.task_type, task.id)
            else:
                outcome = await handler.handle(task)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.warning(
                "Task %s (%s) failed owner=%s: %s",
                task.id,
                task.task_type,
                task.owner_id,
                message,
                exc_info=not isinstance(e, TaskHandlerError),
            )
            try:
                await asyncio.to_thread(self._retry.on_failure, self._store, task, e)
            finally:
                await self._record_failure(task, message)
            return UnitStatus.FAILED, message

        await asyncio.to_thread(self._store.complete, task.id)
        if outcome is HandlerOutcome.SKIPPED:
            logger.info("Task %s (%s) had nothing to do owner=%s", task.id, task.task_type, task.owner_id)
        else:
            logger.debug("Task %s completed (%s)", task.id, outcome or "unknown type")
        return UnitStatus.SUCCEEDED, ""

    async def _record_failure(self, task: ScheduledTask, message: str) -> None:
        if self._audit is None:
            return
        try:
            await asyncio.to_thread(self._audit.record_failure, task.owner_id, task.task_type, message)
        except Exception:
            logger.exception("record_failure failed task_id=%s", task.id)


async def run_task_scheduler(
        dispatcher: TaskDispatcher,
        *,
        interval_seconds: float = 60.0,
        batch_limit: int | None = None,
) -> None:
    """
    Simple polling loop for deployments without an external cron trigger.

    Every interval_seconds runs one dispatch cycle. An aborted cycle is logged
    and retried on the next tick.

    To stop the scheduler, cancel the coroutine/task.
    """
    sleep_s = max(0.5, float(interval_seconds))

    while True:
        try:
            await dispatcher.run_cycle(batch_limit)
        except DispatchError:
            logger.warning("Dispatch cycle aborted; retrying in %.1fs", sleep_s)

        await asyncio.sleep(sleep_s)
