# src/taskpulse/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import threading
import time
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

from .task_models import ScheduledTask

logger = logging.getLogger(__name__)


class TaskStoreError(RuntimeError):
    pass


class StoreClosedError(TaskStoreError):
    pass


class TaskStore:
    """
    SQLite store of scheduled tasks with lease-based locking.

    Lifecycle:
    - open() creates/migrates the schema and keeps one connection for reuse
    - close() releases it; any call on a closed store raises StoreClosedError
    - also usable as a context manager

    Concurrency:
    - the connection is shared between threads and guarded by a lock
    - every lease transition is a single conditional UPDATE, so it stays
      atomic across processes sharing the same database file
    """

    def __init__(
        self,
        db_path: str | Path = "tasks.sqlite3",
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = Path(db_path)
        self._clock = clock
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def __enter__(self) -> TaskStore:
        self.open()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> TaskStore:
        with self._lock:
            if self._conn is not None:
                return self
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self._db_path), timeout=30.0, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            with contextlib.suppress(sqlite3.Error):
                conn.execute("PRAGMA journal_mode=WAL")
            self._conn = conn
            self._ensure_schema()
        logger.info("TaskStore ready db=%s total=%s", self._db_path, self.count_tasks())
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
        logger.debug("TaskStore closed db=%s", self._db_path)

    # ---- low-level helpers ----

    @contextlib.contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            if self._conn is None:
                raise StoreClosedError(f"TaskStore is not open: {self._db_path}")
            cur = self._conn.cursor()
            try:
                yield cur
                self._conn.commit()
            except BaseException:
                self._conn.rollback()
                raise
            finally:
                cur.close()

    def _ensure_schema(self) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS scheduled_tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id TEXT NOT NULL,
                    task_type TEXT NOT NULL,
                    next_run_at REAL NOT NULL,
                    interval_ms INTEGER,
                    payload TEXT NOT NULL DEFAULT '{}',
                    last_run_at REAL,
                    lease_until REAL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            cur.execute("PRAGMA table_info(scheduled_tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE scheduled_tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("interval_ms", "INTEGER")
            add_col("payload", "TEXT NOT NULL DEFAULT '{}'")
            add_col("last_run_at", "REAL")
            add_col("lease_until", "REAL")

            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_scheduled_tasks_next_run "
                "ON scheduled_tasks(next_run_at)"
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_scheduled_tasks_owner_type "
                "ON scheduled_tasks(owner_id, task_type)"
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_scheduled_tasks_lease "
                "ON scheduled_tasks(lease_until)"
            )

    @staticmethod
    def _payload_to_str(payload: dict[str, Any] | None) -> str:
        if not payload:
            return "{}"
        return json.dumps(payload, ensure_ascii=False)

    @staticmethod
    def _str_to_payload(s: str | None) -> dict[str, Any]:
        if not s:
            return {}
        try:
            val = json.loads(s)
        except ValueError:
            logger.warning("Corrupt task payload; using {}")
            return {}
        return val if isinstance(val, dict) else {}

    def _row_to_task(self, row: sqlite3.Row) -> ScheduledTask:
        return ScheduledTask(
            id=int(row["id"]),
            owner_id=str(row["owner_id"]),
            task_type=str(row["task_type"]),
            next_run_at=float(row["next_run_at"]),
            interval_ms=int(row["interval_ms"]) if row["interval_ms"] is not None else None,
            payload=self._str_to_payload(row["payload"]),
            last_run_at=float(row["last_run_at"]) if row["last_run_at"] is not None else None,
            lease_until=float(row["lease_until"]) if row["lease_until"] is not None else None,
            created_at=float(row["created_at"]),
            updated_at=float(row["updated_at"]),
        )

    # ---- public API ----

    def now(self) -> float:
        return float(self._clock())

    def count_tasks(self) -> int:
        with self._cursor() as cur:
            cur.execute("SELECT COUNT(*) FROM scheduled_tasks")
            (n,) = cur.fetchone()
            return int(n)

    def create_task(
        self,
        *,
        owner_id: str,
        task_type: str,
        next_run_at: float | None,
        interval_ms: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> ScheduledTask:
        if not owner_id or not str(owner_id).strip():
            raise ValueError("owner_id is required")
        if not task_type or not str(task_type).strip():
            raise ValueError("task_type is required")
        if next_run_at is None:
            raise ValueError("next_run_at is required")
        if interval_ms is not None and int(interval_ms) <= 0:
            raise ValueError("interval_ms must be positive")

        now = self.now()
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO scheduled_tasks(
                    owner_id, task_type, next_run_at, interval_ms, payload,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(owner_id).strip(),
                    str(task_type).strip(),
                    float(next_run_at),
                    int(interval_ms) if interval_ms is not None else None,
                    self._payload_to_str(payload),
                    now,
                    now,
                ),
            )
            rowid = cur.lastrowid
            if rowid is None:
                raise TaskStoreError("SQLite did not return lastrowid for scheduled_tasks insert")
            cur.execute("SELECT * FROM scheduled_tasks WHERE id = ?", (int(rowid),))
            task = self._row_to_task(cur.fetchone())

        logger.debug(
            "Task created id=%s owner=%s type=%s next_run_at=%s interval_ms=%s",
            task.id,
            task.owner_id,
            task.task_type,
            task.next_run_at,
            task.interval_ms,
        )
        return task

    def get_task(self, task_id: int) -> ScheduledTask | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM scheduled_tasks WHERE id = ?", (int(task_id),))
            row = cur.fetchone()
            return self._row_to_task(row) if row else None

    def list_ready(self, limit: int = 50) -> list[ScheduledTask]:
        """
        Tasks that are due and not leased, earliest-due first.

        A task is ready if:
        - next_run_at <= now, AND
        - lease_until IS NULL or lease_until <= now
        """
        now = self.now()
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT *
                FROM scheduled_tasks
                WHERE next_run_at <= ?
                  AND (lease_until IS NULL OR lease_until <= ?)
                ORDER BY next_run_at ASC, id ASC
                    LIMIT ?
                """,
                (now, now, max(0, int(limit))),
            )
            return [self._row_to_task(r) for r in cur.fetchall()]

    def acquire_lease(self, task_id: int, lease_duration_ms: int) -> bool:
        """
        Atomically take the lease on a task.

        Transitions lease_until -> now + duration only if the task is currently
        lockable and still due. A stale read of a recurring task that a sibling
        cycle already completed no longer matches. Returns True if this caller
        now holds the lease.
        """
        now = self.now()
        lease_until = now + max(0, int(lease_duration_ms)) / 1000.0
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE scheduled_tasks
                SET lease_until = ?, updated_at = ?
                WHERE id = ?
                  AND next_run_at <= ?
                  AND (lease_until IS NULL OR lease_until <= ?)
                """,
                (lease_until, now, int(task_id), now, now),
            )
            acquired = cur.rowcount == 1

        if acquired:
            logger.debug("Lease acquired task_id=%s until=%s", task_id, lease_until)
        return acquired

    def extend_lease(self, task_id: int, lease_duration_ms: int) -> bool:
        """Push an active lease forward. False if the task is not currently leased."""
        now = self.now()
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE scheduled_tasks
                SET lease_until = ?, updated_at = ?
                WHERE id = ?
                  AND lease_until IS NOT NULL
                  AND lease_until > ?
                """,
                (now + max(0, int(lease_duration_ms)) / 1000.0, now, int(task_id), now),
            )
            return cur.rowcount == 1

    def release_lease(self, task_id: int) -> None:
        now = self.now()
        with self._cursor() as cur:
            cur.execute(
                "UPDATE scheduled_tasks SET lease_until = NULL, updated_at = ? WHERE id = ?",
                (now, int(task_id)),
            )

    def complete(self, task_id: int) -> None:
        """
        Finish a successful run:
        - recurring: next_run_at = now + interval, last_run_at = now, lease cleared
        - one-shot: row deleted
        A task that no longer exists is ignored.
        """
        now = self.now()
        with self._cursor() as cur:
            cur.execute("BEGIN IMMEDIATE")
            cur.execute("SELECT * FROM scheduled_tasks WHERE id = ?", (int(task_id),))
            row = cur.fetchone()
            if row is None:
                logger.debug("complete: task_id=%s already gone", task_id)
                return

            task = self._row_to_task(row)
            if task.is_recurring:
                next_run_at = now + int(task.interval_ms) / 1000.0
                cur.execute(
                    """
                    UPDATE scheduled_tasks
                    SET next_run_at = ?,
                        last_run_at = ?,
                        lease_until = NULL,
                        updated_at = ?
                    WHERE id = ?
                    """,
                    (next_run_at, now, now, int(task_id)),
                )
                logger.debug("Task %s rescheduled next_run_at=%s", task_id, next_run_at)
            else:
                cur.execute("DELETE FROM scheduled_tasks WHERE id = ?", (int(task_id),))
                logger.debug("Task %s completed and deleted", task_id)

    def reschedule(self, task_id: int, next_run_at: float) -> None:
        """Clear the lease and move the due time (delayed retry)."""
        now = self.now()
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE scheduled_tasks
                SET next_run_at = ?, lease_until = NULL, updated_at = ?
                WHERE id = ?
                """,
                (float(next_run_at), now, int(task_id)),
            )

    def list_by_owner(self, owner_id: str) -> list[ScheduledTask]:
        if not owner_id:
            return []
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT *
                FROM scheduled_tasks
                WHERE owner_id = ?
                ORDER BY next_run_at ASC, id ASC
                """,
                (owner_id,),
            )
            return [self._row_to_task(r) for r in cur.fetchall()]

    def find_by_owner_and_type(self, owner_id: str, task_type: str) -> ScheduledTask | None:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT *
                FROM scheduled_tasks
                WHERE owner_id = ? AND task_type = ?
                ORDER BY id ASC
                    LIMIT 1
                """,
                (owner_id, task_type),
            )
            row = cur.fetchone()
            return self._row_to_task(row) if row else None

    def delete(self, task_id: int) -> bool:
        with self._cursor() as cur:
            cur.execute("DELETE FROM scheduled_tasks WHERE id = ?", (int(task_id),))
            return cur.rowcount == 1

    def delete_by_owner(self, owner_id: str, task_type: str | None = None) -> int:
        with self._cursor() as cur:
            if task_type is None:
                cur.execute("DELETE FROM scheduled_tasks WHERE owner_id = ?", (owner_id,))
            else:
                cur.execute(
                    "DELETE FROM scheduled_tasks WHERE owner_id = ? AND task_type = ?",
                    (owner_id, task_type),
                )
            return int(cur.rowcount)
