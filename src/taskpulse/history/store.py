# src/taskpulse/history/store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class LoggedMessage:
    id: int
    owner_id: str
    role: str
    text: str
    source: str
    created_at: float


@dataclass(slots=True, frozen=True)
class FailureRecord:
    id: int
    owner_id: str
    task_type: str
    message: str
    created_at: float


class HistoryStore:
    """
    Append-only SQLite log of what the scheduler did for each owner.

    Two tables:
    - messages: every message delivered by a handler (replayed by the UI)
    - task_failures: audit trail of failed task runs
    """

    def __init__(
        self,
        db_path: str | Path = "history.sqlite3",
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = Path(db_path)
        self._clock = clock
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def open(self) -> HistoryStore:
        with self._lock:
            if self._conn is not None:
                return self
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self._db_path), timeout=30.0, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            with contextlib.suppress(sqlite3.Error):
                conn.execute("PRAGMA journal_mode=WAL")
            self._conn = conn
            with self._cursor() as cur:
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS messages (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        owner_id TEXT NOT NULL,
                        role TEXT NOT NULL,
                        text TEXT NOT NULL,
                        source TEXT NOT NULL,
                        created_at REAL NOT NULL
                    )
                    """
                )
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS task_failures (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        owner_id TEXT NOT NULL,
                        task_type TEXT NOT NULL,
                        message TEXT NOT NULL,
                        created_at REAL NOT NULL
                    )
                    """
                )
                cur.execute(
                    "CREATE INDEX IF NOT EXISTS idx_messages_owner ON messages(owner_id, created_at)"
                )
                cur.execute(
                    "CREATE INDEX IF NOT EXISTS idx_failures_owner ON task_failures(owner_id, created_at)"
                )
        logger.info("HistoryStore ready db=%s", self._db_path)
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @contextlib.contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            if self._conn is None:
                raise RuntimeError(f"HistoryStore is not open: {self._db_path}")
            cur = self._conn.cursor()
            try:
                yield cur
                self._conn.commit()
            except BaseException:
                self._conn.rollback()
                raise
            finally:
                cur.close()

    # ---- conversation log ----

    def append(self, owner_id: str, role: str, text: str, source: str) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO messages(owner_id, role, text, source, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (owner_id, role, text, source, float(self._clock())),
            )

    def list_recent(self, owner_id: str, limit: int = 50) -> list[LoggedMessage]:
        """Most recent messages for an owner, oldest first."""
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT *
                FROM messages
                WHERE owner_id = ?
                ORDER BY created_at DESC, id DESC
                    LIMIT ?
                """,
                (owner_id, int(limit)),
            )
            rows = cur.fetchall()
        return [
            LoggedMessage(
                id=int(r["id"]),
                owner_id=r["owner_id"],
                role=r["role"],
                text=r["text"],
                source=r["source"],
                created_at=float(r["created_at"]),
            )
            for r in reversed(rows)
        ]

    # ---- failure audit ----

    def record_failure(self, owner_id: str, task_type: str, message: str) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO task_failures(owner_id, task_type, message, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (owner_id, task_type, message, float(self._clock())),
            )
        logger.debug("Failure recorded owner=%s type=%s: %s", owner_id, task_type, message)

    def list_failures(self, owner_id: str | None = None, limit: int = 50) -> list[FailureRecord]:
        with self._cursor() as cur:
            if owner_id is None:
                cur.execute(
                    "SELECT * FROM task_failures ORDER BY created_at DESC, id DESC LIMIT ?",
                    (int(limit),),
                )
            else:
                cur.execute(
                    """
                    SELECT *
                    FROM task_failures
                    WHERE owner_id = ?
                    ORDER BY created_at DESC, id DESC
                        LIMIT ?
                    """,
                    (owner_id, int(limit)),
                )
            rows = cur.fetchall()
        return [
            FailureRecord(
                id=int(r["id"]),
                owner_id=r["owner_id"],
                task_type=r["task_type"],
                message=r["message"],
                created_at=float(r["created_at"]),
            )
            for r in rows
        ]
