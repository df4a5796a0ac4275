# src/taskpulse/nudge/behavior_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import threading
import time
from collections.abc import Callable, Iterator
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from ..core.ports import UserBehaviorSnapshot

logger = logging.getLogger(__name__)

# Reported for owners who never interacted: treated as "very long ago".
NO_INTERACTION_HOURS = 999.0


class BehaviorStore:
    """
    Per-owner interaction patterns (SQLite).

    Written by two sides:
    - the conversation layer calls record_interaction() on every inbound message
    - the nudge handler calls record_non_response() after each nudge it sends
    """

    def __init__(
        self,
        db_path: str | Path = "behavior.sqlite3",
        *,
        tz: str | ZoneInfo = "UTC",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = Path(db_path)
        self._tz = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
        self._clock = clock
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def open(self) -> BehaviorStore:
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
                    CREATE TABLE IF NOT EXISTS user_patterns (
                        owner_id TEXT PRIMARY KEY,
                        last_interaction_at REAL,
                        active_hours TEXT NOT NULL DEFAULT '[]',
                        consecutive_non_responses INTEGER NOT NULL DEFAULT 0,
                        last_nudge_at REAL,
                        locale TEXT,
                        updated_at REAL NOT NULL
                    )
                    """
                )
        logger.info("BehaviorStore ready db=%s", self._db_path)
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
                raise RuntimeError(f"BehaviorStore is not open: {self._db_path}")
            cur = self._conn.cursor()
            try:
                yield cur
                self._conn.commit()
            except BaseException:
                self._conn.rollback()
                raise
            finally:
                cur.close()

    @staticmethod
    def _ensure_row(cur: sqlite3.Cursor, owner_id: str, now: float) -> None:
        cur.execute(
            "INSERT OR IGNORE INTO user_patterns(owner_id, updated_at) VALUES (?, ?)",
            (owner_id, now),
        )

    @staticmethod
    def _decode_hours(raw: str | None) -> list[int]:
        try:
            val = json.loads(raw or "[]")
        except ValueError:
            return []
        if not isinstance(val, list):
            return []
        return sorted({int(h) for h in val if isinstance(h, int) and 0 <= h <= 23})

    # ---- public API ----

    def get_behavior_snapshot(self, owner_id: str) -> UserBehaviorSnapshot:
        now = float(self._clock())
        with self._cursor() as cur:
            cur.execute("SELECT * FROM user_patterns WHERE owner_id = ?", (owner_id,))
            row = cur.fetchone()

        if row is None:
            return UserBehaviorSnapshot(hours_since_last_interaction=NO_INTERACTION_HOURS)

        last = row["last_interaction_at"]
        hours = NO_INTERACTION_HOURS if last is None else max(0.0, (now - float(last)) / 3600.0)
        active = self._decode_hours(row["active_hours"])
        return UserBehaviorSnapshot(
            hours_since_last_interaction=hours,
            active_hours=frozenset(active) if active else None,
            consecutive_non_responses=int(row["consecutive_non_responses"] or 0),
            last_nudge_at=float(row["last_nudge_at"]) if row["last_nudge_at"] is not None else None,
            locale=row["locale"],
        )

    def record_interaction(self, owner_id: str, at: float | None = None) -> None:
        """Inbound user message: stamp it, learn the hour, reset the counter."""
        ts = float(self._clock()) if at is None else float(at)
        hour = datetime.fromtimestamp(ts, self._tz).hour
        with self._cursor() as cur:
            self._ensure_row(cur, owner_id, ts)
            cur.execute("SELECT active_hours FROM user_patterns WHERE owner_id = ?", (owner_id,))
            hours = set(self._decode_hours(cur.fetchone()["active_hours"]))
            hours.add(hour)
            cur.execute(
                """
                UPDATE user_patterns
                SET last_interaction_at = ?,
                    active_hours = ?,
                    consecutive_non_responses = 0,
                    updated_at = ?
                WHERE owner_id = ?
                """,
                (ts, json.dumps(sorted(hours)), ts, owner_id),
            )

    def record_non_response(self, owner_id: str) -> int:
        """A nudge went out without a reply since the last one. Returns the new count."""
        now = float(self._clock())
        with self._cursor() as cur:
            self._ensure_row(cur, owner_id, now)
            cur.execute(
                """
                UPDATE user_patterns
                SET consecutive_non_responses = consecutive_non_responses + 1,
                    last_nudge_at = ?,
                    updated_at = ?
                WHERE owner_id = ?
                """,
                (now, now, owner_id),
            )
            cur.execute(
                "SELECT consecutive_non_responses FROM user_patterns WHERE owner_id = ?",
                (owner_id,),
            )
            count = int(cur.fetchone()[0])
        logger.debug("Non-response recorded owner=%s count=%s", owner_id, count)
        return count

    def set_locale(self, owner_id: str, locale: str | None) -> None:
        now = float(self._clock())
        with self._cursor() as cur:
            self._ensure_row(cur, owner_id, now)
            cur.execute(
                "UPDATE user_patterns SET locale = ?, updated_at = ? WHERE owner_id = ?",
                (locale, now, owner_id),
            )
