# src/taskpulse/connectors/telegram_channel.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
import time
from collections.abc import Iterator
from pathlib import Path

import httpx

from ..core.ports import DeliveryStatus

logger = logging.getLogger(__name__)


class TelegramLinkStore:
    """owner_id -> Telegram chat id, written when an owner links their chat."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def open(self) -> TelegramLinkStore:
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
                    CREATE TABLE IF NOT EXISTS telegram_links (
                        owner_id TEXT PRIMARY KEY,
                        chat_id TEXT NOT NULL,
                        linked_at REAL NOT NULL
                    )
                    """
                )
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
                raise RuntimeError(f"TelegramLinkStore is not open: {self._db_path}")
            cur = self._conn.cursor()
            try:
                yield cur
                self._conn.commit()
            except BaseException:
                self._conn.rollback()
                raise
            finally:
                cur.close()

    def link(self, owner_id: str, chat_id: str | int) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO telegram_links(owner_id, chat_id, linked_at)
                VALUES (?, ?, ?)
                ON CONFLICT(owner_id) DO UPDATE SET chat_id = excluded.chat_id,
                                                    linked_at = excluded.linked_at
                """,
                (owner_id, str(chat_id), time.time()),
            )

    def unlink(self, owner_id: str) -> None:
        with self._cursor() as cur:
            cur.execute("DELETE FROM telegram_links WHERE owner_id = ?", (owner_id,))

    def chat_id_for(self, owner_id: str) -> str | None:
        with self._cursor() as cur:
            cur.execute("SELECT chat_id FROM telegram_links WHERE owner_id = ?", (owner_id,))
            row = cur.fetchone()
            return str(row["chat_id"]) if row else None


class TelegramChannel:
    """
    Delivery channel over the Telegram Bot API.

    A failed HTTP call maps to DeliveryStatus.FAILED (retried by the scheduler);
    an owner without a linked chat maps to DeliveryStatus.NO_CHANNEL.
    """

    def __init__(
        self,
        *,
        bot_token: str,
        links: TelegramLinkStore,
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not bot_token or not bot_token.strip():
            raise RuntimeError("Telegram bot token is not set. Set TASKPULSE_TELEGRAM_BOT_TOKEN in your .env.")
        self._url = f"{api_base.rstrip('/')}/bot{bot_token.strip()}/sendMessage"
        self._links = links
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def has_channel(self, owner_id: str) -> bool:
        return self._links.chat_id_for(owner_id) is not None

    async def send(self, owner_id: str, text: str) -> DeliveryStatus:
        chat_id = self._links.chat_id_for(owner_id)
        if chat_id is None:
            return DeliveryStatus.NO_CHANNEL

        try:
            resp = await self._client.post(self._url, json={"chat_id": chat_id, "text": text})
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Telegram send failed owner=%s: %s", owner_id, e)
            return DeliveryStatus.FAILED

        if not isinstance(body, dict) or not body.get("ok"):
            logger.warning("Telegram API error owner=%s: %s", owner_id, body)
            return DeliveryStatus.FAILED

        logger.debug("Telegram sent owner=%s chat=%s", owner_id, chat_id)
        return DeliveryStatus.SENT
