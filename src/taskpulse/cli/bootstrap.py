# src/taskpulse/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- opens the SQLite stores and wires concrete adapters into AppState
  (message generator, delivery channel, nudge engine, dispatcher).
"""

from __future__ import annotations

import contextlib
import logging

from ..config import Settings, get_settings
from ..connectors.console_connector import ConsoleChannel
from ..connectors.telegram_channel import TelegramChannel, TelegramLinkStore
from ..core.ports import DeliveryChannel, MessageGenerator
from ..core.state import AppState
from ..history.store import HistoryStore
from ..llm.client import OpenRouterMessageGenerator
from ..llm.offline import OfflineMessageGenerator
from ..nudge.behavior_store import BehaviorStore
from ..nudge.engine import NudgeEngine
from ..tasks.retry_policy import retry_policy_from_settings
from ..tasks.task_handlers import build_handler_registry
from ..tasks.task_scheduler import TaskDispatcher
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.behavior_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.history_db_path.parent.mkdir(parents=True, exist_ok=True)


def _build_generator(settings: Settings) -> MessageGenerator:
    try:
        return OpenRouterMessageGenerator.from_settings(settings)
    except RuntimeError as e:
        # Fallback for demos / local runs without external services.
        logger.info("LLM not configured (%s); using offline messages.", e)
        return OfflineMessageGenerator()


def _build_channel(settings: Settings, resources: list) -> DeliveryChannel:
    if not settings.telegram_bot_token:
        logger.info("No Telegram token; deliveries go to the console.")
        return ConsoleChannel()

    links = TelegramLinkStore(settings.data_dir / "links.sqlite3").open()
    resources.append(links)
    channel = TelegramChannel(
        bot_token=settings.telegram_bot_token,
        links=links,
        api_base=settings.telegram_api_base,
    )
    resources.append(channel)
    return channel


def create_initial_state(*, settings: Settings | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    If settings is None, falls back to get_settings(). The stores are opened
    here; close_state() releases them.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    task_store = TaskStore(settings.tasks_db_path).open()
    behavior = BehaviorStore(settings.behavior_db_path, tz=settings.timezone).open()
    history = HistoryStore(settings.history_db_path).open()

    resources: list = []
    generator = _build_generator(settings)
    channel = _build_channel(settings, resources)

    nudge_engine = NudgeEngine(
        behavior,
        tz=settings.timezone,
        min_hours_between_nudges=settings.nudge_min_hours_between,
        max_consecutive_nudges=settings.nudge_max_consecutive,
        default_locale=settings.default_locale,
    )

    handlers = build_handler_registry(
        channel=channel,
        generator=generator,
        conversation_log=history,
        nudge_engine=nudge_engine,
        personalize_min_level=settings.nudge_personalize_min_level,
        # The offline text must not stand in for the per-level nudge templates.
        personalize_nudges=not isinstance(generator, OfflineMessageGenerator),
    )

    dispatcher = TaskDispatcher(
        task_store,
        handlers,
        audit_log=history,
        retry_policy=retry_policy_from_settings(settings),
        lease_duration_ms=settings.lease_duration_ms,
        batch_limit=settings.batch_limit,
    )

    return AppState(
        settings=settings,
        task_store=task_store,
        behavior=behavior,
        history=history,
        channel=channel,
        generator=generator,
        nudge_engine=nudge_engine,
        dispatcher=dispatcher,
        resources=resources,
    )


async def aclose_adapters(state: AppState) -> None:
    """Close async adapter resources on the loop they were used on."""
    for res in state.resources:
        aclose = getattr(res, "aclose", None)
        if aclose is None:
            continue
        try:
            await aclose()
        except Exception:
            logger.debug("Adapter aclose failed: %r", res, exc_info=True)


def close_state(state: AppState) -> None:
    """Best-effort shutdown of the sync resources (no exceptions should escape)."""
    for res in state.resources:
        close = getattr(res, "close", None)
        if close is not None:
            with contextlib.suppress(Exception):
                close()

    for store in (state.history, state.behavior, state.task_store):
        try:
            store.close()
        except Exception:
            logger.debug("Store close failed: %r", store, exc_info=True)
