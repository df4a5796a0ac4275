# src/taskpulse/core/state.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from ..config import Settings
from ..history.store import HistoryStore
from ..nudge.behavior_store import BehaviorStore
from ..nudge.engine import NudgeEngine
from ..tasks.task_scheduler import TaskDispatcher
from ..tasks.task_store import TaskStore
from .ports import DeliveryChannel, MessageGenerator


@dataclass
class AppState:
    """Wired application objects, built once by the composition root."""

    settings: Settings

    task_store: TaskStore
    behavior: BehaviorStore
    history: HistoryStore

    channel: DeliveryChannel
    generator: MessageGenerator
    nudge_engine: NudgeEngine
    dispatcher: TaskDispatcher

    # Extra closables owned by adapters (e.g. the Telegram link store).
    resources: list[Any] = field(default_factory=list)

    # Event loop runner of the console REPL; async adapters stay bound to one loop.
    runner: asyncio.Runner | None = None
