# src/taskpulse/cli/commands.py

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Callable
from datetime import datetime
from typing import cast

from ..connectors.telegram_channel import TelegramLinkStore
from ..core.state import AppState
from ..nudge.templates import normalize_locale
from ..tasks import task_api
from ..tasks.task_models import ScheduledTask, TaskType
from ..tasks.task_scheduler import DispatchError

CommandEmitter = Callable[[str], None]
CommandHandler3 = Callable[[AppState, list[str], str], str]
CommandHandler4 = Callable[[AppState, list[str], str, CommandEmitter | None], str]
CommandHandler = CommandHandler3 | CommandHandler4

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        owner_id: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args" on behalf of owner_id.
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 4

        if nparams >= 4:
            h4 = cast(CommandHandler4, handler)
            return h4(state, args, owner_id, emit)

        h3 = cast(CommandHandler3, handler)
        return h3(state, args, owner_id)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _ts_local(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _format_task(task: ScheduledTask) -> str:
    every = ""
    if task.is_recurring:
        every = f", every {task.interval_ms / 3_600_000:g}h"
    return f"#{task.id} {task.task_type} next={_ts_local(task.next_run_at)}{every}"


def run_cycle_sync(state: AppState) -> str:
    """Run one dispatch cycle from synchronous code and format the report."""
    coro = state.dispatcher.run_cycle()
    try:
        if state.runner is not None:
            report = state.runner.run(coro)
        else:
            report = asyncio.run(coro)
    except DispatchError as e:
        return f"Cycle aborted: {e}"
    return (
        f"Cycle: processed={report.processed} succeeded={report.succeeded} "
        f"failed={report.failed} skipped={report.skipped}"
    )


def cmd_help(state: AppState, args: list[str], owner_id: str) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], owner_id: str) -> str:
    s = state.settings
    ceiling = s.nudge_max_consecutive if s.nudge_max_consecutive is not None else "none"
    return (
        "Status:\n"
        f"  Tasks in store: {state.task_store.count_tasks()}\n"
        f"  Channel: {type(state.channel).__name__}\n"
        f"  Generator: {type(state.generator).__name__}\n"
        f"  Lease: {s.lease_seconds:g}s, batch: {s.batch_limit}, retry delay: {s.retry_delay_seconds:g}s\n"
        f"  Nudge ceiling: {ceiling}, timezone: {s.timezone}"
    )


def cmd_tasks(state: AppState, args: list[str], owner_id: str) -> str:
    tasks = task_api.list_owner_tasks(state.task_store, owner_id)
    if not tasks:
        return f"No scheduled tasks for {owner_id}."
    lines = [f"Tasks of {owner_id}:"]
    lines.extend(f"  {_format_task(t)}" for t in tasks)
    return "\n".join(lines)


def cmd_remind(state: AppState, args: list[str], owner_id: str) -> str:
    """
    /remind <minutes> <text>  -> one-shot reminder after <minutes>
    """
    if len(args) < 2:
        return "Usage: /remind <minutes> <text>"
    try:
        minutes = float(args[0])
    except ValueError:
        return "Minutes must be a number."
    task = task_api.schedule_reminder(state.task_store, owner_id, " ".join(args[1:]), delay_minutes=minutes)
    return f"Reminder scheduled: {_format_task(task)}"


def cmd_daily(state: AppState, args: list[str], owner_id: str) -> str:
    """
    /daily          -> daily check at the configured hour (UTC)
    /daily <hour>   -> daily check at <hour>:00 UTC
    """
    hour = state.settings.daily_check_hour_utc
    if args:
        try:
            hour = int(args[0])
        except ValueError:
            return "Hour must be an integer 0..23."
        if not 0 <= hour <= 23:
            return "Hour must be an integer 0..23."
    task = task_api.schedule_daily_check(state.task_store, owner_id, hour_utc=hour)
    return f"Daily check: {_format_task(task)}"


def cmd_nudges(
    state: AppState,
    args: list[str],
    owner_id: str,
    emit: CommandEmitter | None = None,
) -> str:
    """
    /nudges on [locale] [ai]  -> enable recurring nudge evaluation
    /nudges off               -> remove the nudge task
    /nudges check             -> show what the engine would decide now
    """
    if not args:
        return "Usage: /nudges on [locale] [ai] | /nudges off | /nudges check"

    sub = args[0].lower()

    if sub == "on":
        rest = [a.lower() for a in args[1:]]
        personalize = "ai" in rest
        locales = [a for a in rest if a != "ai"]
        locale = normalize_locale(locales[0]) if locales else None
        if locale is not None:
            state.behavior.set_locale(owner_id, locale)
        task = task_api.schedule_nudges(
            state.task_store,
            owner_id,
            interval_hours=state.settings.nudge_interval_hours,
            locale=locale,
            personalize=personalize,
        )
        return f"Nudges enabled: {_format_task(task)}"

    if sub == "off":
        n = state.task_store.delete_by_owner(owner_id, TaskType.NUDGE.value)
        return "Nudges disabled." if n else "Nudges were not enabled."

    if sub == "check":
        if emit:
            with contextlib.suppress(Exception):
                emit("[NUDGE] Evaluating...")
        d = state.nudge_engine.evaluate(owner_id)
        if not d.should_send:
            return f"No nudge (level={d.level}, reason={d.reason})."
        return f"Would send level={d.level} tone={d.tone}: {d.message}"

    return "Usage: /nudges on [locale] [ai] | /nudges off | /nudges check"


def cmd_cancel(state: AppState, args: list[str], owner_id: str) -> str:
    if not args:
        return "Usage: /cancel <task_id>"
    try:
        task_id = int(args[0].lstrip("#"))
    except ValueError:
        return "Task id must be an integer."
    if task_api.cancel_task(state.task_store, owner_id, task_id):
        return f"Task #{task_id} cancelled."
    return f"No task #{task_id} for {owner_id}."


def cmd_disable(state: AppState, args: list[str], owner_id: str) -> str:
    n = task_api.disable_notifications(state.task_store, owner_id)
    return f"All notifications disabled ({n} task(s) removed)."


def cmd_run(
    state: AppState,
    args: list[str],
    owner_id: str,
    emit: CommandEmitter | None = None,
) -> str:
    if emit:
        with contextlib.suppress(Exception):
            emit("[DISPATCH] Running one cycle...")
    logger.debug("Manual dispatch requested by owner=%s", owner_id)
    return run_cycle_sync(state)


def cmd_seen(state: AppState, args: list[str], owner_id: str) -> str:
    state.behavior.record_interaction(owner_id)
    return f"Interaction recorded for {owner_id}; nudge escalation reset."


def cmd_link(state: AppState, args: list[str], owner_id: str) -> str:
    """
    /link <chat_id>  -> deliver this owner's messages to a Telegram chat
    /link off        -> remove the link
    """
    links = next((r for r in state.resources if isinstance(r, TelegramLinkStore)), None)
    if links is None:
        return "Telegram is not configured (set TASKPULSE_TELEGRAM_BOT_TOKEN)."
    if not args:
        chat_id = links.chat_id_for(owner_id)
        return f"Linked chat: {chat_id}" if chat_id else "No chat linked. Usage: /link <chat_id>"
    if args[0].lower() == "off":
        links.unlink(owner_id)
        return "Chat unlinked."
    links.link(owner_id, args[0])
    return f"Linked {owner_id} to chat {args[0]}."


def cmd_history(state: AppState, args: list[str], owner_id: str) -> str:
    limit = 10
    if args:
        with contextlib.suppress(ValueError):
            limit = max(1, int(args[0]))
    msgs = state.history.list_recent(owner_id, limit=limit)
    if not msgs:
        return f"No messages logged for {owner_id}."
    lines = [f"Last {len(msgs)} message(s) of {owner_id}:"]
    for m in msgs:
        lines.append(f"  [{_ts_local(m.created_at)}] {m.role}/{m.source}: {m.text}")
    return "\n".join(lines)


def cmd_failures(state: AppState, args: list[str], owner_id: str) -> str:
    failures = state.history.list_failures(owner_id, limit=20)
    if not failures:
        return "No recorded failures."
    lines = ["Recent failures:"]
    for f in failures:
        lines.append(f"  [{_ts_local(f.created_at)}] {f.task_type}: {f.message}")
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show dispatcher settings and adapters.")
registry.register("tasks", cmd_tasks, help_text="List your scheduled tasks.", aliases=["ls"])
registry.register("remind", cmd_remind, help_text="One-shot reminder: /remind <minutes> <text>.")
registry.register("daily", cmd_daily, help_text="Enable daily check-ins: /daily [hour_utc].")
registry.register("nudges", cmd_nudges, help_text="Nudges: /nudges on [locale] [ai] | off | check.")
registry.register("cancel", cmd_cancel, help_text="Cancel one task: /cancel <task_id>.")
registry.register("disable", cmd_disable, help_text="Remove all of your scheduled tasks.")
registry.register("run", cmd_run, help_text="Run one dispatch cycle now.")
registry.register("seen", cmd_seen, help_text="Record an interaction (resets nudge escalation).")
registry.register("link", cmd_link, help_text="Telegram delivery: /link <chat_id> | /link off.")
registry.register("history", cmd_history, help_text="Show delivered messages: /history [n].")
registry.register("failures", cmd_failures, help_text="Show recent failed task runs.")
