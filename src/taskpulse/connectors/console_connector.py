# src/taskpulse/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..core.ports import DeliveryStatus
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class ConsoleChannel:
    """
    Delivery channel that prints messages to stdout.

    Every owner counts as linked. Used for local runs without a bot token.
    """

    async def has_channel(self, owner_id: str) -> bool:
        return True

    async def send(self, owner_id: str, text: str) -> DeliveryStatus:
        _print_ts(f"<<< to {owner_id}: {text}")
        return DeliveryStatus.SENT


def run_console_loop(state: AppState, *, owner_id: str = "console") -> None:
    """
    Admin REPL: slash commands manage the current owner's tasks and
    /run triggers a dispatch cycle in-process.
    """
    from ..cli.bootstrap import aclose_adapters
    from ..cli.commands import registry as command_registry

    logger.info("Console connector started (owner=%s).", owner_id)
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    with asyncio.Runner() as runner:
        state.runner = runner
        try:
            _repl(state, owner_id, command_registry)
        finally:
            runner.run(aclose_adapters(state))
            state.runner = None

    logger.info("Console connector finished.")


def _repl(state: AppState, owner_id: str, command_registry) -> None:
    current_owner = owner_id

    def emit(text: str) -> None:
        _print_ts(text)

    while True:
        try:
            line = input(f"[{current_owner}] >>> ").strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not line:
            continue

        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if line.lower().startswith("/as "):
            parts = line.split(maxsplit=1)
            current_owner = parts[1].strip() or current_owner
            _print_ts(f"Acting as owner {current_owner}.")
            continue

        if not line.startswith("/"):
            # Plain text is an interaction from the owner; it resets nudge escalation.
            state.behavior.record_interaction(current_owner)
            state.history.append(current_owner, "user", line, "console")
            _print_ts("Noted.")
            continue

        try:
            reply = command_registry.handle(state, line, owner_id=current_owner, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is not None:
            _print_ts(reply)

