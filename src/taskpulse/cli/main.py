# src/taskpulse/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs one of:
- console: admin REPL in the main thread (default),
- run-once: a single dispatch cycle, report printed as JSON (for system cron),
- serve: polling loop and/or the HTTP trigger endpoint until SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal

from ..cli.bootstrap import aclose_adapters, close_state, create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging
from ..tasks.task_scheduler import DispatchError, run_task_scheduler

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="taskpulse", description="Background task dispatcher and nudge engine.")
    sub = p.add_subparsers(dest="command")

    c = sub.add_parser("console", help="Interactive admin console (default).")
    c.add_argument("--owner", default="console", help="Owner id to act as.")

    r = sub.add_parser("run-once", help="Run a single dispatch cycle and print the report.")
    r.add_argument("--batch", type=int, default=None, help="Max tasks for this cycle.")

    s = sub.add_parser("serve", help="Run the polling loop and the HTTP trigger endpoint.")
    s.add_argument("--no-poll", action="store_true", help="Only dispatch when the trigger endpoint is called.")
    s.add_argument("--no-http", action="store_true", help="Do not start the trigger endpoint.")
    return p


async def _run_once(state: AppState, batch: int | None) -> int:
    try:
        report = await state.dispatcher.run_cycle(batch)
    except DispatchError as e:
        print(json.dumps({"success": False, "error": str(e)}))
        return 1
    finally:
        await aclose_adapters(state)
    print(json.dumps({"success": True, **report.as_dict()}, ensure_ascii=False))
    return 0


async def _serve(state: AppState, *, poll: bool, http: bool) -> int:
    from ..api.trigger_server import TriggerServer

    settings = state.settings
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Some platforms may not support add_signal_handler.
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop.set)

    server: TriggerServer | None = None
    poller: asyncio.Task[None] | None = None
    try:
        if http:
            server = TriggerServer(
                state.dispatcher,
                secret=settings.cron_secret,
                host=settings.trigger_host,
                port=settings.trigger_port,
            )
            await server.start()
        if poll:
            poller = asyncio.create_task(
                run_task_scheduler(state.dispatcher, interval_seconds=settings.poll_interval_seconds),
                name="taskpulse-poller",
            )
            logger.info("Polling every %.1fs", settings.poll_interval_seconds)
        if server is None and poller is None:
            logger.error("Nothing to serve: both polling and the trigger endpoint are disabled.")
            return 2

        logger.info("Serving. Press Ctrl+C to stop.")
        await stop.wait()
        logger.info("Stop requested, shutting down...")
        return 0
    finally:
        if poller is not None:
            poller.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await poller
        if server is not None:
            await server.stop()
        await aclose_adapters(state)


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    command = args.command or "console"
    try:
        if command == "run-once":
            return asyncio.run(_run_once(state, args.batch))
        if command == "serve":
            return asyncio.run(_serve(state, poll=not args.no_poll, http=not args.no_http))
        run_console_loop(state, owner_id=getattr(args, "owner", "console"))
        return 0
    finally:
        close_state(state)
        logger.info("Bye.")


if __name__ == "__main__":
    raise SystemExit(main())
