# tests/test_bootstrap.py

from __future__ import annotations

import asyncio
import os
import time

import pytest

from taskpulse.cli.bootstrap import aclose_adapters, close_state, create_initial_state
from taskpulse.cli.commands import registry, run_cycle_sync
from taskpulse.config import Settings
from taskpulse.connectors.console_connector import ConsoleChannel
from taskpulse.connectors.telegram_channel import TelegramChannel
from taskpulse.llm.offline import OfflineMessageGenerator
from taskpulse.nudge.templates import NUDGE_TEMPLATES
from taskpulse.tasks.retry_policy import DelayedRetryPolicy


@pytest.fixture()
def env_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("TASKPULSE_") or key in ("OPENROUTER_API_KEY", "TELEGRAM_BOT_TOKEN", "CRON_SECRET"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("TASKPULSE_DATA_DIR", str(tmp_path / "data"))

    def build(**env: str) -> Settings:
        for k, v in env.items():
            monkeypatch.setenv(k, v)
        return Settings.from_env()

    return build


def test_offline_console_wiring_runs_a_cycle(env_settings, capsys) -> None:
    state = create_initial_state(settings=env_settings())
    try:
        assert isinstance(state.channel, ConsoleChannel)
        assert isinstance(state.generator, OfflineMessageGenerator)
        assert state.settings.tasks_db_path.exists()

        registry.handle(state, "/remind 0 hello from the console", owner_id="me")
        reply = run_cycle_sync(state)
    finally:
        close_state(state)

    assert "succeeded=1" in reply
    assert "hello from the console" in capsys.readouterr().out
    assert not state.task_store.is_open


def test_offline_wiring_sends_urgent_nudge_templates(env_settings, capsys) -> None:
    state = create_initial_state(settings=env_settings())
    try:
        now = time.time()
        # Four days of silence, last seen at this same hour of day.
        state.behavior.record_interaction("me", at=now - 96 * 3600)
        state.task_store.create_task(
            owner_id="me",
            task_type="nudge",
            next_run_at=now - 1,
            payload={"personalize": True},
        )
        reply = run_cycle_sync(state)
    finally:
        close_state(state)

    assert "succeeded=1" in reply
    out = capsys.readouterr().out
    assert any(text in out for text in NUDGE_TEMPLATES["en"]["urgent"])
    assert OfflineMessageGenerator().generate_personalized_message("me", "") not in out


def test_telegram_and_retry_delay_from_settings(env_settings) -> None:
    settings = env_settings(
        TASKPULSE_TELEGRAM_BOT_TOKEN="123:abc",
        TASKPULSE_RETRY_DELAY_SECONDS="120",
    )
    state = create_initial_state(settings=settings)
    try:
        assert isinstance(state.channel, TelegramChannel)
        assert isinstance(state.dispatcher._retry, DelayedRetryPolicy)

        assert "Linked me" in (registry.handle(state, "/link 42", owner_id="me") or "")
        assert asyncio.run(state.channel.has_channel("me")) is True
    finally:
        asyncio.run(aclose_adapters(state))
        close_state(state)
