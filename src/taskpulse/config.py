# src/taskpulse/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Settings are injected into the composition root; nothing else reads the env.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

ENV_PREFIX = "TASKPULSE"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv() -> None:
    """Load .env from the working directory (never overrides variables already set)."""
    load_dotenv(find_dotenv(usecwd=True), override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    timezone: str

    # ---- Local data paths ----
    data_dir: Path
    tasks_db_path: Path
    behavior_db_path: Path
    history_db_path: Path

    # ---- Dispatcher ----
    batch_limit: int
    lease_seconds: float
    retry_delay_seconds: float
    poll_interval_seconds: float

    # ---- Scheduling defaults ----
    daily_check_hour_utc: int
    nudge_interval_hours: float

    # ---- Nudges ----
    nudge_min_hours_between: float
    nudge_max_consecutive: int | None
    nudge_personalize_min_level: int
    default_locale: str

    # ---- LLM / OpenRouter ----
    openrouter_api_key: str | None
    openrouter_base_url: str
    llm_models: list[str]
    extra_headers: dict[str, str]

    # ---- Delivery ----
    telegram_bot_token: str | None
    telegram_api_base: str

    # ---- Trigger endpoint ----
    cron_secret: str | None
    trigger_host: str
    trigger_port: int

    @property
    def lease_duration_ms(self) -> int:
        return int(self.lease_seconds * 1000)

    @staticmethod
    def from_env() -> "Settings":
        _load_dotenv()

        app_name = _env(_k("APP_NAME"), "taskpulse") or "taskpulse"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        timezone = _env(_k("TIMEZONE"), "UTC") or "UTC"

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskpulse"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")
        behavior_db_path = _env_path(_k("BEHAVIOR_DB_PATH"), data_dir / "behavior.sqlite3")
        history_db_path = _env_path(_k("HISTORY_DB_PATH"), data_dir / "history.sqlite3")

        # 0 (or negative) means "no ceiling".
        max_consecutive = _env_int(_k("NUDGE_MAX_CONSECUTIVE"), 0)

        http_referer = _env(_k("HTTP_REFERER"), "https://example.com")
        extra_headers = {
            "HTTP-Referer": http_referer,
            "X-Title": _env(_k("APP_TITLE"), app_name),
        }

        return Settings(
            app_name=app_name,
            log_level=log_level,
            timezone=timezone,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            behavior_db_path=behavior_db_path,
            history_db_path=history_db_path,
            batch_limit=max(1, _env_int(_k("BATCH_LIMIT"), 50)),
            lease_seconds=max(1.0, _env_float(_k("LEASE_SECONDS"), 300.0)),
            retry_delay_seconds=max(0.0, _env_float(_k("RETRY_DELAY_SECONDS"), 0.0)),
            poll_interval_seconds=max(0.5, _env_float(_k("POLL_INTERVAL_SECONDS"), 60.0)),
            daily_check_hour_utc=min(23, max(0, _env_int(_k("DAILY_CHECK_HOUR_UTC"), 9))),
            nudge_interval_hours=max(0.25, _env_float(_k("NUDGE_INTERVAL_HOURS"), 6.0)),
            nudge_min_hours_between=max(0.0, _env_float(_k("NUDGE_MIN_HOURS_BETWEEN"), 24.0)),
            nudge_max_consecutive=max_consecutive if max_consecutive > 0 else None,
            nudge_personalize_min_level=_env_int(_k("NUDGE_PERSONALIZE_MIN_LEVEL"), 4),
            default_locale=_env(_k("DEFAULT_LOCALE"), "en") or "en",
            openrouter_api_key=_first_env(_k("OPENROUTER_API_KEY"), "OPENROUTER_API_KEY"),
            openrouter_base_url=_env(_k("OPENROUTER_BASE_URL"), "https://openrouter.ai/api/v1"),
            llm_models=_env_list(
                _k("LLM_MODELS"),
                [
                    "qwen/qwen-2.5-72b-instruct:free",
                    "deepseek/deepseek-chat-v3-0324:free",
                ],
            ),
            extra_headers=extra_headers,
            telegram_bot_token=_first_env(_k("TELEGRAM_BOT_TOKEN"), "TELEGRAM_BOT_TOKEN"),
            telegram_api_base=_env(_k("TELEGRAM_API_BASE"), "https://api.telegram.org"),
            cron_secret=_first_env(_k("CRON_SECRET"), "CRON_SECRET"),
            trigger_host=_env(_k("TRIGGER_HOST"), "127.0.0.1"),
            trigger_port=_env_int(_k("TRIGGER_PORT"), 8085),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Process-wide settings, built on first use."""
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
