# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file)
by taskpulse.config.Settings.from_env(). Do NOT commit real secrets; keep them in .env (gitignored).

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "TASKPULSE_APP_NAME": "App display name (default: taskpulse).",
    "TASKPULSE_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    "TASKPULSE_TIMEZONE": "IANA zone for active hours and the nudge clock (default: UTC).",
    # Paths (gitignored)
    "TASKPULSE_DATA_DIR": "Local data directory (default: .local/taskpulse).",
    "TASKPULSE_TASKS_DB_PATH": "TaskStore SQLite path (default: <data_dir>/tasks.sqlite3).",
    "TASKPULSE_BEHAVIOR_DB_PATH": "BehaviorStore SQLite path (default: <data_dir>/behavior.sqlite3).",
    "TASKPULSE_HISTORY_DB_PATH": "HistoryStore SQLite path (default: <data_dir>/history.sqlite3).",
    # Dispatcher
    "TASKPULSE_BATCH_LIMIT": "Max ready tasks per cycle (default: 50).",
    "TASKPULSE_LEASE_SECONDS": "Lease window per task run (default: 300).",
    "TASKPULSE_RETRY_DELAY_SECONDS": "Delay before a failed task is retried; 0 = next cycle (default: 0).",
    "TASKPULSE_POLL_INTERVAL_SECONDS": "Polling loop interval for `taskpulse serve` (default: 60).",
    # Scheduling defaults
    "TASKPULSE_DAILY_CHECK_HOUR_UTC": "Hour of the daily check-in, UTC (default: 9).",
    "TASKPULSE_NUDGE_INTERVAL_HOURS": "How often nudges are evaluated per owner (default: 6).",
    # Nudges
    "TASKPULSE_NUDGE_MIN_HOURS_BETWEEN": "Minimum hours between two nudges (default: 24).",
    "TASKPULSE_NUDGE_MAX_CONSECUTIVE": "Stop after this many unanswered nudges; 0 = never stop (default: 0).",
    "TASKPULSE_NUDGE_PERSONALIZE_MIN_LEVEL": "Lowest level that uses the LLM when enabled (default: 4).",
    "TASKPULSE_DEFAULT_LOCALE": "Nudge template locale when the owner has none: en | fi (default: en).",
    # LLM / OpenRouter
    "TASKPULSE_OPENROUTER_API_KEY": "OpenRouter API key (without it, offline texts are used).",
    "TASKPULSE_OPENROUTER_BASE_URL": "OpenRouter base URL (default: https://openrouter.ai/api/v1).",
    "TASKPULSE_LLM_MODELS": "Comma/space separated list of models to try in order.",
    "TASKPULSE_HTTP_REFERER": "Optional OpenRouter metadata header.",
    "TASKPULSE_APP_TITLE": "Optional OpenRouter metadata header title.",
    # Delivery
    "TASKPULSE_TELEGRAM_BOT_TOKEN": "Telegram bot token (without it, deliveries print to the console).",
    "TASKPULSE_TELEGRAM_API_BASE": "Telegram Bot API base URL (default: https://api.telegram.org).",
    # Trigger endpoint
    "TASKPULSE_CRON_SECRET": "Bearer secret for POST /api/cron/run (unset => endpoint answers 503).",
    "TASKPULSE_TRIGGER_HOST": "Bind address of the trigger endpoint (default: 127.0.0.1).",
    "TASKPULSE_TRIGGER_PORT": "Port of the trigger endpoint (default: 8085).",
}
