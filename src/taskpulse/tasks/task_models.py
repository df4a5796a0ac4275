# src/taskpulse/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class TaskType(StrEnum):
    """
    Handler selector for scheduled tasks.

    Stored as plain text: rows written by newer code may carry a type this
    version does not know. The dispatcher treats those as no-op successes.
    """

    DAILY_CHECK = "daily_check"
    REMINDER = "reminder"
    NUDGE = "nudge"
    CUSTOM = "custom"


@dataclass(slots=True)
class ScheduledTask:
    id: int
    owner_id: str
    task_type: str
    next_run_at: float
    created_at: float
    updated_at: float

    interval_ms: int | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    last_run_at: float | None = None
    lease_until: float | None = None

    @property
    def is_recurring(self) -> bool:
        return self.interval_ms is not None

    def is_leased(self, now_ts: float) -> bool:
        return self.lease_until is not None and self.lease_until > now_ts


# ---- typed payloads (tagged union keyed by task type) ----

DEFAULT_REMINDER_TEXT = "Reminder!"


@dataclass(slots=True, frozen=True)
class DailyCheckPayload:
    prompt_hint: str | None = None


@dataclass(slots=True, frozen=True)
class ReminderPayload:
    message: str = DEFAULT_REMINDER_TEXT


@dataclass(slots=True, frozen=True)
class NudgePayload:
    locale: str | None = None
    personalize: bool = False


@dataclass(slots=True, frozen=True)
class CustomPayload:
    data: dict[str, Any] = field(default_factory=dict)


TaskPayload = DailyCheckPayload | ReminderPayload | NudgePayload | CustomPayload


def _opt_str(raw: dict[str, Any], key: str) -> str | None:
    val = raw.get(key)
    if isinstance(val, str) and val.strip():
        return val.strip()
    return None


def _as_dict(raw: Any) -> dict[str, Any]:
    return raw if isinstance(raw, dict) else {}


def decode_daily_check_payload(raw: dict[str, Any] | None) -> DailyCheckPayload:
    return DailyCheckPayload(prompt_hint=_opt_str(_as_dict(raw), "prompt_hint"))


def decode_reminder_payload(raw: dict[str, Any] | None) -> ReminderPayload:
    # Reminder text is delivered verbatim, so no stripping here.
    message = _as_dict(raw).get("message")
    if isinstance(message, str) and message.strip():
        return ReminderPayload(message=message)
    return ReminderPayload()


def decode_nudge_payload(raw: dict[str, Any] | None) -> NudgePayload:
    raw = _as_dict(raw)
    return NudgePayload(
        locale=_opt_str(raw, "locale"),
        personalize=raw.get("personalize") is True,
    )


def decode_custom_payload(raw: dict[str, Any] | None) -> CustomPayload:
    return CustomPayload(data=dict(_as_dict(raw)))


_DECODERS = {
    TaskType.DAILY_CHECK: decode_daily_check_payload,
    TaskType.REMINDER: decode_reminder_payload,
    TaskType.NUDGE: decode_nudge_payload,
}


def decode_payload(task_type: TaskType, raw: dict[str, Any] | None) -> TaskPayload:
    """
    Convert the stored key/value map into the payload variant for `task_type`.

    Unknown keys are ignored; values of the wrong type fall back to defaults.
    """
    return _DECODERS.get(task_type, decode_custom_payload)(raw)


# ---- dispatch results ----


@dataclass(slots=True, frozen=True)
class TaskFailure:
    task_id: int
    owner_id: str
    task_type: str
    error: str


@dataclass(slots=True)
class CycleReport:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    failures: list[TaskFailure] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "failures": [
                {
                    "task_id": f.task_id,
                    "owner_id": f.owner_id,
                    "task_type": f.task_type,
                    "error": f.error,
                }
                for f in self.failures
            ],
        }
