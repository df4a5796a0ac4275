# src/taskpulse/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The dispatcher, handlers and nudge engine depend on Protocols instead of
concrete implementations. This keeps storage/delivery/LLM providers swappable
and makes testing easier.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Awaitable, Protocol


class DeliveryStatus(StrEnum):
    SENT = "sent"
    FAILED = "failed"
    # The owner has no reachable channel; distinct from a failed send.
    NO_CHANNEL = "no_channel"


@dataclass(slots=True, frozen=True)
class UserBehaviorSnapshot:
    """Read-only behavioral signals for one owner."""

    hours_since_last_interaction: float
    active_hours: frozenset[int] | None = None
    consecutive_non_responses: int = 0
    last_nudge_at: float | None = None
    locale: str | None = None


class TaskRepo(Protocol):
    """Task store contract used by the dispatcher, handlers and management API."""

    def now(self) -> float: ...

    def create_task(
            self,
            *,
            owner_id: str,
            task_type: str,
            next_run_at: float | None,
            interval_ms: int | None = None,
            payload: dict[str, Any] | None = None,
    ) -> Any: ...

    def get_task(self, task_id: int) -> Any | None: ...
    def list_ready(self, limit: int = 50) -> list[Any]: ...
    def acquire_lease(self, task_id: int, lease_duration_ms: int) -> bool: ...
    def extend_lease(self, task_id: int, lease_duration_ms: int) -> bool: ...
    def release_lease(self, task_id: int) -> None: ...
    def complete(self, task_id: int) -> None: ...
    def reschedule(self, task_id: int, next_run_at: float) -> None: ...
    def list_by_owner(self, owner_id: str) -> list[Any]: ...
    def find_by_owner_and_type(self, owner_id: str, task_type: str) -> Any | None: ...
    def delete(self, task_id: int) -> bool: ...
    def delete_by_owner(self, owner_id: str, task_type: str | None = None) -> int: ...


class BehaviorContextProvider(Protocol):
    def get_behavior_snapshot(self, owner_id: str) -> UserBehaviorSnapshot: ...

    def record_non_response(self, owner_id: str) -> int: ...


class MessageGenerator(Protocol):
    """Produces a personalized message for an owner (blocking call)."""

    def generate_personalized_message(self, owner_id: str, prompt_hint: str) -> str: ...


class DeliveryChannel(Protocol):
    """
    Connector-side port: how handlers send text to an owner.

    The connector decides how to resolve the owner to a concrete chat.
    """

    def has_channel(self, owner_id: str) -> Awaitable[bool]: ...

    def send(self, owner_id: str, text: str) -> Awaitable[DeliveryStatus]: ...


class ConversationLog(Protocol):
    def append(self, owner_id: str, role: str, text: str, source: str) -> None: ...


class AuditLog(Protocol):
    def record_failure(self, owner_id: str, task_type: str, message: str) -> None: ...
