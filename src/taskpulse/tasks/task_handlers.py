# src/taskpulse/tasks/task_handlers.py

from __future__ import annotations

"""
Task handlers: one per task type.

A handler either returns a HandlerOutcome (success) or raises a
TaskHandlerError (failure). It never touches the lease; the dispatcher owns
completion and retry.
"""

import asyncio
import logging
from enum import Enum
from typing import Protocol

from ..core.ports import ConversationLog, DeliveryChannel, DeliveryStatus, MessageGenerator
from ..nudge.engine import NudgeEngine
from .task_models import (
    ScheduledTask,
    TaskType,
    decode_daily_check_payload,
    decode_nudge_payload,
    decode_reminder_payload,
)

logger = logging.getLogger(__name__)

DAILY_CHECK_PROMPT = (
    "This is your daily check-in. Review what you know about me and send me a brief, "
    "personalized message. Ask about my plans or offer helpful suggestions."
)

NUDGE_PROMPT = (
    "I have not replied for a while. Write one short nudge to get me back. "
    "Tone: {tone}. Urgency level {level} of 5. Reply in language '{locale}'."
)

SOURCE_DAILY_CHECK = "daily-check"
SOURCE_REMINDER = "reminder"
SOURCE_NUDGE = "nudge"


class TaskHandlerError(RuntimeError):
    pass


class NoChannelLinkedError(TaskHandlerError):
    """The owner has no delivery channel; reported, and retried later."""


class DeliveryFailedError(TaskHandlerError):
    pass


class MessageGenerationError(TaskHandlerError):
    pass


class HandlerOutcome(str, Enum):
    DELIVERED = "delivered"
    # Nothing to do this time; still counts as success.
    SKIPPED = "skipped"


class TaskHandler(Protocol):
    async def handle(self, task: ScheduledTask) -> HandlerOutcome: ...


async def deliver(
    channel: DeliveryChannel,
    conversation_log: ConversationLog,
    *,
    owner_id: str,
    text: str,
    source: str,
) -> None:
    """Send `text` and, once sent, append it to the owner's conversation log."""
    status = await channel.send(owner_id, text)
    if status == DeliveryStatus.NO_CHANNEL:
        raise NoChannelLinkedError(f"no channel linked for owner {owner_id}")
    if status != DeliveryStatus.SENT:
        raise DeliveryFailedError(f"delivery failed for owner {owner_id} ({status})")

    await asyncio.to_thread(conversation_log.append, owner_id, "assistant", text, source)


class DailyCheckHandler:
    def __init__(
        self,
        channel: DeliveryChannel,
        generator: MessageGenerator,
        conversation_log: ConversationLog,
    ) -> None:
        self._channel = channel
        self._generator = generator
        self._log = conversation_log

    async def handle(self, task: ScheduledTask) -> HandlerOutcome:
        payload = decode_daily_check_payload(task.payload)

        if not await self._channel.has_channel(task.owner_id):
            raise NoChannelLinkedError("no channel linked for daily check")

        try:
            text = await asyncio.to_thread(
                self._generator.generate_personalized_message,
                task.owner_id,
                payload.prompt_hint or DAILY_CHECK_PROMPT,
            )
        except Exception as e:
            raise MessageGenerationError(f"daily check generation failed: {e}") from e

        text = (text or "").strip()
        if not text:
            raise MessageGenerationError("daily check generation returned no text")

        await deliver(
            self._channel,
            self._log,
            owner_id=task.owner_id,
            text=text,
            source=SOURCE_DAILY_CHECK,
        )
        logger.info("Daily check delivered owner=%s task_id=%s", task.owner_id, task.id)
        return HandlerOutcome.DELIVERED


class ReminderHandler:
    def __init__(self, channel: DeliveryChannel, conversation_log: ConversationLog) -> None:
        self._channel = channel
        self._log = conversation_log

    async def handle(self, task: ScheduledTask) -> HandlerOutcome:
        payload = decode_reminder_payload(task.payload)

        await deliver(
            self._channel,
            self._log,
            owner_id=task.owner_id,
            text=payload.message,
            source=SOURCE_REMINDER,
        )
        logger.info("Reminder delivered owner=%s task_id=%s", task.owner_id, task.id)
        return HandlerOutcome.DELIVERED


class NudgeHandler:
    def __init__(
        self,
        engine: NudgeEngine,
        channel: DeliveryChannel,
        conversation_log: ConversationLog,
        *,
        generator: MessageGenerator | None = None,
        personalize_min_level: int = 4,
    ) -> None:
        self._engine = engine
        self._channel = channel
        self._log = conversation_log
        self._generator = generator
        self._personalize_min_level = int(personalize_min_level)

    async def _personalize(self, task: ScheduledTask, fallback: str, *, level: int, tone: str, locale: str) -> str:
        if self._generator is None:
            return fallback
        hint = NUDGE_PROMPT.format(tone=tone, level=level, locale=locale)
        try:
            text = await asyncio.to_thread(
                self._generator.generate_personalized_message, task.owner_id, hint
            )
        except Exception:
            logger.warning(
                "Nudge personalization failed owner=%s; using template", task.owner_id, exc_info=True
            )
            return fallback
        return (text or "").strip() or fallback

    async def handle(self, task: ScheduledTask) -> HandlerOutcome:
        payload = decode_nudge_payload(task.payload)

        decision = await asyncio.to_thread(self._engine.evaluate, task.owner_id, payload.locale)
        if not decision.should_send:
            logger.info(
                "Nudge not needed owner=%s level=%s reason=%s",
                task.owner_id,
                decision.level,
                decision.reason,
            )
            return HandlerOutcome.SKIPPED

        text = decision.message
        if payload.personalize and decision.level >= self._personalize_min_level:
            text = await self._personalize(
                task,
                text,
                level=decision.level,
                tone=decision.tone,
                locale=decision.locale,
            )

        await deliver(
            self._channel,
            self._log,
            owner_id=task.owner_id,
            text=text,
            source=SOURCE_NUDGE,
        )
        count = await asyncio.to_thread(self._engine.record_non_response, task.owner_id)
        logger.info(
            "Nudge delivered owner=%s level=%s tone=%s unanswered=%s",
            task.owner_id,
            decision.level,
            decision.tone,
            count,
        )
        return HandlerOutcome.DELIVERED


class CustomHandler:
    """Extension point. Until something is registered for it, a safe no-op."""

    async def handle(self, task: ScheduledTask) -> HandlerOutcome:
        logger.debug("Custom task %s has no implementation; skipping", task.id)
        return HandlerOutcome.SKIPPED


def build_handler_registry(
    *,
    channel: DeliveryChannel,
    generator: MessageGenerator,
    conversation_log: ConversationLog,
    nudge_engine: NudgeEngine,
    personalize_min_level: int = 4,
    personalize_nudges: bool = True,
) -> dict[str, TaskHandler]:
    """
    One handler per known task type.

    personalize_nudges=False keeps nudges on the per-level templates even when
    the payload asks for personalization (e.g. with the offline generator).
    """
    return {
        TaskType.DAILY_CHECK.value: DailyCheckHandler(channel, generator, conversation_log),
        TaskType.REMINDER.value: ReminderHandler(channel, conversation_log),
        TaskType.NUDGE.value: NudgeHandler(
            nudge_engine,
            channel,
            conversation_log,
            generator=generator if personalize_nudges else None,
            personalize_min_level=personalize_min_level,
        ),
        TaskType.CUSTOM.value: CustomHandler(),
    }
