# src/taskpulse/nudge/engine.py

"""
Progressive nudge policy.

Given how long an owner has been silent, decide whether to nudge them and how
urgently. The level grows with elapsed time; the tone (and the template pool)
follows the level. Suppression rules keep nudges away from people who are
asleep, freshly active, or were nudged very recently.

Everything except NudgeEngine is a pure function.
"""

from __future__ import annotations

import logging
import math
import random
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

from ..core.ports import BehaviorContextProvider
from .templates import NUDGE_TEMPLATES, normalize_locale

logger = logging.getLogger(__name__)

MAX_LEVEL = 5

# Elapsed hours at which levels 1..5 start.
LEVEL_THRESHOLDS_HOURS: tuple[float, ...] = (24.0, 36.0, 48.0, 60.0, 72.0)

TONE_BY_LEVEL: tuple[str, ...] = (
    "quiet",
    "informative",
    "casual",
    "playful",
    "teasing",
    "urgent",
)

# After this many unanswered nudges the tone shifts one tier up.
NON_RESPONSE_TONE_SHIFT = 3

REASON_BELOW_THRESHOLD = "below_threshold"
REASON_OUTSIDE_ACTIVE_HOURS = "outside_active_hours"
REASON_RECENTLY_NUDGED = "recently_nudged"
REASON_ESCALATION_CEILING = "escalation_ceiling"


@dataclass(slots=True, frozen=True)
class NudgeDecision:
    should_send: bool
    level: int
    tone: str
    locale: str = "en"
    message: str = ""
    reason: str = ""


def compute_level(hours_since_last_interaction: float) -> int:
    """Monotonic step function: 0 below 24h, 5 from 72h on."""
    h = float(hours_since_last_interaction)
    if math.isnan(h) or h <= 0:
        return 0
    return sum(1 for threshold in LEVEL_THRESHOLDS_HOURS if h >= threshold)


def tone_for_level(level: int, consecutive_non_responses: int = 0) -> str:
    level = max(0, min(MAX_LEVEL, int(level)))
    if level == 0:
        return TONE_BY_LEVEL[0]
    if consecutive_non_responses >= NON_RESPONSE_TONE_SHIFT:
        level = min(MAX_LEVEL, level + 1)
    return TONE_BY_LEVEL[level]


def should_send(
    hours_since_last_interaction: float,
    active_hours: Iterable[int] | None = None,
    *,
    current_hour: int,
    min_hours: float = LEVEL_THRESHOLDS_HOURS[0],
    last_nudge_hours_ago: float | None = None,
    min_hours_between_nudges: float = 24.0,
) -> bool:
    """
    Whether a nudge may go out now.

    - never below the level-1 threshold (freshly active)
    - never outside known active hours (probably asleep)
    - never sooner than min_hours_between_nudges after the previous nudge
    """
    if not hours_since_last_interaction >= min_hours:
        return False

    if active_hours is not None:
        hours = set(active_hours)
        if hours and current_hour not in hours:
            return False

    if last_nudge_hours_ago is not None and last_nudge_hours_ago < min_hours_between_nudges:
        return False

    return True


def select_message(
    level: int,
    tone: str | None,
    locale: str | None,
    rng: random.Random | None = None,
) -> str:
    """Pick a template for the tone (falling back to the level's own tone)."""
    if level <= 0:
        raise ValueError("level 0 has no nudge message")

    pools = NUDGE_TEMPLATES[normalize_locale(locale)]
    pool = pools.get(tone or "") or pools[tone_for_level(level)]
    return (rng or random).choice(pool)


class NudgeEngine:
    """
    Binds the pure policy to an owner's behavioral state.

    max_consecutive_nudges=None keeps escalating forever (capped at level 5);
    a positive value stops nudging once that many went unanswered.
    """

    def __init__(
        self,
        behavior: BehaviorContextProvider,
        *,
        tz: str | ZoneInfo = "UTC",
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
        min_hours_between_nudges: float = 24.0,
        max_consecutive_nudges: int | None = None,
        default_locale: str = "en",
    ) -> None:
        self._behavior = behavior
        self._tz = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
        self._clock = clock
        self._rng = rng or random.Random()
        self.min_hours_between_nudges = float(min_hours_between_nudges)
        self.max_consecutive_nudges = max_consecutive_nudges
        self.default_locale = default_locale

    def current_hour(self) -> int:
        return datetime.fromtimestamp(self._clock(), self._tz).hour

    def evaluate(self, owner_id: str, locale: str | None = None) -> NudgeDecision:
        snapshot = self._behavior.get_behavior_snapshot(owner_id)
        hours = snapshot.hours_since_last_interaction
        level = compute_level(hours)
        tone = tone_for_level(level, snapshot.consecutive_non_responses)
        # Payload locale wins over the owner's stored one.
        resolved_locale = normalize_locale(locale or snapshot.locale or self.default_locale)

        last_nudge_hours_ago = None
        if snapshot.last_nudge_at is not None:
            last_nudge_hours_ago = (self._clock() - snapshot.last_nudge_at) / 3600.0

        reason = ""
        if level == 0:
            reason = REASON_BELOW_THRESHOLD
        elif (
            self.max_consecutive_nudges is not None
            and snapshot.consecutive_non_responses >= self.max_consecutive_nudges
        ):
            reason = REASON_ESCALATION_CEILING
        elif not should_send(
            hours,
            snapshot.active_hours,
            current_hour=self.current_hour(),
        ):
            reason = REASON_OUTSIDE_ACTIVE_HOURS
        elif not should_send(
            hours,
            None,
            current_hour=self.current_hour(),
            last_nudge_hours_ago=last_nudge_hours_ago,
            min_hours_between_nudges=self.min_hours_between_nudges,
        ):
            reason = REASON_RECENTLY_NUDGED

        if reason:
            logger.debug(
                "Nudge suppressed owner=%s level=%s hours=%.1f reason=%s",
                owner_id,
                level,
                hours,
                reason,
            )
            return NudgeDecision(
                should_send=False,
                level=level,
                tone=tone,
                locale=resolved_locale,
                reason=reason,
            )

        message = select_message(level, tone, resolved_locale, self._rng)
        logger.info("Nudge decided owner=%s level=%s tone=%s hours=%.1f", owner_id, level, tone, hours)
        return NudgeDecision(
            should_send=True,
            level=level,
            tone=tone,
            locale=resolved_locale,
            message=message,
        )

    def record_non_response(self, owner_id: str) -> int:
        return self._behavior.record_non_response(owner_id)
