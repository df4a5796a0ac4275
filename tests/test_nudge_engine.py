# tests/test_nudge_engine.py

from __future__ import annotations

import random

import pytest

from taskpulse.core.ports import UserBehaviorSnapshot
from taskpulse.nudge.engine import (
    REASON_BELOW_THRESHOLD,
    REASON_ESCALATION_CEILING,
    REASON_OUTSIDE_ACTIVE_HOURS,
    REASON_RECENTLY_NUDGED,
    NudgeEngine,
    compute_level,
    select_message,
    should_send,
    tone_for_level,
)
from taskpulse.nudge.templates import NUDGE_TEMPLATES, normalize_locale, supported_locales

from .fakes import T0, FakeBehavior, FakeClock

# FakeClock starts at T0, which is 22:13 UTC.
NOW_HOUR = 22


@pytest.mark.parametrize(
    ("hours", "level"),
    [
        (0.0, 0),
        (23.9, 0),
        (24.0, 1),
        (35.9, 1),
        (36.0, 2),
        (48.0, 3),
        (60.0, 4),
        (71.9, 4),
        (72.0, 5),
        (999.0, 5),
        (-3.0, 0),
        (float("nan"), 0),
    ],
)
def test_compute_level_thresholds(hours: float, level: int) -> None:
    assert compute_level(hours) == level


def test_compute_level_is_monotonic() -> None:
    levels = [compute_level(h / 4) for h in range(0, 4 * 100)]
    assert levels == sorted(levels)
    assert min(levels) == 0 and max(levels) == 5


def test_tone_follows_level_and_shifts_after_non_responses() -> None:
    assert [tone_for_level(lv) for lv in range(6)] == [
        "quiet",
        "informative",
        "casual",
        "playful",
        "teasing",
        "urgent",
    ]
    assert tone_for_level(2, consecutive_non_responses=2) == "casual"
    assert tone_for_level(2, consecutive_non_responses=3) == "playful"
    assert tone_for_level(5, consecutive_non_responses=10) == "urgent"
    assert tone_for_level(0, consecutive_non_responses=10) == "quiet"


def test_should_send_rules() -> None:
    assert should_send(50, None, current_hour=3) is True
    assert should_send(23.5, None, current_hour=3) is False
    assert should_send(50, {9, 10, 11}, current_hour=10) is True
    assert should_send(50, {9, 10, 11}, current_hour=3) is False
    assert should_send(50, set(), current_hour=3) is True
    assert should_send(50, None, current_hour=3, last_nudge_hours_ago=10) is False
    assert should_send(50, None, current_hour=3, last_nudge_hours_ago=24) is True


def test_should_send_never_true_below_min_hours() -> None:
    for tenth in range(0, 240):
        assert should_send(tenth / 10, None, current_hour=12) is False


def test_select_message_by_locale_and_tone() -> None:
    rng = random.Random(3)
    assert select_message(2, "casual", "en", rng) in NUDGE_TEMPLATES["en"]["casual"]
    assert select_message(5, "urgent", "fi-FI", rng) in NUDGE_TEMPLATES["fi"]["urgent"]
    # Unknown locale and tone fall back to English and the level's own tone.
    assert select_message(3, "whisper", "xx", rng) in NUDGE_TEMPLATES["en"]["playful"]

    with pytest.raises(ValueError):
        select_message(0, "quiet", "en")


def test_every_locale_covers_every_sendable_tone() -> None:
    assert supported_locales() == ["en", "fi"]
    for locale in supported_locales():
        for level in range(1, 6):
            assert NUDGE_TEMPLATES[locale][tone_for_level(level)]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, "en"), ("", "en"), ("FI", "fi"), ("fi_FI", "fi"), ("en-GB", "en"), ("de", "en")],
)
def test_normalize_locale(raw, expected) -> None:
    assert normalize_locale(raw) == expected


def _engine(snapshot: UserBehaviorSnapshot, **kwargs) -> NudgeEngine:
    behavior = FakeBehavior({"u1": snapshot})
    return NudgeEngine(behavior, clock=FakeClock(), rng=random.Random(7), **kwargs)


def test_engine_sends_casual_nudge_after_fifty_hours() -> None:
    engine = _engine(UserBehaviorSnapshot(hours_since_last_interaction=50.0))

    d = engine.evaluate("u1", "en")

    assert d.should_send is True
    assert d.level == 2
    assert d.tone == "casual"
    assert d.message in NUDGE_TEMPLATES["en"]["casual"]
    assert d.reason == ""


def test_engine_current_hour_uses_timezone() -> None:
    assert _engine(UserBehaviorSnapshot(0.0)).current_hour() == NOW_HOUR
    # Helsinki is UTC+2 in November.
    assert _engine(UserBehaviorSnapshot(0.0), tz="Europe/Helsinki").current_hour() == 0


def test_engine_below_threshold() -> None:
    d = _engine(UserBehaviorSnapshot(hours_since_last_interaction=3.0)).evaluate("u1")
    assert d.should_send is False
    assert d.level == 0
    assert d.reason == REASON_BELOW_THRESHOLD
    assert d.message == ""


def test_engine_outside_active_hours() -> None:
    snap = UserBehaviorSnapshot(hours_since_last_interaction=50.0, active_hours=frozenset({8, 9, 10}))
    d = _engine(snap).evaluate("u1")
    assert d.should_send is False
    assert d.level == 2
    assert d.reason == REASON_OUTSIDE_ACTIVE_HOURS


def test_engine_inside_active_hours() -> None:
    snap = UserBehaviorSnapshot(hours_since_last_interaction=50.0, active_hours=frozenset({NOW_HOUR}))
    assert _engine(snap).evaluate("u1").should_send is True


def test_engine_recently_nudged() -> None:
    snap = UserBehaviorSnapshot(hours_since_last_interaction=50.0, last_nudge_at=T0 - 3 * 3600)
    d = _engine(snap).evaluate("u1")
    assert d.should_send is False
    assert d.reason == REASON_RECENTLY_NUDGED

    snap = UserBehaviorSnapshot(hours_since_last_interaction=50.0, last_nudge_at=T0 - 25 * 3600)
    assert _engine(snap).evaluate("u1").should_send is True


def test_engine_min_hours_between_nudges_is_configurable() -> None:
    snap = UserBehaviorSnapshot(hours_since_last_interaction=50.0, last_nudge_at=T0 - 3 * 3600)
    assert _engine(snap, min_hours_between_nudges=2.0).evaluate("u1").should_send is True


def test_engine_ceiling_is_optional() -> None:
    snap = UserBehaviorSnapshot(hours_since_last_interaction=200.0, consecutive_non_responses=9)

    unbounded = _engine(snap).evaluate("u1")
    assert unbounded.should_send is True
    assert unbounded.level == 5

    capped = _engine(snap, max_consecutive_nudges=5).evaluate("u1")
    assert capped.should_send is False
    assert capped.reason == REASON_ESCALATION_CEILING


def test_engine_locale_precedence() -> None:
    snap = UserBehaviorSnapshot(hours_since_last_interaction=80.0, locale="fi")
    engine = _engine(snap, default_locale="en")

    stored = engine.evaluate("u1")
    assert stored.locale == "fi"
    assert stored.message in NUDGE_TEMPLATES["fi"]["urgent"]
    explicit = engine.evaluate("u1", "en-GB")
    assert explicit.locale == "en"
    assert explicit.message in NUDGE_TEMPLATES["en"]["urgent"]

    no_locale = _engine(UserBehaviorSnapshot(hours_since_last_interaction=80.0), default_locale="fi")
    assert no_locale.evaluate("u1").message in NUDGE_TEMPLATES["fi"]["urgent"]


def test_engine_record_non_response_delegates() -> None:
    behavior = FakeBehavior()
    engine = NudgeEngine(behavior, clock=FakeClock())
    assert engine.record_non_response("u1") == 1
    assert engine.record_non_response("u1") == 2
