# tests/test_behavior_store.py

from __future__ import annotations

from taskpulse.nudge.behavior_store import NO_INTERACTION_HOURS, BehaviorStore
from taskpulse.nudge.engine import NudgeEngine, compute_level

from .fakes import T0, FakeClock


def test_unknown_owner_reads_as_long_silent(behavior_store: BehaviorStore) -> None:
    snap = behavior_store.get_behavior_snapshot("nobody")
    assert snap.hours_since_last_interaction == NO_INTERACTION_HOURS
    assert snap.active_hours is None
    assert snap.consecutive_non_responses == 0
    assert compute_level(snap.hours_since_last_interaction) == 5


def test_interaction_tracks_elapsed_time_and_active_hours(
    behavior_store: BehaviorStore, clock: FakeClock
) -> None:
    behavior_store.record_interaction("u1")  # 22:13 UTC
    behavior_store.record_interaction("u1", at=T0 - 12 * 3600)  # 10:13 UTC

    clock.advance(30 * 3600)
    snap = behavior_store.get_behavior_snapshot("u1")

    # The explicit older timestamp was recorded last, so it is the latest stamp.
    assert snap.hours_since_last_interaction == 42.0
    assert snap.active_hours == frozenset({10, 22})


def test_non_responses_count_up_and_reset_on_interaction(
    behavior_store: BehaviorStore, clock: FakeClock
) -> None:
    assert behavior_store.record_non_response("u1") == 1
    clock.advance(60)
    assert behavior_store.record_non_response("u1") == 2

    snap = behavior_store.get_behavior_snapshot("u1")
    assert snap.consecutive_non_responses == 2
    assert snap.last_nudge_at == T0 + 60

    behavior_store.record_interaction("u1")
    assert behavior_store.get_behavior_snapshot("u1").consecutive_non_responses == 0


def test_locale_is_stored(behavior_store: BehaviorStore) -> None:
    behavior_store.set_locale("u1", "fi")
    assert behavior_store.get_behavior_snapshot("u1").locale == "fi"


def test_engine_over_real_store_escalates_and_backs_off(
    behavior_store: BehaviorStore, clock: FakeClock
) -> None:
    engine = NudgeEngine(behavior_store, clock=clock)
    # Same hour of day as "now", so active hours allow the nudge.
    behavior_store.record_interaction("u1", at=T0 - 48 * 3600)

    first = engine.evaluate("u1")
    assert first.should_send is True
    assert first.level == 3
    engine.record_non_response("u1")

    # Nudged a minute ago: suppressed even though the owner is still silent.
    clock.advance(60)
    assert engine.evaluate("u1").should_send is False

    clock.advance(24 * 3600)
    later = engine.evaluate("u1")
    assert later.should_send is True
    assert later.level == 5


def test_data_survives_reopen(settings, clock: FakeClock) -> None:
    store = BehaviorStore(settings.behavior_db_path, clock=clock).open()
    store.record_interaction("u1")
    store.close()

    with_reopen = BehaviorStore(settings.behavior_db_path, clock=clock).open()
    try:
        assert with_reopen.get_behavior_snapshot("u1").hours_since_last_interaction == 0.0
    finally:
        with_reopen.close()
