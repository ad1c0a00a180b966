"""
Unit tests for library-wide planning and session registration.

Run: pytest tests/unit/test_practice_scheduler.py -v
"""

from datetime import timedelta

import pytest

from src.scheduling.calibration import PersonalizedCalibration
from src.scheduling.models import (
    Difficulty,
    ItemOwner,
    LifecycleState,
    ScheduledSession,
    SessionOutcome,
    SessionStatus,
)
from src.scheduling.practice_scheduler import PracticeScheduler


@pytest.fixture
def practice(scheduler, store, history_store, stability_model):
    return PracticeScheduler(scheduler, store, history_store, stability=stability_model)


class TestScheduleFutureSessions:
    """Test batch planning."""

    def test_plans_only_schedulable_items(self, practice, make_item, owner, today):
        paused_owner = ItemOwner(id="owner-2", title="Paused", paused_until=today + timedelta(days=3))
        active = make_item("item-1")
        inactive = make_item("item-2", lifecycle_state=LifecycleState.INACTIVE)
        paused = make_item("item-3", owner_id="owner-2")

        planned = practice.schedule_future_sessions([active, inactive, paused], [owner, paused_owner], today=today)

        assert [s.item_id for s in planned] == ["item-1"]
        session = planned[0]
        assert session.status == SessionStatus.PLANNED
        assert session.scheduled_date == today + timedelta(days=1)
        assert session.estimated_duration == timedelta(minutes=5)
        assert session.owner_title == owner.title
        assert session.tau_value == pytest.approx(9.0)
        assert active.next_due_date == session.scheduled_date
        assert inactive.next_due_date is None

    def test_every_session_gets_a_fresh_id(self, practice, make_item, owner, today):
        items = [make_item(f"item-{i}") for i in range(3)]
        planned = practice.schedule_future_sessions(items, [owner], today=today)
        assert len({s.id for s in planned}) == 3

    def test_long_unpracticed_item_is_not_planned_in_the_past(self, practice, make_item, owner, today):
        item = make_item(last_practice_date=today - timedelta(days=5))
        [session] = practice.schedule_future_sessions([item], [owner], today=today)
        assert session.scheduled_date > today

    def test_open_session_donates_estimate(self, practice, make_item, owner, today):
        current = ScheduledSession(
            item_id="item-1", owner_id="owner-1", scheduled_date=today, estimated_duration=timedelta(minutes=12)
        )
        [session] = practice.schedule_future_sessions([make_item()], [owner], current_sessions=[current], today=today)
        assert session.estimated_duration == timedelta(minutes=12)
        assert session.id != current.id

    def test_recompute_replaces_open_sessions(self, practice, store, make_item, owner, today):
        completed = ScheduledSession(
            item_id="item-1", owner_id="owner-1", scheduled_date=today - timedelta(days=1),
            status=SessionStatus.COMPLETED,
        )
        stale = ScheduledSession(item_id="item-1", owner_id="owner-1", scheduled_date=today + timedelta(days=30))
        store.add(completed)
        store.add(stale)

        assert practice.recompute_all([make_item()], [owner], today) == 1

        ids = {s.id for s in store.get_all()}
        assert completed.id in ids
        assert stale.id not in ids
        assert store.get_for_item("item-1").scheduled_date == today + timedelta(days=1)

    def test_recompute_preserve_skips(self, practice, make_item, owner, today):
        item = make_item()
        assert practice.recompute_all([item], [owner], today, preserve_due_date=True) == 0
        assert item.next_due_date is None

    def test_replan_item_plans_single_session(self, practice, store, make_item, owner, today):
        item = make_item()
        result = practice.replan_item(item, owner, today=today)

        assert result.path == "foundation"
        assert result.next_date > today
        assert item.next_due_date == result.next_date
        planned = store.get_for_item("item-1")
        assert planned.status == SessionStatus.PLANNED
        assert planned.scheduled_date == result.next_date


class TestRegisterSession:
    """Test recording a finished session."""

    def test_records_and_plans_next(self, practice, store, history_store, make_item, make_entry, owner, today):
        item = make_item()
        store.add(ScheduledSession(item_id="item-1", owner_id="owner-1", scheduled_date=today))
        entry = make_entry(score=7.0, reps=3, duration=timedelta(minutes=6),
                           session_outcome=SessionOutcome.TARGET_REACHED, total_failures=2)

        result = practice.register_session(item, owner, entry)

        assert history_store.get_history_for_item("item-1") == [entry]
        assert item.completed_repetitions == 3
        assert item.last_practice_date == today
        assert item.foundation_stage == 1
        assert result.path == "foundation"
        assert item.next_due_date == today + timedelta(days=1)

        sessions = store.get_all()
        assert [s.status for s in sessions] == [SessionStatus.COMPLETED, SessionStatus.PLANNED]
        assert sessions[1].scheduled_date == today + timedelta(days=1)

    def test_first_success_sets_overlearning_target(self, practice, make_item, make_entry, owner):
        item = make_item()
        entry = make_entry(reps=1, session_outcome=SessionOutcome.TARGET_REACHED, total_failures=2)
        practice.register_session(item, owner, entry)

        assert item.attempts_till_success == 3
        assert item.target_repetitions == 8

    def test_preserve_keeps_due_date(self, practice, store, history_store, make_item, make_entry, owner, today):
        due = today + timedelta(days=4)
        item = make_item(next_due_date=due)

        assert practice.register_session(item, owner, make_entry(reps=2), preserve_due_date=True) is None
        assert item.next_due_date == due
        assert len(history_store.get_history_for_item("item-1")) == 1
        assert store.get_all() == []

    def test_mature_session_updates_stability(self, practice, stability_model, make_item, success_entry, owner):
        item = make_item(foundation_stage=3, completed_repetitions=12)
        practice.register_session(item, owner, success_entry())
        assert stability_model.get_record("item-1").review_count == 1

    def test_foundation_session_leaves_stability_alone(self, practice, stability_model, make_item, success_entry, owner):
        practice.register_session(make_item(), owner, success_entry())
        assert stability_model.get_record("item-1") is None

    def test_session_feeds_calibration(self, scheduler, store, history_store, retention, make_item, make_entry, owner, today):
        calibration = PersonalizedCalibration(retention)
        practice = PracticeScheduler(scheduler, store, history_store, calibration=calibration)
        item = make_item(last_practice_date=today - timedelta(days=1))

        practice.register_session(item, owner, make_entry(score=0.0, reps=2))

        # measured over the one-day gap, not against the updated practice date
        assert calibration.total_sessions() == 1
        assert calibration.get_adjustment(Difficulty.AVERAGE).adjustment_factor < 1.0
        assert item.last_practice_date == today


class TestDifficultyAndMerge:
    """Test difficulty propagation and merging."""

    def test_update_item_difficulty(self, practice, store, make_item, today):
        item = make_item()
        store.add(ScheduledSession(item_id="item-1", owner_id="owner-1", scheduled_date=today + timedelta(days=2)))

        assert practice.update_item_difficulty(item, Difficulty.EASY) == 1
        assert item.difficulty == Difficulty.EASY
        assert store.get_for_item("item-1").difficulty == Difficulty.EASY

    def test_merge_stability_data(self, practice, store, stability_model, success_entry, today):
        stability_model.update_from_session("a", success_entry("a"))
        stability_model.update_from_session("b", success_entry("b"))
        for item_id in ("a", "b", "c"):
            store.add(ScheduledSession(item_id=item_id, owner_id="owner-1", scheduled_date=today + timedelta(days=1)))

        merged = practice.merge_stability_data(["a", "b"], "ab")

        assert merged.review_count == 2
        assert stability_model.get_record("ab") is merged
        assert [s.item_id for s in store.get_all()] == ["c"]

    def test_merge_without_stability_model(self, scheduler, store, history_store):
        practice = PracticeScheduler(scheduler, store, history_store)
        assert practice.merge_stability_data(["a"], "b") is None
