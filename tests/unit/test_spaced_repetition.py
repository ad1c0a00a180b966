"""
Unit tests for the SpacedRepetitionScheduler.

Tests cover:
- foundation phase (fixed 1-day intervals, stage advancement)
- frustration cool-down
- stability path for erratic mature items
- mature path (curve inversion + adjustments) and user overrides
- input rails and the tomorrow fallback

Run: pytest tests/unit/test_spaced_repetition.py -v
"""

from datetime import date, datetime, timedelta

import pytest

from src.scheduling.dates import SessionClock, round_half_away
from src.scheduling.models import Difficulty, OverrideRequest, SessionOutcome
from src.scheduling.spaced_repetition import SchedulerConfig, SpacedRepetitionScheduler


class _BrokenTau:
    def integrated_tau(self, item, history):
        raise RuntimeError("tau pipeline exploded")


class TestFoundationPhase:
    """Test the first three sessions."""

    def test_new_item_is_planned_for_tomorrow(self, scheduler, make_item, today):
        item = make_item()
        result = scheduler.calculate_next_practice_date(item, [], 5.0, today, 0)

        assert result.path == "foundation"
        assert result.next_date == today + timedelta(days=1)
        assert result.tau == pytest.approx(9.0)
        assert item.foundation_stage == 0

    def test_three_sessions_then_mature(self, retention, stability_model, make_item, make_entry, today):
        item = make_item()
        history = []
        paths = []
        for offset in range(3):
            session_day = today + timedelta(days=offset)
            scheduler = SpacedRepetitionScheduler(
                retention, stability=stability_model, clock=SessionClock(fixed_today=session_day)
            )
            history.append(make_entry(days_ago=-offset, score=7.0, reps=3))
            result = scheduler.calculate_next_practice_date(item, history, 7.0, session_day, 3)
            paths.append(result.path)
            if offset < 2:
                assert result.next_date == session_day + timedelta(days=1)

        assert paths == ["foundation", "foundation", "mature"]
        assert item.foundation_stage == 3

    def test_replanning_catches_up_with_history(self, scheduler, make_item, make_entry, today):
        item = make_item()
        history = [make_entry(days_ago=d, score=7.0, reps=2) for d in (4, 3, 2, 1)]
        result = scheduler.calculate_next_practice_date(item, history, 5.0, today, 0)

        assert item.foundation_stage == 3
        assert result.path == "mature"

    def test_negative_stage_is_repaired(self, scheduler, make_item, today):
        item = make_item(foundation_stage=-2)
        result = scheduler.calculate_next_practice_date(item, [], 5.0, today, 0)
        assert item.foundation_stage == 0
        assert result.next_date == today + timedelta(days=1)


class TestFrustration:
    """Test the frustration cool-down."""

    def test_auto_frustration_three_days(self, scheduler, make_item, make_entry, today):
        item = make_item(foundation_stage=3, completed_repetitions=10)
        history = [make_entry(score=3.0, session_outcome=SessionOutcome.FRUSTRATION)]

        result = scheduler.calculate_next_practice_date(item, history, 3.0, today, 0)

        assert result.path == "frustration"
        assert result.next_date == today + timedelta(days=3)
        assert item.last_frustration_date == today

    def test_manual_frustration_two_days(self, scheduler, make_item, make_entry, today):
        item = make_item(foundation_stage=3)
        history = [make_entry(score=3.0, session_outcome=SessionOutcome.MANUAL_FRUSTRATION)]

        result = scheduler.calculate_next_practice_date(item, history, 3.0, today, 0)

        assert result.next_date == today + timedelta(days=2)

    def test_cooldown_within_one_day(self, scheduler, make_item, make_entry, today):
        """A second frustration the day after the first is not another break."""
        yesterday = today - timedelta(days=1)
        item = make_item(foundation_stage=3, last_frustration_date=yesterday)
        history = [make_entry(score=3.0, session_outcome=SessionOutcome.FRUSTRATION)]

        result = scheduler.calculate_next_practice_date(item, history, 3.0, today, 0)

        assert result.path != "frustration"
        assert item.last_frustration_date == yesterday

    def test_cooldown_expires(self, scheduler, make_item, make_entry, today):
        item = make_item(foundation_stage=3, last_frustration_date=today - timedelta(days=2))
        history = [make_entry(score=3.0, session_outcome=SessionOutcome.FRUSTRATION)]

        result = scheduler.calculate_next_practice_date(item, history, 3.0, today, 0)

        assert result.path == "frustration"
        assert item.last_frustration_date == today


class TestStabilityPath:
    """Test the stability path for erratic mature items."""

    def test_erratic_scores_use_stability(self, scheduler, make_item, make_entry, today):
        item = make_item(foundation_stage=3, completed_repetitions=20)
        history = [make_entry(days_ago=5 - i, score=s, reps=2) for i, s in enumerate([2, 9, 3, 9, 2])]

        result = scheduler.calculate_next_practice_date(item, history, 2.0, today, 0)

        assert result.path == "stability"
        assert result.tau == pytest.approx(1.8)
        assert result.next_date == today + timedelta(days=2)

    def test_steady_scores_skip_stability(self, scheduler, make_item, make_entry, today):
        item = make_item(foundation_stage=3, completed_repetitions=20)
        history = [make_entry(days_ago=5 - i, score=7.0, reps=2) for i in range(5)]

        result = scheduler.calculate_next_practice_date(item, history, 7.0, today, 0)

        assert result.path == "mature"

    def test_disabled_by_config(self, retention, stability_model, clock, make_item, make_entry, today):
        scheduler = SpacedRepetitionScheduler(
            retention, stability=stability_model, config=SchedulerConfig(use_memory_stability=False), clock=clock
        )
        item = make_item(foundation_stage=3)
        history = [make_entry(days_ago=5 - i, score=s) for i, s in enumerate([2, 9, 3, 9, 2])]
        assert not scheduler.should_use_memory_stability(item, history)


class TestMaturePath:
    """Test the forgetting-curve interval of mature items."""

    def test_average_item_with_rising_scores(self, scheduler, make_item, make_entry, today):
        item = make_item(difficulty=Difficulty.AVERAGE, completed_repetitions=5, foundation_stage=3)
        history = [make_entry(days_ago=3, score=6), make_entry(days_ago=2, score=7), make_entry(days_ago=1, score=8)]

        result = scheduler.calculate_next_practice_date(item, history, 7.0, today, 0)

        assert result.path == "mature"
        assert result.target_retention == pytest.approx(0.79)
        assert result.performance_factor > 1.0
        assert result.pattern_factor == pytest.approx(1.1)
        assert 1.0 < result.interval_days < 365.0
        assert result.interval_days <= 5 * result.tau
        assert result.next_date == today + timedelta(days=round_half_away(result.interval_days))

    def test_better_score_never_shortens_interval(self, scheduler, make_item, make_entry, today):
        history = [make_entry(days_ago=2, score=6), make_entry(days_ago=1, score=6)]
        weak = scheduler.calculate_next_practice_date(make_item("weak", foundation_stage=3), history, 3.0, today, 0)
        strong = scheduler.calculate_next_practice_date(make_item("strong", foundation_stage=3), history, 9.0, today, 0)
        assert strong.interval_days >= weak.interval_days

    def test_user_override(self, scheduler, make_item, make_entry, today):
        item = make_item(foundation_stage=3)
        history = [make_entry(days_ago=1, score=7)]

        result = scheduler.calculate_next_practice_date(
            item, history, 7.0, today, 0, override=OverrideRequest(10.0, "concert next week")
        )

        assert result.path == "override"
        assert result.next_date == today + timedelta(days=10)

    def test_override_is_clamped(self, scheduler, make_item, today):
        item = make_item(foundation_stage=3)
        result = scheduler.calculate_next_practice_date(item, [], 7.0, today, 0, override=OverrideRequest(1000.0))
        assert result.interval_days == pytest.approx(5 * result.tau)
        assert result.clamp_reason == "extreme"


class TestRobustness:
    """Test input rails and fallback."""

    def test_out_of_range_inputs_are_clamped(self, scheduler, make_item, today):
        result = scheduler.calculate_next_practice_date(make_item(), [], 15.0, date(2019, 1, 1), -4)
        assert result.error is None
        assert result.next_date == today + timedelta(days=1)

    def test_datetime_session_date_is_normalized(self, scheduler, make_item, today):
        result = scheduler.calculate_next_practice_date(make_item(), [], 7.0, datetime(2025, 3, 10, 9, 30), 0)
        assert result.error is None
        assert result.path == "foundation"
        assert result.next_date == today + timedelta(days=1)

    def test_unparseable_session_date_falls_back(self, scheduler, make_item, today):
        result = scheduler.calculate_next_practice_date(make_item(), [], 7.0, "not-a-date", 0)
        assert result.path == "fallback"
        assert result.next_date == today + timedelta(days=1)

    def test_nan_score(self, scheduler, make_item, today):
        result = scheduler.calculate_next_practice_date(make_item(foundation_stage=3), [], float("nan"), today, 0)
        assert result.path == "mature"
        assert result.next_date > today

    def test_failure_falls_back_to_tomorrow(self, retention, clock, make_item, today):
        scheduler = SpacedRepetitionScheduler(retention, adaptive_tau=_BrokenTau(), clock=clock)
        result = scheduler.calculate_next_practice_date(make_item(foundation_stage=3), [], 7.0, today, 0)

        assert result.path == "fallback"
        assert result.next_date == today + timedelta(days=1)
        assert "exploded" in result.error

    def test_deleted_history_is_ignored(self, scheduler, make_item, make_entry, today):
        item = make_item()
        history = [make_entry(days_ago=d, reps=2, is_deleted=True) for d in (3, 2, 1)]
        result = scheduler.calculate_next_practice_date(item, history, 5.0, today, 0)
        assert result.path == "foundation"

    def test_retention_curve_for_item(self, scheduler, make_item, today):
        curve = scheduler.retention_curve_for(make_item(last_practice_date=today), days_ahead=10)
        assert len(curve) == 11
        assert curve[0][0] == today
