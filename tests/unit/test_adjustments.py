"""
Unit tests for performance and practice-pattern adjustments.

Run: pytest tests/unit/test_adjustments.py -v
"""

import pytest

from src.scheduling.adjustments import (
    linear_regression,
    nonlinear_base_factor,
    performance_adjustment,
    population_variance,
    practice_pattern_factor,
    valid_scores,
)


class TestPerformanceAdjustment:
    """Test the composite performance multiplier."""

    def test_neutral_score(self):
        assert performance_adjustment(5.0) == pytest.approx(1.1)

    def test_monotonic_in_score(self):
        values = [performance_adjustment(s) for s in (0, 2, 4, 5, 6, 8, 10)]
        assert values == sorted(values)

    def test_bounds(self):
        for score in (-5, 0, 3, 7, 10, 42):
            assert 0.3 <= performance_adjustment(score) <= 2.5

    def test_non_finite_score_is_neutral(self):
        assert performance_adjustment(float("nan")) == pytest.approx(performance_adjustment(5.0))

    def test_out_of_range_scores_are_clamped(self):
        assert performance_adjustment(15.0) == pytest.approx(performance_adjustment(10.0))
        assert performance_adjustment(-1.0) == pytest.approx(performance_adjustment(0.0))


class TestRegression:
    """Test the trend regression helpers."""

    def test_single_point(self):
        assert linear_regression([7.0]) == (0.0, 5.0)

    def test_rising_scores(self):
        slope, average = linear_regression([6.0, 7.0, 8.0])
        assert slope == pytest.approx(1.0)
        assert average == pytest.approx(7.0)

    def test_slope_is_limited(self):
        slope, _ = linear_regression([0.0, 10.0])
        assert slope == pytest.approx(5.0)

    def test_population_variance(self):
        assert population_variance([2.0, 4.0, 6.0]) == pytest.approx(8.0 / 3.0)
        assert population_variance([]) == 0.0


class TestPracticePattern:
    """Test the practice-pattern factor."""

    def test_valid_scores_drop_deleted_and_out_of_range(self, make_entry):
        history = [
            make_entry(days_ago=3, score=4.0),
            make_entry(days_ago=2, score=12.0),
            make_entry(days_ago=1, score=6.0, is_deleted=True),
            make_entry(score=8.0),
        ]
        assert valid_scores(history) == [4.0, 8.0]

    def test_valid_scores_window(self, make_entry):
        history = [make_entry(days_ago=d, score=float(10 - d)) for d in range(8)]
        assert valid_scores(history) == [6.0, 7.0, 8.0, 9.0, 10.0]

    def test_no_history_leaves_interval_unchanged(self):
        assert practice_pattern_factor([]) == 1.0

    def test_only_unusable_history_leaves_interval_unchanged(self, make_entry):
        history = [make_entry(days_ago=1, score=12.0), make_entry(score=6.0, is_deleted=True)]
        assert practice_pattern_factor(history) == 1.0

    def test_base_factor_of_middling_average(self):
        assert nonlinear_base_factor(5.0) == pytest.approx(0.88)

    def test_single_session_uses_its_score(self, make_entry):
        assert practice_pattern_factor([make_entry(score=7.0)]) == pytest.approx(1.0)

    def test_improving_trend(self, make_entry):
        history = [make_entry(days_ago=2, score=6), make_entry(days_ago=1, score=7), make_entry(score=8)]
        assert practice_pattern_factor(history) == pytest.approx(1.1)

    def test_bounds(self, make_entry):
        history = [make_entry(days_ago=1, score=0), make_entry(score=10)]
        assert 0.7 <= practice_pattern_factor(history) <= 1.3
