"""
Unit tests for overlearning targets.

Run: pytest tests/unit/test_overlearning.py -v
"""

import pytest

from src.scheduling.overlearning import OverlearningMode, OverlearningTracker


class TestOverlearningTracker:
    """Test required repetitions after the first success."""

    @pytest.mark.parametrize("attempts,expected", [(0, 5), (-2, 5), (1, 6), (4, 9)])
    def test_full_mode(self, attempts, expected):
        assert OverlearningTracker().required_repetitions(attempts) == expected

    @pytest.mark.parametrize("attempts,expected", [(1, 6), (3, 7), (4, 7)])
    def test_half_mode(self, attempts, expected):
        assert OverlearningTracker(OverlearningMode.HALF).required_repetitions(attempts) == expected

    def test_apply_sets_target(self, make_item):
        item = make_item(attempts_till_success=3)
        assert OverlearningTracker().apply(item) == 8
        assert item.target_repetitions == 8
