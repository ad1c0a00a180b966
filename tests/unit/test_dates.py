"""
Unit tests for the session date service.

Run: pytest tests/unit/test_dates.py -v
"""

from datetime import date, datetime, timedelta

import pytest

from src.scheduling.dates import (
    SessionClock,
    interval_days_between,
    parse_date,
    round_half_away,
)


class TestHelpers:
    """Test date parsing and rounding."""

    def test_parse_date_variants(self):
        assert parse_date("2025-03-10") == date(2025, 3, 10)
        assert parse_date("2025-03-10T18:30:00") == date(2025, 3, 10)
        assert parse_date(datetime(2025, 3, 10, 7, 0)) == date(2025, 3, 10)
        assert parse_date(None) is None
        assert parse_date("") is None

    @pytest.mark.parametrize(
        "value,expected",
        [(0.4, 0), (0.5, 1), (1.5, 2), (2.5, 3), (2.49, 2), (-1.5, -2)],
    )
    def test_round_half_away(self, value, expected):
        assert round_half_away(value) == expected

    def test_interval_days_between_never_negative(self):
        assert interval_days_between(date(2025, 3, 10), date(2025, 3, 13)) == 3.0
        assert interval_days_between(date(2025, 3, 13), date(2025, 3, 10)) == 0.0


class TestNextPracticeDate:
    """Test the planner path of next_practice_date."""

    def test_adds_rounded_interval(self, clock, today):
        assert clock.next_practice_date(today, 2.5) == today + timedelta(days=3)

    def test_at_least_one_day(self, clock, today):
        assert clock.next_practice_date(today, 0.2) == today + timedelta(days=1)

    def test_at_most_365_days(self, clock, today):
        assert clock.next_practice_date(today, 1000) == today + timedelta(days=365)

    def test_invalid_interval_means_one_day(self, clock, today):
        assert clock.next_practice_date(today, float("nan")) == today + timedelta(days=1)

    def test_never_in_the_past(self, clock, today):
        assert clock.next_practice_date(today - timedelta(days=10), 2) == today

    def test_registration_path_allows_same_day(self, clock, today):
        assert clock.next_practice_date(today, 0, registration_path=True) == today


class TestSessionClock:
    """Test the current session date."""

    def test_fixed_today(self, today):
        clock = SessionClock(fixed_today=today)
        assert clock.today() == today
        assert clock.tomorrow() == today + timedelta(days=1)

    def test_unknown_timezone_falls_back_to_local(self):
        clock = SessionClock(timezone="Mars/Olympus_Mons")
        assert clock.today() == date.today()

    def test_timezone_clock_returns_date(self):
        clock = SessionClock(timezone="UTC")
        assert isinstance(clock.today(), date)
