"""
Session date service.

All planning works on calendar dates. The "current session date" is the
date at the configured practice-day boundary, which can differ from the
machine's wall clock when a timezone is configured.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger

MAX_PLANNED_DAYS = 365


def parse_date(value: str | date | None) -> date | None:
    """Parse an ISO date (or datetime) string; tolerate None and date objects."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)).date()


def format_date(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


class SessionClock:
    """
    Provides the current session date.

    Args:
        timezone: IANA timezone name; the host's local date is used when None
            or when the zone is unknown.
        fixed_today: Pin "today" to a date (tests, replays).
    """

    def __init__(self, timezone: str | None = None, fixed_today: date | None = None):
        self._zone: ZoneInfo | None = None
        self._fixed_today = fixed_today
        if timezone:
            try:
                self._zone = ZoneInfo(timezone)
            except ZoneInfoNotFoundError:
                logger.warning(f"Unknown session timezone '{timezone}', using local date")

    def today(self) -> date:
        if self._fixed_today is not None:
            return self._fixed_today
        if self._zone is not None:
            return datetime.now(self._zone).date()
        return date.today()

    def tomorrow(self) -> date:
        return self.today() + timedelta(days=1)

    def next_practice_date(
        self,
        base_date: date,
        interval_days: float,
        registration_path: bool = False,
    ) -> date:
        """
        Add an interval to a base date.

        The planner path (default) never plans less than one day ahead and
        never returns a date in the past. The registration path allows 0 days
        for same-day extra practice.
        """
        if math.isnan(interval_days) or math.isinf(interval_days):
            logger.warning(f"next_practice_date: invalid interval {interval_days}, using 1 day")
            interval_days = 1.0

        if not registration_path and interval_days < 1.0:
            logger.warning(f"next_practice_date(planner): interval {interval_days:.2f} < 1.0, clamped to 1.0")
            interval_days = 1.0

        if interval_days < 0 or interval_days > MAX_PLANNED_DAYS:
            logger.warning(f"next_practice_date: extreme interval {interval_days} clamped to [0, {MAX_PLANNED_DAYS}]")
            interval_days = max(0.0, min(float(MAX_PLANNED_DAYS), interval_days))

        next_date = base_date + timedelta(days=round_half_away(interval_days))

        today = self.today()
        if next_date < today and not registration_path:
            logger.debug(f"next_practice_date: {next_date} lies in the past, corrected to today")
            next_date = today
        return next_date


def interval_days_between(from_date: date, to_date: date) -> float:
    """Whole days between two dates, never negative."""
    return float(max(0, (to_date - from_date).days))
