"""Date utility used for pro-rating and default dates."""
from __future__ import annotations

import calendar
from datetime import date, timedelta

from django.utils import timezone


class SystemClock:
    """Calendar facts from the configured Django time zone."""

    def today(self) -> date:
        return timezone.localdate()

    def days_in_month(self, year: int, month: int) -> int:
        return calendar.monthrange(year, month)[1]


class FixedClock(SystemClock):
    """Clock frozen on a given day; used by scripts and tests."""

    def __init__(self, today: date) -> None:
        self._today = today

    def today(self) -> date:
        return self._today


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of the month."""
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def week_bounds(day: date) -> tuple[date, date]:
    """Monday-to-Sunday week containing ``day``."""
    start = day - timedelta(days=day.weekday())
    return start, start + timedelta(days=6)
