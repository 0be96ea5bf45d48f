"""Week and rolling-day windows anchored to the wall clock.

``this_week``, ``last_week`` and ``last_7_days`` read "now" at call time;
``week_range`` is the pure helper they share.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo

from daybook.models import DAY_NAMES, TimeRange, normalize_weekday

PERIODS = ("thisWeek", "lastWeek", "last7Days")


def _now(tz: tzinfo) -> datetime:
    return datetime.now(tz)


def _tz(tz: tzinfo | None) -> tzinfo:
    return tz if tz is not None else ZoneInfo("UTC")


def start_of_day(day: date, tz: tzinfo | None = None) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=_tz(tz))


def end_of_day(day: date, tz: tzinfo | None = None) -> datetime:
    return datetime(day.year, day.month, day.day, 23, 59, 59, 999000, tzinfo=_tz(tz))


def week_range(day: date, week_start_day: str = "monday", tz: tzinfo | None = None) -> TimeRange:
    """The full week containing *day*, from 00:00:00.000 to 23:59:59.999."""
    first_weekday = DAY_NAMES.index(normalize_weekday(week_start_day))
    first = day - timedelta(days=(day.weekday() - first_weekday) % 7)
    return TimeRange(start_of_day(first, tz), end_of_day(first + timedelta(days=6), tz))


def this_week(tz: tzinfo | None = None, week_start_day: str = "monday") -> TimeRange:
    return week_range(_now(_tz(tz)).date(), week_start_day, tz)


def last_week(tz: tzinfo | None = None, week_start_day: str = "monday") -> TimeRange:
    return week_range(_now(_tz(tz)).date() - timedelta(days=7), week_start_day, tz)


def last_7_days(tz: tzinfo | None = None) -> TimeRange:
    """Rolling window: six days ago at midnight through the end of today."""
    today = _now(_tz(tz)).date()
    return TimeRange(start_of_day(today - timedelta(days=6), tz), end_of_day(today, tz))


def range_for_period(period: str, tz: tzinfo | None = None, week_start_day: str = "monday") -> TimeRange:
    if period == "thisWeek":
        return this_week(tz, week_start_day)
    if period == "lastWeek":
        return last_week(tz, week_start_day)
    if period == "last7Days":
        return last_7_days(tz)
    raise ValueError(f"Unknown period: {period}")


def is_in_range(moment: datetime, time_range: TimeRange) -> bool:
    """Closed-interval membership; both boundaries count as in range."""
    return time_range.contains(moment)


def days_in_range(time_range: TimeRange) -> list[date]:
    first, last = time_range.start.date(), time_range.end.date()
    return [first + timedelta(days=i) for i in range((last - first).days + 1)]


def format_time_range(time_range: TimeRange) -> str:
    """'Jul 21 - Jul 27, 2025'."""
    s, e = time_range.start, time_range.end
    return f"{s:%b} {s.day} - {e:%b} {e.day}, {e.year}"
