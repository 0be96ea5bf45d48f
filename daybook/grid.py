"""Slot grid: a day discretized into fixed-width slots within work hours."""

from __future__ import annotations

from datetime import date
from typing import Iterable

from daybook.errors import ConfigurationError
from daybook.models import DAY_NAMES, Slot, UserSettings, normalize_weekday, parse_clock

MINUTES_PER_DAY = 24 * 60


def validate_granularity(granularity: int) -> None:
    if granularity <= 0 or 60 % granularity:
        raise ConfigurationError(
            f"Slot granularity must divide an hour, got {granularity} minutes",
            details={"slot_minutes": granularity},
        )


def work_window(day: date, settings: UserSettings, granularity: int) -> tuple[int, int]:
    """Return the [start, end) minutes of the schedulable window for *day*.

    On the configured week-ending day the window closes at the week-ending
    time when that comes first.
    """
    start = round(settings.work_hours_start * 60)
    end = round(settings.work_hours_end * 60)
    details = {"work_hours_start": settings.work_hours_start, "work_hours_end": settings.work_hours_end}
    if not (0 <= start <= MINUTES_PER_DAY and 0 <= end <= MINUTES_PER_DAY):
        raise ConfigurationError("Work hours must fall within 00:00-24:00", details=details)
    if end <= start:
        raise ConfigurationError("Work hours end must be after start", details=details)
    if start % granularity or end % granularity:
        raise ConfigurationError(
            f"Work hours must align to {granularity}-minute slots", details=details
        )

    if settings.week_ending_day and settings.week_ending_time:
        try:
            ending_day = normalize_weekday(settings.week_ending_day)
            cutoff = parse_clock(settings.week_ending_time)
        except ValueError as e:
            raise ConfigurationError(str(e), details=settings.to_dict()) from e
        if ending_day == DAY_NAMES[day.weekday()]:
            # Round down to the last whole slot before the cutoff.
            cutoff -= cutoff % granularity
            end = max(start, min(end, cutoff))
    return start, end


def build_day_slot_grid(day: date, settings: UserSettings, granularity: int | None = None) -> list[Slot]:
    """Generate the ordered slots covering exactly the work-hour window of *day*.

    Raises ConfigurationError for invalid bounds rather than correcting them.
    """
    granularity = granularity or settings.slot_minutes
    validate_granularity(granularity)
    start, end = work_window(day, settings, granularity)
    return [Slot(date=day, minute=m, granularity=granularity) for m in range(start, end, granularity)]


def build_week_slot_grids(days: Iterable[date], settings: UserSettings) -> dict[date, list[Slot]]:
    return {d: build_day_slot_grid(d, settings) for d in days}
