"""Duration sums and hour formatting."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Iterable


def duration_minutes(start: datetime | None, end: datetime | None) -> float:
    """Minutes between start and end, never negative.

    Items without an end are still in progress and contribute 0.
    """
    if start is None or end is None:
        return 0.0
    return max(0.0, (end - start).total_seconds() / 60)


def is_in_progress(item: Any) -> bool:
    return getattr(item, "start_time", None) is not None and getattr(item, "end_time", None) is None


def total_minutes(items: Iterable[Any]) -> float:
    return sum(duration_minutes(i.start_time, i.end_time) for i in items)


def total_hours(items: Iterable[Any]) -> float:
    return total_minutes(items) / 60


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def format_hours(hours: float) -> str:
    """Format hours for display: 0 -> '0h', 0.5 -> '30m', 2.25 -> '2h 15m'."""
    if hours <= 0:
        return "0h"
    if hours < 1:
        return f"{_round_half_up(hours * 60)}m"
    whole = math.floor(hours)
    minutes = _round_half_up((hours - whole) * 60)
    if minutes == 60:
        whole, minutes = whole + 1, 0
    if minutes == 0:
        return f"{whole}h"
    return f"{whole}h {minutes}m"
