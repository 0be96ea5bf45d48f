"""Category hours and weekly buffer utilization.

Groups meeting time by category over a range, joins it with each
category's weekly hour budget, and reserves remaining budget in free slots.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import Iterable, Sequence

from daybook.durations import is_in_progress
from daybook.models import (
    BufferBlock,
    BufferReport,
    BufferUtilization,
    Category,
    CategoryBuffer,
    CategoryMeetingData,
    Meeting,
    Slot,
    TimeRange,
)
from daybook.timeranges import is_in_range

logger = logging.getLogger(__name__)

UNCATEGORIZED_NAME = "Uncategorized"
UNCATEGORIZED_COLOR = "#9ca3af"
DEFAULT_COLOR = "#6b7280"


# ── Category hours ────────────────────────────────────────────


def filter_meetings_by_range(meetings: Iterable[Meeting], time_range: TimeRange) -> list[Meeting]:
    return [m for m in meetings if m.start_time is not None and is_in_range(m.start_time, time_range)]


def _bucket(category_id: str | None, name: str, color: str, meetings: list[Meeting]) -> CategoryMeetingData:
    minutes = sum(m.duration_minutes() for m in meetings)
    return CategoryMeetingData(
        id=category_id,
        name=name,
        color=color,
        total_hours=minutes / 60,
        total_minutes=minutes,
        meetings=meetings,
        in_progress=[m for m in meetings if is_in_progress(m)],
    )


def calculate_meeting_hours_by_category(
    meetings: Iterable[Meeting],
    categories: Iterable[Category],
    time_range: TimeRange,
) -> list[CategoryMeetingData]:
    """Sum in-range meeting time per category.

    Meetings without a category, or whose category no longer exists, land in
    the Uncategorized bucket (id None). Buckets are ordered by total hours
    descending, then name ascending.
    """
    by_id = {c.id: c for c in categories}
    groups: dict[str | None, list[Meeting]] = defaultdict(list)
    for m in filter_meetings_by_range(meetings, time_range):
        category_id = m.category_id or None
        if category_id is not None and category_id not in by_id:
            logger.warning("Meeting %s references unknown category %s; counting as %s",
                           m.id, category_id, UNCATEGORIZED_NAME)
            category_id = None
        groups[category_id].append(m)

    result = []
    for category_id, grouped in groups.items():
        if category_id is None:
            result.append(_bucket(None, UNCATEGORIZED_NAME, UNCATEGORIZED_COLOR, grouped))
        else:
            category = by_id[category_id]
            result.append(_bucket(category_id, category.name, category.color, grouped))

    result.sort(key=lambda d: (-d.total_hours, d.name))
    return result


def total_hours_across_categories(category_data: Iterable[CategoryMeetingData]) -> float:
    return sum(d.total_hours for d in category_data)


# ── Buffer utilization ────────────────────────────────────────


def compute_buffer_utilization(
    buffers: Iterable[CategoryBuffer],
    category_data: Iterable[CategoryMeetingData],
    categories: Iterable[Category] = (),
) -> list[BufferUtilization]:
    """Join each weekly buffer with the hours spent in its category.

    A buffer with no matching activity has spent 0 hours. The percentage is
    left unclamped so overruns show above 100.
    """
    spent_by_category = {d.id: d for d in category_data if d.id is not None}
    names = {c.id: c for c in categories}

    out = []
    for b in buffers:
        data = spent_by_category.get(b.category_id)
        category = names.get(b.category_id)
        hours_spent = data.total_hours if data else 0.0
        out.append(BufferUtilization(
            buffer_id=b.id,
            category_id=b.category_id,
            category_name=data.name if data else (category.name if category else "Unknown"),
            category_color=data.color if data else (category.color if category else DEFAULT_COLOR),
            weekly_hours=b.weekly_hours,
            hours_spent=hours_spent,
            hours_remaining=max(0.0, b.weekly_hours - hours_spent),
            utilization_percentage=(hours_spent / b.weekly_hours * 100) if b.weekly_hours > 0 else 0.0,
        ))
    return out


def uncategorized_activity(
    buffers: Iterable[CategoryBuffer],
    category_data: Iterable[CategoryMeetingData],
) -> CategoryMeetingData | None:
    """Merge activity with no buffer behind it into one Uncategorized entry."""
    buffered = {b.category_id for b in buffers}
    loose = [d for d in category_data if d.id is None or d.id not in buffered]
    if not loose:
        return None
    meetings = [m for d in loose for m in d.meetings]
    return _bucket(None, UNCATEGORIZED_NAME, UNCATEGORIZED_COLOR, meetings)


def aggregate_week_buffers(
    buffers: Sequence[CategoryBuffer],
    meetings: Iterable[Meeting],
    categories: Sequence[Category],
    week: TimeRange,
) -> BufferReport:
    category_data = calculate_meeting_hours_by_category(meetings, categories, week)
    return BufferReport(
        week=week,
        utilizations=compute_buffer_utilization(buffers, category_data, categories),
        uncategorized=uncategorized_activity(buffers, category_data),
    )


# ── Buffer block placement ────────────────────────────────────


def allocate_buffer_blocks(
    buffer_hours: float,
    empty_slots: Iterable[Slot],
    utilization: BufferUtilization,
) -> list[BufferBlock]:
    """Reserve *buffer_hours* in free slots, latest day and latest time first.

    Each block grows backwards over contiguous earlier slots until it covers
    what is still needed.
    """
    slots_by_day: dict = defaultdict(list)
    for slot in empty_slots:
        slots_by_day[slot.date].append(slot)
    if buffer_hours <= 0 or not slots_by_day:
        return []

    blocks: list[BufferBlock] = []
    remaining = buffer_hours
    for day in sorted(slots_by_day, reverse=True):
        day_slots = sorted(slots_by_day[day], key=lambda s: s.minute, reverse=True)
        i = 0
        while i < len(day_slots) and remaining > 0:
            block_start = day_slots[i].minute
            block_minutes = day_slots[i].granularity
            j = i + 1
            while (j < len(day_slots)
                   and day_slots[j].end_minute == block_start
                   and remaining * 60 > block_minutes):
                block_start = day_slots[j].minute
                block_minutes += day_slots[j].granularity
                j += 1

            hours = min(remaining, block_minutes / 60)
            blocks.append(BufferBlock(
                id=f"{utilization.buffer_id}-block-{len(blocks)}",
                buffer_id=utilization.buffer_id,
                category_id=utilization.category_id,
                category_name=utilization.category_name,
                category_color=utilization.category_color,
                date=day,
                start_hour=block_start / 60,
                duration=hours,
                remaining_hours=buffer_hours,
            ))
            remaining -= hours
            i = j
        if remaining <= 0:
            break
    return blocks


def _block_slot_keys(block: BufferBlock, granularity: int) -> list[str]:
    start = round(block.start_hour * 60)
    count = math.ceil(round(block.duration * 60, 6) / granularity)
    return [Slot(date=block.date, minute=start + k * granularity, granularity=granularity).key
            for k in range(count)]


def prioritize_buffer_placement(
    utilizations: Iterable[BufferUtilization],
    empty_slots: Sequence[Slot],
) -> list[BufferBlock]:
    """Place every buffer's remaining hours without sharing slots.

    Buffers furthest behind (lowest utilization) go first; ties favour the
    larger weekly budget.
    """
    ordered = sorted(utilizations, key=lambda u: (u.utilization_percentage, -u.weekly_hours))
    granularity = empty_slots[0].granularity if empty_slots else 15
    used: set[str] = set()
    placed: list[BufferBlock] = []
    for u in ordered:
        if u.hours_remaining <= 0:
            continue
        available = [s for s in empty_slots if s.key not in used]
        blocks = allocate_buffer_blocks(u.hours_remaining, available, u)
        for block in blocks:
            used.update(_block_slot_keys(block, granularity))
        placed.extend(blocks)
    return placed
