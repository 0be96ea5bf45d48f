"""Fixed-item placement onto the slot grid.

Meetings, habit occurrences, project sessions and logged task blocks are
normalized to FixedItem intervals for one date and then projected onto the
grid. Overlapping items share slots; any occupant makes a slot unavailable
to the task auto-scheduler.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, tzinfo
from typing import Iterable, Sequence

from daybook.errors import NotFoundError
from daybook.models import (
    DAY_NAMES,
    FixedItem,
    Habit,
    HabitOverride,
    Meeting,
    Occupant,
    OccupiedSlot,
    Session,
    Slot,
    TaskLog,
    format_clock,
    parse_clock,
)

logger = logging.getLogger(__name__)

PULL_BACK_RULE = "pull_back_15min"
PULL_BACK_MINUTES = 15
MINUTES_PER_DAY = 24 * 60


# ── Habit start resolution ────────────────────────────────────


def _override_for(habit_id: str, day: date, overrides: Iterable[HabitOverride]) -> HabitOverride | None:
    for o in overrides:
        if o.habit_id == habit_id and o.log_date == day:
            return o
    return None


def _pull_back(habit: Habit, day: date, base_time: str, overrides: Iterable[HabitOverride]) -> str:
    """Move the start 15 minutes earlier for each day since the latest log.

    A log without a start time still resets the count, from the base time.
    """
    logs = sorted(
        (o for o in overrides if o.habit_id == habit.id and o.log_date and o.log_date <= day),
        key=lambda o: o.log_date,
        reverse=True,
    )
    latest = logs[0] if logs else None
    reference_time = (latest.scheduled_start_time if latest else None) or base_time
    reference_date = latest.log_date if latest else day
    days_forward = (day - reference_date).days
    if days_forward <= 0:
        return reference_time
    minutes = max(0, parse_clock(reference_time) - days_forward * PULL_BACK_MINUTES)
    return format_clock(minutes)


def resolve_habit_start(habit: Habit, day: date, overrides: Iterable[HabitOverride] = ()) -> str | None:
    """Effective start time of *habit* on *day*.

    Precedence: per-day override for that exact date, then the day-of-week
    time, then the habit's default start time.
    """
    overrides = list(overrides)
    override = _override_for(habit.id, day, overrides)
    if override and override.scheduled_start_time:
        return override.scheduled_start_time

    base = habit.day_of_week_times.get(DAY_NAMES[day.weekday()]) or habit.current_start_time
    if base and habit.scheduling_rule == PULL_BACK_RULE:
        base = _pull_back(habit, day, base, overrides)
    return base


# ── Normalization ─────────────────────────────────────────────


def _wall_minutes(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def _localize(moment: datetime, tz: tzinfo | None) -> datetime:
    if tz is None:
        return moment
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone(tz)


def habit_occurrence(habit: Habit, day: date, overrides: Iterable[HabitOverride] = ()) -> FixedItem | None:
    overrides = list(overrides)
    start_str = resolve_habit_start(habit, day, overrides)
    if not start_str:
        return None
    start = parse_clock(start_str)
    override = _override_for(habit.id, day, overrides)
    duration = override.duration if override and override.duration else habit.duration
    return FixedItem(
        kind="habit",
        item_id=habit.id,
        title=habit.name,
        date=day,
        start_minute=start,
        end_minute=min(MINUTES_PER_DAY, start + duration),
        category_id=habit.category_id,
    )


def meeting_to_fixed(meeting: Meeting, day: date, tz: tzinfo | None = None) -> FixedItem | None:
    """Clip a meeting to the part that falls on *day* in the user's timezone."""
    if meeting.start_time is None or meeting.status == "cancelled":
        return None
    start = _localize(meeting.start_time, tz)
    if meeting.end_time is None:
        if start.date() != day:
            return None
        return FixedItem(
            kind="meeting",
            item_id=meeting.id,
            title=meeting.title,
            date=day,
            start_minute=_wall_minutes(start),
            end_minute=None,
            category_id=meeting.category_id,
        )

    end = _localize(meeting.end_time, tz)
    if start.date() > day or end.date() < day:
        return None
    start_minute = 0 if start.date() < day else _wall_minutes(start)
    if end.date() > day:
        end_minute = MINUTES_PER_DAY
    else:
        end_minute = _wall_minutes(end) + (1 if end.second or end.microsecond else 0)
    if end_minute <= start_minute:
        return None
    return FixedItem(
        kind="meeting",
        item_id=meeting.id,
        title=meeting.title,
        date=day,
        start_minute=start_minute,
        end_minute=end_minute,
        category_id=meeting.category_id,
    )


def session_to_fixed(session: Session, day: date) -> FixedItem | None:
    if session.scheduled_date != day or not session.actual_start_time or session.status == "cancelled":
        return None
    start = parse_clock(session.actual_start_time)
    if session.actual_end_time:
        end = parse_clock(session.actual_end_time)
        if end <= start:
            end = MINUTES_PER_DAY
    elif session.scheduled_hours > 0:
        end = min(MINUTES_PER_DAY, start + round(session.scheduled_hours * 60))
    else:
        end = None
    return FixedItem(
        kind="session",
        item_id=session.id,
        title=session.title,
        date=day,
        start_minute=start,
        end_minute=end,
        category_id=session.category_id,
    )


def task_log_to_fixed(log: TaskLog, day: date) -> FixedItem | None:
    start_str = log.actual_start_time or log.scheduled_start_time
    if log.log_date != day or not start_str:
        return None
    start = parse_clock(start_str)
    hours = log.actual_duration or log.estimated_hours or 1
    return FixedItem(
        kind="task_log",
        item_id=log.id,
        title=log.title,
        date=day,
        start_minute=start,
        end_minute=min(MINUTES_PER_DAY, start + round(hours * 60)),
    )


def _habit_for(override: HabitOverride, habits_by_id: dict[str, Habit]) -> Habit:
    habit = habits_by_id.get(override.habit_id)
    if habit is None:
        raise NotFoundError(f"Habit not found: {override.habit_id}", details=override.to_dict())
    return habit


def collect_fixed_items(
    day: date,
    meetings: Iterable[Meeting] = (),
    habits: Iterable[Habit] = (),
    overrides: Iterable[HabitOverride] = (),
    sessions: Iterable[Session] = (),
    task_logs: Iterable[TaskLog] = (),
    tz: tzinfo | None = None,
) -> list[FixedItem]:
    """Normalize every entity that occupies time on *day*.

    Items that cannot be resolved are logged and skipped; the rest of the
    pass continues.
    """
    habits = list(habits)
    overrides = list(overrides)
    habits_by_id = {h.id: h for h in habits}

    valid_overrides = []
    for o in overrides:
        try:
            _habit_for(o, habits_by_id)
        except NotFoundError as e:
            logger.warning("Skipping habit override on %s: %s", o.log_date, e.message)
            continue
        valid_overrides.append(o)

    converted = (
        [_try_convert(meeting_to_fixed, m, day, tz) for m in meetings]
        + [_try_convert(habit_occurrence, h, day, valid_overrides) for h in habits]
        + [_try_convert(session_to_fixed, s, day) for s in sessions]
        + [_try_convert(task_log_to_fixed, t, day) for t in task_logs]
    )
    return [item for item in converted if item is not None]


def _try_convert(convert, entity, *args) -> FixedItem | None:
    try:
        return convert(entity, *args)
    except ValueError as e:
        # Malformed clock strings and the like.
        logger.warning("Skipping %s %s: %s", type(entity).__name__, getattr(entity, "id", ""), e)
        return None


# ── Placement ─────────────────────────────────────────────────


def place_fixed_items(slots: Sequence[Slot], items: Iterable[FixedItem]) -> list[OccupiedSlot]:
    """Mark every slot whose interval intersects an item's interval.

    In-progress items (no end yet) occupy the slot containing their start.
    Zero-length items occupy nothing.
    """
    occupied = [OccupiedSlot(slot=s) for s in slots]
    for item in items:
        if item.end_minute is not None and item.end_minute <= item.start_minute:
            logger.debug("Skipping zero-length %s %s", item.kind, item.item_id)
            continue
        end = item.start_minute + 1 if item.end_minute is None else item.end_minute
        occupant = Occupant(
            kind=item.kind,
            item_id=item.item_id,
            title=item.title,
            category_id=item.category_id,
        )
        for occ in occupied:
            if item.date is not None and occ.slot.date != item.date:
                continue
            if occ.slot.intersects(item.start_minute, end):
                occ.occupants.append(occupant)
    return occupied


def free_slots(occupied: Iterable[OccupiedSlot]) -> list[Slot]:
    return [o.slot for o in occupied if o.is_free]
