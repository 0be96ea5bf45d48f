"""Typed calendar edits and conversions between item kinds.

Each edit variant maps to exactly one store write; anything else is
rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Iterable, Union

from daybook.models import Habit, HabitOverride, Meeting, Task, WriteResult
from daybook.placement import habit_occurrence
from daybook.store import DataStore


@dataclass
class MeetingEdit:
    meeting_id: str | None = None  # None creates a new meeting
    patch: dict[str, Any] = field(default_factory=dict)


@dataclass
class HabitEdit:
    """Move one day's occurrence of a habit."""

    habit_id: str
    day: date
    time: str  # HH:MM


@dataclass
class TaskEdit:
    task_id: str
    patch: dict[str, Any] = field(default_factory=dict)


@dataclass
class SessionEdit:
    session_id: str
    patch: dict[str, Any] = field(default_factory=dict)


Edit = Union[MeetingEdit, HabitEdit, TaskEdit, SessionEdit]


def apply_edit(store: DataStore, user_id: str, edit: Edit) -> WriteResult:
    if isinstance(edit, MeetingEdit):
        if edit.meeting_id is None:
            return store.insert_meeting(user_id, Meeting.from_dict(edit.patch))
        return store.update_meeting(user_id, edit.meeting_id, edit.patch)
    if isinstance(edit, HabitEdit):
        return store.upsert_habit_override(user_id, edit.habit_id, edit.day, edit.time)
    if isinstance(edit, TaskEdit):
        return store.update_task(user_id, edit.task_id, edit.patch)
    if isinstance(edit, SessionEdit):
        return store.update_session(user_id, edit.session_id, edit.patch)
    raise TypeError(f"Unsupported edit: {type(edit).__name__}")


# ── Conversions ───────────────────────────────────────────────


def _at(day: date, minutes: float, tz: tzinfo | None) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=tz) + timedelta(minutes=minutes)


def habit_to_meeting(
    habit: Habit,
    day: date,
    overrides: Iterable[HabitOverride] = (),
    tz: tzinfo | None = None,
) -> Meeting | None:
    """The habit's occurrence on *day* as a one-off meeting, or None if it has no time."""
    item = habit_occurrence(habit, day, overrides)
    if item is None:
        return None
    return Meeting(
        title=habit.name,
        start_time=_at(day, item.start_minute, tz),
        end_time=_at(day, item.end_minute, tz),
        category_id=habit.category_id,
    )


def task_to_meeting(task: Task, day: date, tz: tzinfo | None = None) -> Meeting:
    if task.start_time is None:
        raise ValueError(f"Task {task.id} has no start time")
    start = _at(day, round(task.start_time * 60), tz)
    return Meeting(
        title=task.title,
        start_time=start,
        end_time=start + timedelta(minutes=round(task.duration * 60)),
    )
