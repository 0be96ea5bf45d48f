"""Data-access contract and the YAML workspace adapter.

The scheduling core never talks to storage directly: a DataStore is handed
to the service layer. Every write returns a WriteResult naming the cached
day grids and weekly reports it makes stale.
"""

from __future__ import annotations

import logging
import re
import uuid
from abc import ABC, abstractmethod
from datetime import date, datetime, tzinfo
from pathlib import Path
from typing import Any

from daybook.errors import NotFoundError
from daybook.fileio import read_collection, read_yaml, write_collection
from daybook.models import (
    Category,
    CategoryBuffer,
    Habit,
    HabitOverride,
    Meeting,
    Session,
    Task,
    TaskLog,
    TimeRange,
    UserSettings,
    WriteResult,
    parse_clock,
)
from daybook.placement import PULL_BACK_RULE
from daybook.scheduler import DAY_KEY_PREFIX, WEEK_KEY_PREFIX, day_key, week_key
from daybook.timeranges import week_range
from daybook.workspace import collection_path, get_user_timezone, settings_path, workspace_root

logger = logging.getLogger(__name__)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def snake_keys(patch: dict[str, Any]) -> dict[str, Any]:
    """Normalize camelCase patch keys ('startTime') to snake_case."""
    return {_CAMEL_RE.sub("_", k).lower(): v for k, v in patch.items()}


def _local_date(moment: datetime, tz: tzinfo | None) -> date:
    if tz is not None and moment.tzinfo is not None:
        moment = moment.astimezone(tz)
    return moment.date()


def meeting_days(meeting: Meeting, tz: tzinfo | None = None) -> list[date]:
    """Local dates a meeting touches (one for in-progress meetings)."""
    if meeting.start_time is None:
        return []
    first = _local_date(meeting.start_time, tz)
    last = _local_date(meeting.end_time, tz) if meeting.end_time else first
    return [date.fromordinal(o) for o in range(first.toordinal(), max(first, last).toordinal() + 1)]


def day_invalidations(days: list[date], week_start_day: str, include_week: bool = True) -> list[str]:
    """Cache keys for the given day grids and, optionally, their weeks."""
    keys: list[str] = []
    for d in days:
        keys.append(day_key(d))
        if include_week:
            keys.append(week_key(week_range(d, week_start_day).start.date()))
    return list(dict.fromkeys(keys))


# ── Contract ──────────────────────────────────────────────────


class DataStore(ABC):
    """Abstract interface for per-user calendar data.

    Fetches take the owning user id first and never cross users. Writes
    raise NotFoundError for unknown ids.
    """

    @abstractmethod
    def get_user_settings(self, user_id: str) -> UserSettings:
        pass

    @abstractmethod
    def fetch_meetings(self, user_id: str, window: date | TimeRange | None = None) -> list[Meeting]:
        """
        Meetings for one day or a time range.

        Args:
            user_id: Owner user ID
            window: A date (meetings touching that local day), a TimeRange
                (meetings starting inside it) or None for all

        Returns:
            Matching meetings
        """
        pass

    @abstractmethod
    def fetch_habits(self, user_id: str) -> list[Habit]:
        pass

    @abstractmethod
    def fetch_habit_daily_overrides(self, user_id: str, day: date) -> list[HabitOverride]:
        """Overrides dated on or before *day*; earlier ones feed the pull-back rule."""
        pass

    @abstractmethod
    def fetch_sessions(self, user_id: str, day: date) -> list[Session]:
        pass

    @abstractmethod
    def fetch_task_logs(self, user_id: str, day: date) -> list[TaskLog]:
        pass

    @abstractmethod
    def fetch_tasks(self, user_id: str, project_id: str | None = None) -> list[Task]:
        """Flat task list in stored order; subtasks reference parent_task_id."""
        pass

    @abstractmethod
    def fetch_category_buffers(self, user_id: str) -> list[CategoryBuffer]:
        pass

    @abstractmethod
    def fetch_meeting_categories(self, user_id: str) -> list[Category]:
        pass

    @abstractmethod
    def upsert_habit_override(self, user_id: str, habit_id: str, day: date, time: str) -> WriteResult:
        """
        Set a habit's start time for one date.

        Invalidates that day's grid and its week's buffer report. For a
        pull-back habit every later day shifts too, so all grids and
        reports are invalidated.
        """
        pass

    @abstractmethod
    def update_task(self, user_id: str, task_id: str, patch: dict[str, Any]) -> WriteResult:
        pass

    @abstractmethod
    def insert_meeting(self, user_id: str, meeting: Meeting) -> WriteResult:
        pass

    @abstractmethod
    def update_meeting(self, user_id: str, meeting_id: str, patch: dict[str, Any]) -> WriteResult:
        pass

    @abstractmethod
    def update_session(self, user_id: str, session_id: str, patch: dict[str, Any]) -> WriteResult:
        pass


# ── YAML workspace ────────────────────────────────────────────


class YamlStore(DataStore):
    """DataStore over ``<root>/users/<user_id>/<collection>.yaml``.

    Each collection file holds a single list under its own name, e.g.
    ``meetings: [...]``. Writes replace the whole file atomically.
    """

    def __init__(self, root: Path | None = None):
        self.root = root if root is not None else workspace_root()

    def _load(self, user_id: str, name: str) -> list[dict[str, Any]]:
        return read_collection(collection_path(user_id, name, self.root), name)

    def _save(self, user_id: str, name: str, items: list[dict[str, Any]]) -> None:
        write_collection(collection_path(user_id, name, self.root), name, items)

    def _tz(self, user_id: str) -> tzinfo:
        return get_user_timezone(user_id, self.root)

    def _index(self, items: list[dict[str, Any]], item_id: str, kind: str) -> int:
        for i, d in enumerate(items):
            if str(d.get("id", "")) == item_id:
                return i
        raise NotFoundError(f"{kind} not found: {item_id}", details={"id": item_id})

    # Reads

    def get_user_settings(self, user_id: str) -> UserSettings:
        return UserSettings.from_dict(read_yaml(settings_path(user_id, self.root)))

    def fetch_meetings(self, user_id: str, window: date | TimeRange | None = None) -> list[Meeting]:
        tz = self._tz(user_id)
        meetings = [Meeting.from_dict(d, tz) for d in self._load(user_id, "meetings")]
        if window is None:
            return meetings
        if isinstance(window, TimeRange):
            return [m for m in meetings if m.start_time is not None and window.contains(m.start_time)]
        return [m for m in meetings if window in meeting_days(m, tz)]

    def fetch_habits(self, user_id: str) -> list[Habit]:
        return [Habit.from_dict(d) for d in self._load(user_id, "habits")]

    def fetch_habit_daily_overrides(self, user_id: str, day: date) -> list[HabitOverride]:
        overrides = [HabitOverride.from_dict(d) for d in self._load(user_id, "habit_overrides")]
        return [o for o in overrides if o.log_date is not None and o.log_date <= day]

    def fetch_sessions(self, user_id: str, day: date) -> list[Session]:
        sessions = [Session.from_dict(d) for d in self._load(user_id, "sessions")]
        return [s for s in sessions if s.scheduled_date == day]

    def fetch_task_logs(self, user_id: str, day: date) -> list[TaskLog]:
        logs = [TaskLog.from_dict(d) for d in self._load(user_id, "task_logs")]
        return [t for t in logs if t.log_date == day]

    def fetch_tasks(self, user_id: str, project_id: str | None = None) -> list[Task]:
        tasks = [Task.from_dict(d) for d in self._load(user_id, "tasks")]
        if project_id is None:
            return tasks
        return [t for t in tasks if t.project_id == project_id]

    def fetch_category_buffers(self, user_id: str) -> list[CategoryBuffer]:
        return [CategoryBuffer.from_dict(d) for d in self._load(user_id, "buffers")]

    def fetch_meeting_categories(self, user_id: str) -> list[Category]:
        return [Category.from_dict(d) for d in self._load(user_id, "categories")]

    # Writes

    def upsert_habit_override(self, user_id: str, habit_id: str, day: date, time: str) -> WriteResult:
        parse_clock(time)
        habit = next((h for h in self.fetch_habits(user_id) if h.id == habit_id), None)
        if habit is None:
            raise NotFoundError(f"Habit not found: {habit_id}", details={"id": habit_id})

        items = self._load(user_id, "habit_overrides")
        override = None
        for i, d in enumerate(items):
            existing = HabitOverride.from_dict(d)
            if existing.habit_id == habit_id and existing.log_date == day:
                existing.scheduled_start_time = time
                items[i] = existing.to_dict()
                override = existing
                break
        if override is None:
            override = HabitOverride(habit_id=habit_id, log_date=day, scheduled_start_time=time)
            items.append(override.to_dict())
        self._save(user_id, "habit_overrides", items)
        logger.info("Habit %s set to %s on %s for %s", habit_id, time, day, user_id)

        if habit.scheduling_rule == PULL_BACK_RULE:
            # Every later date counts back from this override.
            return WriteResult(value=override, invalidates=[f"{DAY_KEY_PREFIX}*", f"{WEEK_KEY_PREFIX}*"])
        week_start_day = self.get_user_settings(user_id).week_start_day
        return WriteResult(value=override, invalidates=day_invalidations([day], week_start_day))

    def update_task(self, user_id: str, task_id: str, patch: dict[str, Any]) -> WriteResult:
        items = self._load(user_id, "tasks")
        i = self._index(items, task_id, "Task")
        merged = Task.from_dict(items[i]).to_dict()
        merged.update(snake_keys(patch))
        merged["id"] = task_id
        updated = Task.from_dict(merged)
        items[i] = updated.to_dict()
        self._save(user_id, "tasks", items)
        # Any day may have scheduled this task.
        return WriteResult(value=updated, invalidates=[f"{DAY_KEY_PREFIX}*"])

    def insert_meeting(self, user_id: str, meeting: Meeting) -> WriteResult:
        items = self._load(user_id, "meetings")
        if not meeting.id:
            meeting.id = uuid.uuid4().hex
        elif any(str(d.get("id", "")) == meeting.id for d in items):
            raise ValueError(f"Meeting ID already exists: {meeting.id}")
        items.append(meeting.to_dict())
        self._save(user_id, "meetings", items)

        tz = self._tz(user_id)
        week_start_day = self.get_user_settings(user_id).week_start_day
        return WriteResult(value=meeting, invalidates=day_invalidations(meeting_days(meeting, tz), week_start_day))

    def update_meeting(self, user_id: str, meeting_id: str, patch: dict[str, Any]) -> WriteResult:
        tz = self._tz(user_id)
        items = self._load(user_id, "meetings")
        i = self._index(items, meeting_id, "Meeting")
        before = Meeting.from_dict(items[i], tz)
        merged = before.to_dict()
        merged.update(snake_keys(patch))
        merged["id"] = meeting_id
        after = Meeting.from_dict(merged, tz)
        items[i] = after.to_dict()
        self._save(user_id, "meetings", items)

        # Both the old and the new position change.
        days = sorted(set(meeting_days(before, tz)) | set(meeting_days(after, tz)))
        week_start_day = self.get_user_settings(user_id).week_start_day
        return WriteResult(value=after, invalidates=day_invalidations(days, week_start_day))

    def update_session(self, user_id: str, session_id: str, patch: dict[str, Any]) -> WriteResult:
        items = self._load(user_id, "sessions")
        i = self._index(items, session_id, "Session")
        before = Session.from_dict(items[i])
        merged = before.to_dict()
        merged.update(snake_keys(patch))
        merged["id"] = session_id
        after = Session.from_dict(merged)
        items[i] = after.to_dict()
        self._save(user_id, "sessions", items)

        days = sorted({d for d in (before.scheduled_date, after.scheduled_date) if d is not None})
        return WriteResult(value=after, invalidates=day_invalidations(days, "monday", include_week=False))
