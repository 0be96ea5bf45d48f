"""Shared test fixtures for Daybook tests."""

from __future__ import annotations

import os
from datetime import date
from pathlib import Path
from typing import Any

import pytest
import yaml

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
)
from daybook.scheduler import day_key
from daybook.store import DataStore

# Monday of the fixture week.
WEEK_START = date(2025, 7, 21)


def _dump(path: Path, data: dict[str, Any]) -> None:
    path.write_text(yaml.dump(data, default_flow_style=False), encoding="utf-8")


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace with one user ("guest")."""
    root = tmp_path / "workspace"
    user = root / "users" / "guest"
    user.mkdir(parents=True)

    # Settings
    _dump(user / "settings.yaml", {
        "timezone": "UTC",
        "work_hours_start": 9,
        "work_hours_end": "17:00",
        "week_start_day": "monday",
        "slot_minutes": 15,
    })

    # Categories & buffers
    _dump(user / "categories.yaml", {"categories": [
        {"id": "c-eng", "name": "Engineering", "color": "#2563eb"},
        {"id": "c-mgmt", "name": "Management", "color": "#16a34a"},
        {"id": "c-sales", "name": "Sales", "color": "#f59e0b"},
    ]})
    _dump(user / "buffers.yaml", {"buffers": [
        {"id": "b-eng", "category_id": "c-eng", "weekly_hours": 10},
        {"id": "b-sales", "categoryId": "c-sales", "weeklyHours": 4},
    ]})

    # Meetings
    _dump(user / "meetings.yaml", {"meetings": [
        {"id": "m1", "title": "Standup", "start_time": "2025-07-21T09:00:00",
         "end_time": "2025-07-21T09:30:00", "category_id": "c-eng"},
        {"id": "m2", "title": "Design review", "start_time": "2025-07-22T13:00:00Z",
         "end_time": "2025-07-22T14:00:00Z", "category_id": "c-eng"},
        {"id": "m3", "title": "1:1", "startTime": "2025-07-23T10:00:00",
         "endTime": "2025-07-23T10:45:00", "categoryId": "c-mgmt"},
        {"id": "m4", "title": "Lunch chat", "start_time": "2025-07-21T12:00:00",
         "end_time": "2025-07-21T12:30:00"},
    ]})

    # Habits
    _dump(user / "habits.yaml", {"habits": [
        {"id": "h-read", "name": "Reading", "current_start_time": "16:00", "duration": 30},
    ]})
    _dump(user / "habit_overrides.yaml", {"habit_overrides": []})

    # Sessions & logs
    _dump(user / "sessions.yaml", {"sessions": [
        {"id": "s1", "project_id": "p1", "title": "Deep work", "scheduled_date": "2025-07-21",
         "actual_start_time": "14:00:00+00", "actual_end_time": "15:00:00+00", "scheduled_hours": 1},
    ]})
    _dump(user / "task_logs.yaml", {"task_logs": []})

    # Tasks
    _dump(user / "tasks.yaml", {"tasks": [
        {"id": "t1", "title": "Write report", "project_id": "p1", "duration": 1.0, "status": "todo"},
        {"id": "t2", "title": "Review PR", "project_id": "p1", "duration": 0.5, "status": "todo"},
        {"id": "t3", "title": "Old task", "project_id": "p1", "duration": 2, "status": "completed"},
        {"id": "t4", "title": "Report appendix", "project_id": "p1", "duration": 0.25,
         "parent_task_id": "t1", "status": "todo"},
    ]})

    os.environ["DAYBOOK_ROOT"] = str(root)
    yield root
    if "DAYBOOK_ROOT" in os.environ:
        del os.environ["DAYBOOK_ROOT"]


class FakeStore(DataStore):
    """In-memory DataStore that counts fetches and records writes."""

    def __init__(self, **collections: Any):
        self.settings = collections.pop("settings", UserSettings(work_hours_start=9, work_hours_end=17))
        self.meetings: list[Meeting] = collections.pop("meetings", [])
        self.habits: list[Habit] = collections.pop("habits", [])
        self.overrides: list[HabitOverride] = collections.pop("overrides", [])
        self.sessions: list[Session] = collections.pop("sessions", [])
        self.task_logs: list[TaskLog] = collections.pop("task_logs", [])
        self.tasks: list[Task] = collections.pop("tasks", [])
        self.buffers: list[CategoryBuffer] = collections.pop("buffers", [])
        self.categories: list[Category] = collections.pop("categories", [])
        self.fetches = 0
        self.writes: list[tuple[str, tuple[Any, ...]]] = []

    def get_user_settings(self, user_id):
        return self.settings

    def fetch_meetings(self, user_id, window=None):
        self.fetches += 1
        if isinstance(window, TimeRange):
            return [m for m in self.meetings if m.start_time and window.contains(m.start_time)]
        if isinstance(window, date):
            return [m for m in self.meetings if m.start_time and m.start_time.date() == window]
        return list(self.meetings)

    def fetch_habits(self, user_id):
        return list(self.habits)

    def fetch_habit_daily_overrides(self, user_id, day):
        return [o for o in self.overrides if o.log_date and o.log_date <= day]

    def fetch_sessions(self, user_id, day):
        return [s for s in self.sessions if s.scheduled_date == day]

    def fetch_task_logs(self, user_id, day):
        return [t for t in self.task_logs if t.log_date == day]

    def fetch_tasks(self, user_id, project_id=None):
        return [t for t in self.tasks if project_id is None or t.project_id == project_id]

    def fetch_category_buffers(self, user_id):
        return list(self.buffers)

    def fetch_meeting_categories(self, user_id):
        return list(self.categories)

    def upsert_habit_override(self, user_id, habit_id, day, time):
        self.writes.append(("upsert_habit_override", (habit_id, day, time)))
        self.overrides = [o for o in self.overrides if not (o.habit_id == habit_id and o.log_date == day)]
        override = HabitOverride(habit_id=habit_id, log_date=day, scheduled_start_time=time)
        self.overrides.append(override)
        return WriteResult(value=override, invalidates=[day_key(day)])

    def update_task(self, user_id, task_id, patch):
        self.writes.append(("update_task", (task_id, patch)))
        return WriteResult(value=task_id, invalidates=["daySlotGrid:*"])

    def insert_meeting(self, user_id, meeting):
        self.writes.append(("insert_meeting", (meeting,)))
        self.meetings.append(meeting)
        return WriteResult(value=meeting, invalidates=[day_key(meeting.start_time.date())])

    def update_meeting(self, user_id, meeting_id, patch):
        self.writes.append(("update_meeting", (meeting_id, patch)))
        return WriteResult(value=meeting_id)

    def update_session(self, user_id, session_id, patch):
        self.writes.append(("update_session", (session_id, patch)))
        return WriteResult(value=session_id)


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()
