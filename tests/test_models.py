"""Tests for daybook/models.py — parsing, aliases and derived fields."""

import dataclasses
from datetime import date, datetime, timezone

import pytest

from daybook.models import (
    BufferUtilization,
    Habit,
    HabitOverride,
    Meeting,
    Session,
    Slot,
    Task,
    TimeRange,
    UserSettings,
    WriteResult,
    format_clock,
    parse_clock,
    parse_timestamp,
)


def test_time_range_rejects_reversed():
    with pytest.raises(ValueError):
        TimeRange(datetime(2025, 7, 22, tzinfo=timezone.utc), datetime(2025, 7, 21, tzinfo=timezone.utc))


def test_time_range_contains_is_inclusive_at_ms_precision():
    tr = TimeRange(
        datetime(2025, 7, 21, tzinfo=timezone.utc),
        datetime(2025, 7, 21, 23, 59, 59, 999000, tzinfo=timezone.utc),
    )
    assert tr.contains(tr.start)
    assert tr.contains(tr.end)
    # Sub-millisecond remainder compares equal to the end.
    assert tr.contains(datetime(2025, 7, 21, 23, 59, 59, 999500, tzinfo=timezone.utc))
    assert not tr.contains(datetime(2025, 7, 22, tzinfo=timezone.utc))


def test_slot_derived_fields():
    slot = Slot(date=date(2025, 7, 21), minute=570)
    assert slot.time == "09:30"
    assert slot.hour == 9.5
    assert slot.end_minute == 585
    assert slot.key == "2025-07-21-09:30"


def test_slot_is_frozen():
    slot = Slot(date=date(2025, 7, 21), minute=540)
    with pytest.raises(dataclasses.FrozenInstanceError):
        slot.minute = 555


def test_parse_clock_ignores_offset():
    assert parse_clock("13:00:00+00") == 780
    assert parse_clock("09:15") == 555
    assert format_clock(555) == "09:15"
    with pytest.raises(ValueError):
        parse_clock("noon")
    with pytest.raises(ValueError):
        parse_clock("25:00")


def test_parse_timestamp_variants():
    assert parse_timestamp("2025-07-21T09:00:00Z").tzinfo is not None
    assert parse_timestamp("2025-07-21 09:00:00+00").utcoffset().total_seconds() == 0
    naive = parse_timestamp("2025-07-21T09:00:00", timezone.utc)
    assert naive.tzinfo is timezone.utc
    assert parse_timestamp(None) is None


def test_meeting_from_dict_accepts_camel_case():
    m = Meeting.from_dict({
        "id": "m1",
        "title": "Sync",
        "startTime": "2025-07-21T09:00:00Z",
        "endTime": "2025-07-21T09:45:00Z",
        "categoryId": "c1",
    })
    assert m.category_id == "c1"
    assert m.duration_minutes() == 45


def test_meeting_without_end_has_zero_duration():
    m = Meeting.from_dict({"id": "m1", "start_time": "2025-07-21T09:00:00Z"})
    assert m.end_time is None
    assert m.duration_minutes() == 0


def test_habit_from_dict_normalizes_weekdays_and_rule():
    h = Habit.from_dict({
        "id": "h1",
        "name": "Run",
        "current_start_time": "07:00",
        "duration": 30,
        "day_of_week_times": {"Monday": "06:30", "sat": "08:00", "sun": None},
        "habits_types": {"scheduling_rule": "pull_back_15min"},
    })
    assert h.day_of_week_times == {"mon": "06:30", "sat": "08:00"}
    assert h.scheduling_rule == "pull_back_15min"


def test_habit_override_round_trip():
    o = HabitOverride.from_dict({"habitId": "h1", "logDate": "2025-07-26", "scheduledStartTime": "11:15"})
    assert o.log_date == date(2025, 7, 26)
    assert HabitOverride.from_dict(o.to_dict()) == o


def test_session_from_dict():
    s = Session.from_dict({"id": "s1", "scheduled_date": "2025-07-21", "actual_start_time": "13:00:00+00"})
    assert s.scheduled_date == date(2025, 7, 21)
    assert s.scheduled_hours == 0


def test_task_duration_falls_back_to_estimated_hours():
    t = Task.from_dict({"id": "t1", "title": "Draft", "estimatedHours": 1.5})
    assert t.duration == 1.5
    assert not t.is_scheduled


def test_task_with_nested_subtasks():
    t = Task.from_dict({"id": "p", "duration": 2, "subtasks": [{"id": "c", "duration": 0.5}]})
    assert t.subtasks[0].id == "c"
    assert t.to_dict()["subtasks"][0]["duration"] == 0.5


def test_user_settings_defaults():
    s = UserSettings.from_dict({})
    assert s.work_hours_start == 7
    assert s.work_hours_end == 23
    assert s.week_start_day == "monday"
    assert s.slot_minutes == 15


def test_user_settings_accepts_clock_strings():
    s = UserSettings.from_dict({"workHoursStart": "07:30", "work_hours_end": 18})
    assert s.work_hours_start == 7.5
    assert s.work_hours_end == 18


def test_buffer_utilization_display_percentage_clamped():
    u = BufferUtilization(weekly_hours=10, hours_spent=12, utilization_percentage=120)
    assert u.display_percentage == 100
    assert u.to_dict()["utilizationPercentage"] == 120


def test_write_result_to_dict_serializes_value():
    r = WriteResult(value=Task(id="t1"), invalidates=["daySlotGrid:*"])
    d = r.to_dict()
    assert d["value"]["id"] == "t1"
    assert d["invalidates"] == ["daySlotGrid:*"]
