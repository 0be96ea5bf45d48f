"""Tests for daybook/store.py — YAML workspace adapter and write invalidations."""

from datetime import date, datetime, timezone

import pytest
import yaml

from daybook.errors import NotFoundError
from daybook.fileio import read_yaml
from daybook.models import Meeting
from daybook.store import YamlStore, snake_keys
from daybook.timeranges import week_range

MONDAY = date(2025, 7, 21)
SATURDAY = date(2025, 7, 26)


@pytest.fixture
def store(workspace):
    return YamlStore(workspace)


def test_store_defaults_to_env_root(workspace):
    assert YamlStore().root == workspace.resolve()


def test_settings(store):
    s = store.get_user_settings("guest")
    assert s.work_hours_start == 9
    assert s.work_hours_end == 17
    assert s.timezone == "UTC"


def test_fetch_meetings_by_day_and_range(store):
    assert sorted(m.id for m in store.fetch_meetings("guest", MONDAY)) == ["m1", "m4"]
    week = week_range(MONDAY, tz=timezone.utc)
    assert len(store.fetch_meetings("guest", week)) == 4
    m3 = next(m for m in store.fetch_meetings("guest") if m.id == "m3")
    assert m3.category_id == "c-mgmt"
    assert m3.start_time.tzinfo is not None


def test_fetch_buffers_and_categories(store):
    buffers = store.fetch_category_buffers("guest")
    assert [(b.category_id, b.weekly_hours) for b in buffers] == [("c-eng", 10), ("c-sales", 4)]
    assert [c.name for c in store.fetch_meeting_categories("guest")] == ["Engineering", "Management", "Sales"]


def test_fetch_tasks_and_project_filter(store):
    assert len(store.fetch_tasks("guest")) == 4
    assert store.fetch_tasks("guest", project_id="other") == []


def test_fetch_sessions_for_day(store):
    assert [s.id for s in store.fetch_sessions("guest", MONDAY)] == ["s1"]
    assert store.fetch_sessions("guest", SATURDAY) == []


def test_unknown_user_has_empty_collections(store):
    assert store.fetch_habits("newcomer") == []
    assert store.get_user_settings("newcomer").work_hours_start == 7


def test_invalid_user_id_rejected(store):
    with pytest.raises(ValueError):
        store.fetch_habits("../guest")


# ── Writes ────────────────────────────────────────────────────


def test_upsert_habit_override_inserts_then_updates(store, workspace):
    result = store.upsert_habit_override("guest", "h-read", SATURDAY, "11:15")
    assert result.invalidates == ["daySlotGrid:2025-07-26", "bufferUtilization:week-of-2025-07-21"]
    store.upsert_habit_override("guest", "h-read", SATURDAY, "12:00")

    stored = read_yaml(workspace / "users" / "guest" / "habit_overrides.yaml")["habit_overrides"]
    assert len(stored) == 1
    assert stored[0]["scheduled_start_time"] == "12:00"
    [override] = store.fetch_habit_daily_overrides("guest", SATURDAY)
    assert override.scheduled_start_time == "12:00"
    assert store.fetch_habit_daily_overrides("guest", MONDAY) == []


def test_pull_back_override_invalidates_every_day(store, workspace):
    path = workspace / "users" / "guest" / "habits.yaml"
    path.write_text(yaml.dump({"habits": [
        {"id": "h-wake", "name": "Wake up", "current_start_time": "09:00", "duration": 30,
         "scheduling_rule": "pull_back_15min"},
    ]}), encoding="utf-8")
    result = store.upsert_habit_override("guest", "h-wake", MONDAY, "10:00")
    assert result.invalidates == ["daySlotGrid:*", "bufferUtilization:week-of-*"]


def test_upsert_habit_override_unknown_habit(store):
    with pytest.raises(NotFoundError):
        store.upsert_habit_override("guest", "ghost", SATURDAY, "11:15")


def test_upsert_habit_override_bad_time(store):
    with pytest.raises(ValueError):
        store.upsert_habit_override("guest", "h-read", SATURDAY, "late")


def test_update_task_accepts_camel_case_patch(store):
    result = store.update_task("guest", "t2", {"startTime": 9.5})
    assert result.invalidates == ["daySlotGrid:*"]
    t2 = next(t for t in store.fetch_tasks("guest") if t.id == "t2")
    assert t2.start_time == 9.5
    assert t2.title == "Review PR"


def test_update_unknown_task(store):
    with pytest.raises(NotFoundError):
        store.update_task("guest", "nope", {"status": "completed"})


def test_insert_meeting_assigns_id(store):
    m = Meeting(
        title="Planning",
        start_time=datetime(2025, 7, 24, 9, tzinfo=timezone.utc),
        end_time=datetime(2025, 7, 24, 10, tzinfo=timezone.utc),
    )
    result = store.insert_meeting("guest", m)
    assert result.value.id
    assert result.invalidates == ["daySlotGrid:2025-07-24", "bufferUtilization:week-of-2025-07-21"]
    assert any(x.id == result.value.id for x in store.fetch_meetings("guest", date(2025, 7, 24)))


def test_insert_duplicate_meeting_id(store):
    with pytest.raises(ValueError):
        store.insert_meeting("guest", Meeting(id="m1", start_time=datetime(2025, 7, 24, 9, tzinfo=timezone.utc)))


def test_update_meeting_invalidates_old_and_new_day(store):
    result = store.update_meeting("guest", "m1", {
        "start_time": "2025-07-22T11:00:00",
        "end_time": "2025-07-22T11:30:00",
    })
    assert result.invalidates == [
        "daySlotGrid:2025-07-21",
        "bufferUtilization:week-of-2025-07-21",
        "daySlotGrid:2025-07-22",
    ]
    assert [m.id for m in store.fetch_meetings("guest", MONDAY)] == ["m4"]


def test_update_session(store):
    result = store.update_session("guest", "s1", {"actualEndTime": "15:30"})
    assert result.invalidates == ["daySlotGrid:2025-07-21"]
    assert store.fetch_sessions("guest", MONDAY)[0].actual_end_time == "15:30"
    with pytest.raises(NotFoundError):
        store.update_session("guest", "s9", {})


def test_snake_keys():
    assert snake_keys({"startTime": 1, "parent_task_id": "p"}) == {"start_time": 1, "parent_task_id": "p"}
