"""Typed dataclasses for the Daybook data model.

All models use from_dict/to_dict for YAML/JSON serialization.
Keys are snake_case; camelCase spellings are accepted on input.
Unknown keys are ignored; missing keys use defaults.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any

from daybook.durations import duration_minutes


# ── Primitives ────────────────────────────────────────────────

DAY_NAMES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_CLOCK_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?")
_SHORT_OFFSET_RE = re.compile(r"([+-]\d{2})$")


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(p.title() for p in rest)


def _get(d: dict[str, Any], key: str, default: Any = None) -> Any:
    """Look up a snake_case key, falling back to its camelCase alias."""
    if key in d:
        return d[key]
    return d.get(_camel(key), default)


def _opt_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _opt_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def epoch_ms(moment: datetime) -> int:
    """Milliseconds since the Unix epoch; naive values are taken as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(milliseconds=1)


def parse_timestamp(value: Any, tz: tzinfo | None = None) -> datetime | None:
    """Parse an ISO timestamp; naive results are localized to *tz* when given."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    else:
        s = str(value).strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        s = _SHORT_OFFSET_RE.sub(r"\1:00", s) if "T" in s or " " in s else s
        moment = datetime.fromisoformat(s)
    if moment.tzinfo is None and tz is not None:
        moment = moment.replace(tzinfo=tz)
    return moment


def parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def parse_clock(value: str) -> int:
    """Parse 'HH:MM', 'HH:MM:SS' or '13:00:00+00' into minutes after midnight.

    Any trailing UTC offset is ignored.
    """
    m = _CLOCK_RE.match(str(value))
    if not m:
        raise ValueError(f"Invalid clock time: {value!r}")
    hours, minutes = int(m.group(1)), int(m.group(2))
    if hours > 24 or minutes > 59 or (hours == 24 and minutes > 0):
        raise ValueError(f"Invalid clock time: {value!r}")
    return hours * 60 + minutes


def format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_weekday(value: Any) -> str:
    """Map 0-6 (Monday=0), 'monday' or 'Mon' to the short lowercase name."""
    if isinstance(value, int):
        return DAY_NAMES[value % 7]
    s = str(value).strip().lower()[:3]
    if s not in DAY_NAMES:
        raise ValueError(f"Invalid weekday: {value!r}")
    return s


def _hours_setting(value: Any, default: float) -> float:
    """Work-hour bounds may be given as 7, 7.5 or '07:30'."""
    if value is None or value == "":
        return default
    if isinstance(value, (int, float)):
        return float(value)
    return parse_clock(str(value)) / 60


@dataclass
class TimeRange:
    """A closed [start, end] window between two timestamps."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if epoch_ms(self.start) > epoch_ms(self.end):
            raise ValueError(f"TimeRange start {self.start} is after end {self.end}")

    def contains(self, moment: datetime) -> bool:
        """Inclusive on both ends, compared at millisecond precision."""
        ms = epoch_ms(moment)
        return epoch_ms(self.start) <= ms <= epoch_ms(self.end)

    def overlaps(self, other: TimeRange) -> bool:
        return self.start <= other.end and other.start <= self.end

    @classmethod
    def from_dict(cls, d: dict[str, Any], tz: tzinfo | None = None) -> TimeRange:
        return cls(start=parse_timestamp(d["start"], tz), end=parse_timestamp(d["end"], tz))

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


# ── Slots ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Slot:
    """One fixed-width slot of a day, identified by its offset from midnight."""

    date: date
    minute: int
    granularity: int = 15

    @property
    def time(self) -> str:
        return format_clock(self.minute)

    @property
    def hour(self) -> float:
        return self.minute / 60

    @property
    def end_minute(self) -> int:
        return self.minute + self.granularity

    @property
    def key(self) -> str:
        return f"{self.date.isoformat()}-{self.time}"

    def intersects(self, start_minute: int, end_minute: int) -> bool:
        return self.minute < end_minute and start_minute < self.end_minute

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date.isoformat(), "time": self.time, "hour": self.hour}


@dataclass
class FixedItem:
    """An item with a known time, normalized onto a single date."""

    kind: str = ""  # meeting, habit, session, task_log
    item_id: str = ""
    title: str = ""
    date: date | None = None
    start_minute: int = 0
    end_minute: int | None = None  # None while in progress
    category_id: str | None = None

    @property
    def in_progress(self) -> bool:
        return self.end_minute is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "itemId": self.item_id,
            "title": self.title,
            "date": self.date.isoformat() if self.date else "",
            "start": format_clock(self.start_minute),
            "end": format_clock(self.end_minute) if self.end_minute is not None else None,
            "categoryId": self.category_id,
        }


@dataclass
class Occupant:
    kind: str
    item_id: str
    title: str = ""
    category_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "itemId": self.item_id,
            "title": self.title,
            "categoryId": self.category_id,
        }


@dataclass
class OccupiedSlot:
    slot: Slot
    occupants: list[Occupant] = field(default_factory=list)

    @property
    def is_free(self) -> bool:
        return not self.occupants

    def to_dict(self) -> dict[str, Any]:
        d = self.slot.to_dict()
        d["occupants"] = [o.to_dict() for o in self.occupants]
        return d


# ── Calendar entities ─────────────────────────────────────────


@dataclass
class Meeting:
    id: str = ""
    title: str = ""
    start_time: datetime | None = None
    end_time: datetime | None = None  # None while in progress
    category_id: str | None = None
    status: str = "scheduled"

    @classmethod
    def from_dict(cls, d: dict[str, Any], tz: tzinfo | None = None) -> Meeting:
        return cls(
            id=str(d.get("id", "")),
            title=str(d.get("title", "")),
            start_time=parse_timestamp(_get(d, "start_time"), tz),
            end_time=parse_timestamp(_get(d, "end_time"), tz),
            category_id=_opt_str(_get(d, "category_id")),
            status=str(d.get("status", "scheduled")),
        )

    def duration_minutes(self) -> float:
        return duration_minutes(self.start_time, self.end_time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "category_id": self.category_id,
            "status": self.status,
        }


@dataclass
class Habit:
    id: str = ""
    name: str = ""
    current_start_time: str | None = None  # HH:MM default
    duration: int = 0  # minutes
    day_of_week_times: dict[str, str] = field(default_factory=dict)  # mon -> HH:MM
    scheduling_rule: str | None = None  # pull_back_15min
    category_id: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Habit:
        rule = _get(d, "scheduling_rule")
        types = _get(d, "habits_types")
        if rule is None and isinstance(types, dict):
            rule = types.get("scheduling_rule")
        times = {}
        for day, value in (_get(d, "day_of_week_times") or {}).items():
            if value:
                times[normalize_weekday(day)] = str(value)
        return cls(
            id=str(d.get("id", "")),
            name=str(d.get("name", "")),
            current_start_time=_opt_str(_get(d, "current_start_time")),
            duration=int(d.get("duration", 0) or 0),
            day_of_week_times=times,
            scheduling_rule=_opt_str(rule),
            category_id=_opt_str(_get(d, "category_id")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "current_start_time": self.current_start_time,
            "duration": self.duration,
        }
        if self.day_of_week_times:
            d["day_of_week_times"] = dict(self.day_of_week_times)
        if self.scheduling_rule:
            d["scheduling_rule"] = self.scheduling_rule
        if self.category_id:
            d["category_id"] = self.category_id
        return d


@dataclass
class HabitOverride:
    """A per-day habit log carrying a scheduled start override."""

    habit_id: str = ""
    log_date: date | None = None
    scheduled_start_time: str | None = None
    duration: int | None = None  # minutes

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> HabitOverride:
        dur = d.get("duration")
        return cls(
            habit_id=str(_get(d, "habit_id", "")),
            log_date=parse_date(_get(d, "log_date")),
            scheduled_start_time=_opt_str(_get(d, "scheduled_start_time")),
            duration=int(dur) if dur not in (None, "") else None,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "habit_id": self.habit_id,
            "log_date": self.log_date.isoformat() if self.log_date else None,
            "scheduled_start_time": self.scheduled_start_time,
        }
        if self.duration is not None:
            d["duration"] = self.duration
        return d


@dataclass
class Session:
    id: str = ""
    project_id: str = ""
    title: str = ""
    scheduled_date: date | None = None
    actual_start_time: str | None = None  # HH:MM[:SS][+TZ]
    actual_end_time: str | None = None
    scheduled_hours: float = 0.0
    status: str = "scheduled"
    category_id: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Session:
        return cls(
            id=str(d.get("id", "")),
            project_id=str(_get(d, "project_id", "")),
            title=str(d.get("title", "")),
            scheduled_date=parse_date(_get(d, "scheduled_date")),
            actual_start_time=_opt_str(_get(d, "actual_start_time")),
            actual_end_time=_opt_str(_get(d, "actual_end_time")),
            scheduled_hours=float(_get(d, "scheduled_hours", 0) or 0),
            status=str(d.get("status", "scheduled")),
            category_id=_opt_str(_get(d, "category_id")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "actual_start_time": self.actual_start_time,
            "actual_end_time": self.actual_end_time,
            "scheduled_hours": self.scheduled_hours,
            "status": self.status,
            "category_id": self.category_id,
        }


@dataclass
class TaskLog:
    """A task block already committed to a specific day."""

    id: str = ""
    task_id: str = ""
    title: str = ""
    log_date: date | None = None
    scheduled_start_time: str | None = None
    actual_start_time: str | None = None
    estimated_hours: float | None = None
    actual_duration: float | None = None  # hours

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TaskLog:
        return cls(
            id=str(d.get("id", "")),
            task_id=str(_get(d, "task_id", "")),
            title=str(d.get("title", "")),
            log_date=parse_date(_get(d, "log_date")),
            scheduled_start_time=_opt_str(_get(d, "scheduled_start_time")),
            actual_start_time=_opt_str(_get(d, "actual_start_time")),
            estimated_hours=_opt_float(_get(d, "estimated_hours")),
            actual_duration=_opt_float(_get(d, "actual_duration")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "title": self.title,
            "log_date": self.log_date.isoformat() if self.log_date else None,
            "scheduled_start_time": self.scheduled_start_time,
            "actual_start_time": self.actual_start_time,
            "estimated_hours": self.estimated_hours,
            "actual_duration": self.actual_duration,
        }


# ── Tasks ─────────────────────────────────────────────────────


@dataclass
class Task:
    id: str = ""
    title: str = ""
    project_id: str = ""
    duration: float = 0.0  # hours
    parent_task_id: str | None = None
    status: str = "todo"  # todo, in_progress, completed
    start_time: float | None = None  # hour of day once scheduled, 9.5 = 09:30
    subtasks: list[Task] = field(default_factory=list)

    @property
    def is_scheduled(self) -> bool:
        return self.start_time is not None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Task:
        duration = d.get("duration")
        if duration is None:
            duration = _get(d, "estimated_hours", 0)
        return cls(
            id=str(d.get("id", "")),
            title=str(d.get("title", "")),
            project_id=str(_get(d, "project_id", "")),
            duration=float(duration or 0),
            parent_task_id=_opt_str(_get(d, "parent_task_id")),
            status=str(d.get("status", "todo")),
            start_time=_opt_float(_get(d, "start_time")),
            subtasks=[cls.from_dict(s) for s in (d.get("subtasks") or [])],
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "project_id": self.project_id,
            "duration": self.duration,
            "status": self.status,
        }
        if self.parent_task_id:
            d["parent_task_id"] = self.parent_task_id
        if self.start_time is not None:
            d["start_time"] = self.start_time
        if self.subtasks:
            d["subtasks"] = [s.to_dict() for s in self.subtasks]
        return d


@dataclass
class ScheduleResult:
    scheduled: list[Task] = field(default_factory=list)
    unscheduled: list[Task] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scheduled": [t.to_dict() for t in self.scheduled],
            "unscheduled": [t.to_dict() for t in self.unscheduled],
        }


# ── Categories & buffers ──────────────────────────────────────


@dataclass
class Category:
    id: str = ""
    name: str = ""
    color: str = "#6b7280"

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Category:
        return cls(
            id=str(d.get("id", "")),
            name=str(d.get("name", "")),
            color=str(d.get("color") or "#6b7280"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "color": self.color}


@dataclass
class CategoryBuffer:
    id: str = ""
    category_id: str = ""
    weekly_hours: float = 0.0

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> CategoryBuffer:
        return cls(
            id=str(d.get("id", "")),
            category_id=str(_get(d, "category_id", "")),
            weekly_hours=float(_get(d, "weekly_hours", 0) or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "category_id": self.category_id, "weekly_hours": self.weekly_hours}


@dataclass
class CategoryMeetingData:
    id: str | None = None  # None for Uncategorized
    name: str = ""
    color: str = ""
    total_hours: float = 0.0
    total_minutes: float = 0.0
    meetings: list[Meeting] = field(default_factory=list)
    in_progress: list[Meeting] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "totalHours": round(self.total_hours, 3),
            "totalMinutes": round(self.total_minutes, 1),
            "meetingIds": [m.id for m in self.meetings],
            "inProgressIds": [m.id for m in self.in_progress],
        }


@dataclass
class BufferUtilization:
    buffer_id: str = ""
    category_id: str = ""
    category_name: str = ""
    category_color: str = "#6b7280"
    weekly_hours: float = 0.0
    hours_spent: float = 0.0
    hours_remaining: float = 0.0
    utilization_percentage: float = 0.0  # unclamped, >100 signals overrun

    @property
    def display_percentage(self) -> float:
        return max(0.0, min(100.0, self.utilization_percentage))

    def to_dict(self) -> dict[str, Any]:
        return {
            "bufferId": self.buffer_id,
            "categoryId": self.category_id,
            "categoryName": self.category_name,
            "categoryColor": self.category_color,
            "weeklyHours": self.weekly_hours,
            "hoursSpent": round(self.hours_spent, 3),
            "hoursRemaining": round(self.hours_remaining, 3),
            "utilizationPercentage": round(self.utilization_percentage, 1),
            "displayPercentage": round(self.display_percentage, 1),
        }


@dataclass
class BufferReport:
    week: TimeRange
    utilizations: list[BufferUtilization] = field(default_factory=list)
    uncategorized: CategoryMeetingData | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "week": self.week.to_dict(),
            "utilizations": [u.to_dict() for u in self.utilizations],
            "uncategorized": self.uncategorized.to_dict() if self.uncategorized else None,
        }


@dataclass
class BufferBlock:
    id: str = ""
    buffer_id: str = ""
    category_id: str = ""
    category_name: str = ""
    category_color: str = "#6b7280"
    date: date | None = None
    start_hour: float = 0.0
    duration: float = 0.0  # hours
    remaining_hours: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "bufferId": self.buffer_id,
            "categoryId": self.category_id,
            "categoryName": self.category_name,
            "categoryColor": self.category_color,
            "date": self.date.isoformat() if self.date else "",
            "startHour": self.start_hour,
            "duration": self.duration,
            "remainingHours": self.remaining_hours,
        }


# ── Settings ──────────────────────────────────────────────────


@dataclass
class UserSettings:
    work_hours_start: float = 7.0
    work_hours_end: float = 23.0
    week_start_day: str = "monday"
    timezone: str = "UTC"
    slot_minutes: int = 15
    week_ending_day: str | None = None
    week_ending_time: str | None = None  # HH:MM

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> UserSettings:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            work_hours_start=_hours_setting(_get(d, "work_hours_start"), 7.0),
            work_hours_end=_hours_setting(_get(d, "work_hours_end"), 23.0),
            week_start_day=str(_get(d, "week_start_day", "monday")).lower(),
            timezone=str(d.get("timezone") or "UTC"),
            slot_minutes=int(_get(d, "slot_minutes", 15) or 15),
            week_ending_day=_opt_str(_get(d, "week_ending_day")),
            week_ending_time=_opt_str(_get(d, "week_ending_time")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "work_hours_start": self.work_hours_start,
            "work_hours_end": self.work_hours_end,
            "week_start_day": self.week_start_day,
            "timezone": self.timezone,
            "slot_minutes": self.slot_minutes,
        }
        if self.week_ending_day:
            d["week_ending_day"] = self.week_ending_day
        if self.week_ending_time:
            d["week_ending_time"] = self.week_ending_time
        return d


# ── Service results ───────────────────────────────────────────


@dataclass
class WriteResult:
    """The outcome of a store write plus the cache keys it invalidates."""

    value: Any = None
    invalidates: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        value = self.value.to_dict() if hasattr(self.value, "to_dict") else self.value
        return {"value": value, "invalidates": list(self.invalidates)}


@dataclass
class DayPlan:
    date: date
    slots: list[OccupiedSlot] = field(default_factory=list)
    fixed_items: list[FixedItem] = field(default_factory=list)
    schedule: ScheduleResult = field(default_factory=ScheduleResult)

    @property
    def free_minutes(self) -> int:
        return sum(s.slot.granularity for s in self.slots if s.is_free)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "slots": [s.to_dict() for s in self.slots],
            "fixedItems": [i.to_dict() for i in self.fixed_items],
            "scheduled": [t.to_dict() for t in self.schedule.scheduled],
            "unscheduled": [t.to_dict() for t in self.schedule.unscheduled],
            "freeMinutes": self.free_minutes,
        }
