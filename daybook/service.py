"""Per-user orchestration: fetch, grid, place, schedule.

Every pass reads fresh data from the store. Writes go through the service
so their invalidations reach the cache before the next pass.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from daybook.buffers import (
    aggregate_week_buffers,
    calculate_meeting_hours_by_category,
    prioritize_buffer_placement,
)
from daybook.edits import Edit, apply_edit
from daybook.errors import StaleDataError
from daybook.grid import build_day_slot_grid
from daybook.models import (
    BufferBlock,
    BufferReport,
    CategoryMeetingData,
    DayPlan,
    FixedItem,
    Habit,
    OccupiedSlot,
    ScheduleResult,
    TimeRange,
    UserSettings,
    WriteResult,
)
from daybook.placement import collect_fixed_items, free_slots, place_fixed_items
from daybook.scheduler import (
    DAY_KEY_PREFIX,
    ScheduleCache,
    auto_schedule_days,
    day_key,
    select_pending_tasks,
    week_key,
)
from daybook.store import DataStore
from daybook.timeranges import days_in_range, range_for_period, week_range

logger = logging.getLogger(__name__)


class CalendarService:
    """Scheduling passes and writes for one user."""

    def __init__(self, store: DataStore, user_id: str, cache: ScheduleCache | None = None):
        self.store = store
        self.user_id = user_id
        self.cache = cache if cache is not None else ScheduleCache()

    # ── Settings ──────────────────────────────────────────────

    def settings(self) -> UserSettings:
        return self.store.get_user_settings(self.user_id)

    def timezone(self, settings: UserSettings | None = None) -> ZoneInfo:
        name = (settings or self.settings()).timezone
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r for %s; using UTC", name, self.user_id)
            return ZoneInfo("UTC")

    def today(self) -> date:
        return datetime.now(self.timezone()).date()

    # ── Day plans ─────────────────────────────────────────────

    def _place_day(
        self, day: date, settings: UserSettings, tz: ZoneInfo, habits: list[Habit]
    ) -> tuple[list[OccupiedSlot], list[FixedItem]]:
        items = collect_fixed_items(
            day,
            meetings=self.store.fetch_meetings(self.user_id, day),
            habits=habits,
            overrides=self.store.fetch_habit_daily_overrides(self.user_id, day),
            sessions=self.store.fetch_sessions(self.user_id, day),
            task_logs=self.store.fetch_task_logs(self.user_id, day),
            tz=tz,
        )
        return place_fixed_items(build_day_slot_grid(day, settings), items), items

    def build_week_plans(self, day: date) -> dict[date, DayPlan]:
        """Run one full pass over the week containing *day*.

        Pending tasks are spread over the week's free slots, earliest day
        first, so each task lands on one day only. Every plan reports the
        tasks that fit nowhere in the week as unscheduled.
        """
        settings = self.settings()
        tz = self.timezone(settings)
        habits = self.store.fetch_habits(self.user_id)
        week = week_range(day, settings.week_start_day, tz)
        placed = {d: self._place_day(d, settings, tz, habits) for d in days_in_range(week)}

        pending = select_pending_tasks(self.store.fetch_tasks(self.user_id))
        by_day, remaining = auto_schedule_days({d: free_slots(occ) for d, (occ, _) in placed.items()}, pending)
        return {
            d: DayPlan(
                date=d,
                slots=occ,
                fixed_items=items,
                schedule=ScheduleResult(scheduled=by_day.get(d, []), unscheduled=list(remaining)),
            )
            for d, (occ, items) in placed.items()
        }

    def build_day_plan(self, day: date) -> DayPlan:
        """Run one full pass against freshly fetched data and return *day*'s share."""
        return self.build_week_plans(day)[day]

    def day_plan(self, day: date) -> DayPlan:
        plan = self.cache.get(day_key(day))
        if plan is None:
            # Days of a week share one task distribution, so they are cached together.
            plans = self.build_week_plans(day)
            for d, p in plans.items():
                self.cache.put(day_key(d), p)
            plan = plans[day]
        return plan

    # ── Categories & buffers ──────────────────────────────────

    def period_range(self, period: str) -> TimeRange:
        settings = self.settings()
        return range_for_period(period, self.timezone(settings), settings.week_start_day)

    def meeting_hours_by_category(self, time_range: TimeRange) -> list[CategoryMeetingData]:
        return calculate_meeting_hours_by_category(
            self.store.fetch_meetings(self.user_id, time_range),
            self.store.fetch_meeting_categories(self.user_id),
            time_range,
        )

    def _buffer_report(self, time_range: TimeRange) -> BufferReport:
        return aggregate_week_buffers(
            self.store.fetch_category_buffers(self.user_id),
            self.store.fetch_meetings(self.user_id, time_range),
            self.store.fetch_meeting_categories(self.user_id),
            time_range,
        )

    def week_buffers(self, day: date | None = None) -> BufferReport:
        """Buffer utilization for the week containing *day* (default today)."""
        settings = self.settings()
        week = week_range(day or self.today(), settings.week_start_day, self.timezone(settings))
        key = week_key(week.start.date())
        report = self.cache.get(key)
        if report is None:
            report = self._buffer_report(week)
            self.cache.put(key, report)
        return report

    def buffers_for_period(self, period: str) -> BufferReport:
        if period == "thisWeek":
            return self.week_buffers()
        if period == "lastWeek":
            return self.week_buffers(self.today() - timedelta(days=7))
        # Rolling windows do not line up with a week key.
        return self._buffer_report(self.period_range(period))

    def buffer_blocks(self, day: date | None = None) -> list[BufferBlock]:
        """Reserve each buffer's remaining hours in the free slots of its week."""
        report = self.week_buffers(day)
        empty = [s for d in days_in_range(report.week) for s in free_slots(self.day_plan(d).slots)]
        return prioritize_buffer_placement(report.utilizations, empty)

    # ── Writes ────────────────────────────────────────────────

    def invalidate(self, keys: list[str]) -> list[str]:
        """Drop cached entries, widening each day grid key to its whole week."""
        expanded: list[str] = []
        week_start_day = None
        for key in keys:
            expanded.append(key)
            if key.startswith(DAY_KEY_PREFIX) and not key.endswith("*"):
                if week_start_day is None:
                    week_start_day = self.settings().week_start_day
                day = date.fromisoformat(key[len(DAY_KEY_PREFIX):])
                expanded.extend(day_key(d) for d in days_in_range(week_range(day, week_start_day)))
        return self.cache.invalidate(dict.fromkeys(expanded))

    def _applied(self, result: WriteResult) -> WriteResult:
        self.invalidate(result.invalidates)
        return result

    def change_habit_time(self, habit_id: str, day: date, time: str) -> WriteResult:
        return self._applied(self.store.upsert_habit_override(self.user_id, habit_id, day, time))

    def update_task(self, task_id: str, patch: dict[str, Any]) -> WriteResult:
        return self._applied(self.store.update_task(self.user_id, task_id, patch))

    def apply_edit(self, edit: Edit) -> WriteResult:
        return self._applied(apply_edit(self.store, self.user_id, edit))


class CalendarView:
    """The day currently on screen.

    Each navigation issues a new load token. A load that completes after
    the view has moved on is discarded instead of overwriting the newer day.
    """

    def __init__(self, service: CalendarService):
        self.service = service
        self.current_day: date | None = None
        self.plan: DayPlan | None = None
        self._token = 0

    @property
    def token(self) -> int:
        return self._token

    def navigate_to(self, day: date) -> int:
        if self.current_day is not None and self.current_day != day:
            # Coming back later must show fresh data.
            self.service.invalidate([day_key(self.current_day)])
        self._token += 1
        self.current_day = day
        self.plan = None
        return self._token

    def is_current(self, token: int) -> bool:
        return token == self._token

    def commit(self, token: int, plan: DayPlan) -> DayPlan:
        if not self.is_current(token):
            logger.info("Discarding stale load for %s (token %d, current %d)", plan.date, token, self._token)
            raise StaleDataError(
                f"Load for {plan.date} is stale",
                details={"token": token, "current": self._token},
            )
        self.plan = plan
        return plan

    def load(self, token: int) -> DayPlan:
        if self.current_day is None or not self.is_current(token):
            raise StaleDataError("No current day for this load", details={"token": token, "current": self._token})
        return self.commit(token, self.service.day_plan(self.current_day))
