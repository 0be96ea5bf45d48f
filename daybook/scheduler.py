"""Task auto-scheduling engine for Daybook.

Places pending project tasks into the free slots left after fixed items,
first-fit in caller-supplied order, and caches results per day.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import date
from typing import Any, Iterable, Mapping, Sequence

from daybook.models import ScheduleResult, Slot, Task, WriteResult

logger = logging.getLogger(__name__)


# ── Constants ─────────────────────────────────────────────────

COMPLETED_STATUSES = {"completed", "complete", "done"}
DAY_KEY_PREFIX = "daySlotGrid:"
WEEK_KEY_PREFIX = "bufferUtilization:week-of-"


def day_key(day: date) -> str:
    return f"{DAY_KEY_PREFIX}{day.isoformat()}"


def week_key(week_start: date) -> str:
    return f"{WEEK_KEY_PREFIX}{week_start.isoformat()}"


# ── Task tree ─────────────────────────────────────────────────


def build_task_tree(tasks: Iterable[Task]) -> list[Task]:
    """Rebuild the parent/subtask tree from a flat task list.

    Returns top-level tasks in input order, each carrying its subtasks.
    Subtasks whose parent is missing are treated as top-level.
    """
    tasks = list(tasks)
    nodes = {t.id: replace(t, subtasks=[]) for t in tasks}
    roots: list[Task] = []
    for t in tasks:
        node = nodes[t.id]
        parent = nodes.get(node.parent_task_id) if node.parent_task_id else None
        if parent is None:
            if node.parent_task_id:
                logger.warning("Parent %s of task %s not found; treating as top-level",
                               node.parent_task_id, node.id)
            roots.append(node)
        else:
            parent.subtasks.append(node)
    return roots


def _is_pending(task: Task) -> bool:
    return task.status not in COMPLETED_STATUSES and task.duration > 0 and task.start_time is None


def select_pending_tasks(tasks: Iterable[Task], expand_subtasks: bool = False) -> list[Task]:
    """Top-level tasks still waiting for a time, in their original order.

    With expand_subtasks a parent that has subtasks is replaced by its own
    pending subtasks.
    """
    pending = []
    for task in build_task_tree(tasks):
        if expand_subtasks and task.subtasks:
            if task.status not in COMPLETED_STATUSES:
                pending.extend(s for s in task.subtasks if _is_pending(s))
        elif _is_pending(task):
            pending.append(task)
    return pending


# ── First-fit placement ───────────────────────────────────────


def _minutes_needed(task: Task) -> int:
    return math.ceil(round(task.duration * 60, 6))


def _first_fit(slots: Sequence[Slot], taken: set[str], minutes_needed: int) -> list[Slot] | None:
    """Earliest contiguous run of untaken slots covering *minutes_needed*."""
    run: list[Slot] = []
    run_minutes = 0
    for slot in slots:
        if slot.key in taken:
            run, run_minutes = [], 0
            continue
        if run and (slot.date != run[-1].date or slot.minute != run[-1].end_minute):
            run, run_minutes = [], 0
        run.append(slot)
        run_minutes += slot.granularity
        if run_minutes >= minutes_needed:
            return run
    return None


def auto_schedule_tasks(free_slots: Iterable[Slot], pending_tasks: Iterable[Task]) -> ScheduleResult:
    """Assign each pending task the earliest run of free slots long enough for it.

    Tasks are handled in the given order and never reordered. Slots used by
    one task are unavailable to later tasks in the same pass. Tasks that do
    not fit are returned in ``unscheduled``. Inputs are not mutated.
    """
    slots = sorted(set(free_slots), key=lambda s: (s.date, s.minute))
    taken: set[str] = set()
    result = ScheduleResult()

    for task in pending_tasks:
        needed = _minutes_needed(task)
        run = _first_fit(slots, taken, needed) if needed > 0 else None
        if run is None:
            logger.debug("No free run of %d min for task %s", needed, task.id)
            result.unscheduled.append(task)
            continue
        taken.update(s.key for s in run)
        result.scheduled.append(replace(task, start_time=run[0].hour))

    return result


def auto_schedule_days(
    free_by_day: Mapping[date, Sequence[Slot]],
    pending_tasks: Iterable[Task],
) -> tuple[dict[date, list[Task]], list[Task]]:
    """Spread pending tasks over several days, earliest day first.

    Returns the tasks placed on each day and those that fit nowhere.
    """
    remaining = list(pending_tasks)
    by_day: dict[date, list[Task]] = {}
    for day in sorted(free_by_day):
        if not remaining:
            break
        result = auto_schedule_tasks(free_by_day[day], remaining)
        if result.scheduled:
            by_day[day] = result.scheduled
        remaining = result.unscheduled
    return by_day, remaining


# ── Cache ─────────────────────────────────────────────────────


class ScheduleCache:
    """Per-view cache of day plans and weekly buffer reports.

    Entries are dropped when a write names their key in
    ``WriteResult.invalidates``. A key ending in ``*`` drops every entry
    with that prefix.
    """

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Any | None:
        return self._entries.get(key)

    def put(self, key: str, value: Any) -> None:
        self._entries[key] = value

    def invalidate(self, keys: Iterable[str]) -> list[str]:
        dropped = []
        for key in keys:
            if key.endswith("*"):
                prefix = key[:-1]
                matches = [k for k in self._entries if k.startswith(prefix)]
            else:
                matches = [key] if key in self._entries else []
            for k in matches:
                del self._entries[k]
                dropped.append(k)
        if dropped:
            logger.debug("Invalidated cache entries: %s", ", ".join(dropped))
        return dropped

    def apply(self, result: WriteResult) -> list[str]:
        return self.invalidate(result.invalidates)

    def clear(self) -> None:
        self._entries.clear()
