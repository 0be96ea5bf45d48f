"""Daybook core library: slot grids, placement, auto-scheduling and buffers.

Public API re-exports for convenient imports:
    from daybook import build_day_slot_grid, auto_schedule_tasks, ...
"""

# Errors
from daybook.errors import (
    DaybookError,
    ConfigurationError,
    NotFoundError,
    StaleDataError,
)

# Workspace & paths
from daybook.workspace import (
    workspace_root,
    user_dir,
    get_user_timezone,
    settings_path,
    collection_path,
)

# File I/O
from daybook.fileio import (
    read_collection,
    read_yaml,
    write_collection,
    write_yaml_atomic,
)

# Time ranges
from daybook.timeranges import (
    this_week,
    last_week,
    last_7_days,
    week_range,
    range_for_period,
    is_in_range,
    days_in_range,
    format_time_range,
)

# Durations
from daybook.durations import (
    duration_minutes,
    is_in_progress,
    total_hours,
    format_hours,
)

# Slot grid
from daybook.grid import (
    build_day_slot_grid,
    build_week_slot_grids,
)

# Placement
from daybook.placement import (
    resolve_habit_start,
    collect_fixed_items,
    place_fixed_items,
    free_slots,
)

# Scheduling
from daybook.scheduler import (
    build_task_tree,
    select_pending_tasks,
    auto_schedule_tasks,
    auto_schedule_days,
    ScheduleCache,
)

# Buffers
from daybook.buffers import (
    calculate_meeting_hours_by_category,
    compute_buffer_utilization,
    aggregate_week_buffers,
    allocate_buffer_blocks,
    prioritize_buffer_placement,
)

# Storage, edits, service
from daybook.store import DataStore, YamlStore
from daybook.edits import (
    MeetingEdit,
    HabitEdit,
    TaskEdit,
    SessionEdit,
    apply_edit,
    habit_to_meeting,
    task_to_meeting,
)
from daybook.service import CalendarService, CalendarView

# Models
from daybook.models import (
    TimeRange,
    Slot,
    FixedItem,
    Occupant,
    OccupiedSlot,
    Meeting,
    Habit,
    HabitOverride,
    Session,
    TaskLog,
    Task,
    ScheduleResult,
    Category,
    CategoryBuffer,
    CategoryMeetingData,
    BufferUtilization,
    BufferReport,
    BufferBlock,
    UserSettings,
    WriteResult,
    DayPlan,
)
