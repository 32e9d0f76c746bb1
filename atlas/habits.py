"""
ATLAS Tracker - Habits Module
Habit CRUD, daily check-ins, streaks and calendar views
"""

from typing import List, Optional

from . import calendar_utils as cal
from . import stats
from .config import get_app_config
from .database import NotFoundError, Storage
from .logger import logger
from .models import DayStat, HabitStatus, HistoryDay
from .schedule import DEFAULT_SCHEDULE, is_scheduled
from .streaks import compute_streak

CLEARABLE_FIELDS = {"why"}


def _with_status(record: dict, today: str, lookback: int) -> HabitStatus:
    habit = stats.HabitLog.from_record(record)
    return HabitStatus(
        id=record["id"],
        name=record["name"],
        color=record["color"],
        icon=record["icon"],
        why=record.get("why"),
        schedule=record["schedule"],
        created_at=record["created_at"],
        completed_today=today in habit.completions,
        scheduled_today=is_scheduled(habit.schedule, cal.weekday_of(today)),
        streak=compute_streak(habit.schedule, habit.completions, today, lookback),
    )


# ============================================
# HABIT OPERATIONS
# ============================================

def habit_statuses(records: List[dict], today: str) -> List[HabitStatus]:
    lookback = get_app_config().streak_lookback_days
    return [_with_status(r, today, lookback) for r in records]


async def list_habits(storage: Storage, today: Optional[str] = None) -> List[HabitStatus]:
    """All habits with today's completion flag, schedule flag and current streak."""
    return habit_statuses(await storage.list_habits(), today or cal.today())


async def get_habit(storage: Storage, habit_id: int, today: Optional[str] = None) -> HabitStatus:
    record = await storage.get_habit(habit_id)
    if not record:
        raise NotFoundError("Habit", habit_id)
    return _with_status(record, today or cal.today(), get_app_config().streak_lookback_days)


async def create_habit(
    storage: Storage,
    name: str,
    color: str = "#e8b04b",
    icon: str = "⚡",
    why: Optional[str] = None,
    schedule: str = DEFAULT_SCHEDULE
) -> HabitStatus:
    """Create a habit. ``schedule`` must already be canonical."""
    today = cal.today()
    record = await storage.create_habit(name, color, icon, why, schedule, today)
    logger.info(f"Habit created: {record['id']} '{name}' on {schedule}")
    return _with_status(record, today, get_app_config().streak_lookback_days)


async def update_habit(storage: Storage, habit_id: int, **updates) -> HabitStatus:
    """
    Update habit fields.

    ``None`` clears an optional field (``why``) and is ignored for the rest.
    """
    updates = {k: v for k, v in updates.items() if v is not None or k in CLEARABLE_FIELDS}
    record = await storage.update_habit(habit_id, **updates)
    return _with_status(record, cal.today(), get_app_config().streak_lookback_days)


async def delete_habit(storage: Storage, habit_id: int) -> None:
    await storage.delete_habit(habit_id)
    logger.info(f"Habit deleted: {habit_id}")


# ============================================
# CHECK-INS
# ============================================

async def complete(storage: Storage, habit_id: int, date: Optional[str] = None) -> dict:
    """
    Mark a habit done on ``date`` (default today).

    Idempotent: completing twice leaves one completion. The response carries
    whether a new completion was recorded.
    """
    date = date or cal.today()
    cal.parse_date(date)
    created = await storage.add_completion(habit_id, date)
    return {"habit_id": habit_id, "date": date, "completed": True, "created": created}


async def uncomplete(storage: Storage, habit_id: int, date: Optional[str] = None) -> dict:
    date = date or cal.today()
    cal.parse_date(date)
    removed = await storage.remove_completion(habit_id, date)
    return {"habit_id": habit_id, "date": date, "completed": False, "removed": removed}


# ============================================
# VIEWS
# ============================================

async def habit_calendar(storage: Storage, days: int, today: Optional[str] = None) -> List[DayStat]:
    """Cross-habit heatmap for the ``days`` most recent days."""
    habits = [stats.HabitLog.from_record(h) for h in await storage.list_habits()]
    return stats.calendar(habits, days, today or cal.today())


async def habit_history(
    storage: Storage,
    habit_id: int,
    days: int,
    today: Optional[str] = None
) -> List[HistoryDay]:
    record = await storage.get_habit(habit_id)
    if not record:
        raise NotFoundError("Habit", habit_id)
    return stats.habit_history(stats.HabitLog.from_record(record), days, today or cal.today())
