"""
ATLAS Tracker - Dashboard & Weekly Recap
Read-only summaries assembled from every tracker area
"""

from typing import Optional

from . import calendar_utils as cal
from . import stats
from .achievements import check_achievements
from .config import get_app_config
from .database import Storage
from .goals import with_progress
from .habits import habit_statuses
from .nutrition import get_log

RECAP_ANCHORS = ("rolling", "sunday")


# ============================================
# DASHBOARD
# ============================================

async def get_dashboard(storage: Storage, today: Optional[str] = None) -> dict:
    """
    Everything the home screen shows for today.

    Includes habits with status, the most recent workout, up to five active
    goals with progress, today's nutrition and the last seven days of
    schedule-aware completion counts.
    """
    today = today or cal.today()
    records = await storage.list_habits()
    habits = habit_statuses(records, today)
    logs = [stats.HabitLog.from_record(r) for r in records]

    last_workout = None
    sessions = await storage.list_sessions(limit=1)
    if sessions:
        session = sessions[0]
        sets = [s for e in session["exercises"] for s in e["sets"]]
        last_workout = {
            "id": session["id"],
            "date": session["date"],
            "notes": session.get("notes"),
            "exercise_names": [e["name"] for e in session["exercises"]],
            "total_sets": len(sets),
            "pr_count": sum(1 for s in sets if s["is_pr"]),
        }

    goals = [with_progress(g) for g in await storage.list_goals("active")][:5]
    nutrition = await get_log(storage, today)

    return {
        "today": today,
        "habits": [h.model_dump() for h in habits],
        "habits_done_today": sum(1 for h in habits if h.completed_today),
        "total_habits": len(habits),
        "last_workout": last_workout,
        "goals": goals,
        "nutrition": nutrition,
        "weekly_data": [d.model_dump() for d in stats.calendar(logs, 7, today)],
    }


# ============================================
# WEEKLY RECAP
# ============================================

def recap_windows(anchor: str, today: str):
    """
    Date lists for (this week, last week).

    ``rolling`` is the seven days ending today and the seven before them.
    ``sunday`` is the full Sunday-Saturday week containing today and the
    week before it. Days after today count like any other day.
    """
    if anchor == "rolling":
        return cal.date_range(0, 7, today), cal.date_range(7, 7, today)
    if anchor == "sunday":
        start = cal.week_start(today)
        return cal.week_dates(start), cal.week_dates(cal.shift(start, -7))
    raise ValueError(f"Unknown recap anchor '{anchor}', expected one of {RECAP_ANCHORS}")


async def get_recap(storage: Storage, anchor: str = "rolling", today: Optional[str] = None) -> dict:
    """Week-over-week habit stats, trend, top streak and per-habit breakdown."""
    today = today or cal.today()
    this_dates, last_dates = recap_windows(anchor, today)

    habits = [stats.HabitLog.from_record(h) for h in await storage.list_habits()]
    this_week = stats.window_stats(habits, this_dates)
    last_week = stats.window_stats(habits, last_dates)
    top = stats.top_streak(habits, today, get_app_config().streak_lookback_days)

    return {
        "anchor": anchor,
        "this_week": {
            **this_week.model_dump(),
            "date_range": {"start": this_dates[0], "end": this_dates[-1]},
        },
        "last_week": window_summary(last_week, last_dates),
        "trend": stats.trend(this_week, last_week).value,
        "top_streak": top.model_dump() if top else None,
        "habit_breakdown": [b.model_dump() for b in stats.habit_breakdown(habits, this_dates)],
    }


def window_summary(window: stats.WindowStats, dates) -> dict:
    return {
        "habit_pct": window.habit_pct,
        "perfect_days": window.perfect_days,
        "total_completions": window.total_completions,
        "days_active": window.days_active,
        "date_range": {"start": dates[0], "end": dates[-1]},
    }


# ============================================
# ACHIEVEMENTS
# ============================================

async def get_achievements(storage: Storage) -> dict:
    """Every catalog entry with its unlock state, plus unlocked/total counts."""
    statuses = await check_achievements(storage)
    return {
        "achievements": [s.model_dump() for s in statuses],
        "unlocked": sum(1 for s in statuses if s.unlocked),
        "total": len(statuses),
    }
