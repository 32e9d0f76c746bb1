"""
ATLAS Tracker - Aggregate Statistics
Windowed completion percentages, perfect days and trends across habits.

All functions are pure: they take a snapshot of habits (schedule plus
completion dates) and a list of dates, and return zero values for empty
input instead of dividing by zero.
"""

import math
from dataclasses import dataclass, field
from typing import Any, FrozenSet, List, Mapping, Optional, Sequence

from . import calendar_utils as cal
from .models import DayStat, HabitBreakdown, HistoryDay, TopStreak, Trend, WindowStats
from .schedule import as_weekdays
from .streaks import MAX_LOOKBACK_DAYS, compute_streak


@dataclass(frozen=True)
class HabitLog:
    """Schedule and completion dates of one habit."""
    id: int
    schedule: FrozenSet[int]
    completions: FrozenSet[str] = field(default_factory=frozenset)
    name: str = ""
    icon: str = ""
    color: str = ""

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "HabitLog":
        return cls(
            id=record["id"],
            schedule=as_weekdays(record.get("schedule")),
            completions=frozenset(record.get("completions") or ()),
            name=record.get("name", ""),
            icon=record.get("icon", ""),
            color=record.get("color", ""),
        )

    def is_due(self, weekday: int) -> bool:
        return weekday in self.schedule


def percent(part: float, whole: float) -> int:
    """Integer percentage rounded half up, 0 when ``whole`` is 0."""
    if not whole:
        return 0
    return int(math.floor(100 * part / whole + 0.5))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ============================================
# PER-DAY AND WINDOW STATS
# ============================================

def day_stat(habits: Sequence[HabitLog], date: str) -> DayStat:
    """Completion count among the habits scheduled on ``date``."""
    weekday = cal.weekday_of(date)
    due = [h for h in habits if h.is_due(weekday)]
    completed = sum(1 for h in due if date in h.completions)
    return DayStat(date=date, completed=completed, total=len(due), pct=percent(completed, len(due)))


def window_stats(habits: Sequence[HabitLog], dates: Sequence[str]) -> WindowStats:
    """
    Aggregate per-day stats over a window of dates.

    Returns:
        habit_pct: mean of the daily percentages, rounded
        perfect_days: days where every scheduled habit was done
        total_completions: sum of daily completed counts
        days_active: days with at least one completion
        per_day: the daily stats, in the order of ``dates``
    """
    per_day = [day_stat(habits, d) for d in dates]

    habit_pct = 0
    if habits and per_day:
        habit_pct = round_half_up(sum(d.pct for d in per_day) / len(per_day))

    return WindowStats(
        habit_pct=habit_pct,
        perfect_days=sum(1 for d in per_day if d.total > 0 and d.completed == d.total),
        total_completions=sum(d.completed for d in per_day),
        days_active=sum(1 for d in per_day if d.completed > 0),
        per_day=per_day,
    )


def calendar(habits: Sequence[HabitLog], days: int, today: Optional[str] = None) -> List[DayStat]:
    """One day stat for each of the ``days`` most recent days, oldest first."""
    if days <= 0:
        return []
    return [day_stat(habits, d) for d in cal.date_range(0, days, today)]


def trend(this_week: WindowStats, last_week: WindowStats) -> Trend:
    if this_week.habit_pct > last_week.habit_pct:
        return Trend.UP
    if this_week.habit_pct < last_week.habit_pct:
        return Trend.DOWN
    return Trend.SAME


# ============================================
# PER-HABIT VIEWS
# ============================================

def habit_breakdown(habits: Sequence[HabitLog], dates: Sequence[str]) -> List[HabitBreakdown]:
    """
    Completions per habit inside the window spanned by ``dates``.

    The rate always divides by 7, whatever the habit's own schedule.
    """
    if not dates:
        return []
    start, end = dates[0], dates[-1]

    breakdown = []
    for h in habits:
        count = sum(1 for d in h.completions if start <= d <= end)
        breakdown.append(HabitBreakdown(
            id=h.id, name=h.name, icon=h.icon, color=h.color,
            completions=count, rate=percent(count, 7),
        ))
    return breakdown


def top_streak(
    habits: Sequence[HabitLog],
    today: Optional[str] = None,
    max_days: int = MAX_LOOKBACK_DAYS
) -> Optional[TopStreak]:
    """Habit with the longest current streak; ties go to the earliest habit."""
    today = today or cal.today()
    best = None
    for h in habits:
        streak = compute_streak(h.schedule, h.completions, today, max_days)
        if best is None or streak > best.streak:
            best = TopStreak(id=h.id, name=h.name, icon=h.icon, streak=streak)
    return best


def habit_history(habit: HabitLog, days: int, today: Optional[str] = None) -> List[HistoryDay]:
    """Per-day completion and schedule flags for one habit, oldest first."""
    if days <= 0:
        return []
    return [
        HistoryDay(
            date=d,
            completed=d in habit.completions,
            scheduled=habit.is_due(cal.weekday_of(d)),
        )
        for d in cal.date_range(0, days, today)
    ]


def completion_dates(habits: Sequence[HabitLog]) -> List[str]:
    """Every date with at least one completion, ascending."""
    dates = set()
    for h in habits:
        dates.update(h.completions)
    return sorted(dates)
