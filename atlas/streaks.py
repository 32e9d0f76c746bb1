"""
ATLAS Tracker - Streak Engine
Consecutive scheduled-day completion counts.
"""

from typing import Iterable, Optional

from . import calendar_utils as cal
from .schedule import ScheduleLike, as_weekdays


# Safety ceiling for the backward walk
MAX_LOOKBACK_DAYS = 400


def compute_streak(
    schedule: ScheduleLike,
    completions: Iterable[str],
    today: Optional[str] = None,
    max_days: int = MAX_LOOKBACK_DAYS
) -> int:
    """
    Current streak for one habit.

    Walks backward from today. Days the habit is not scheduled on are
    skipped without breaking the streak. Today only counts when it is
    already completed; an unfinished today does not break anything, the walk
    simply starts from yesterday. The first scheduled day without a
    completion ends the streak.

    Args:
        schedule: Schedule string or weekday set (Sunday=0)
        completions: Completion dates, any order, duplicates allowed
        today: Reference date, defaults to today in the tracker timezone
        max_days: How many days back the walk may go at most

    Returns:
        Number of scheduled days in the streak
    """
    done = set(completions)
    if not done:
        return 0

    weekdays = as_weekdays(schedule)
    today = today or cal.today()

    offset = 0 if today in done and cal.weekday_of(today) in weekdays else 1
    streak = 0

    while offset <= max_days:
        day = cal.date_offset(offset, today)
        if cal.weekday_of(day) in weekdays:
            if day not in done:
                break
            streak += 1
        offset += 1

    return streak
