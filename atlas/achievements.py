"""
ATLAS Tracker - Achievement System
Threshold achievements over lifetime habit stats, with a write-once unlock ledger
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from . import calendar_utils as cal
from .config import get_app_config
from .logger import logger
from .models import AchievementStats, AchievementStatus
from .stats import HabitLog, completion_dates, window_stats
from .streaks import MAX_LOOKBACK_DAYS, compute_streak


# ============================================
# ACHIEVEMENT DEFINITIONS
# ============================================

# Bump when entries are added or thresholds change. Identifiers are stable:
# unlock rows are keyed by them and are never rewritten.
CATALOG_VERSION = 1

ACHIEVEMENT_DEFINITIONS: Dict[str, Dict[str, Any]] = {
    # Milestones
    "first_step": {
        "title": "First Step",
        "description": "Log your first habit completion",
        "icon": "👣",
        "category": "milestone",
        "stat": "total_completions",
        "threshold_value": 1,
    },
    "ten_done": {
        "title": "Getting Started",
        "description": "Complete 10 habit check-ins",
        "icon": "🌱",
        "category": "milestone",
        "stat": "total_completions",
        "threshold_value": 10,
    },
    "fifty_done": {
        "title": "Building Momentum",
        "description": "Complete 50 habit check-ins",
        "icon": "⚡",
        "category": "milestone",
        "stat": "total_completions",
        "threshold_value": 50,
    },
    "century": {
        "title": "Century",
        "description": "Complete 100 habit check-ins",
        "icon": "💯",
        "category": "milestone",
        "stat": "total_completions",
        "threshold_value": 100,
    },
    "five_hundred": {
        "title": "The Grind",
        "description": "Complete 500 habit check-ins",
        "icon": "🏆",
        "category": "milestone",
        "stat": "total_completions",
        "threshold_value": 500,
    },
    # Streaks
    "streak_3": {
        "title": "Warm Up",
        "description": "Reach a 3-day streak on any habit",
        "icon": "🔥",
        "category": "streak",
        "stat": "max_streak",
        "threshold_value": 3,
    },
    "streak_7": {
        "title": "Week Warrior",
        "description": "Reach a 7-day streak on any habit",
        "icon": "🗡️",
        "category": "streak",
        "stat": "max_streak",
        "threshold_value": 7,
    },
    "streak_14": {
        "title": "Two Weeks Strong",
        "description": "Reach a 14-day streak on any habit",
        "icon": "⚔️",
        "category": "streak",
        "stat": "max_streak",
        "threshold_value": 14,
    },
    "streak_30": {
        "title": "Unstoppable",
        "description": "Reach a 30-day streak on any habit",
        "icon": "🌋",
        "category": "streak",
        "stat": "max_streak",
        "threshold_value": 30,
    },
    "streak_100": {
        "title": "Centurion",
        "description": "Reach a 100-day streak on any habit",
        "icon": "👑",
        "category": "streak",
        "stat": "max_streak",
        "threshold_value": 100,
    },
    # Consistency
    "perfect_1": {
        "title": "Perfect Day",
        "description": "Complete every habit in a single day",
        "icon": "✨",
        "category": "consistency",
        "stat": "perfect_days",
        "threshold_value": 1,
    },
    "perfect_7": {
        "title": "Flawless Week",
        "description": "Achieve 7 perfect days",
        "icon": "💎",
        "category": "consistency",
        "stat": "perfect_days",
        "threshold_value": 7,
    },
    "perfect_30": {
        "title": "The Machine",
        "description": "Achieve 30 perfect days",
        "icon": "🤖",
        "category": "consistency",
        "stat": "perfect_days",
        "threshold_value": 30,
    },
    "active_30": {
        "title": "Committed",
        "description": "Be active for 30 different days",
        "icon": "📅",
        "category": "consistency",
        "stat": "active_days",
        "threshold_value": 30,
    },
    "active_100": {
        "title": "Lifestyle",
        "description": "Be active for 100 different days",
        "icon": "🧬",
        "category": "consistency",
        "stat": "active_days",
        "threshold_value": 100,
    },
}


def is_met(code: str, stats: AchievementStats) -> bool:
    """Evaluate one catalog predicate against a stats snapshot."""
    definition = ACHIEVEMENT_DEFINITIONS[code]
    return getattr(stats, definition["stat"]) >= definition["threshold_value"]


# ============================================
# STATS
# ============================================

def compute_stats(
    habits: Sequence[HabitLog],
    today: Optional[str] = None,
    max_days: int = MAX_LOOKBACK_DAYS
) -> AchievementStats:
    """
    Lifetime stats across all habits.

    Perfect and active days are counted over every date that has at least
    one completion, using the same schedule-aware per-day logic as the
    dashboard windows. ``total_completions`` counts every stored completion,
    so a check-in on an unscheduled day counts toward completion milestones
    but not toward active or perfect days.
    """
    if not habits:
        return AchievementStats()

    today = today or cal.today()
    lifetime = window_stats(habits, completion_dates(habits))

    return AchievementStats(
        total_completions=sum(len(h.completions) for h in habits),
        habit_count=len(habits),
        perfect_days=lifetime.perfect_days,
        active_days=lifetime.days_active,
        max_streak=max(compute_streak(h.schedule, h.completions, today, max_days) for h in habits),
    )


# ============================================
# EVALUATION
# ============================================

def build_status(code: str, unlocked_at: Optional[datetime]) -> AchievementStatus:
    definition = ACHIEVEMENT_DEFINITIONS[code]
    return AchievementStatus(
        id=code,
        title=definition["title"],
        description=definition["description"],
        icon=definition["icon"],
        category=definition["category"],
        unlocked=unlocked_at is not None,
        unlocked_at=unlocked_at,
    )


def evaluate_achievements(
    stats: AchievementStats,
    ledger: Dict[str, datetime],
    now: Optional[datetime] = None
) -> Tuple[List[AchievementStatus], List[str]]:
    """
    Evaluate the whole catalog against a stats snapshot and the unlock ledger.

    An achievement already in the ledger stays unlocked with its recorded
    time, even if the stat has since dropped below the threshold. A met
    predicate without a ledger entry is reported as unlocked at ``now``.

    Args:
        stats: Current lifetime stats
        ledger: Achievement id -> first unlock time
        now: Timestamp for new unlocks (defaults to current UTC time)

    Returns:
        Tuple of (status for every catalog entry, ids newly unlocked)
    """
    now = now or datetime.now(timezone.utc)
    statuses = []
    newly_unlocked = []

    for code in ACHIEVEMENT_DEFINITIONS:
        unlocked_at = ledger.get(code)
        if unlocked_at is None and is_met(code, stats):
            unlocked_at = now
            newly_unlocked.append(code)
        statuses.append(build_status(code, unlocked_at))

    return statuses, newly_unlocked


async def check_achievements(storage, now: Optional[datetime] = None) -> List[AchievementStatus]:
    """
    Compute stats from storage, evaluate the catalog and persist new unlocks.

    New unlocks go through the storage insert-if-absent primitive; when a
    concurrent evaluation got there first, its timestamp is the one reported.
    """
    config = get_app_config()
    habits = [HabitLog.from_record(h) for h in await storage.list_habits()]
    stats = compute_stats(habits, cal.today(), config.streak_lookback_days)
    ledger = await storage.load_unlocks()

    statuses, newly_unlocked = evaluate_achievements(stats, ledger, now)
    if not newly_unlocked:
        return statuses

    by_code = {s.id: s for s in statuses}
    for code in newly_unlocked:
        kept = await storage.upsert_unlock_if_absent(code, by_code[code].unlocked_at)
        by_code[code] = build_status(code, kept)
        logger.info(f"Achievement unlocked: {code} at {kept.isoformat()}")

    return [by_code[code] for code in ACHIEVEMENT_DEFINITIONS]
