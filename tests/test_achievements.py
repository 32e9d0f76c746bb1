"""Tests for the achievement catalog and write-once unlock ledger."""

import asyncio
from datetime import datetime, timedelta, timezone

from atlas import calendar_utils as cal
from atlas.achievements import (
    ACHIEVEMENT_DEFINITIONS, check_achievements, compute_stats, evaluate_achievements, is_met
)
from atlas.models import AchievementStats
from atlas.stats import HabitLog

from .helpers import make_habit


T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
T1 = datetime(2024, 6, 20, 12, 0, tzinfo=timezone.utc)


def test_catalog_has_fifteen_unique_entries():
    assert len(ACHIEVEMENT_DEFINITIONS) == 15
    categories = {d["category"] for d in ACHIEVEMENT_DEFINITIONS.values()}
    assert categories == {"milestone", "streak", "consistency"}


def test_thresholds_are_inclusive():
    assert is_met("ten_done", AchievementStats(total_completions=10))
    assert not is_met("ten_done", AchievementStats(total_completions=9))
    assert is_met("streak_7", AchievementStats(max_streak=7))


def test_compute_stats_without_habits():
    assert compute_stats([], "2024-06-12") == AchievementStats()


def test_compute_stats_counts_lifetime_days():
    habits = [
        HabitLog.from_record({"id": 1, "schedule": None,
                              "completions": ["2024-06-10", "2024-06-11", "2024-06-12"]}),
        HabitLog.from_record({"id": 2, "schedule": None, "completions": ["2024-06-12"]}),
    ]
    stats = compute_stats(habits, "2024-06-12")
    assert stats.total_completions == 4
    assert stats.habit_count == 2
    assert stats.active_days == 3
    assert stats.perfect_days == 1
    assert stats.max_streak == 3


def test_off_schedule_completion_counts_only_toward_total():
    # Monday-only habit, checked in on Monday and on Wednesday
    habit = HabitLog.from_record({"id": 1, "schedule": "1", "completions": ["2024-06-10", "2024-06-12"]})
    stats = compute_stats([habit], "2024-06-12")
    assert stats.total_completions == 2
    assert stats.active_days == 1
    assert stats.perfect_days == 1


def test_evaluate_marks_new_unlocks_with_now():
    statuses, new = evaluate_achievements(AchievementStats(total_completions=1), {}, T0)
    assert new == ["first_step"]
    first = next(s for s in statuses if s.id == "first_step")
    assert first.unlocked and first.unlocked_at == T0
    assert not next(s for s in statuses if s.id == "ten_done").unlocked


def test_ledger_entry_stays_unlocked_after_regression():
    statuses, new = evaluate_achievements(AchievementStats(), {"ten_done": T0}, T1)
    ten = next(s for s in statuses if s.id == "ten_done")
    assert ten.unlocked
    assert ten.unlocked_at == T0
    assert new == []


def test_statuses_follow_catalog_order():
    statuses, _ = evaluate_achievements(AchievementStats(), {}, T0)
    assert [s.id for s in statuses] == list(ACHIEVEMENT_DEFINITIONS)
    assert statuses[0].category == "milestone"


async def test_write_once_across_deletions(storage):
    today = cal.today()
    dates = [cal.date_offset(n, today) for n in range(10)]
    habit = await make_habit(storage, completions=dates)

    statuses = await check_achievements(storage, now=T0)
    ten = next(s for s in statuses if s.id == "ten_done")
    assert ten.unlocked_at == T0

    await storage.remove_completion(habit["id"], dates[0])
    await storage.remove_completion(habit["id"], dates[1])

    statuses = await check_achievements(storage, now=T1)
    ten = next(s for s in statuses if s.id == "ten_done")
    assert ten.unlocked
    assert ten.unlocked_at == T0
    assert (await storage.load_unlocks())["ten_done"] == T0


async def test_concurrent_unlocks_keep_first_timestamp(storage):
    results = await asyncio.gather(
        storage.upsert_unlock_if_absent("century", T0),
        storage.upsert_unlock_if_absent("century", T0 + timedelta(seconds=1)),
    )
    assert results == [T0, T0]


async def test_check_reports_surviving_timestamp(storage):
    await make_habit(storage, completions=[cal.today()])
    await storage.upsert_unlock_if_absent("first_step", T0)

    statuses = await check_achievements(storage, now=T1)
    first = next(s for s in statuses if s.id == "first_step")
    assert first.unlocked_at == T0
