"""Tests for the in-memory storage adapter."""

from datetime import datetime, timezone

import pytest

from atlas.database import NotFoundError

from .helpers import make_habit


async def test_completion_is_idempotent(storage):
    habit = await make_habit(storage)
    assert await storage.add_completion(habit["id"], "2024-06-12") is True
    assert await storage.add_completion(habit["id"], "2024-06-12") is False
    assert (await storage.get_habit(habit["id"]))["completions"] == ["2024-06-12"]


async def test_remove_completion_reports_presence(storage):
    habit = await make_habit(storage, completions=["2024-06-12"])
    assert await storage.remove_completion(habit["id"], "2024-06-12") is True
    assert await storage.remove_completion(habit["id"], "2024-06-12") is False


async def test_missing_habit_raises(storage):
    with pytest.raises(NotFoundError):
        await storage.add_completion(99, "2024-06-12")
    with pytest.raises(NotFoundError):
        await storage.delete_habit(99)
    assert await storage.get_habit(99) is None


async def test_delete_habit_drops_completions(storage):
    habit = await make_habit(storage, completions=["2024-06-12"])
    await storage.delete_habit(habit["id"])
    assert await storage.list_habits() == []


async def test_returned_records_are_copies(storage):
    habit = await make_habit(storage, completions=["2024-06-12"])
    habit["completions"].append("2024-06-13")
    habit["name"] = "changed"
    stored = await storage.get_habit(habit["id"])
    assert stored["completions"] == ["2024-06-12"]
    assert stored["name"] == "Read"


async def test_exercise_get_or_create_by_name(storage):
    first = await storage.get_or_create_exercise("Squat", None)
    again = await storage.get_or_create_exercise("Squat", "legs")
    assert again["id"] == first["id"]
    assert again["muscle_group"] == "legs"
    assert len(await storage.list_exercises()) == 1


async def test_set_numbers_continue_and_close_gaps(storage):
    session = await storage.create_session("2024-06-12", None)
    squat = await storage.get_or_create_exercise("Squat")
    first = await storage.append_sets(session["id"], squat["id"], [(5, 100, True), (5, 100, False)])
    more = await storage.append_sets(session["id"], squat["id"], [(3, 110, True)])
    assert [s["set_number"] for s in first + more] == [1, 2, 3]

    await storage.delete_set(session["id"], first[0]["id"])
    grouped = (await storage.get_session(session["id"]))["exercises"]
    assert [s["set_number"] for s in grouped[0]["sets"]] == [1, 2]
    assert [s["weight_kg"] for s in grouped[0]["sets"]] == [100, 110]


async def test_history_excludes_the_session(storage):
    squat = await storage.get_or_create_exercise("Squat")
    old = await storage.create_session("2024-06-10", None)
    new = await storage.create_session("2024-06-12", None)
    await storage.append_sets(old["id"], squat["id"], [(5, 100, True)])
    await storage.append_sets(new["id"], squat["id"], [(5, 120, True)])
    assert await storage.load_exercise_history(squat["id"], new["id"]) == [(5, 100)]


async def test_delete_session_removes_sets(storage):
    squat = await storage.get_or_create_exercise("Squat")
    session = await storage.create_session("2024-06-12", "legs")
    await storage.append_sets(session["id"], squat["id"], [(5, 100, True)])
    await storage.delete_session(session["id"])
    assert await storage.load_exercise_history(squat["id"], -1) == []
    with pytest.raises(NotFoundError):
        await storage.delete_session(session["id"])


async def test_exercise_progress_per_date(storage):
    squat = await storage.get_or_create_exercise("Squat")
    a = await storage.create_session("2024-06-10", None)
    b = await storage.create_session("2024-06-12", None)
    await storage.append_sets(b["id"], squat["id"], [(5, 110, True)])
    await storage.append_sets(a["id"], squat["id"], [(5, 100, True), (3, 105, True)])
    assert await storage.exercise_progress(squat["id"]) == [
        {"date": "2024-06-10", "max_weight": 105, "total_reps": 8},
        {"date": "2024-06-12", "max_weight": 110, "total_reps": 5},
    ]


async def test_milestone_positions_and_toggle(storage):
    goal = await storage.create_goal("Run a 10k", None, None, "2024-06-01")
    m1 = await storage.add_milestone(goal["id"], "5k")
    m2 = await storage.add_milestone(goal["id"], "8k")
    assert (m1["position"], m2["position"]) == (0, 1)

    now = datetime(2024, 6, 12, tzinfo=timezone.utc)
    assert (await storage.toggle_milestone(goal["id"], m1["id"], now))["completed_at"] == now
    assert (await storage.toggle_milestone(goal["id"], m1["id"], now))["completed_at"] is None

    with pytest.raises(NotFoundError):
        await storage.toggle_milestone(goal["id"] + 100, m1["id"], now)


async def test_goal_status_filter(storage):
    a = await storage.create_goal("A", None, None, "2024-06-01")
    await storage.create_goal("B", None, None, "2024-06-02")
    await storage.update_goal(a["id"], status="completed")
    assert [g["title"] for g in await storage.list_goals("active")] == ["B"]
    assert [g["title"] for g in await storage.list_goals()] == ["B", "A"]


async def test_nutrition_upsert_replaces(storage):
    await storage.upsert_nutrition("2024-06-12", 2000, 150, 200, 70, "cheat day")
    row = await storage.upsert_nutrition("2024-06-12", 1800, 160, 150, 60, None)
    assert row["calories"] == 1800
    assert (await storage.get_nutrition("2024-06-12"))["notes"] is None
    assert await storage.get_nutrition("2024-06-13") is None
