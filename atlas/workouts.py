"""
ATLAS Tracker - Workouts Module
Exercises, workout sessions, sets and personal-record flags
"""

from typing import List, Optional, Sequence

from . import calendar_utils as cal
from .database import NotFoundError, Storage
from .logger import logger
from .models import SetInput
from .records import mark_personal_records


def _summarize(session: dict) -> dict:
    sets = [s for e in session["exercises"] for s in e["sets"]]
    session["total_sets"] = len(sets)
    session["pr_count"] = sum(1 for s in sets if s["is_pr"])
    return session


# ============================================
# EXERCISES
# ============================================

async def list_exercises(storage: Storage) -> List[dict]:
    return await storage.list_exercises()


async def get_or_create_exercise(
    storage: Storage,
    name: str,
    muscle_group: Optional[str] = None
) -> dict:
    """Exercises are unique by name; an existing one is returned unchanged."""
    return await storage.get_or_create_exercise(name.strip(), muscle_group)


async def exercise_progress(storage: Storage, exercise_id: int, limit: int = 30) -> List[dict]:
    """Heaviest load and total reps per session date, oldest first."""
    return await storage.exercise_progress(exercise_id, limit)


# ============================================
# SESSIONS
# ============================================

async def list_sessions(storage: Storage, limit: int = 20) -> List[dict]:
    return [_summarize(s) for s in await storage.list_sessions(limit)]


async def get_session(storage: Storage, session_id: int) -> dict:
    session = await storage.get_session(session_id)
    if not session:
        raise NotFoundError("Session", session_id)
    return _summarize(session)


async def create_session(
    storage: Storage,
    date: Optional[str] = None,
    notes: Optional[str] = None
) -> dict:
    date = date or cal.today()
    cal.parse_date(date)
    session = await storage.create_session(date, notes)
    logger.info(f"Workout session {session['id']} started for {date}")
    return _summarize(session)


async def delete_session(storage: Storage, session_id: int) -> None:
    await storage.delete_session(session_id)
    logger.info(f"Workout session {session_id} deleted")


# ============================================
# SETS
# ============================================

async def add_sets(
    storage: Storage,
    session_id: int,
    exercise_name: str,
    sets: Sequence[SetInput],
    muscle_group: Optional[str] = None
) -> dict:
    """
    Append a batch of sets for one exercise to a session.

    The exercise is created on first use. Each set is flagged as a personal
    record against the exercise's history from other sessions, loaded once
    before the batch is written, so sets in the same request never compete
    with each other. The flag is stored with the set and never recomputed.

    Returns:
        {"exercise_name", "exercise_id", "sets": [inserted set rows]}
    """
    if not await storage.get_session(session_id):
        raise NotFoundError("Session", session_id)

    exercise = await get_or_create_exercise(storage, exercise_name, muscle_group)
    history = await storage.load_exercise_history(exercise["id"], session_id)

    samples = [(s.reps, s.weight_kg) for s in sets]
    flags = mark_personal_records(history, samples)

    inserted = await storage.append_sets(
        session_id,
        exercise["id"],
        [(reps, weight, is_pr) for (reps, weight), is_pr in zip(samples, flags)]
    )

    pr_count = sum(flags)
    if pr_count:
        logger.info(f"{pr_count} new PR(s) on {exercise['name']} in session {session_id}")

    return {
        "exercise_name": exercise["name"],
        "exercise_id": exercise["id"],
        "sets": inserted,
    }


async def delete_set(storage: Storage, session_id: int, set_id: int) -> None:
    """Remove a set. PR flags on the remaining sets are left as stored."""
    await storage.delete_set(session_id, set_id)
