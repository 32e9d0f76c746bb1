"""
ATLAS Tracker - Goals Module
Goals with ordered milestones and derived progress
"""

from datetime import datetime, timezone
from typing import List, Optional

from . import calendar_utils as cal
from .database import NotFoundError, Storage
from .logger import logger
from .stats import percent

CLEARABLE_FIELDS = {"description", "target_date"}


def with_progress(goal: dict) -> dict:
    """Attach milestone counts and ``progress`` (0-100, 0 without milestones)."""
    milestones = goal.get("milestones") or []
    done = sum(1 for m in milestones if m.get("completed_at"))
    goal["total_milestones"] = len(milestones)
    goal["done_milestones"] = done
    goal["progress"] = percent(done, len(milestones))
    return goal


# ============================================
# GOAL OPERATIONS
# ============================================

async def list_goals(storage: Storage, status: Optional[str] = None) -> List[dict]:
    """Goals newest first, optionally filtered by status."""
    return [with_progress(g) for g in await storage.list_goals(status)]


async def create_goal(
    storage: Storage,
    title: str,
    description: Optional[str] = None,
    target_date: Optional[str] = None
) -> dict:
    goal = await storage.create_goal(title, description, target_date, cal.today())
    logger.info(f"Goal created: {goal['id']} '{title}'")
    return with_progress(goal)


async def update_goal(storage: Storage, goal_id: int, **updates) -> dict:
    """Update goal fields. ``None`` clears description or target date."""
    updates = {k: v for k, v in updates.items() if v is not None or k in CLEARABLE_FIELDS}
    return with_progress(await storage.update_goal(goal_id, **updates))


async def delete_goal(storage: Storage, goal_id: int) -> None:
    await storage.delete_goal(goal_id)
    logger.info(f"Goal deleted: {goal_id}")


# ============================================
# MILESTONE OPERATIONS
# ============================================

async def add_milestone(storage: Storage, goal_id: int, title: str) -> dict:
    """Append a milestone after the goal's current last position."""
    return await storage.add_milestone(goal_id, title)


async def toggle_milestone(
    storage: Storage,
    goal_id: int,
    milestone_id: int,
    now: Optional[datetime] = None
) -> dict:
    """Flip a milestone between done (stamped ``now``) and not done."""
    milestone = await storage.toggle_milestone(
        goal_id, milestone_id, now or datetime.now(timezone.utc)
    )
    goal = await storage.get_goal(goal_id)
    if not goal:
        raise NotFoundError("Goal", goal_id)
    with_progress(goal)
    milestone["goal_progress"] = goal["progress"]
    return milestone


async def delete_milestone(storage: Storage, goal_id: int, milestone_id: int) -> None:
    await storage.delete_milestone(goal_id, milestone_id)
