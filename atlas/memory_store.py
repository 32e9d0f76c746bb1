"""
ATLAS Tracker - In-Memory Storage
Process-local Storage implementation for tests and database-free dev runs.
"""

import asyncio
import copy
from datetime import datetime
from itertools import count
from typing import Dict, List, Optional, Sequence, Tuple

from . import calendar_utils as cal
from .database import NotFoundError, Storage, group_sets
from .schedule import DEFAULT_SCHEDULE


class InMemoryStorage(Storage):
    """
    Dict-backed storage.

    Every mutating call runs under one asyncio lock so read-modify-write
    sequences (insert-if-absent, set numbering) are atomic. Returned records
    are copies; callers cannot mutate stored state.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._ids = count(1)
        self.habits: Dict[int, dict] = {}
        self.completions: Dict[int, set] = {}
        self.exercises: Dict[int, dict] = {}
        self.sessions: Dict[int, dict] = {}
        self.sets: Dict[int, dict] = {}
        self.goals: Dict[int, dict] = {}
        self.milestones: Dict[int, dict] = {}
        self.nutrition: Dict[str, dict] = {}
        self.unlocks: Dict[str, datetime] = {}

    def _next_id(self) -> int:
        return next(self._ids)

    # ============================================
    # HABITS
    # ============================================

    def _habit(self, habit_id: int) -> dict:
        habit = copy.deepcopy(self.habits[habit_id])
        habit["completions"] = sorted(self.completions[habit_id])
        return habit

    def _require_habit(self, habit_id: int) -> None:
        if habit_id not in self.habits:
            raise NotFoundError("Habit", habit_id)

    async def list_habits(self) -> List[dict]:
        ordered = sorted(self.habits.values(), key=lambda h: (h["created_at"], h["id"]))
        return [self._habit(h["id"]) for h in ordered]

    async def get_habit(self, habit_id: int) -> Optional[dict]:
        return self._habit(habit_id) if habit_id in self.habits else None

    async def create_habit(self, name, color, icon, why, schedule=DEFAULT_SCHEDULE,
                           created_at=None) -> dict:
        async with self._lock:
            habit_id = self._next_id()
            self.habits[habit_id] = {
                "id": habit_id,
                "name": name,
                "color": color,
                "icon": icon,
                "why": why,
                "schedule": schedule,
                "created_at": created_at or cal.today(),
            }
            self.completions[habit_id] = set()
            return self._habit(habit_id)

    async def update_habit(self, habit_id: int, **updates) -> dict:
        async with self._lock:
            self._require_habit(habit_id)
            for key in ("name", "color", "icon", "why", "schedule"):
                if key in updates:
                    self.habits[habit_id][key] = updates[key]
            return self._habit(habit_id)

    async def delete_habit(self, habit_id: int) -> None:
        async with self._lock:
            self._require_habit(habit_id)
            del self.habits[habit_id]
            del self.completions[habit_id]

    async def add_completion(self, habit_id: int, completed_date: str) -> bool:
        async with self._lock:
            self._require_habit(habit_id)
            done = self.completions[habit_id]
            if completed_date in done:
                return False
            done.add(completed_date)
            return True

    async def remove_completion(self, habit_id: int, completed_date: str) -> bool:
        async with self._lock:
            self._require_habit(habit_id)
            done = self.completions[habit_id]
            if completed_date not in done:
                return False
            done.discard(completed_date)
            return True

    # ============================================
    # EXERCISES & SESSIONS
    # ============================================

    async def list_exercises(self) -> List[dict]:
        return sorted((dict(e) for e in self.exercises.values()), key=lambda e: e["name"])

    async def get_or_create_exercise(self, name: str, muscle_group: Optional[str] = None) -> dict:
        async with self._lock:
            for exercise in self.exercises.values():
                if exercise["name"] == name:
                    if exercise["muscle_group"] is None:
                        exercise["muscle_group"] = muscle_group
                    return dict(exercise)
            exercise_id = self._next_id()
            self.exercises[exercise_id] = {"id": exercise_id, "name": name, "muscle_group": muscle_group}
            return dict(self.exercises[exercise_id])

    async def exercise_progress(self, exercise_id: int, limit: int = 30) -> List[dict]:
        by_date: Dict[str, dict] = {}
        for s in self.sets.values():
            if s["exercise_id"] != exercise_id:
                continue
            day = self.sessions[s["session_id"]]["date"]
            entry = by_date.setdefault(day, {"date": day, "max_weight": s["weight_kg"], "total_reps": 0})
            entry["max_weight"] = max(entry["max_weight"], s["weight_kg"])
            entry["total_reps"] += s["reps"]
        return [by_date[d] for d in sorted(by_date)][:limit]

    def _session(self, session_id: int) -> dict:
        session = dict(self.sessions[session_id])
        rows = []
        for s in sorted(self.sets.values(), key=lambda x: x["id"]):
            if s["session_id"] == session_id:
                exercise = self.exercises[s["exercise_id"]]
                rows.append(dict(s, exercise_name=exercise["name"], muscle_group=exercise["muscle_group"]))
        session["exercises"] = group_sets(rows)
        return session

    async def list_sessions(self, limit: int = 20) -> List[dict]:
        ordered = sorted(self.sessions.values(), key=lambda s: (s["date"], s["id"]), reverse=True)
        return [self._session(s["id"]) for s in ordered[:limit]]

    async def get_session(self, session_id: int) -> Optional[dict]:
        return self._session(session_id) if session_id in self.sessions else None

    async def create_session(self, session_date: str, notes: Optional[str]) -> dict:
        async with self._lock:
            session_id = self._next_id()
            self.sessions[session_id] = {
                "id": session_id,
                "date": session_date,
                "notes": notes,
                "created_at": datetime.now(cal.get_zone()),
            }
            return self._session(session_id)

    async def delete_session(self, session_id: int) -> None:
        async with self._lock:
            if session_id not in self.sessions:
                raise NotFoundError("Session", session_id)
            del self.sessions[session_id]
            for set_id in [k for k, s in self.sets.items() if s["session_id"] == session_id]:
                del self.sets[set_id]

    async def load_exercise_history(self, exercise_id: int,
                                    exclude_session_id: int) -> List[Tuple[int, float]]:
        return [
            (s["reps"], s["weight_kg"])
            for s in self.sets.values()
            if s["exercise_id"] == exercise_id and s["session_id"] != exclude_session_id
        ]

    async def append_sets(self, session_id: int, exercise_id: int,
                          sets: Sequence[Tuple[int, float, bool]]) -> List[dict]:
        async with self._lock:
            if session_id not in self.sessions:
                raise NotFoundError("Session", session_id)
            last = max(
                (s["set_number"] for s in self.sets.values()
                 if s["session_id"] == session_id and s["exercise_id"] == exercise_id),
                default=0
            )
            inserted = []
            for i, (reps, weight_kg, is_pr) in enumerate(sets, 1):
                set_id = self._next_id()
                self.sets[set_id] = {
                    "id": set_id,
                    "session_id": session_id,
                    "exercise_id": exercise_id,
                    "set_number": last + i,
                    "reps": reps,
                    "weight_kg": weight_kg,
                    "is_pr": is_pr,
                }
                inserted.append(dict(self.sets[set_id]))
            return inserted

    async def delete_set(self, session_id: int, set_id: int) -> None:
        async with self._lock:
            removed = self.sets.get(set_id)
            if removed is None or removed["session_id"] != session_id:
                raise NotFoundError("Set", set_id)
            del self.sets[set_id]
            for s in self.sets.values():
                if (s["session_id"] == session_id and s["exercise_id"] == removed["exercise_id"]
                        and s["set_number"] > removed["set_number"]):
                    s["set_number"] -= 1

    # ============================================
    # GOALS
    # ============================================

    def _goal(self, goal_id: int) -> dict:
        goal = dict(self.goals[goal_id])
        goal["milestones"] = sorted(
            (dict(m) for m in self.milestones.values() if m["goal_id"] == goal_id),
            key=lambda m: (m["position"], m["id"])
        )
        return goal

    def _milestone(self, goal_id: int, milestone_id: int) -> dict:
        milestone = self.milestones.get(milestone_id)
        if milestone is None or milestone["goal_id"] != goal_id:
            raise NotFoundError("Milestone", milestone_id)
        return milestone

    async def list_goals(self, status: Optional[str] = None) -> List[dict]:
        ordered = sorted(self.goals.values(), key=lambda g: (g["created_at"], g["id"]), reverse=True)
        return [self._goal(g["id"]) for g in ordered if status is None or g["status"] == status]

    async def get_goal(self, goal_id: int) -> Optional[dict]:
        return self._goal(goal_id) if goal_id in self.goals else None

    async def create_goal(self, title, description, target_date, created_at=None) -> dict:
        async with self._lock:
            goal_id = self._next_id()
            self.goals[goal_id] = {
                "id": goal_id,
                "title": title,
                "description": description,
                "target_date": target_date,
                "status": "active",
                "created_at": created_at or cal.today(),
            }
            return self._goal(goal_id)

    async def update_goal(self, goal_id: int, **updates) -> dict:
        async with self._lock:
            if goal_id not in self.goals:
                raise NotFoundError("Goal", goal_id)
            for key in ("title", "description", "target_date", "status"):
                if key in updates:
                    self.goals[goal_id][key] = updates[key]
            return self._goal(goal_id)

    async def delete_goal(self, goal_id: int) -> None:
        async with self._lock:
            if goal_id not in self.goals:
                raise NotFoundError("Goal", goal_id)
            del self.goals[goal_id]
            for milestone_id in [k for k, m in self.milestones.items() if m["goal_id"] == goal_id]:
                del self.milestones[milestone_id]

    async def add_milestone(self, goal_id: int, title: str) -> dict:
        async with self._lock:
            if goal_id not in self.goals:
                raise NotFoundError("Goal", goal_id)
            position = max(
                (m["position"] for m in self.milestones.values() if m["goal_id"] == goal_id),
                default=-1
            ) + 1
            milestone_id = self._next_id()
            self.milestones[milestone_id] = {
                "id": milestone_id,
                "goal_id": goal_id,
                "title": title,
                "completed_at": None,
                "position": position,
            }
            return dict(self.milestones[milestone_id])

    async def toggle_milestone(self, goal_id: int, milestone_id: int, now: datetime) -> dict:
        async with self._lock:
            milestone = self._milestone(goal_id, milestone_id)
            milestone["completed_at"] = None if milestone["completed_at"] else now
            return dict(milestone)

    async def delete_milestone(self, goal_id: int, milestone_id: int) -> None:
        async with self._lock:
            self._milestone(goal_id, milestone_id)
            del self.milestones[milestone_id]

    # ============================================
    # NUTRITION
    # ============================================

    async def get_nutrition(self, log_date: str) -> Optional[dict]:
        row = self.nutrition.get(log_date)
        return dict(row) if row else None

    async def upsert_nutrition(self, log_date, calories, protein_g, carbs_g, fat_g, notes) -> dict:
        async with self._lock:
            self.nutrition[log_date] = {
                "date": log_date,
                "calories": calories,
                "protein_g": protein_g,
                "carbs_g": carbs_g,
                "fat_g": fat_g,
                "notes": notes,
            }
            return dict(self.nutrition[log_date])

    # ============================================
    # ACHIEVEMENTS
    # ============================================

    async def load_unlocks(self) -> Dict[str, datetime]:
        return dict(self.unlocks)

    async def upsert_unlock_if_absent(self, achievement_id: str, unlocked_at: datetime) -> datetime:
        async with self._lock:
            return self.unlocks.setdefault(achievement_id, unlocked_at)
