"""
ATLAS Tracker - Storage
Storage interface plus the PostgreSQL adapter (async, asyncpg)
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import asyncpg

from . import calendar_utils as cal
from .config import DatabaseConfig, get_database_config
from .logger import logger
from .schedule import DEFAULT_SCHEDULE


class NotFoundError(LookupError):
    """The entity an operation must act on does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


# ============================================
# STORAGE INTERFACE
# ============================================

class Storage(ABC):
    """
    Persistence boundary used by every service module.

    Records are plain dicts. Dates are ``YYYY-MM-DD`` strings, timestamps are
    aware datetimes. Operations that target one entity raise NotFoundError
    when it is missing.
    """

    async def connect(self) -> None:
        """Open resources. Called once at process start."""

    async def disconnect(self) -> None:
        """Release resources. Called once at shutdown."""

    # Habits
    @abstractmethod
    async def list_habits(self) -> List[dict]:
        """All habits in creation order, each with a sorted ``completions`` list."""

    @abstractmethod
    async def get_habit(self, habit_id: int) -> Optional[dict]: ...

    @abstractmethod
    async def create_habit(self, name: str, color: str, icon: str, why: Optional[str],
                           schedule: str, created_at: str) -> dict: ...

    @abstractmethod
    async def update_habit(self, habit_id: int, **updates) -> dict: ...

    @abstractmethod
    async def delete_habit(self, habit_id: int) -> None:
        """Delete a habit together with all its completions."""

    @abstractmethod
    async def add_completion(self, habit_id: int, completed_date: str) -> bool:
        """Record a completion. Returns False when it already existed."""

    @abstractmethod
    async def remove_completion(self, habit_id: int, completed_date: str) -> bool: ...

    # Exercises and sessions
    @abstractmethod
    async def list_exercises(self) -> List[dict]: ...

    @abstractmethod
    async def get_or_create_exercise(self, name: str, muscle_group: Optional[str] = None) -> dict:
        """Atomic upsert by exercise name."""

    @abstractmethod
    async def exercise_progress(self, exercise_id: int, limit: int = 30) -> List[dict]:
        """Per session date: ``max_weight`` and ``total_reps`` for one exercise."""

    @abstractmethod
    async def list_sessions(self, limit: int = 20) -> List[dict]:
        """Most recent sessions first, each with grouped ``exercises``."""

    @abstractmethod
    async def get_session(self, session_id: int) -> Optional[dict]: ...

    @abstractmethod
    async def create_session(self, session_date: str, notes: Optional[str]) -> dict: ...

    @abstractmethod
    async def delete_session(self, session_id: int) -> None: ...

    @abstractmethod
    async def load_exercise_history(self, exercise_id: int,
                                    exclude_session_id: int) -> List[Tuple[int, float]]:
        """``(reps, weight_kg)`` of every set of an exercise outside one session."""

    @abstractmethod
    async def append_sets(self, session_id: int, exercise_id: int,
                          sets: Sequence[Tuple[int, float, bool]]) -> List[dict]:
        """Append ``(reps, weight_kg, is_pr)`` sets after the exercise's last set."""

    @abstractmethod
    async def delete_set(self, session_id: int, set_id: int) -> None:
        """Delete a set and close the gap in its exercise's set numbers."""

    # Goals
    @abstractmethod
    async def list_goals(self, status: Optional[str] = None) -> List[dict]:
        """Newest first, each with ``milestones`` ordered by position."""

    @abstractmethod
    async def get_goal(self, goal_id: int) -> Optional[dict]: ...

    @abstractmethod
    async def create_goal(self, title: str, description: Optional[str],
                          target_date: Optional[str], created_at: str) -> dict: ...

    @abstractmethod
    async def update_goal(self, goal_id: int, **updates) -> dict: ...

    @abstractmethod
    async def delete_goal(self, goal_id: int) -> None: ...

    @abstractmethod
    async def add_milestone(self, goal_id: int, title: str) -> dict: ...

    @abstractmethod
    async def toggle_milestone(self, goal_id: int, milestone_id: int, now: datetime) -> dict: ...

    @abstractmethod
    async def delete_milestone(self, goal_id: int, milestone_id: int) -> None: ...

    # Nutrition
    @abstractmethod
    async def get_nutrition(self, log_date: str) -> Optional[dict]: ...

    @abstractmethod
    async def upsert_nutrition(self, log_date: str, calories: int, protein_g: float,
                               carbs_g: float, fat_g: float, notes: Optional[str]) -> dict: ...

    # Achievements
    @abstractmethod
    async def load_unlocks(self) -> Dict[str, datetime]: ...

    @abstractmethod
    async def upsert_unlock_if_absent(self, achievement_id: str, unlocked_at: datetime) -> datetime:
        """Insert an unlock unless one exists. Returns the stored (first) timestamp."""


# ============================================
# CONNECTION POOL
# ============================================

class Database:
    """Async database connection manager."""

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self._config = config or get_database_config()
        self._pool = None

    async def connect(self):
        """Create connection pool."""
        self._pool = await asyncpg.create_pool(
            self._config.url,
            min_size=self._config.min_pool_size,
            max_size=self._config.max_pool_size
        )
        logger.info("Database connected")

    async def disconnect(self):
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Database disconnected")

    async def fetch(self, query: str, *args) -> List[dict]:
        """Fetch multiple rows."""
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, *args)
            return [dict(row) for row in rows]

    async def fetch_one(self, query: str, *args) -> Optional[dict]:
        """Fetch single row."""
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, *args)
            return dict(row) if row else None

    async def execute(self, query: str, *args) -> str:
        """Execute query (INSERT, UPDATE, DELETE)."""
        async with self._pool.acquire() as conn:
            return await conn.execute(query, *args)

    async def execute_returning(self, query: str, *args) -> Optional[dict]:
        """Execute and return the affected row."""
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, *args)
            return dict(row) if row else None

    @asynccontextmanager
    async def transaction(self):
        """Yield a connection inside a transaction."""
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                yield conn


SCHEMA = [
    """CREATE TABLE IF NOT EXISTS habits (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        color TEXT NOT NULL DEFAULT '#e8b04b',
        icon TEXT NOT NULL DEFAULT '⚡',
        why TEXT,
        schedule TEXT NOT NULL DEFAULT '0,1,2,3,4,5,6',
        created_at DATE NOT NULL DEFAULT CURRENT_DATE
    )""",
    """CREATE TABLE IF NOT EXISTS habit_completions (
        id SERIAL PRIMARY KEY,
        habit_id INTEGER NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
        completed_date DATE NOT NULL,
        UNIQUE(habit_id, completed_date)
    )""",
    """CREATE TABLE IF NOT EXISTS exercises (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        muscle_group TEXT
    )""",
    """CREATE TABLE IF NOT EXISTS workout_sessions (
        id SERIAL PRIMARY KEY,
        date DATE NOT NULL,
        notes TEXT,
        created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
    )""",
    """CREATE TABLE IF NOT EXISTS workout_sets (
        id SERIAL PRIMARY KEY,
        session_id INTEGER NOT NULL REFERENCES workout_sessions(id) ON DELETE CASCADE,
        exercise_id INTEGER NOT NULL REFERENCES exercises(id),
        set_number INTEGER NOT NULL DEFAULT 1,
        reps INTEGER NOT NULL,
        weight_kg DOUBLE PRECISION NOT NULL DEFAULT 0,
        is_pr BOOLEAN NOT NULL DEFAULT FALSE
    )""",
    """CREATE TABLE IF NOT EXISTS goals (
        id SERIAL PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        target_date DATE,
        status VARCHAR(20) NOT NULL DEFAULT 'active'
            CHECK (status IN ('active', 'completed', 'abandoned')),
        created_at DATE NOT NULL DEFAULT CURRENT_DATE
    )""",
    """CREATE TABLE IF NOT EXISTS goal_milestones (
        id SERIAL PRIMARY KEY,
        goal_id INTEGER NOT NULL REFERENCES goals(id) ON DELETE CASCADE,
        title TEXT NOT NULL,
        completed_at TIMESTAMP WITH TIME ZONE,
        position INTEGER NOT NULL DEFAULT 0
    )""",
    """CREATE TABLE IF NOT EXISTS nutrition_logs (
        id SERIAL PRIMARY KEY,
        date DATE NOT NULL UNIQUE,
        calories INTEGER NOT NULL DEFAULT 0,
        protein_g DOUBLE PRECISION NOT NULL DEFAULT 0,
        carbs_g DOUBLE PRECISION NOT NULL DEFAULT 0,
        fat_g DOUBLE PRECISION NOT NULL DEFAULT 0,
        notes TEXT
    )""",
    """CREATE TABLE IF NOT EXISTS achievement_unlocks (
        id VARCHAR(50) PRIMARY KEY,
        unlocked_at TIMESTAMP WITH TIME ZONE NOT NULL
    )""",
    """CREATE INDEX IF NOT EXISTS idx_workout_sets_exercise
        ON workout_sets(exercise_id, reps)""",
]


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _day(value: Optional[str]) -> Optional[date]:
    return cal.parse_date(value) if value is not None else None


def _set_clause(updates: Dict[str, Any]) -> Tuple[str, List[Any]]:
    set_parts = []
    values = []
    for i, (k, v) in enumerate(updates.items(), 1):
        set_parts.append(f"{k} = ${i}")
        values.append(v)
    return ", ".join(set_parts), values


# ============================================
# POSTGRESQL ADAPTER
# ============================================

class PostgresStorage(Storage):
    """Storage backed by PostgreSQL through an asyncpg pool."""

    HABIT_FIELDS = {"name", "color", "icon", "why", "schedule"}
    GOAL_FIELDS = {"title", "description", "target_date", "status"}

    def __init__(self, database: Optional[Database] = None):
        self.db = database or Database()

    async def connect(self) -> None:
        await self.db.connect()
        for statement in SCHEMA:
            await self.db.execute(statement)

    async def disconnect(self) -> None:
        await self.db.disconnect()

    # ============================================
    # HABIT QUERIES
    # ============================================

    def _habit(self, row: dict) -> dict:
        row["created_at"] = _iso(row["created_at"])
        row["completions"] = [d.isoformat() for d in row.get("completions") or []]
        return row

    async def list_habits(self) -> List[dict]:
        rows = await self.db.fetch(
            """SELECT h.*,
                      COALESCE(
                          array_agg(c.completed_date ORDER BY c.completed_date)
                              FILTER (WHERE c.completed_date IS NOT NULL),
                          '{}'::date[]
                      ) AS completions
               FROM habits h
               LEFT JOIN habit_completions c ON c.habit_id = h.id
               GROUP BY h.id
               ORDER BY h.created_at, h.id"""
        )
        return [self._habit(r) for r in rows]

    async def get_habit(self, habit_id: int) -> Optional[dict]:
        row = await self.db.fetch_one(
            """SELECT h.*,
                      COALESCE(
                          array_agg(c.completed_date ORDER BY c.completed_date)
                              FILTER (WHERE c.completed_date IS NOT NULL),
                          '{}'::date[]
                      ) AS completions
               FROM habits h
               LEFT JOIN habit_completions c ON c.habit_id = h.id
               WHERE h.id = $1
               GROUP BY h.id""",
            habit_id
        )
        return self._habit(row) if row else None

    async def create_habit(self, name, color, icon, why, schedule=DEFAULT_SCHEDULE,
                           created_at=None) -> dict:
        row = await self.db.execute_returning(
            """INSERT INTO habits (name, color, icon, why, schedule, created_at)
               VALUES ($1, $2, $3, $4, $5, $6) RETURNING *""",
            name, color, icon, why, schedule, _day(created_at or cal.today())
        )
        row["completions"] = []
        return self._habit(row)

    async def update_habit(self, habit_id: int, **updates) -> dict:
        updates = {k: v for k, v in updates.items() if k in self.HABIT_FIELDS}
        if updates:
            set_clause, values = _set_clause(updates)
            values.append(habit_id)
            row = await self.db.execute_returning(
                f"UPDATE habits SET {set_clause} WHERE id = ${len(values)} RETURNING id",
                *values
            )
            if not row:
                raise NotFoundError("Habit", habit_id)
        habit = await self.get_habit(habit_id)
        if not habit:
            raise NotFoundError("Habit", habit_id)
        return habit

    async def delete_habit(self, habit_id: int) -> None:
        result = await self.db.execute("DELETE FROM habits WHERE id = $1", habit_id)
        if result != "DELETE 1":
            raise NotFoundError("Habit", habit_id)

    async def _require_habit(self, conn, habit_id: int) -> None:
        if not await conn.fetchval("SELECT 1 FROM habits WHERE id = $1", habit_id):
            raise NotFoundError("Habit", habit_id)

    async def add_completion(self, habit_id: int, completed_date: str) -> bool:
        async with self.db.transaction() as conn:
            await self._require_habit(conn, habit_id)
            result = await conn.execute(
                """INSERT INTO habit_completions (habit_id, completed_date)
                   VALUES ($1, $2)
                   ON CONFLICT (habit_id, completed_date) DO NOTHING""",
                habit_id, _day(completed_date)
            )
        return result == "INSERT 0 1"

    async def remove_completion(self, habit_id: int, completed_date: str) -> bool:
        async with self.db.transaction() as conn:
            await self._require_habit(conn, habit_id)
            result = await conn.execute(
                "DELETE FROM habit_completions WHERE habit_id = $1 AND completed_date = $2",
                habit_id, _day(completed_date)
            )
        return result == "DELETE 1"

    # ============================================
    # EXERCISE & SESSION QUERIES
    # ============================================

    async def list_exercises(self) -> List[dict]:
        return await self.db.fetch("SELECT * FROM exercises ORDER BY name")

    async def get_or_create_exercise(self, name: str, muscle_group: Optional[str] = None) -> dict:
        # The update makes RETURNING yield the existing row on conflict
        return await self.db.execute_returning(
            """INSERT INTO exercises (name, muscle_group)
               VALUES ($1, $2)
               ON CONFLICT (name) DO UPDATE
                   SET muscle_group = COALESCE(exercises.muscle_group, EXCLUDED.muscle_group)
               RETURNING *""",
            name, muscle_group
        )

    async def exercise_progress(self, exercise_id: int, limit: int = 30) -> List[dict]:
        rows = await self.db.fetch(
            """SELECT sess.date, MAX(ws.weight_kg) AS max_weight, SUM(ws.reps) AS total_reps
               FROM workout_sets ws
               JOIN workout_sessions sess ON ws.session_id = sess.id
               WHERE ws.exercise_id = $1
               GROUP BY sess.date
               ORDER BY sess.date
               LIMIT $2""",
            exercise_id, limit
        )
        for r in rows:
            r["date"] = _iso(r["date"])
        return rows

    async def _sessions_with_sets(self, sessions: List[dict]) -> List[dict]:
        if not sessions:
            return []
        ids = [s["id"] for s in sessions]
        sets = await self.db.fetch(
            """SELECT ws.*, e.name AS exercise_name, e.muscle_group
               FROM workout_sets ws
               JOIN exercises e ON ws.exercise_id = e.id
               WHERE ws.session_id = ANY($1::int[])
               ORDER BY ws.session_id, ws.id""",
            ids
        )
        for s in sessions:
            s["date"] = _iso(s["date"])
            s["exercises"] = group_sets([x for x in sets if x["session_id"] == s["id"]])
        return sessions

    async def list_sessions(self, limit: int = 20) -> List[dict]:
        sessions = await self.db.fetch(
            "SELECT * FROM workout_sessions ORDER BY date DESC, id DESC LIMIT $1", limit
        )
        return await self._sessions_with_sets(sessions)

    async def get_session(self, session_id: int) -> Optional[dict]:
        session = await self.db.fetch_one(
            "SELECT * FROM workout_sessions WHERE id = $1", session_id
        )
        if not session:
            return None
        return (await self._sessions_with_sets([session]))[0]

    async def create_session(self, session_date: str, notes: Optional[str]) -> dict:
        row = await self.db.execute_returning(
            "INSERT INTO workout_sessions (date, notes) VALUES ($1, $2) RETURNING *",
            _day(session_date), notes
        )
        row["date"] = _iso(row["date"])
        row["exercises"] = []
        return row

    async def delete_session(self, session_id: int) -> None:
        result = await self.db.execute("DELETE FROM workout_sessions WHERE id = $1", session_id)
        if result != "DELETE 1":
            raise NotFoundError("Session", session_id)

    async def load_exercise_history(self, exercise_id: int,
                                    exclude_session_id: int) -> List[Tuple[int, float]]:
        rows = await self.db.fetch(
            """SELECT reps, weight_kg FROM workout_sets
               WHERE exercise_id = $1 AND session_id != $2""",
            exercise_id, exclude_session_id
        )
        return [(r["reps"], r["weight_kg"]) for r in rows]

    async def append_sets(self, session_id: int, exercise_id: int,
                          sets: Sequence[Tuple[int, float, bool]]) -> List[dict]:
        async with self.db.transaction() as conn:
            # Row lock serializes concurrent appends to the same session
            locked = await conn.fetchval(
                "SELECT id FROM workout_sessions WHERE id = $1 FOR UPDATE", session_id
            )
            if not locked:
                raise NotFoundError("Session", session_id)

            last = await conn.fetchval(
                """SELECT COALESCE(MAX(set_number), 0) FROM workout_sets
                   WHERE session_id = $1 AND exercise_id = $2""",
                session_id, exercise_id
            )
            inserted = []
            for i, (reps, weight_kg, is_pr) in enumerate(sets, 1):
                row = await conn.fetchrow(
                    """INSERT INTO workout_sets
                           (session_id, exercise_id, set_number, reps, weight_kg, is_pr)
                       VALUES ($1, $2, $3, $4, $5, $6) RETURNING *""",
                    session_id, exercise_id, last + i, reps, weight_kg, is_pr
                )
                inserted.append(dict(row))
        return inserted

    async def delete_set(self, session_id: int, set_id: int) -> None:
        async with self.db.transaction() as conn:
            row = await conn.fetchrow(
                """DELETE FROM workout_sets WHERE id = $1 AND session_id = $2
                   RETURNING exercise_id, set_number""",
                set_id, session_id
            )
            if not row:
                raise NotFoundError("Set", set_id)
            await conn.execute(
                """UPDATE workout_sets SET set_number = set_number - 1
                   WHERE session_id = $1 AND exercise_id = $2 AND set_number > $3""",
                session_id, row["exercise_id"], row["set_number"]
            )

    # ============================================
    # GOAL QUERIES
    # ============================================

    def _goal(self, row: dict, milestones: List[dict]) -> dict:
        row["target_date"] = _iso(row["target_date"])
        row["created_at"] = _iso(row["created_at"])
        row["milestones"] = [m for m in milestones if m["goal_id"] == row["id"]]
        return row

    async def _milestones(self, goal_ids: List[int]) -> List[dict]:
        if not goal_ids:
            return []
        return await self.db.fetch(
            """SELECT * FROM goal_milestones WHERE goal_id = ANY($1::int[])
               ORDER BY position, id""",
            goal_ids
        )

    async def list_goals(self, status: Optional[str] = None) -> List[dict]:
        if status:
            goals = await self.db.fetch(
                "SELECT * FROM goals WHERE status = $1 ORDER BY created_at DESC, id DESC", status
            )
        else:
            goals = await self.db.fetch("SELECT * FROM goals ORDER BY created_at DESC, id DESC")
        milestones = await self._milestones([g["id"] for g in goals])
        return [self._goal(g, milestones) for g in goals]

    async def get_goal(self, goal_id: int) -> Optional[dict]:
        goal = await self.db.fetch_one("SELECT * FROM goals WHERE id = $1", goal_id)
        if not goal:
            return None
        return self._goal(goal, await self._milestones([goal_id]))

    async def create_goal(self, title, description, target_date, created_at=None) -> dict:
        row = await self.db.execute_returning(
            """INSERT INTO goals (title, description, target_date, created_at)
               VALUES ($1, $2, $3, $4) RETURNING *""",
            title, description, _day(target_date), _day(created_at or cal.today())
        )
        return self._goal(row, [])

    async def update_goal(self, goal_id: int, **updates) -> dict:
        updates = {k: v for k, v in updates.items() if k in self.GOAL_FIELDS}
        if "target_date" in updates:
            updates["target_date"] = _day(updates["target_date"])
        if updates:
            set_clause, values = _set_clause(updates)
            values.append(goal_id)
            row = await self.db.execute_returning(
                f"UPDATE goals SET {set_clause} WHERE id = ${len(values)} RETURNING id",
                *values
            )
            if not row:
                raise NotFoundError("Goal", goal_id)
        goal = await self.get_goal(goal_id)
        if not goal:
            raise NotFoundError("Goal", goal_id)
        return goal

    async def delete_goal(self, goal_id: int) -> None:
        result = await self.db.execute("DELETE FROM goals WHERE id = $1", goal_id)
        if result != "DELETE 1":
            raise NotFoundError("Goal", goal_id)

    async def add_milestone(self, goal_id: int, title: str) -> dict:
        async with self.db.transaction() as conn:
            if not await conn.fetchval("SELECT id FROM goals WHERE id = $1 FOR UPDATE", goal_id):
                raise NotFoundError("Goal", goal_id)
            row = await conn.fetchrow(
                """INSERT INTO goal_milestones (goal_id, title, position)
                   SELECT $1, $2, COALESCE(MAX(position), -1) + 1
                   FROM goal_milestones WHERE goal_id = $1
                   RETURNING *""",
                goal_id, title
            )
        return dict(row)

    async def toggle_milestone(self, goal_id: int, milestone_id: int, now: datetime) -> dict:
        row = await self.db.execute_returning(
            """UPDATE goal_milestones
               SET completed_at = CASE WHEN completed_at IS NULL THEN $3 ELSE NULL END
               WHERE id = $1 AND goal_id = $2
               RETURNING *""",
            milestone_id, goal_id, now
        )
        if not row:
            raise NotFoundError("Milestone", milestone_id)
        return row

    async def delete_milestone(self, goal_id: int, milestone_id: int) -> None:
        result = await self.db.execute(
            "DELETE FROM goal_milestones WHERE id = $1 AND goal_id = $2", milestone_id, goal_id
        )
        if result != "DELETE 1":
            raise NotFoundError("Milestone", milestone_id)

    # ============================================
    # NUTRITION QUERIES
    # ============================================

    async def get_nutrition(self, log_date: str) -> Optional[dict]:
        row = await self.db.fetch_one(
            "SELECT * FROM nutrition_logs WHERE date = $1", _day(log_date)
        )
        if row:
            row["date"] = _iso(row["date"])
        return row

    async def upsert_nutrition(self, log_date, calories, protein_g, carbs_g, fat_g, notes) -> dict:
        row = await self.db.execute_returning(
            """INSERT INTO nutrition_logs (date, calories, protein_g, carbs_g, fat_g, notes)
               VALUES ($1, $2, $3, $4, $5, $6)
               ON CONFLICT (date) DO UPDATE SET
                   calories = EXCLUDED.calories,
                   protein_g = EXCLUDED.protein_g,
                   carbs_g = EXCLUDED.carbs_g,
                   fat_g = EXCLUDED.fat_g,
                   notes = EXCLUDED.notes
               RETURNING *""",
            _day(log_date), calories, protein_g, carbs_g, fat_g, notes
        )
        row["date"] = _iso(row["date"])
        return row

    # ============================================
    # ACHIEVEMENT QUERIES
    # ============================================

    async def load_unlocks(self) -> Dict[str, datetime]:
        rows = await self.db.fetch("SELECT id, unlocked_at FROM achievement_unlocks")
        return {r["id"]: r["unlocked_at"] for r in rows}

    async def upsert_unlock_if_absent(self, achievement_id: str, unlocked_at: datetime) -> datetime:
        row = await self.db.fetch_one(
            """INSERT INTO achievement_unlocks (id, unlocked_at)
               VALUES ($1, $2)
               ON CONFLICT (id) DO NOTHING
               RETURNING unlocked_at""",
            achievement_id, unlocked_at
        )
        if row:
            return row["unlocked_at"]
        # Lost the race: report the row that was written first
        existing = await self.db.fetch_one(
            "SELECT unlocked_at FROM achievement_unlocks WHERE id = $1", achievement_id
        )
        return existing["unlocked_at"]


# ============================================
# HELPERS
# ============================================

def group_sets(sets: List[dict]) -> List[dict]:
    """
    Group a session's sets by exercise, in order of first appearance.

    Each set dict needs ``exercise_id``, ``exercise_name`` and
    ``muscle_group`` besides its own fields.
    """
    exercises: Dict[int, dict] = {}
    for s in sets:
        entry = exercises.setdefault(s["exercise_id"], {
            "exercise_id": s["exercise_id"],
            "name": s["exercise_name"],
            "muscle_group": s.get("muscle_group"),
            "sets": [],
            "has_pr": False,
        })
        entry["sets"].append({
            "id": s["id"],
            "set_number": s["set_number"],
            "reps": s["reps"],
            "weight_kg": s["weight_kg"],
            "is_pr": s["is_pr"],
        })
        entry["has_pr"] = entry["has_pr"] or bool(s["is_pr"])

    for entry in exercises.values():
        entry["sets"].sort(key=lambda x: x["set_number"])
    return list(exercises.values())
