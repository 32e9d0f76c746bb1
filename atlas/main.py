"""
ATLAS Tracker - FastAPI Backend
HTTP JSON API over habits, workouts, goals, nutrition and derived stats
"""

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from . import calendar_utils as cal
from . import dashboard, goals, habits, nutrition, workouts
from .config import get_app_config, get_config_summary
from .database import NotFoundError, PostgresStorage, Storage
from .logger import logger
from .memory_store import InMemoryStorage
from .models import (
    DayStat, ExerciseCreate, GoalCreate, GoalStatus, GoalUpdate, HabitCreate,
    HabitStatus, HabitUpdate, HealthStatus, HistoryDay, MilestoneCreate,
    NutritionInput, SessionCreate, SetsCreate
)
from .schedule import ScheduleError


VERSION = __version__


def build_storage() -> Storage:
    """Storage backend selected by ``ATLAS_STORAGE``."""
    if get_app_config().storage == "memory":
        return InMemoryStorage()
    return PostgresStorage()


def get_storage(request: Request) -> Storage:
    """Route dependency: the storage opened by the lifespan."""
    return request.app.state.storage


def _days(days: Optional[int]) -> int:
    return days or get_app_config().default_window_days


# ============================================
# APPLICATION FACTORY
# ============================================

def create_app(storage: Optional[Storage] = None) -> FastAPI:
    """
    Build the API.

    Args:
        storage: Backend to use. When omitted the lifespan builds one from
            configuration at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        if app.state.storage is None:
            app.state.storage = build_storage()
        await app.state.storage.connect()
        logger.info(f"Server started (storage={type(app.state.storage).__name__}, "
                    f"timezone={get_app_config().timezone})")
        yield
        await app.state.storage.disconnect()
        logger.info("Server shutting down")

    app = FastAPI(
        title="ATLAS Tracker",
        description="Habit, workout, nutrition and goal tracking with derived stats",
        version=VERSION,
        lifespan=lifespan
    )
    app.state.storage = storage

    # CORS for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_app_config().cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        logger.warning(f"{request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ScheduleError)
    @app.exception_handler(cal.DateError)
    async def bad_request_handler(request: Request, exc: ValueError):
        logger.warning(f"{request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:

    # ============================================
    # HEALTH & STATUS
    # ============================================

    @app.get("/health", response_model=HealthStatus)
    @app.get("/api/health", response_model=HealthStatus)
    async def health_check(storage: Storage = Depends(get_storage)):
        """Check API health and report the active configuration."""
        config = get_app_config()
        return HealthStatus(
            status="healthy",
            version=VERSION,
            storage=type(storage).__name__,
            timezone=config.timezone,
            today=cal.today(),
        )

    @app.get("/api/config")
    async def config_summary():
        return get_config_summary()

    # ============================================
    # HABITS
    # ============================================

    @app.get("/api/habits", response_model=List[HabitStatus])
    async def list_habits(storage: Storage = Depends(get_storage)):
        """All habits with today's status and current streak."""
        return await habits.list_habits(storage)

    @app.post("/api/habits", response_model=HabitStatus)
    async def create_habit(data: HabitCreate, storage: Storage = Depends(get_storage)):
        return await habits.create_habit(
            storage, data.name, data.color, data.icon, data.why, data.schedule
        )

    @app.get("/api/habits/calendar", response_model=List[DayStat])
    async def habit_calendar(
        days: Optional[int] = Query(None, ge=1, le=366),
        storage: Storage = Depends(get_storage)
    ):
        """Per-day completion heatmap across all habits, oldest first."""
        return await habits.habit_calendar(storage, _days(days))

    @app.patch("/api/habits/{habit_id}", response_model=HabitStatus)
    async def update_habit(habit_id: int, data: HabitUpdate,
                           storage: Storage = Depends(get_storage)):
        return await habits.update_habit(storage, habit_id, **data.model_dump(exclude_unset=True))

    @app.delete("/api/habits/{habit_id}")
    async def delete_habit(habit_id: int, storage: Storage = Depends(get_storage)):
        await habits.delete_habit(storage, habit_id)
        return {"ok": True}

    @app.post("/api/habits/{habit_id}/complete")
    async def complete_habit(habit_id: int, date: Optional[str] = None,
                             storage: Storage = Depends(get_storage)):
        """Mark a habit done for today (or ``date``). Safe to repeat."""
        return await habits.complete(storage, habit_id, date)

    @app.delete("/api/habits/{habit_id}/complete")
    async def uncomplete_habit(habit_id: int, date: Optional[str] = None,
                               storage: Storage = Depends(get_storage)):
        return await habits.uncomplete(storage, habit_id, date)

    @app.get("/api/habits/{habit_id}/history", response_model=List[HistoryDay])
    async def habit_history(
        habit_id: int,
        days: Optional[int] = Query(None, ge=1, le=366),
        storage: Storage = Depends(get_storage)
    ):
        return await habits.habit_history(storage, habit_id, _days(days))

    # ============================================
    # WORKOUTS
    # ============================================

    @app.get("/api/exercises", response_model=List[dict])
    async def list_exercises(storage: Storage = Depends(get_storage)):
        return await workouts.list_exercises(storage)

    @app.post("/api/exercises", response_model=dict)
    async def create_exercise(data: ExerciseCreate, storage: Storage = Depends(get_storage)):
        """Create an exercise, or return the existing one with that name."""
        return await workouts.get_or_create_exercise(storage, data.name, data.muscle_group)

    @app.get("/api/exercises/{exercise_id}/progress", response_model=List[dict])
    async def exercise_progress(exercise_id: int, storage: Storage = Depends(get_storage)):
        return await workouts.exercise_progress(storage, exercise_id)

    @app.get("/api/sessions", response_model=List[dict])
    async def list_sessions(
        limit: int = Query(20, ge=1, le=200),
        storage: Storage = Depends(get_storage)
    ):
        """Most recent workout sessions with grouped sets."""
        return await workouts.list_sessions(storage, limit)

    @app.post("/api/sessions", response_model=dict)
    async def create_session(data: SessionCreate, storage: Storage = Depends(get_storage)):
        return await workouts.create_session(storage, data.date, data.notes)

    @app.get("/api/sessions/{session_id}", response_model=dict)
    async def get_session(session_id: int, storage: Storage = Depends(get_storage)):
        return await workouts.get_session(storage, session_id)

    @app.delete("/api/sessions/{session_id}")
    async def delete_session(session_id: int, storage: Storage = Depends(get_storage)):
        await workouts.delete_session(storage, session_id)
        return {"ok": True}

    @app.post("/api/sessions/{session_id}/sets", response_model=dict)
    async def add_sets(session_id: int, data: SetsCreate,
                       storage: Storage = Depends(get_storage)):
        """Log sets for one exercise; each is flagged as a PR when it beats history."""
        return await workouts.add_sets(
            storage, session_id, data.exercise_name, data.sets, data.muscle_group
        )

    @app.delete("/api/sessions/{session_id}/sets/{set_id}")
    async def delete_set(session_id: int, set_id: int, storage: Storage = Depends(get_storage)):
        await workouts.delete_set(storage, session_id, set_id)
        return {"ok": True}

    # ============================================
    # GOALS
    # ============================================

    @app.get("/api/goals", response_model=List[dict])
    async def list_goals(status: Optional[GoalStatus] = None,
                         storage: Storage = Depends(get_storage)):
        return await goals.list_goals(storage, status.value if status else None)

    @app.post("/api/goals", response_model=dict)
    async def create_goal(data: GoalCreate, storage: Storage = Depends(get_storage)):
        return await goals.create_goal(storage, data.title, data.description, data.target_date)

    @app.patch("/api/goals/{goal_id}", response_model=dict)
    async def update_goal(goal_id: int, data: GoalUpdate, storage: Storage = Depends(get_storage)):
        updates = data.model_dump(exclude_unset=True)
        if data.status is not None:
            updates["status"] = data.status.value
        return await goals.update_goal(storage, goal_id, **updates)

    @app.delete("/api/goals/{goal_id}")
    async def delete_goal(goal_id: int, storage: Storage = Depends(get_storage)):
        await goals.delete_goal(storage, goal_id)
        return {"ok": True}

    @app.post("/api/goals/{goal_id}/milestones", response_model=dict)
    async def add_milestone(goal_id: int, data: MilestoneCreate,
                            storage: Storage = Depends(get_storage)):
        return await goals.add_milestone(storage, goal_id, data.title)

    @app.patch("/api/goals/{goal_id}/milestones/{milestone_id}", response_model=dict)
    async def toggle_milestone(goal_id: int, milestone_id: int,
                               storage: Storage = Depends(get_storage)):
        """Toggle a milestone between done and not done."""
        return await goals.toggle_milestone(storage, goal_id, milestone_id)

    @app.delete("/api/goals/{goal_id}/milestones/{milestone_id}")
    async def delete_milestone(goal_id: int, milestone_id: int,
                               storage: Storage = Depends(get_storage)):
        await goals.delete_milestone(storage, goal_id, milestone_id)
        return {"ok": True}

    # ============================================
    # NUTRITION
    # ============================================

    @app.get("/api/nutrition", response_model=dict)
    async def get_nutrition(date: Optional[str] = None, storage: Storage = Depends(get_storage)):
        """A day's macros (default today); zeros when nothing was logged."""
        return await nutrition.get_log(storage, date)

    @app.get("/api/nutrition/week", response_model=List[dict])
    async def get_nutrition_week(storage: Storage = Depends(get_storage)):
        return await nutrition.get_week(storage)

    @app.put("/api/nutrition/{date}", response_model=dict)
    async def put_nutrition(date: str, data: NutritionInput,
                            storage: Storage = Depends(get_storage)):
        return await nutrition.upsert_log(storage, date, data)

    # ============================================
    # SUMMARIES
    # ============================================

    @app.get("/api/dashboard", response_model=dict)
    async def get_dashboard(storage: Storage = Depends(get_storage)):
        return await dashboard.get_dashboard(storage)

    @app.get("/api/recap", response_model=dict)
    async def get_recap(anchor: str = "rolling", storage: Storage = Depends(get_storage)):
        """This week against last week; ``anchor`` is ``rolling`` or ``sunday``."""
        if anchor not in dashboard.RECAP_ANCHORS:
            raise HTTPException(status_code=400, detail=f"Unknown recap anchor '{anchor}'")
        return await dashboard.get_recap(storage, anchor)

    @app.get("/api/achievements", response_model=dict)
    async def get_achievements(storage: Storage = Depends(get_storage)):
        """Evaluate achievements, record new unlocks and return the catalog."""
        return await dashboard.get_achievements(storage)


app = create_app()


# ============================================
# RUN SERVER
# ============================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
