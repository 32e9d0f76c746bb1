"""
ATLAS Tracker - Pydantic Models (v2 syntax)
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from . import calendar_utils as cal
from .schedule import DEFAULT_SCHEDULE, normalize


# ============================================
# ENUMS
# ============================================

class GoalStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class AchievementCategory(str, Enum):
    MILESTONE = "milestone"
    STREAK = "streak"
    CONSISTENCY = "consistency"


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    SAME = "same"


def _check_date(value: Optional[str]) -> Optional[str]:
    if value is not None:
        cal.parse_date(value)
    return value


# ============================================
# HABIT MODELS
# ============================================

class HabitCreate(BaseModel):
    name: str = Field(min_length=1)
    color: str = "#e8b04b"
    icon: str = "⚡"
    why: Optional[str] = None
    schedule: Optional[str] = DEFAULT_SCHEDULE

    @field_validator("schedule")
    @classmethod
    def canonical_schedule(cls, value: Optional[str]) -> str:
        return normalize(value)


class HabitUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    color: Optional[str] = None
    icon: Optional[str] = None
    why: Optional[str] = None
    schedule: Optional[str] = None

    @field_validator("schedule")
    @classmethod
    def canonical_schedule(cls, value: Optional[str]) -> Optional[str]:
        return normalize(value) if value is not None else None

    @field_validator("why")
    @classmethod
    def blank_why_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value if value and value.strip() else None


class HabitStatus(BaseModel):
    """A habit as shown on the check-in list."""
    id: int
    name: str
    color: str
    icon: str
    why: Optional[str] = None
    schedule: str
    created_at: str
    completed_today: bool
    scheduled_today: bool
    streak: int


class HistoryDay(BaseModel):
    date: str
    completed: bool
    scheduled: bool


# ============================================
# STATISTICS MODELS
# ============================================

class DayStat(BaseModel):
    date: str
    completed: int = 0
    total: int = 0
    pct: int = 0


class WindowStats(BaseModel):
    habit_pct: int = 0
    perfect_days: int = 0
    total_completions: int = 0
    days_active: int = 0
    per_day: List[DayStat] = Field(default_factory=list)


class HabitBreakdown(BaseModel):
    id: int
    name: str
    icon: str
    color: str
    completions: int
    rate: int


class TopStreak(BaseModel):
    id: int
    name: str
    icon: str
    streak: int


# ============================================
# WORKOUT MODELS
# ============================================

class ExerciseCreate(BaseModel):
    name: str = Field(min_length=1)
    muscle_group: Optional[str] = None


class SessionCreate(BaseModel):
    date: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def valid_date(cls, value: Optional[str]) -> Optional[str]:
        return _check_date(value)


class SetInput(BaseModel):
    reps: int = Field(ge=0)
    weight_kg: float = Field(default=0, ge=0)


class SetsCreate(BaseModel):
    exercise_name: str = Field(min_length=1)
    muscle_group: Optional[str] = None
    sets: List[SetInput] = Field(min_length=1)


# ============================================
# GOAL MODELS
# ============================================

class GoalCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    target_date: Optional[str] = None

    @field_validator("target_date")
    @classmethod
    def valid_date(cls, value: Optional[str]) -> Optional[str]:
        return _check_date(value)


class GoalUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    target_date: Optional[str] = None
    status: Optional[GoalStatus] = None

    @field_validator("target_date")
    @classmethod
    def valid_date(cls, value: Optional[str]) -> Optional[str]:
        return _check_date(value)


class MilestoneCreate(BaseModel):
    title: str = Field(min_length=1)


# ============================================
# NUTRITION MODELS
# ============================================

class NutritionInput(BaseModel):
    calories: int = Field(default=0, ge=0)
    protein_g: float = Field(default=0, ge=0)
    carbs_g: float = Field(default=0, ge=0)
    fat_g: float = Field(default=0, ge=0)
    notes: Optional[str] = None


# ============================================
# ACHIEVEMENT MODELS
# ============================================

class AchievementStats(BaseModel):
    """Lifetime numbers the achievement predicates are evaluated against."""
    total_completions: int = 0
    habit_count: int = 0
    perfect_days: int = 0
    active_days: int = 0
    max_streak: int = 0


class AchievementStatus(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: str
    title: str
    description: str
    icon: str
    category: AchievementCategory
    unlocked: bool
    unlocked_at: Optional[datetime] = None


# ============================================
# API RESPONSE MODELS
# ============================================

class HealthStatus(BaseModel):
    status: str = "healthy"
    version: str = "1.0.0"
    storage: str = "connected"
    timezone: str
    today: str
