"""
ATLAS Tracker - Nutrition Module
One macro log per calendar date
"""

from typing import List, Optional

from . import calendar_utils as cal
from .database import Storage
from .models import NutritionInput


def empty_log(date: str) -> dict:
    return {
        "date": date,
        "calories": 0,
        "protein_g": 0,
        "carbs_g": 0,
        "fat_g": 0,
        "notes": None,
    }


async def get_log(storage: Storage, date: Optional[str] = None) -> dict:
    """The log for ``date`` (default today), or an all-zero log when none exists."""
    date = date or cal.today()
    cal.parse_date(date)
    return await storage.get_nutrition(date) or empty_log(date)


async def get_week(storage: Storage, today: Optional[str] = None) -> List[dict]:
    """Logs for the last seven days including today, oldest first."""
    return [await get_log(storage, d) for d in cal.date_range(0, 7, today or cal.today())]


async def upsert_log(storage: Storage, date: str, data: NutritionInput) -> dict:
    """Create or fully replace the log for ``date``."""
    cal.parse_date(date)
    return await storage.upsert_nutrition(
        date, data.calories, data.protein_g, data.carbs_g, data.fat_g, data.notes
    )
