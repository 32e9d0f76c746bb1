"""Test helpers for seeding storage."""


async def make_habit(storage, name="Read", schedule="0,1,2,3,4,5,6", completions=(),
                     created_at="2024-01-01"):
    """Create a habit in ``storage`` with the given completion dates."""
    habit = await storage.create_habit(name, "#e8b04b", "📚", None, schedule, created_at)
    for d in completions:
        await storage.add_completion(habit["id"], d)
    return await storage.get_habit(habit["id"])
