"""
ATLAS Tracker - Database Check
Verify the configured PostgreSQL server is reachable and create the schema.

    python -m atlas.check_db [--init]
"""

import asyncio
import sys
from typing import Optional

import asyncpg

from .config import get_database_config
from .database import SCHEMA


async def check(url: Optional[str] = None, init: bool = False) -> bool:
    """Connect once; with ``init`` also run the schema statements."""
    url = url or get_database_config().url
    try:
        conn = await asyncpg.connect(url)
    except (OSError, asyncpg.PostgresError) as e:
        print(f"Connection failed: {e}")
        return False

    try:
        print("Successfully connected to database!")
        if init:
            for statement in SCHEMA:
                await conn.execute(statement)
            print(f"Schema ready ({len(SCHEMA)} statements)")
    finally:
        await conn.close()
    return True


if __name__ == "__main__":
    ok = asyncio.run(check(init="--init" in sys.argv[1:]))
    sys.exit(0 if ok else 1)
