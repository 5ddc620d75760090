#!/usr/bin/env python3
"""Delete stored session contexts from the database.

Usage:
    python scripts/clean_sessions.py                 # all sessions
    python scripts/clean_sessions.py --closed-only   # only closed sessions
"""

import argparse
import asyncio
import sys
from pathlib import Path

import aiosqlite

sys.path.insert(0, str(Path(__file__).parent.parent))

from context_engine.core.config import settings


async def main(db_path: str, closed_only: bool) -> None:
    where = "WHERE is_active = 0" if closed_only else ""

    db = await aiosqlite.connect(db_path)
    try:
        cur = await db.execute(f"SELECT COUNT(*) FROM session_contexts {where}")
        row = await cur.fetchone()
        assert row is not None
        count = row[0]
        label = "closed sessions" if closed_only else "sessions"
        print(f"Found {count} {label}")

        if count == 0:
            print("No sessions to delete.")
            return

        confirm = input(f"Delete {count} {label}? (yes/no): ")
        if confirm.lower() != "yes":
            print("Cancelled.")
            return

        await db.execute(f"DELETE FROM session_contexts {where}")
        await db.commit()

        cur = await db.execute("SELECT COUNT(*) FROM session_contexts")
        row = await cur.fetchone()
        assert row is not None
        remaining = row[0]

        print(f"✓ Deleted {count} {label}")
        print(f"✓ Remaining: {remaining}")
    finally:
        await db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Delete stored session contexts")
    parser.add_argument(
        "--db", default=str(settings.database_path), help="Path to the SQLite database"
    )
    parser.add_argument(
        "--closed-only", action="store_true", help="Only delete closed sessions"
    )
    args = parser.parse_args()
    asyncio.run(main(args.db, args.closed_only))
