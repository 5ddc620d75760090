#!/usr/bin/env python3
"""
Print a session's context snapshot and summary.

Usage:
    python scripts/inspect_session.py <session_id>
    python scripts/inspect_session.py --list [--active-only]
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from context_engine.core.config import settings
from context_engine.core.exceptions import SessionNotFoundError
from context_engine.persistence.database import check_database_health, init_database
from context_engine.persistence.repositories import ContextRepository
from context_engine.services.context_service import ContextService


async def main(args: argparse.Namespace) -> int:
    await init_database(Path(args.db))
    service = ContextService(store=ContextRepository(args.db))

    if args.list:
        health = await check_database_health(args.db)
        print(f"Database: {health.get('path', args.db)} ({health['status']})")
        for snapshot in await service.list_sessions(
            active_only=args.active_only, limit=args.limit
        ):
            state = "active" if snapshot.is_active else "closed"
            print(
                f"  {snapshot.session_id}  [{state}]  topic={snapshot.current_topic}  "
                f"turns={snapshot.history_length}  cart=${snapshot.cart_total:.2f}"
            )
        return 0

    if not args.session_id:
        print("A session_id is required unless --list is given")
        return 1

    try:
        summary = await service.get_summary(args.session_id)
    except SessionNotFoundError as e:
        print(e.message)
        return 1

    snapshot = await service.get_context(args.session_id)

    print("=" * 60)
    print(f"Session: {snapshot.session_id}")
    print("=" * 60)
    print(json.dumps(snapshot.model_dump(mode="json"), indent=2))
    print()
    print("Summary")
    print("-" * 60)
    print(f"  Topics:           {', '.join(summary.topics_discussed) or '-'}")
    print(f"  Products viewed:  {len(summary.products_viewed)}")
    print(f"  Context switches: {summary.context_switches}")
    print(f"  Duration:         {summary.duration.formatted}")
    print(f"  Cart total:       ${summary.cart_total:.2f}")
    print(f"  {summary.summary}")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Inspect a stored session context")
    parser.add_argument("session_id", nargs="?", help="Session ID to inspect")
    parser.add_argument(
        "--db", default=str(settings.database_path), help="Path to the SQLite database"
    )
    parser.add_argument("--list", action="store_true", help="List stored sessions")
    parser.add_argument(
        "--active-only", action="store_true", help="With --list, only active sessions"
    )
    parser.add_argument("--limit", type=int, default=20, help="With --list, max rows")
    sys.exit(asyncio.run(main(parser.parse_args())))
