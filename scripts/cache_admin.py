#!/usr/bin/env python3
"""Search cache administration — run from cron or by hand.

Usage:
  python scripts/cache_admin.py stats         # print cache statistics
  python scripts/cache_admin.py sweep         # delete expired entries
  python scripts/cache_admin.py clear KEY     # delete one entry

Uses the backend configured by CACHE_BACKEND (database or redis; memory is
per-process and has nothing to administer from here).
"""

import argparse
import asyncio
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def ok(msg: str) -> None:
    print(f"  ✅ {msg}")


def fail(msg: str) -> None:
    print(f"  ❌ {msg}")


async def run(command: str, key: str | None) -> int:
    from decision_search.config import settings
    from decision_search.database import async_session_factory, close_db
    from decision_search.services.cache import DatabaseCacheStore
    from decision_search.services.redis_cache import RedisCacheStore

    if settings.cache_backend == "memory":
        fail("CACHE_BACKEND=memory — nothing to administer")
        return 1

    if settings.cache_backend == "redis":
        store = RedisCacheStore(settings.redis_url)
        if not await store.connect():
            fail(f"Redis unreachable at {settings.redis_url}")
            return 1
    else:
        store = DatabaseCacheStore(async_session_factory)

    try:
        if command == "stats":
            stats = await store.stats()
            for name, value in stats.model_dump().items():
                ok(f"{name}: {value}")
        elif command == "sweep":
            removed = await store.sweep_expired()
            ok(f"Removed {removed} expired entries")
        elif command == "clear":
            if await store.clear_one(key):
                ok(f"Removed {key}")
            else:
                fail(f"No entry for {key}")
                return 1
    finally:
        if isinstance(store, RedisCacheStore):
            await store.disconnect()
        await close_db()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Search cache administration")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("stats", help="print cache statistics")
    sub.add_parser("sweep", help="delete expired entries")
    clear = sub.add_parser("clear", help="delete one entry")
    clear.add_argument("key")
    args = parser.parse_args()
    return asyncio.run(run(args.command, getattr(args, "key", None)))


if __name__ == "__main__":
    sys.exit(main())
