"""Reset database to empty state.

Clears all data from:
- auction_watchers
- bids
- auctions

Also clears auction locks and rate limit counters from Redis.

Usage:
    uv run python -m scripts.reset_db
"""

import asyncio

from sqlalchemy import text

from gembid.core.database import async_session_maker, engine
from gembid.core.redis import close_redis, get_redis


async def reset_database():
    """Clear all data from the database."""
    print("=" * 60)
    print("Resetting database to empty state...")
    print("=" * 60)

    async with async_session_maker() as session:
        # Delete in correct order due to foreign key constraints
        tables = ["auction_watchers", "bids", "auctions"]

        for table in tables:
            result = await session.execute(text(f"DELETE FROM {table}"))
            print(f"  Deleted {result.rowcount} rows from {table}")

        await session.commit()
        print("\nDatabase cleared successfully!")


async def reset_redis():
    """Clear auction lock and rate limit keys."""
    print("\nResetting Redis...")

    try:
        redis = await get_redis()
        deleted = 0
        for pattern in ("lock:auction:*", "ratelimit:*"):
            async for key in redis.scan_iter(match=pattern):
                deleted += await redis.delete(key)
        print(f"  Removed {deleted} keys")
    except OSError as e:
        print(f"  Warning: Could not clear Redis: {e}")
        print("  (This is OK if Redis is not running locally)")
    finally:
        await close_redis()


async def main():
    await reset_database()
    await reset_redis()

    print("\n" + "=" * 60)
    print("Reset complete!")
    print("=" * 60)
    print("\nTo re-seed the database, run:")
    print("  uv run python -m scripts.seed_data")
    print("=" * 60)

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
