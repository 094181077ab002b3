"""Redis service for distributed auction locks."""

import uuid

from redis.asyncio import Redis


class RedisService:
    """Service class for Redis operations."""

    # Lua script for safe lock release (only delete own lock)
    RELEASE_LOCK_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("DEL", KEYS[1])
    else
        return 0
    end
    """

    def __init__(self, redis: Redis):
        """Initialize Redis service with a Redis client.

        Args:
            redis: Async Redis client instance
        """
        self.redis = redis
        self._release_lock_script = None

    async def _get_release_lock_script(self):
        """Get or register the release lock Lua script."""
        if self._release_lock_script is None:
            self._release_lock_script = self.redis.register_script(self.RELEASE_LOCK_SCRIPT)
        return self._release_lock_script

    # ==================== Distributed Lock Operations ====================

    async def acquire_lock(
        self, auction_id: str, owner_id: str | None = None, ttl: int = 5
    ) -> tuple[bool, str]:
        """Acquire a distributed lock for an auction.

        Key pattern: lock:auction:{auction_id}
        Uses SET NX EX for atomic lock acquisition.

        Args:
            auction_id: Auction UUID string
            owner_id: Unique identifier for lock owner (auto-generated if None)
            ttl: Lock timeout in seconds, bounds how long a crashed holder blocks others

        Returns:
            Tuple of (success, owner_id)
        """
        key = f"lock:auction:{auction_id}"
        if owner_id is None:
            owner_id = str(uuid.uuid4())

        acquired = await self.redis.set(key, owner_id, nx=True, ex=ttl)
        return (acquired is not None, owner_id)

    async def release_lock(self, auction_id: str, owner_id: str) -> bool:
        """Release a distributed lock (only if owner matches).

        Uses Lua script to ensure only the lock owner can release.

        Args:
            auction_id: Auction UUID string
            owner_id: The owner_id returned from acquire_lock

        Returns:
            True if lock was released, False if not owner or already expired
        """
        key = f"lock:auction:{auction_id}"
        script = await self._get_release_lock_script()
        result = await script(keys=[key], args=[owner_id])
        return int(result) == 1
