"""Per-auction mutual exclusion.

Bid placement, closing and operator overrides for one auction all run while
holding that auction's lock. Unrelated auctions never contend.
"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import UUID

from gembid.core.config import settings
from gembid.core.exceptions import LockTimeoutError
from gembid.services.redis_service import RedisService

logger = logging.getLogger(__name__)


class LocalAuctionLocks:
    """In-process locks, one asyncio.Lock per auction.

    Only valid when a single worker process serves all bids.
    """

    def __init__(self):
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._holders: dict[UUID, int] = {}

    @asynccontextmanager
    async def hold(self, auction_id: UUID, timeout: float) -> AsyncIterator[None]:
        lock = self._locks.setdefault(auction_id, asyncio.Lock())
        self._holders[auction_id] = self._holders.get(auction_id, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=timeout)
            except asyncio.TimeoutError:
                raise LockTimeoutError(auction_id, timeout)
            try:
                yield
            finally:
                lock.release()
        finally:
            # Drop the lock object once nobody holds or waits on it
            self._holders[auction_id] -= 1
            if self._holders[auction_id] == 0:
                del self._holders[auction_id]
                self._locks.pop(auction_id, None)

    def __len__(self) -> int:
        return len(self._locks)


class RedisAuctionLocks:
    """Distributed locks shared by every replica through Redis."""

    def __init__(
        self,
        redis_service: RedisService,
        ttl: int = settings.AUCTION_LOCK_TTL_SECONDS,
        poll_interval: float = settings.AUCTION_LOCK_POLL_SECONDS,
    ):
        self.redis_service = redis_service
        self.ttl = ttl
        self.poll_interval = poll_interval

    @asynccontextmanager
    async def hold(self, auction_id: UUID, timeout: float) -> AsyncIterator[None]:
        key = str(auction_id)
        owner_id = str(uuid.uuid4())
        deadline = time.monotonic() + timeout

        while True:
            acquired, _ = await self.redis_service.acquire_lock(key, owner_id, ttl=self.ttl)
            if acquired:
                break
            if time.monotonic() >= deadline:
                raise LockTimeoutError(auction_id, timeout)
            await asyncio.sleep(self.poll_interval)

        try:
            yield
        finally:
            released = await self.redis_service.release_lock(key, owner_id)
            if not released:
                # TTL ran out while held; the version check on commit still
                # rejects a conflicting write
                logger.warning(f"Auction lock for {auction_id} expired before release")


AuctionLocks = LocalAuctionLocks | RedisAuctionLocks
