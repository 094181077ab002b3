"""API dependencies wiring services to the shared session maker, locks and notifier."""

import asyncio
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gembid.core.clock import Clock, system_clock
from gembid.core.config import settings
from gembid.core.database import async_session_maker
from gembid.core.locks import AuctionLocks, LocalAuctionLocks, RedisAuctionLocks
from gembid.core.redis import get_redis
from gembid.services.auction_closer import AuctionCloser
from gembid.services.auction_repository import AuctionRepository
from gembid.services.auction_service import AuctionService
from gembid.services.bid_engine import BidEngine
from gembid.services.bidder_service import BidderService
from gembid.services.notifier import AuctionNotifier
from gembid.services.redis_service import RedisService
from gembid.services.watcher_service import WatcherService

# Process-wide singletons; every request must see the same lock table and outbox
_auction_locks: AuctionLocks | None = None
_locks_guard = asyncio.Lock()
notifier = AuctionNotifier()


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    return async_session_maker


def get_clock() -> Clock:
    return system_clock


async def get_redis_service() -> RedisService:
    """Get RedisService instance with shared Redis connection pool."""
    redis = await get_redis()
    return RedisService(redis)


async def get_auction_locks() -> AuctionLocks:
    """Lock backend selected by LOCK_BACKEND, created once per process."""
    global _auction_locks
    if _auction_locks is None:
        async with _locks_guard:
            if _auction_locks is None:
                if settings.LOCK_BACKEND == "redis":
                    _auction_locks = RedisAuctionLocks(await get_redis_service())
                else:
                    _auction_locks = LocalAuctionLocks()
    return _auction_locks


def get_notifier() -> AuctionNotifier:
    return notifier


async def get_repository(
    session_maker: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_maker)],
    locks: Annotated[AuctionLocks, Depends(get_auction_locks)],
) -> AuctionRepository:
    return AuctionRepository(session_maker, locks)


# Type aliases for cleaner dependency injection
ClockDep = Annotated[Clock, Depends(get_clock)]
NotifierDep = Annotated[AuctionNotifier, Depends(get_notifier)]
RepositoryDep = Annotated[AuctionRepository, Depends(get_repository)]


async def get_bid_engine(
    repository: RepositoryDep,
    notifier: NotifierDep,
    clock: ClockDep,
) -> BidEngine:
    """Get BidEngine instance with injected dependencies."""
    return BidEngine(repository, notifier, clock)


async def get_auction_closer(
    repository: RepositoryDep,
    notifier: NotifierDep,
    clock: ClockDep,
) -> AuctionCloser:
    return AuctionCloser(repository, notifier, clock)


async def get_auction_service(
    repository: RepositoryDep,
    notifier: NotifierDep,
    clock: ClockDep,
) -> AuctionService:
    return AuctionService(repository, notifier, clock)


BidEngineDep = Annotated[BidEngine, Depends(get_bid_engine)]
AuctionCloserDep = Annotated[AuctionCloser, Depends(get_auction_closer)]
AuctionServiceDep = Annotated[AuctionService, Depends(get_auction_service)]


async def get_watcher_service(repository: RepositoryDep) -> WatcherService:
    return WatcherService(repository)


async def get_bidder_service(repository: RepositoryDep) -> BidderService:
    return BidderService(repository)


WatcherServiceDep = Annotated[WatcherService, Depends(get_watcher_service)]
BidderServiceDep = Annotated[BidderService, Depends(get_bidder_service)]
