"""Pytest configuration and fixtures for testing."""

import os

# Configure before anything imports gembid.core.config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["LOCK_BACKEND"] = "local"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from gembid.core.clock import Clock
from gembid.core.database import Base
from gembid.core.locks import LocalAuctionLocks
from gembid.models import Auction, AuctionStatus
from gembid.services.auction_closer import AuctionCloser
from gembid.services.auction_repository import AuctionRepository
from gembid.services.auction_service import AuctionService
from gembid.services.bid_engine import BidEngine
from gembid.services.bidder_service import BidderService
from gembid.services.notifier import AuctionNotifier
from gembid.services.watcher_service import WatcherService
from gembid.services.ws_manager import ConnectionManager

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FrozenClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


# Mock Redis client fixture
@pytest.fixture
def mock_redis() -> AsyncMock:
    """Create a mock Redis client."""
    redis = AsyncMock()

    # Mock common Redis operations
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.eval = AsyncMock(return_value=1)
    redis.register_script = MagicMock(return_value=AsyncMock(return_value=1))

    return redis


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest_asyncio.fixture
async def session_maker(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """File-backed SQLite database with the full schema, one per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'auctions.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def locks() -> LocalAuctionLocks:
    return LocalAuctionLocks()


@pytest.fixture
def connections() -> ConnectionManager:
    return ConnectionManager()


@pytest.fixture
def notifier(connections: ConnectionManager, repository: AuctionRepository) -> AuctionNotifier:
    return AuctionNotifier(connections, maxsize=1000, watchers=repository)


@pytest.fixture
def repository(session_maker, locks) -> AuctionRepository:
    return AuctionRepository(session_maker, locks, lock_timeout=2.0)


@pytest.fixture
def engine(repository, notifier, clock) -> BidEngine:
    return BidEngine(repository, notifier, clock)


@pytest.fixture
def closer(repository, notifier, clock) -> AuctionCloser:
    return AuctionCloser(repository, notifier, clock)


@pytest.fixture
def service(repository, notifier, clock) -> AuctionService:
    return AuctionService(repository, notifier, clock)


@pytest.fixture
def watcher_service(repository) -> WatcherService:
    return WatcherService(repository)


@pytest.fixture
def bidder_service(repository) -> BidderService:
    return BidderService(repository)


@pytest.fixture
def make_auction(session_maker, clock):
    """Factory inserting an auction that is open for bidding unless overridden.

    Defaults: starting bid 100.00, increment 5.00, started an hour ago,
    ending in an hour, auto-extend 5 minutes within the last 5 minutes.
    """

    async def _make(**overrides) -> Auction:
        now = clock.now()
        fields = {
            "title": "Ceylon Sapphire, 2.00 ct",
            "starting_bid": Decimal("100.00"),
            "bid_increment": Decimal("5.00"),
            "start_time": now - timedelta(hours=1),
            "end_time": now + timedelta(hours=1),
            "status": AuctionStatus.ACTIVE,
            "is_active": True,
        }
        fields.update(overrides)
        auction = Auction(**fields)

        async with session_maker() as session:
            session.add(auction)
            await session.commit()
        return auction

    return _make


@pytest.fixture
def queued_events(notifier: AuctionNotifier):
    """Pop every queued notification without delivering it."""

    def _pop() -> list:
        events = []
        while not notifier.queue.empty():
            events.append(notifier.queue.get_nowait())
        return events

    return _pop
