"""Auction repository and bid ledger.

Reads open a short-lived session and never lock. Every mutation of an
auction's bid state goes through ``with_auction_lock``, which serializes
callers per auction and runs the callback in one transaction.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Awaitable, Callable, TypeVar
from uuid import UUID

from sqlalchemy import and_, case, delete, distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from gembid.core.config import settings
from gembid.core.exceptions import AuctionNotFoundError, StaleStateError
from gembid.core.locks import AuctionLocks
from gembid.middleware.metrics import record_lock_wait
from gembid.models.auction import Auction
from gembid.models.bid import Bid
from gembid.models.enums import AuctionStatus, BidStatus
from gembid.models.watcher import AuctionWatcher

logger = logging.getLogger(__name__)

T = TypeVar("T")

LockedCallback = Callable[[AsyncSession, Auction], Awaitable[T]]

ENDED_STATUSES = (AuctionStatus.ENDED, AuctionStatus.SOLD, AuctionStatus.NO_SALE)

BIDDER_BID_FILTERS = ("all", "active", "winning", "won", "lost")


@dataclass(frozen=True)
class BidderCeiling:
    """Highest amount a bidder has authorized on one auction."""

    bidder_id: UUID
    ceiling: Decimal
    first_bid_at: datetime


@dataclass(frozen=True)
class BidderStats:
    total_bids: int
    active_bids: int
    won_auctions: int
    currently_winning: int


def _bidder_status_condition(bidder_id: UUID, status_filter: str):
    """SQL condition selecting a bidder's bids by how their auction stands for them."""
    decided = Auction.status.in_(ENDED_STATUSES + (AuctionStatus.CANCELLED,))
    live = Auction.status == AuctionStatus.ACTIVE

    if status_filter == "active":
        return Auction.status.in_([AuctionStatus.ACTIVE, AuctionStatus.PENDING])
    if status_filter == "winning":
        return and_(live, Auction.highest_bidder_id == bidder_id)
    if status_filter == "won":
        return and_(decided, Auction.winner_id == bidder_id)
    if status_filter == "lost":
        return or_(
            and_(decided, Auction.winner_id.is_distinct_from(bidder_id)),
            and_(live, Auction.highest_bidder_id.is_distinct_from(bidder_id)),
        )
    return None


class AuctionRepository:
    """Repository for auctions and their bid ledger."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        locks: AuctionLocks,
        lock_timeout: float = settings.AUCTION_LOCK_TIMEOUT_SECONDS,
    ):
        self.session_maker = session_maker
        self.locks = locks
        self.lock_timeout = lock_timeout

    # ==================== Locked Mutation ====================

    async def with_auction_lock(
        self,
        auction_id: UUID,
        fn: LockedCallback[T],
        timeout: float | None = None,
    ) -> T:
        """Run ``fn(session, auction)`` with exclusive access to the auction.

        The auction row is loaded ``FOR UPDATE`` inside a transaction that
        commits when ``fn`` returns and rolls back if it raises.

        Raises:
            LockTimeoutError: lock not acquired within ``timeout`` seconds
            AuctionNotFoundError: no auction with this id
            StaleStateError: the row's version changed before commit
        """
        if timeout is None:
            timeout = self.lock_timeout

        wait_started = time.perf_counter()
        async with self.locks.hold(auction_id, timeout):
            record_lock_wait(time.perf_counter() - wait_started)

            async with self.session_maker() as session:
                try:
                    async with session.begin():
                        result = await session.execute(
                            select(Auction)
                            .where(Auction.id == auction_id)
                            .with_for_update()
                        )
                        auction = result.scalar_one_or_none()
                        if auction is None:
                            raise AuctionNotFoundError(auction_id)

                        value = await fn(session, auction)
                        await session.flush()
                except StaleDataError:
                    logger.warning(f"Version conflict on auction {auction_id}, rolled back")
                    raise StaleStateError(auction_id)
                return value

    async def append_bid(self, session: AsyncSession, bid: Bid) -> Bid:
        """Insert a bid row in the caller's transaction."""
        session.add(bid)
        await session.flush()
        return bid

    async def get_winning_bid(self, session: AsyncSession, auction_id: UUID) -> Bid | None:
        result = await session.execute(
            select(Bid).where(Bid.auction_id == auction_id, Bid.is_winning.is_(True))
        )
        return result.scalar_one_or_none()

    async def get_latest_bid_by_bidder(
        self, session: AsyncSession, auction_id: UUID, bidder_id: UUID
    ) -> Bid | None:
        result = await session.execute(
            select(Bid)
            .where(Bid.auction_id == auction_id, Bid.bidder_id == bidder_id)
            .order_by(Bid.created_at.desc(), Bid.amount.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_bidder_ceilings(
        self, session: AsyncSession, auction_id: UUID
    ) -> dict[UUID, BidderCeiling]:
        """Per-bidder ceiling: the larger of any stored max bid or bid amount."""
        ceiling = func.max(func.coalesce(Bid.max_bid, Bid.amount))
        result = await session.execute(
            select(Bid.bidder_id, ceiling, func.min(Bid.created_at))
            .where(
                Bid.auction_id == auction_id,
                Bid.status.not_in([BidStatus.CANCELLED, BidStatus.RETRACTED]),
            )
            .group_by(Bid.bidder_id)
        )
        return {
            bidder_id: BidderCeiling(
                bidder_id=bidder_id,
                ceiling=Decimal(str(value)),
                first_bid_at=first_bid_at,
            )
            for bidder_id, value, first_bid_at in result.all()
        }

    # ==================== Lock-free Reads ====================

    async def get_auction(self, auction_id: UUID) -> Auction | None:
        async with self.session_maker() as session:
            return await session.get(Auction, auction_id)

    async def list_bids_for_auction(self, auction_id: UUID, limit: int = 100) -> list[Bid]:
        """Bid history, highest amount first, earliest first among equal amounts."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(Bid)
                .where(Bid.auction_id == auction_id)
                .order_by(Bid.amount.desc(), Bid.created_at.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def list_auctions(
        self,
        filter_by: str | None = None,
        page: int = 1,
        limit: int = 25,
    ) -> tuple[list[Auction], int]:
        """Paginated auctions, newest first.

        Filters: ``active``, ``upcoming`` (scheduled) and ``ended``
        (ended, sold or no_sale).
        """
        conditions = []
        if filter_by == "active":
            conditions.append(Auction.status == AuctionStatus.ACTIVE)
        elif filter_by == "upcoming":
            conditions.append(Auction.status == AuctionStatus.SCHEDULED)
        elif filter_by == "ended":
            conditions.append(Auction.status.in_(ENDED_STATUSES))

        async with self.session_maker() as session:
            count_result = await session.execute(
                select(func.count(Auction.id)).where(*conditions)
            )
            total = count_result.scalar_one()

            result = await session.execute(
                select(Auction)
                .where(*conditions)
                .order_by(Auction.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            return list(result.scalars().all()), total

    async def find_due_for_close(self, now: datetime) -> list[UUID]:
        """Active auctions whose effective end time has passed."""
        effective_end = func.coalesce(Auction.extended_end_time, Auction.end_time)
        async with self.session_maker() as session:
            result = await session.execute(
                select(Auction.id)
                .where(Auction.status == AuctionStatus.ACTIVE, effective_end <= now)
                .order_by(effective_end.asc())
            )
            return list(result.scalars().all())

    async def find_due_for_activation(self, now: datetime) -> list[UUID]:
        """Scheduled auctions whose start time has been reached."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(Auction.id).where(
                    Auction.status == AuctionStatus.SCHEDULED,
                    Auction.start_time <= now,
                )
            )
            return list(result.scalars().all())

    async def find_ending_soon(self, now: datetime, window: timedelta) -> list[Auction]:
        """Active auctions whose effective end falls within ``window`` from now."""
        effective_end = func.coalesce(Auction.extended_end_time, Auction.end_time)
        async with self.session_maker() as session:
            result = await session.execute(
                select(Auction)
                .where(
                    Auction.status == AuctionStatus.ACTIVE,
                    effective_end > now,
                    effective_end <= now + window,
                )
                .order_by(effective_end.asc())
            )
            return list(result.scalars().all())

    # ==================== Bidder History ====================

    async def list_bids_for_bidder(
        self,
        bidder_id: UUID,
        status_filter: str = "all",
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[tuple[Bid, Auction]], int]:
        """A bidder's bids with their auctions, newest first, and the filtered total."""
        conditions = [Bid.bidder_id == bidder_id]
        status_condition = _bidder_status_condition(bidder_id, status_filter)
        if status_condition is not None:
            conditions.append(status_condition)

        async with self.session_maker() as session:
            count_result = await session.execute(
                select(func.count(Bid.id))
                .join(Auction, Bid.auction_id == Auction.id)
                .where(*conditions)
            )
            total = count_result.scalar_one()

            result = await session.execute(
                select(Bid, Auction)
                .join(Auction, Bid.auction_id == Auction.id)
                .where(*conditions)
                .order_by(Bid.created_at.desc(), Bid.amount.desc())
                .offset(offset)
                .limit(limit)
            )
            return [(bid, auction) for bid, auction in result.all()], total

    async def get_bidder_stats(self, bidder_id: UUID) -> BidderStats:
        won = _bidder_status_condition(bidder_id, "won")
        winning = _bidder_status_condition(bidder_id, "winning")

        async with self.session_maker() as session:
            result = await session.execute(
                select(
                    func.count(Bid.id),
                    func.count(case((Auction.status == AuctionStatus.ACTIVE, Bid.id))),
                    func.count(distinct(case((won, Auction.id)))),
                    func.count(distinct(case((winning, Auction.id)))),
                )
                .select_from(Bid)
                .join(Auction, Bid.auction_id == Auction.id)
                .where(Bid.bidder_id == bidder_id)
            )
            total_bids, active_bids, won_auctions, currently_winning = result.one()
            return BidderStats(
                total_bids=total_bids,
                active_bids=active_bids,
                won_auctions=won_auctions,
                currently_winning=currently_winning,
            )

    # ==================== Admin Writes ====================

    async def add_auction(self, auction: Auction) -> Auction:
        async with self.session_maker() as session:
            session.add(auction)
            await session.commit()
            await session.refresh(auction)
            return auction

    async def delete_auction(self, auction_id: UUID) -> None:
        async def _delete(session: AsyncSession, auction: Auction) -> None:
            await session.execute(delete(Bid).where(Bid.auction_id == auction.id))
            await session.execute(
                delete(AuctionWatcher).where(AuctionWatcher.auction_id == auction.id)
            )
            await session.delete(auction)

        await self.with_auction_lock(auction_id, _delete)

    # ==================== Watchers ====================

    async def add_watcher(self, watcher: AuctionWatcher) -> tuple[AuctionWatcher, bool]:
        """Subscribe, or update the preferences of an existing (auction, email) row.

        Returns the stored row and whether it was newly created.

        Raises:
            AuctionNotFoundError: no auction with this id
        """
        async with self.session_maker() as session:
            async with session.begin():
                if await session.get(Auction, watcher.auction_id) is None:
                    raise AuctionNotFoundError(watcher.auction_id)

                result = await session.execute(
                    select(AuctionWatcher).where(
                        AuctionWatcher.auction_id == watcher.auction_id,
                        AuctionWatcher.email == watcher.email,
                    )
                )
                stored = result.scalar_one_or_none()
                created = stored is None
                if created:
                    session.add(watcher)
                    stored = watcher
                else:
                    stored.user_id = watcher.user_id or stored.user_id
                    stored.notify_outbid = watcher.notify_outbid
                    stored.notify_ending = watcher.notify_ending
                    stored.notify_result = watcher.notify_result

            await session.refresh(stored)
            return stored, created

    async def remove_watcher(self, auction_id: UUID, email: str) -> bool:
        async with self.session_maker() as session:
            result = await session.execute(
                delete(AuctionWatcher).where(
                    AuctionWatcher.auction_id == auction_id,
                    AuctionWatcher.email == email,
                )
            )
            await session.commit()
            return result.rowcount > 0

    async def list_watchers(self, auction_id: UUID) -> list[AuctionWatcher]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(AuctionWatcher)
                .where(AuctionWatcher.auction_id == auction_id)
                .order_by(AuctionWatcher.created_at.asc(), AuctionWatcher.email.asc())
            )
            return list(result.scalars().all())

    async def get_watch_preferences(self, auction_id: UUID, topic: str) -> dict[UUID, bool]:
        """Signed-in watchers of an auction and whether each wants ``topic`` alerts.

        A user watching under several emails gets the alert if any row asks for it.
        """
        flag = getattr(AuctionWatcher, f"notify_{topic}")
        async with self.session_maker() as session:
            result = await session.execute(
                select(AuctionWatcher.user_id, flag).where(
                    AuctionWatcher.auction_id == auction_id,
                    AuctionWatcher.user_id.is_not(None),
                )
            )
            preferences: dict[UUID, bool] = {}
            for user_id, wanted in result.all():
                preferences[user_id] = preferences.get(user_id, False) or bool(wanted)
            return preferences
