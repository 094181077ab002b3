"""Auction service for admin CRUD and operator status override."""

import logging
import re
import uuid
from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from gembid.core.clock import Clock, ensure_utc, system_clock
from gembid.core.exceptions import InvalidAuctionError
from gembid.models.auction import Auction
from gembid.models.enums import AuctionStatus, BidStatus
from gembid.schemas.auction import AuctionCreate, AuctionUpdate
from gembid.schemas.ws import (
    AuctionCreatedData,
    AuctionCreatedEvent,
    AuctionDeletedData,
    AuctionDeletedEvent,
    AuctionEndedData,
    AuctionEndedEvent,
    AuctionUpdatedData,
    AuctionUpdatedEvent,
)
from gembid.services.auction_repository import AuctionRepository
from gembid.services.notifier import AuctionNotifier, Notification, WatchTopic

logger = logging.getLogger(__name__)

# Columns that may be edited but never cleared
REQUIRED_FIELDS = frozenset(
    {
        "title",
        "images",
        "starting_bid",
        "bid_increment",
        "start_time",
        "end_time",
        "auto_extend",
        "extend_minutes",
        "extend_threshold_minutes",
        "is_active",
    }
)

# Fields frozen once the first bid is in
PRICING_FIELDS = frozenset({"starting_bid", "bid_increment"})


def slugify(title: str) -> str:
    """URL slug from the title plus a short random suffix."""
    base = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-") or "auction"
    return f"{base[:200]}-{uuid.uuid4().hex[:8]}"


def validate_auction(auction: Auction) -> None:
    """Check price and timing invariants on a fully populated auction."""
    if ensure_utc(auction.end_time) <= ensure_utc(auction.start_time):
        raise InvalidAuctionError("endTime must be after startTime")
    if auction.reserve_price is not None and auction.reserve_price < auction.starting_bid:
        raise InvalidAuctionError("reservePrice must be at least startingBid")
    if auction.buy_now_price is not None and auction.buy_now_price <= auction.starting_bid:
        raise InvalidAuctionError("buyNowPrice must be greater than startingBid")
    if auction.bid_increment <= 0:
        raise InvalidAuctionError("bidIncrement must be positive")


class AuctionService:
    """Service class for admin auction operations."""

    def __init__(
        self,
        repository: AuctionRepository,
        notifier: AuctionNotifier,
        clock: Clock = system_clock,
    ):
        self.repository = repository
        self.notifier = notifier
        self.clock = clock

    async def create_auction(self, data: AuctionCreate) -> Auction:
        """Create an auction, active immediately if its start time has passed.

        Raises:
            InvalidAuctionError: end time already passed
        """
        now = self.clock.now()
        if ensure_utc(data.end_time) <= now:
            raise InvalidAuctionError("endTime must be in the future")

        status = AuctionStatus.ACTIVE if ensure_utc(data.start_time) <= now else AuctionStatus.SCHEDULED
        auction = Auction(
            **data.model_dump(),
            slug=slugify(data.title),
            status=status,
            is_active=True,
        )
        validate_auction(auction)

        auction = await self.repository.add_auction(auction)
        logger.info(f"Created auction {auction.id} ({status.value}): {auction.title}")
        self.notifier.publish(
            Notification(
                auction_id=auction.id,
                event=AuctionCreatedEvent(
                    data=AuctionCreatedData(
                        auction_id=auction.id,
                        title=auction.title,
                        status=auction.status,
                        starting_bid=auction.starting_bid,
                        start_time=auction.start_time,
                        effective_end_time=auction.effective_end_time,
                        timestamp=now,
                    )
                ),
                lobby=True,
            )
        )
        return auction

    async def list_auctions(
        self,
        filter_by: str | None = None,
        page: int = 1,
        limit: int = 25,
    ) -> tuple[list[Auction], int]:
        return await self.repository.list_auctions(filter_by, page, limit)

    async def get_auction(self, auction_id: UUID) -> Auction | None:
        return await self.repository.get_auction(auction_id)

    async def update_auction(self, auction_id: UUID, data: AuctionUpdate) -> Auction:
        """Apply the fields present in ``data`` under the auction lock.

        Raises:
            AuctionNotFoundError, InvalidAuctionError, LockTimeoutError, StaleStateError
        """
        changes = data.model_dump(exclude_unset=True)
        status = changes.pop("status", None)

        cleared = sorted(k for k, v in changes.items() if k in REQUIRED_FIELDS and v is None)
        if cleared:
            raise InvalidAuctionError(f"Cannot clear required fields: {', '.join(cleared)}")

        events: list[Notification] = []

        async def _update(session: AsyncSession, auction: Auction) -> Auction:
            now = self.clock.now()

            if auction.bid_count > 0:
                frozen = sorted(
                    k for k in PRICING_FIELDS & changes.keys()
                    if changes[k] != getattr(auction, k)
                )
                if frozen:
                    raise InvalidAuctionError(
                        f"Cannot change {', '.join(frozen)} after bidding started"
                    )

            for key, value in changes.items():
                setattr(auction, key, value)
            validate_auction(auction)

            if status is not None and status != auction.status:
                await self._override_status(session, auction, status, now)
                if status.is_terminal:
                    events.append(self._ended_event(auction, now))

            events.append(
                Notification(
                    auction_id=auction.id,
                    event=AuctionUpdatedEvent(
                        data=AuctionUpdatedData(
                            auction_id=auction.id,
                            status=auction.status,
                            current_bid=auction.current_bid,
                            effective_end_time=auction.effective_end_time,
                            timestamp=now,
                        )
                    ),
                    lobby=True,
                )
            )
            return auction

        auction = await self.repository.with_auction_lock(auction_id, _update)
        logger.info(f"Updated auction {auction_id}: fields={sorted(changes)}, status={status}")
        self.notifier.publish_all(events)
        return auction

    async def _override_status(
        self,
        session: AsyncSession,
        auction: Auction,
        status: AuctionStatus,
        now: datetime,
    ) -> None:
        """Operator status change, keeping winner fields consistent with status."""
        winning = await self.repository.get_winning_bid(session, auction.id)

        if status == AuctionStatus.SOLD:
            if auction.highest_bidder_id is None or auction.bid_count == 0:
                raise InvalidAuctionError("Cannot mark an auction sold without a highest bidder")
            auction.winner_id = auction.highest_bidder_id
            auction.winning_bid = auction.current_bid
            auction.won_at = now
            if winning is not None:
                winning.status = BidStatus.WON
        else:
            if status == AuctionStatus.CANCELLED and auction.status == AuctionStatus.SOLD:
                raise InvalidAuctionError("A sold auction cannot be cancelled")
            auction.winner_id = None
            auction.winning_bid = None
            auction.won_at = None
            if winning is not None:
                if status == AuctionStatus.CANCELLED:
                    winning.status = BidStatus.CANCELLED
                    winning.is_winning = False
                elif winning.status == BidStatus.WON:
                    winning.status = BidStatus.WINNING

        logger.info(f"Auction {auction.id} status override: {auction.status.value} -> {status.value}")
        auction.status = status
        if status.is_terminal:
            auction.is_active = False
        elif status == AuctionStatus.ACTIVE:
            auction.is_active = True

    def _ended_event(self, auction: Auction, now: datetime) -> Notification:
        return Notification(
            auction_id=auction.id,
            event=AuctionEndedEvent(
                data=AuctionEndedData(
                    auction_id=auction.id,
                    status=auction.status,
                    winner_id=auction.winner_id,
                    winning_bid=auction.winning_bid,
                    reserve_met=auction.reserve_met,
                    timestamp=now,
                )
            ),
            topic=WatchTopic.RESULT,
            lobby=True,
        )

    async def delete_auction(self, auction_id: UUID) -> None:
        """Delete an auction with its bids and watchers.

        Raises:
            AuctionNotFoundError
        """
        await self.repository.delete_auction(auction_id)
        logger.info(f"Deleted auction {auction_id}")
        self.notifier.publish(
            Notification(
                auction_id=auction_id,
                event=AuctionDeletedEvent(
                    data=AuctionDeletedData(auction_id=auction_id, timestamp=self.clock.now())
                ),
                lobby=True,
            )
        )

