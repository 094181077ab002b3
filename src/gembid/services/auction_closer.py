"""Auction closer: settles auctions whose effective end time has passed."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from gembid.core.clock import Clock, ensure_utc, system_clock
from gembid.core.config import settings
from gembid.core.exceptions import AuctionNotFoundError, LockTimeoutError, StaleStateError
from gembid.middleware.metrics import record_auction_closed
from gembid.models.auction import Auction
from gembid.models.enums import AuctionStatus, BidStatus
from gembid.schemas.ws import (
    AuctionEndedData,
    AuctionEndedEvent,
    AuctionEndingData,
    AuctionEndingEvent,
    AuctionUpdatedData,
    AuctionUpdatedEvent,
)
from gembid.services.auction_repository import AuctionRepository
from gembid.services.notifier import AuctionNotifier, Notification, WatchTopic

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClosedOutcome:
    """Result of a close attempt.

    ``closed`` is False only when the auction is not due yet. For an auction
    that was already terminal the stored outcome is reported with
    ``already_closed`` set.
    """

    auction_id: UUID
    closed: bool
    status: AuctionStatus
    winner_id: UUID | None = None
    winning_bid: Decimal | None = None
    reserve_met: bool | None = None
    already_closed: bool = False


def _outcome(auction: Auction, closed: bool, already_closed: bool = False) -> ClosedOutcome:
    return ClosedOutcome(
        auction_id=auction.id,
        closed=closed,
        status=auction.status,
        winner_id=auction.winner_id,
        winning_bid=auction.winning_bid,
        reserve_met=auction.reserve_met,
        already_closed=already_closed,
    )


class AuctionCloser:
    """Moves due auctions to their final status and activates scheduled ones."""

    def __init__(
        self,
        repository: AuctionRepository,
        notifier: AuctionNotifier,
        clock: Clock = system_clock,
        ending_soon: timedelta = timedelta(minutes=settings.ENDING_SOON_MINUTES),
    ):
        self.repository = repository
        self.notifier = notifier
        self.clock = clock
        self.ending_soon = ending_soon
        # auction id -> effective end already announced as ending soon
        self._announced: dict[UUID, datetime] = {}

    async def close_auction(self, auction_id: UUID) -> ClosedOutcome:
        """Close one auction if its effective end time has passed.

        Safe to call any number of times: a terminal auction is returned as is.

        Raises:
            AuctionNotFoundError, LockTimeoutError, StaleStateError
        """
        events: list[Notification] = []

        async def _close(session: AsyncSession, auction: Auction) -> ClosedOutcome:
            if auction.status.is_terminal:
                return _outcome(auction, closed=True, already_closed=True)

            now = self.clock.now()
            if now < auction.effective_end_time:
                return _outcome(auction, closed=False)

            winning = await self.repository.get_winning_bid(session, auction.id)

            if auction.bid_count == 0:
                auction.status = AuctionStatus.NO_SALE
            elif auction.reserve_price is None or auction.current_bid >= auction.reserve_price:
                auction.status = AuctionStatus.SOLD
                auction.winner_id = auction.highest_bidder_id
                auction.winning_bid = auction.current_bid
                auction.won_at = now
                if winning is not None:
                    winning.status = BidStatus.WON
            else:
                # Reserve not met: nobody wins, the top bid is void
                auction.status = AuctionStatus.NO_SALE
                auction.winner_id = None
                auction.winning_bid = None
                auction.won_at = None
                if winning is not None:
                    winning.status = BidStatus.CANCELLED
                    winning.is_winning = False

            auction.is_active = False

            events.append(
                Notification(
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
            )
            return _outcome(auction, closed=True)

        outcome = await self.repository.with_auction_lock(auction_id, _close)

        if outcome.closed and not outcome.already_closed:
            record_auction_closed(outcome.status.value)
            logger.info(
                f"Closed auction {auction_id}: status={outcome.status.value}, "
                f"winner={outcome.winner_id}, winning_bid={outcome.winning_bid}"
            )
            self.notifier.publish_all(events)

        return outcome

    async def close_if_due(self, auction_id: UUID) -> ClosedOutcome | None:
        """Close the auction when a reader finds it past its end.

        Returns None when there was nothing to do.
        """
        auction = await self.repository.get_auction(auction_id)
        if auction is None or auction.status != AuctionStatus.ACTIVE:
            return None
        if self.clock.now() < auction.effective_end_time:
            return None
        return await self.close_auction(auction_id)

    async def activate_due_auctions(self) -> list[UUID]:
        """Open scheduled auctions whose start time has been reached."""
        activated: list[UUID] = []

        for auction_id in await self.repository.find_due_for_activation(self.clock.now()):
            events: list[Notification] = []

            async def _activate(session: AsyncSession, auction: Auction) -> bool:
                now = self.clock.now()
                if auction.status != AuctionStatus.SCHEDULED or now < ensure_utc(auction.start_time):
                    return False
                auction.status = AuctionStatus.ACTIVE
                auction.is_active = True
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
                return True

            try:
                changed = await self.repository.with_auction_lock(auction_id, _activate)
            except (AuctionNotFoundError, LockTimeoutError, StaleStateError) as e:
                logger.warning(f"Could not activate auction {auction_id}: {e}")
                continue

            if changed:
                logger.info(f"Activated auction {auction_id}")
                self.notifier.publish_all(events)
                activated.append(auction_id)

        return activated

    async def announce_ending_soon(self) -> list[UUID]:
        """Alert ending-soon watchers once per effective end time.

        An auction extended after its announcement is announced again for the
        new end.
        """
        now = self.clock.now()
        due = await self.repository.find_ending_soon(now, self.ending_soon)
        announced: list[UUID] = []

        for auction in due:
            end = auction.effective_end_time
            if self._announced.get(auction.id) == end:
                continue
            self._announced[auction.id] = end
            self.notifier.publish(
                Notification(
                    auction_id=auction.id,
                    event=AuctionEndingEvent(
                        data=AuctionEndingData(
                            auction_id=auction.id,
                            current_bid=auction.current_bid,
                            effective_end_time=end,
                            timestamp=now,
                        )
                    ),
                    topic=WatchTopic.ENDING,
                )
            )
            announced.append(auction.id)

        # Forget auctions that left the window
        live = {auction.id for auction in due}
        for auction_id in list(self._announced):
            if auction_id not in live:
                del self._announced[auction_id]

        if announced:
            logger.info(f"Announced {len(announced)} auctions ending soon")
        return announced

    async def sweep(self) -> list[ClosedOutcome]:
        """One pass: activate due auctions, announce the ones ending soon, then
        close every auction past its end."""
        await self.activate_due_auctions()
        await self.announce_ending_soon()

        outcomes: list[ClosedOutcome] = []
        for auction_id in await self.repository.find_due_for_close(self.clock.now()):
            try:
                outcome = await self.close_auction(auction_id)
            except (AuctionNotFoundError, LockTimeoutError, StaleStateError) as e:
                # Picked up again on the next sweep
                logger.warning(f"Could not close auction {auction_id}: {e}")
                continue
            if outcome.closed and not outcome.already_closed:
                outcomes.append(outcome)

        return outcomes

    async def run(self, interval: float = settings.CLOSE_SWEEP_INTERVAL_SECONDS) -> None:
        """Sweep every ``interval`` seconds until cancelled."""
        while True:
            try:
                closed = await self.sweep()
                if closed:
                    logger.info(f"Close sweep settled {len(closed)} auctions")
            except asyncio.CancelledError:
                logger.info("Close sweep loop cancelled")
                raise
            except Exception as e:
                logger.error(f"Error in close sweep loop: {e}")
            await asyncio.sleep(interval)
