"""Bid arbitration engine.

Decides, under the per-auction lock, whether a bid is accepted and applies
every consequence of an accepted bid in one transaction: the ledger row, the
new price and leader, auto-extension, buy-now and proxy bidding. Events are
queued on the notifier only after the transaction commits.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from gembid.core.clock import Clock, system_clock
from gembid.core.config import settings
from gembid.core.exceptions import AuctionNotFoundError, LockTimeoutError, StaleStateError
from gembid.middleware.metrics import record_bid_outcome
from gembid.models.auction import Auction
from gembid.models.bid import Bid
from gembid.models.enums import AuctionStatus, BidStatus
from gembid.schemas.ws import (
    AuctionEndedData,
    AuctionEndedEvent,
    BidPlacedData,
    BidPlacedEvent,
    OutbidData,
    OutbidEvent,
)
from gembid.services.auction_repository import AuctionRepository
from gembid.services.notifier import AuctionNotifier, Notification, WatchTopic

logger = logging.getLogger(__name__)


class BidRejectReason(str, Enum):
    """Why a bid attempt was refused."""

    NOT_FOUND = "not_found"
    AUCTION_NOT_OPEN = "auction_not_open"
    BID_TOO_LOW = "bid_too_low"
    TIMEOUT = "timeout"
    STALE_STATE = "stale_state"
    BUY_NOW_UNAVAILABLE = "buy_now_unavailable"


@dataclass(frozen=True)
class BidAccepted:
    """Outcome of an accepted bid, after any proxy bids it triggered."""

    auction_id: UUID
    bid_id: UUID | None
    new_current_bid: Decimal
    bid_count: int
    highest_bidder_id: UUID | None
    extended: bool = False
    extended_end_time: datetime | None = None
    buy_now: bool = False
    duplicate: bool = False
    auto_bids: int = 0

    accepted = True


@dataclass(frozen=True)
class BidRejected:
    """Outcome of a refused bid. Nothing was written."""

    reason: BidRejectReason
    message: str
    next_minimum_bid: Decimal | None = None

    accepted = False


BidResult = BidAccepted | BidRejected


@dataclass(frozen=True)
class BidderInfo:
    bidder_id: UUID
    email: str | None = None
    name: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass
class _Round:
    """State collected while the auction lock is held."""

    events: list[Notification] = field(default_factory=list)
    extended: bool = False
    buy_now: bool = False
    auto_bids: int = 0


class BidEngine:
    """Serializes and arbitrates bids per auction."""

    def __init__(
        self,
        repository: AuctionRepository,
        notifier: AuctionNotifier,
        clock: Clock = system_clock,
        proxy_max_rounds: int = settings.PROXY_MAX_ROUNDS,
    ):
        self.repository = repository
        self.notifier = notifier
        self.clock = clock
        self.proxy_max_rounds = proxy_max_rounds

    async def place_bid(
        self,
        auction_id: UUID,
        bidder_id: UUID,
        amount: Decimal,
        max_bid: Decimal | None = None,
        *,
        bidder_email: str | None = None,
        bidder_name: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> BidResult:
        """Submit a bid of ``amount``, optionally with a proxy ceiling ``max_bid``.

        Args:
            auction_id: Auction UUID
            bidder_id: Bidder UUID
            amount: Bid amount
            max_bid: Highest amount the engine may bid on the bidder's behalf

        Returns:
            BidAccepted or BidRejected
        """
        bidder = BidderInfo(bidder_id, bidder_email, bidder_name, ip_address, user_agent)
        state = _Round()

        async def _arbitrate(session: AsyncSession, auction: Auction) -> BidResult:
            return await self._arbitrate(session, auction, bidder, Decimal(amount), max_bid, state)

        return await self._submit(auction_id, _arbitrate, state)

    async def buy_now(
        self,
        auction_id: UUID,
        bidder_id: UUID,
        *,
        bidder_email: str | None = None,
        bidder_name: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> BidResult:
        """Purchase the auction outright at its buy-now price."""
        bidder = BidderInfo(bidder_id, bidder_email, bidder_name, ip_address, user_agent)
        state = _Round()

        async def _arbitrate(session: AsyncSession, auction: Auction) -> BidResult:
            return await self._arbitrate(session, auction, bidder, None, None, state)

        return await self._submit(auction_id, _arbitrate, state)

    async def _submit(self, auction_id: UUID, arbitrate, state: _Round) -> BidResult:
        try:
            result = await self.repository.with_auction_lock(auction_id, arbitrate)
        except AuctionNotFoundError:
            result = BidRejected(
                reason=BidRejectReason.NOT_FOUND,
                message="Auction not found",
            )
        except LockTimeoutError as e:
            logger.warning(f"Bid on auction {auction_id} timed out waiting for lock: {e}")
            result = BidRejected(
                reason=BidRejectReason.TIMEOUT,
                message="Auction is busy, retry shortly",
            )
        except StaleStateError:
            result = BidRejected(
                reason=BidRejectReason.STALE_STATE,
                message="Auction changed while the bid was processed, re-read and retry",
            )

        if isinstance(result, BidAccepted):
            outcome = "duplicate" if result.duplicate else "accepted"
            record_bid_outcome(outcome, auto_bids=result.auto_bids)
            # Committed; delivery can no longer affect the bid
            self.notifier.publish_all(state.events)
        else:
            record_bid_outcome(result.reason.value)

        return result

    async def _arbitrate(
        self,
        session: AsyncSession,
        auction: Auction,
        bidder: BidderInfo,
        amount: Decimal | None,
        max_bid: Decimal | None,
        state: _Round,
    ) -> BidResult:
        """Check preconditions in order and apply the bid.

        ``amount`` of None requests a purchase at the buy-now price.
        """
        # Read inside the lock so the deadline check and the write agree
        now = self.clock.now()

        if not auction.is_open_at(now):
            return BidRejected(
                reason=BidRejectReason.AUCTION_NOT_OPEN,
                message=f"Auction is not open for bidding (status: {auction.status.value})",
            )

        if amount is None:
            if auction.buy_now_price is None:
                return BidRejected(
                    reason=BidRejectReason.BUY_NOW_UNAVAILABLE,
                    message="This auction has no buy-now price",
                )
            amount = max(Decimal(auction.buy_now_price), auction.next_minimum_bid)

        if (
            auction.bid_count > 0
            and auction.highest_bidder_id == bidder.bidder_id
            and amount == auction.current_bid
        ):
            return self._accepted(auction, bid_id=None, state=state, duplicate=True)

        floor = auction.next_minimum_bid
        if amount <= 0 or amount < floor:
            return BidRejected(
                reason=BidRejectReason.BID_TOO_LOW,
                message=f"Bid must be at least {floor}",
                next_minimum_bid=floor,
            )

        bid = await self._apply_bid(session, auction, bidder, amount, max_bid, False, now, state)

        if auction.status == AuctionStatus.ACTIVE:
            await self._resolve_proxy_bids(session, auction, now, state)

        logger.info(
            f"Bid {bid.id} accepted on auction {auction.id}: "
            f"amount={bid.amount}, current={auction.current_bid}, "
            f"auto_bids={state.auto_bids}"
        )
        return self._accepted(auction, bid_id=bid.id, state=state)

    def _accepted(
        self,
        auction: Auction,
        bid_id: UUID | None,
        state: _Round,
        duplicate: bool = False,
    ) -> BidAccepted:
        return BidAccepted(
            auction_id=auction.id,
            bid_id=bid_id,
            new_current_bid=Decimal(auction.current_bid),
            bid_count=auction.bid_count,
            highest_bidder_id=auction.highest_bidder_id,
            extended=state.extended,
            extended_end_time=auction.extended_end_time,
            buy_now=state.buy_now,
            duplicate=duplicate,
            auto_bids=state.auto_bids,
        )

    async def _apply_bid(
        self,
        session: AsyncSession,
        auction: Auction,
        bidder: BidderInfo,
        amount: Decimal,
        max_bid: Decimal | None,
        is_auto_bid: bool,
        now: datetime,
        state: _Round,
    ) -> Bid:
        """Write one accepted bid and its effects on the auction.

        ``amount`` must already be at or above the next minimum bid.
        """
        previous = await self.repository.get_winning_bid(session, auction.id)
        previous_leader = auction.highest_bidder_id
        if previous is not None:
            previous.status = BidStatus.OUTBID
            previous.is_winning = False

        buy_now = auction.buy_now_price is not None and amount >= auction.buy_now_price

        bid = await self.repository.append_bid(
            session,
            Bid(
                auction_id=auction.id,
                bidder_id=bidder.bidder_id,
                bidder_email=bidder.email,
                bidder_name=bidder.name,
                amount=amount,
                max_bid=max_bid,
                is_auto_bid=is_auto_bid,
                status=BidStatus.WON if buy_now else BidStatus.WINNING,
                is_winning=True,
                ip_address=bidder.ip_address,
                user_agent=bidder.user_agent,
                created_at=now,
            ),
        )

        auction.current_bid = amount
        auction.bid_count += 1
        auction.highest_bidder_id = bidder.bidder_id

        extended = False
        if buy_now:
            auction.status = AuctionStatus.SOLD
            auction.is_active = False
            auction.winner_id = bidder.bidder_id
            auction.winning_bid = amount
            auction.won_at = now
            auction.details = {**(auction.details or {}), "ended_by_buy_now": True}
            state.buy_now = True
            logger.info(f"Auction {auction.id} sold by buy-now to {bidder.bidder_id} at {amount}")
        else:
            extended = self._maybe_extend(auction, now)
            state.extended = state.extended or extended

        if is_auto_bid:
            state.auto_bids += 1

        state.events.append(
            Notification(
                auction_id=auction.id,
                event=BidPlacedEvent(
                    data=BidPlacedData(
                        auction_id=auction.id,
                        bid_id=bid.id,
                        amount=amount,
                        bid_count=auction.bid_count,
                        highest_bidder_id=bidder.bidder_id,
                        is_auto_bid=is_auto_bid,
                        effective_end_time=auction.effective_end_time,
                        extended=extended,
                        timestamp=now,
                    )
                ),
            )
        )
        if previous_leader is not None and previous_leader != bidder.bidder_id:
            state.events.append(
                Notification(
                    auction_id=auction.id,
                    bidder_id=previous_leader,
                    topic=WatchTopic.OUTBID,
                    event=OutbidEvent(
                        data=OutbidData(
                            auction_id=auction.id,
                            bidder_id=previous_leader,
                            new_current_bid=amount,
                            next_minimum_bid=auction.next_minimum_bid,
                            timestamp=now,
                        )
                    ),
                )
            )
        if buy_now:
            state.events.append(
                Notification(
                    auction_id=auction.id,
                    topic=WatchTopic.RESULT,
                    lobby=True,
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
                )
            )

        return bid

    def _maybe_extend(self, auction: Auction, now: datetime) -> bool:
        """Push the end time out when a bid lands inside the closing window.

        The end time only ever moves later.
        """
        if not auction.auto_extend:
            return False

        effective_end = auction.effective_end_time
        if effective_end - now > timedelta(minutes=auction.extend_threshold_minutes):
            return False

        new_end = now + timedelta(minutes=auction.extend_minutes)
        if new_end <= effective_end:
            return False

        auction.extended_end_time = new_end
        logger.info(f"Auction {auction.id} extended to {new_end.isoformat()}")
        return True

    async def _resolve_proxy_bids(
        self,
        session: AsyncSession,
        auction: Auction,
        now: datetime,
        state: _Round,
    ) -> None:
        """Raise stored max bids against the current leader until one side runs out.

        Each round the strongest rival (highest ceiling, earliest on ties)
        either takes the lead at one increment over the leader's ceiling, or
        the leader answers at one increment over the rival's ceiling. Equal
        ceilings resolve in favour of the bidder who entered the auction first.
        """
        for _ in range(self.proxy_max_rounds):
            if auction.status != AuctionStatus.ACTIVE:
                return

            ceilings = await self.repository.get_bidder_ceilings(session, auction.id)
            leader = ceilings.get(auction.highest_bidder_id)
            floor = auction.next_minimum_bid
            rivals = [
                c
                for c in ceilings.values()
                if c.bidder_id != auction.highest_bidder_id and c.ceiling >= floor
            ]
            if leader is None or not rivals:
                return

            rival = min(rivals, key=lambda c: (-c.ceiling, c.first_bid_at))
            increment = Decimal(auction.bid_increment)

            # Equal ceilings go to whoever bid first
            rival_ahead = rival.ceiling > leader.ceiling or (
                rival.ceiling == leader.ceiling and rival.first_bid_at < leader.first_bid_at
            )
            if rival_ahead:
                bidder_id = rival.bidder_id
                amount = max(floor, min(rival.ceiling, leader.ceiling + increment))
            else:
                bidder_id = leader.bidder_id
                amount = min(leader.ceiling, rival.ceiling + increment)
                if amount < floor:
                    return

            latest = await self.repository.get_latest_bid_by_bidder(session, auction.id, bidder_id)
            bidder = BidderInfo(
                bidder_id=bidder_id,
                email=latest.bidder_email if latest else None,
                name=latest.bidder_name if latest else None,
            )
            await self._apply_bid(session, auction, bidder, amount, None, True, now, state)

        logger.warning(
            f"Proxy bidding on auction {auction.id} stopped after "
            f"{self.proxy_max_rounds} rounds"
        )
