"""Tests for proxy bidding against stored max bids."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from gembid.models import AuctionStatus, Bid, BidStatus
from gembid.services.bid_engine import BidEngine


async def _ledger(session_maker, auction_id) -> list[Bid]:
    async with session_maker() as session:
        result = await session.execute(
            select(Bid).where(Bid.auction_id == auction_id).order_by(Bid.amount)
        )
        return list(result.scalars().all())


class TestProxyBidding:
    """Max bids raise automatically, one increment at a time."""

    @pytest.mark.asyncio
    async def test_proxy_outbids_challenger_by_one_increment(self, engine, make_auction, session_maker):
        auction = await make_auction()
        alice, bob = uuid4(), uuid4()
        await engine.place_bid(auction.id, alice, Decimal("100"), Decimal("200"))

        result = await engine.place_bid(auction.id, bob, Decimal("110"))

        assert result.accepted
        assert result.auto_bids == 1
        assert result.new_current_bid == Decimal("115")
        assert result.highest_bidder_id == alice

        ledger = await _ledger(session_maker, auction.id)
        assert [(b.bidder_id, b.amount, b.is_auto_bid, b.status) for b in ledger] == [
            (alice, Decimal("100"), False, BidStatus.OUTBID),
            (bob, Decimal("110"), False, BidStatus.OUTBID),
            (alice, Decimal("115"), True, BidStatus.WINNING),
        ]

    @pytest.mark.asyncio
    async def test_proxy_stops_at_ceiling(self, engine, make_auction, repository):
        auction = await make_auction()
        alice, bob = uuid4(), uuid4()
        await engine.place_bid(auction.id, alice, Decimal("100"), Decimal("200"))

        result = await engine.place_bid(auction.id, bob, Decimal("250"))

        assert result.auto_bids == 0
        assert result.highest_bidder_id == bob
        stored = await repository.get_auction(auction.id)
        assert stored.current_bid == Decimal("250")
        assert stored.highest_bidder_id == bob

    @pytest.mark.asyncio
    async def test_leader_defends_with_higher_ceiling(self, engine, make_auction):
        """New leader's max bid answers a weaker stored ceiling."""
        auction = await make_auction()
        alice, bob = uuid4(), uuid4()
        await engine.place_bid(auction.id, alice, Decimal("100"), Decimal("200"))

        result = await engine.place_bid(auction.id, bob, Decimal("150"), Decimal("300"))

        assert result.highest_bidder_id == bob
        assert result.new_current_bid == Decimal("205")
        assert result.auto_bids == 1

    @pytest.mark.asyncio
    async def test_stronger_stored_ceiling_wins_over_new_max_bid(self, engine, make_auction):
        auction = await make_auction()
        alice, bob = uuid4(), uuid4()
        await engine.place_bid(auction.id, alice, Decimal("100"), Decimal("200"))

        result = await engine.place_bid(auction.id, bob, Decimal("105"), Decimal("180"))

        assert result.highest_bidder_id == alice
        assert result.new_current_bid == Decimal("185")

    @pytest.mark.asyncio
    async def test_challenger_at_rival_ceiling_keeps_lead(self, engine, make_auction):
        """A bid equal to the stored ceiling leaves no room for a proxy raise."""
        auction = await make_auction()
        alice, bob = uuid4(), uuid4()
        await engine.place_bid(auction.id, alice, Decimal("100"), Decimal("200"))

        result = await engine.place_bid(auction.id, bob, Decimal("200"))

        assert result.highest_bidder_id == bob
        assert result.auto_bids == 0

    @pytest.mark.asyncio
    async def test_equal_ceilings_favour_earlier_bidder(self, engine, make_auction, clock, repository):
        auction = await make_auction()
        alice, bob = uuid4(), uuid4()
        await engine.place_bid(auction.id, alice, Decimal("100"), Decimal("200"))
        clock.advance(seconds=1)

        result = await engine.place_bid(auction.id, bob, Decimal("150"), Decimal("200"))

        assert result.highest_bidder_id == alice
        assert result.new_current_bid == Decimal("200")
        assert result.auto_bids == 1
        stored = await repository.get_auction(auction.id)
        assert stored.highest_bidder_id == alice
        assert stored.current_bid == Decimal("200")

    @pytest.mark.asyncio
    async def test_auto_bids_respect_increment(self, engine, make_auction, session_maker):
        auction = await make_auction()
        await engine.place_bid(auction.id, uuid4(), Decimal("100"), Decimal("400"))
        await engine.place_bid(auction.id, uuid4(), Decimal("120"), Decimal("260"))
        await engine.place_bid(auction.id, uuid4(), Decimal("300"))

        amounts = [b.amount for b in await _ledger(session_maker, auction.id)]
        assert all(b - a >= Decimal("5") for a, b in zip(amounts, amounts[1:]))
        assert max(amounts) == Decimal("305")

    @pytest.mark.asyncio
    async def test_proxy_reaching_buy_now_sells(self, engine, make_auction, repository):
        auction = await make_auction(buy_now_price=Decimal("150"))
        alice = uuid4()
        await engine.place_bid(auction.id, alice, Decimal("100"), Decimal("300"))

        result = await engine.place_bid(auction.id, uuid4(), Decimal("148"))

        assert result.buy_now is True
        stored = await repository.get_auction(auction.id)
        assert stored.status == AuctionStatus.SOLD
        assert stored.winner_id == alice
        assert stored.winning_bid == Decimal("153")

    @pytest.mark.asyncio
    async def test_outbid_sent_to_displaced_proxy(self, engine, make_auction, queued_events):
        auction = await make_auction()
        alice, bob = uuid4(), uuid4()
        await engine.place_bid(auction.id, alice, Decimal("100"), Decimal("200"))
        queued_events()

        await engine.place_bid(auction.id, bob, Decimal("110"))

        events = queued_events()
        assert [(n.event.event, n.bidder_id) for n in events] == [
            ("bid_placed", None),
            ("outbid", alice),
            ("bid_placed", None),
            ("outbid", bob),
        ]
        assert events[2].event.data.is_auto_bid is True

    @pytest.mark.asyncio
    async def test_rounds_bounded(self, repository, notifier, clock, make_auction):
        engine = BidEngine(repository, notifier, clock, proxy_max_rounds=0)
        auction = await make_auction()
        await engine.place_bid(auction.id, uuid4(), Decimal("100"), Decimal("200"))

        result = await engine.place_bid(auction.id, uuid4(), Decimal("110"))

        assert result.auto_bids == 0
        assert result.new_current_bid == Decimal("110")
