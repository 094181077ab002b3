"""Seed data script for development and testing.

Creates:
- 3 live gemstone auctions ending AUCTION_DURATION_MINUTES from now
- 1 scheduled auction starting in an hour
- A short opening bid war on the first auction, including a proxy bid

Environment Variables:
    AUCTION_DURATION_MINUTES: Auction duration in minutes (default: 20)
    RESET_DATA: Set to "true" to clear bids/auctions before seeding (default: false)

Usage:
    uv run python -m scripts.seed_data

    # Fresh auctions ending in 5 minutes (exercises auto-extension)
    RESET_DATA=true AUCTION_DURATION_MINUTES=5 uv run python -m scripts.seed_data
"""

import asyncio
import os
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func, select, text

from gembid.core.database import async_session_maker, engine
from gembid.core.locks import LocalAuctionLocks
from gembid.models import Auction
from gembid.schemas.auction import AuctionCreate
from gembid.services.auction_repository import AuctionRepository
from gembid.services.auction_service import AuctionService
from gembid.services.bid_engine import BidEngine
from gembid.services.notifier import AuctionNotifier

# Configuration from environment variables
AUCTION_DURATION_MINUTES = int(os.getenv("AUCTION_DURATION_MINUTES", "20"))
RESET_DATA = os.getenv("RESET_DATA", "false").lower() == "true"

GEMSTONES = [
    {
        "title": "Kashmir Blue Sapphire, 3.02 ct",
        "gemstone_type": "sapphire",
        "carat_weight": Decimal("3.020"),
        "cut": "cushion",
        "clarity": "VS",
        "color": "cornflower blue",
        "origin": "Kashmir",
        "certification": "GRS",
        "starting_bid": Decimal("1000.00"),
        "reserve_price": Decimal("2500.00"),
        "buy_now_price": Decimal("9000.00"),
        "bid_increment": Decimal("50.00"),
    },
    {
        "title": "Colombian Emerald, 1.48 ct",
        "gemstone_type": "emerald",
        "carat_weight": Decimal("1.480"),
        "cut": "emerald",
        "clarity": "minor oil",
        "color": "vivid green",
        "origin": "Muzo, Colombia",
        "certification": "Gubelin",
        "starting_bid": Decimal("400.00"),
        "bid_increment": Decimal("25.00"),
    },
    {
        "title": "Burmese Ruby, 0.91 ct",
        "gemstone_type": "ruby",
        "carat_weight": Decimal("0.910"),
        "cut": "oval",
        "clarity": "VS",
        "color": "pigeon blood",
        "origin": "Mogok, Myanmar",
        "starting_bid": Decimal("750.00"),
        "reserve_price": Decimal("1200.00"),
        "bid_increment": Decimal("25.00"),
    },
]

UPCOMING = {
    "title": "Padparadscha Sapphire, 2.10 ct",
    "gemstone_type": "sapphire",
    "carat_weight": Decimal("2.100"),
    "cut": "oval",
    "color": "pink-orange",
    "origin": "Sri Lanka",
    "starting_bid": Decimal("1500.00"),
    "bid_increment": Decimal("50.00"),
}


async def reset_auction_data() -> None:
    """Clear bids and auctions."""
    print("Resetting auction data...")
    async with async_session_maker() as session:
        await session.execute(text("DELETE FROM bids"))
        await session.execute(text("DELETE FROM auctions"))
        await session.commit()
    print("  Cleared bids, auctions")


async def seed_auctions(service: AuctionService) -> list[Auction]:
    """Create the live and upcoming auctions."""
    print("Seeding auctions...")

    if not RESET_DATA:
        async with async_session_maker() as session:
            count = (await session.execute(select(func.count(Auction.id)))).scalar_one()
        if count:
            print("  Auctions already exist, skipping...")
            return []

    now = datetime.now(timezone.utc)
    auctions = []

    for gem in GEMSTONES:
        auction = await service.create_auction(
            AuctionCreate(
                **gem,
                description=f"{gem['title']} from {gem['origin']}",
                start_time=now - timedelta(minutes=1),
                end_time=now + timedelta(minutes=AUCTION_DURATION_MINUTES),
            )
        )
        auctions.append(auction)
        print(f"  Created {auction.status.value} auction: {auction.title} ({auction.id})")

    upcoming = await service.create_auction(
        AuctionCreate(
            **UPCOMING,
            start_time=now + timedelta(hours=1),
            end_time=now + timedelta(hours=1, minutes=AUCTION_DURATION_MINUTES),
        )
    )
    auctions.append(upcoming)
    print(f"  Created {upcoming.status.value} auction: {upcoming.title} ({upcoming.id})")

    return auctions


async def seed_bids(engine_: BidEngine, auction: Auction) -> None:
    """Open bidding on one auction: a proxy bidder and a challenger."""
    print(f"Seeding bids on {auction.title}...")

    alice, bob = uuid.uuid4(), uuid.uuid4()
    opening = Decimal(auction.starting_bid)

    results = [
        await engine_.place_bid(
            auction.id,
            alice,
            opening,
            max_bid=opening * 2,
            bidder_email="alice@example.com",
            bidder_name="Alice",
        ),
        await engine_.place_bid(
            auction.id,
            bob,
            opening + Decimal(auction.bid_increment) * 4,
            bidder_email="bob@example.com",
            bidder_name="Bob",
        ),
    ]

    for result in results:
        if result.accepted:
            print(
                f"  Accepted: current={result.new_current_bid}, "
                f"bids={result.bid_count}, auto_bids={result.auto_bids}"
            )
        else:
            print(f"  Rejected: {result.reason.value} ({result.message})")


async def main():
    """Main seed function."""
    print("=" * 60)
    print("Gemstone Auctions - Seed Data Script")
    print("=" * 60)
    print(f"  RESET_DATA: {RESET_DATA}")
    print(f"  AUCTION_DURATION_MINUTES: {AUCTION_DURATION_MINUTES}")
    print("=" * 60)

    if RESET_DATA:
        await reset_auction_data()

    # Single process, so in-process locks are enough
    repository = AuctionRepository(async_session_maker, LocalAuctionLocks())
    notifier = AuctionNotifier()
    service = AuctionService(repository, notifier)
    bid_engine = BidEngine(repository, notifier)

    auctions = await seed_auctions(service)
    if auctions:
        await seed_bids(bid_engine, auctions[0])

    print("=" * 60)
    print("Seed data complete!")
    for auction in auctions:
        print(f"  {auction.status.value:<10} {auction.id}  {auction.title}")
    print("=" * 60)

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
