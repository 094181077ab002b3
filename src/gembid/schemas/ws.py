"""WebSocket event schemas for real-time auction updates."""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from gembid.models.enums import AuctionStatus
from gembid.schemas.base import CamelModel


class BidPlacedData(CamelModel):
    """Data payload for bid placed event."""

    auction_id: UUID
    bid_id: UUID
    amount: Decimal
    bid_count: int
    highest_bidder_id: UUID
    is_auto_bid: bool
    effective_end_time: datetime
    extended: bool
    timestamp: datetime


class BidPlacedEvent(CamelModel):
    """Bid placed event broadcast to everyone watching an auction."""

    event: Literal["bid_placed"] = "bid_placed"
    data: BidPlacedData


class OutbidData(CamelModel):
    """Data payload for outbid event."""

    auction_id: UUID
    bidder_id: UUID
    new_current_bid: Decimal
    next_minimum_bid: Decimal
    timestamp: datetime


class OutbidEvent(CamelModel):
    """Outbid event pushed to the bidder who lost the lead."""

    event: Literal["outbid"] = "outbid"
    data: OutbidData


class AuctionEndedData(CamelModel):
    """Data payload for auction ended event."""

    auction_id: UUID
    status: AuctionStatus
    winner_id: UUID | None = None
    winning_bid: Decimal | None = None
    reserve_met: bool | None = None
    timestamp: datetime


class AuctionEndedEvent(CamelModel):
    """Auction ended event broadcast when an auction reaches a sale outcome."""

    event: Literal["auction_ended"] = "auction_ended"
    data: AuctionEndedData


class AuctionUpdatedData(CamelModel):
    """Data payload for auction updated event."""

    auction_id: UUID
    status: AuctionStatus
    current_bid: Decimal
    effective_end_time: datetime
    timestamp: datetime


class AuctionUpdatedEvent(CamelModel):
    """Auction updated event broadcast after an operator edit."""

    event: Literal["auction_updated"] = "auction_updated"
    data: AuctionUpdatedData


class AuctionEndingData(CamelModel):
    """Data payload for auction ending soon event."""

    auction_id: UUID
    current_bid: Decimal
    effective_end_time: datetime
    timestamp: datetime


class AuctionEndingEvent(CamelModel):
    """Auction ending soon event, sent once per end time to the room and to watchers."""

    event: Literal["auction_ending"] = "auction_ending"
    data: AuctionEndingData


class AuctionCreatedData(CamelModel):
    """Data payload for auction created event."""

    auction_id: UUID
    title: str
    status: AuctionStatus
    starting_bid: Decimal
    start_time: datetime
    effective_end_time: datetime
    timestamp: datetime


class AuctionCreatedEvent(CamelModel):
    """Auction created event for the listing channel."""

    event: Literal["auction_created"] = "auction_created"
    data: AuctionCreatedData


class AuctionDeletedData(CamelModel):
    auction_id: UUID
    timestamp: datetime


class AuctionDeletedEvent(CamelModel):
    """Auction deleted event for the listing channel and the auction room."""

    event: Literal["auction_deleted"] = "auction_deleted"
    data: AuctionDeletedData


# Type alias for all WebSocket events
AuctionEvent = (
    BidPlacedEvent
    | OutbidEvent
    | AuctionEndedEvent
    | AuctionUpdatedEvent
    | AuctionEndingEvent
    | AuctionCreatedEvent
    | AuctionDeletedEvent
)
