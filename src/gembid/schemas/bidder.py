"""Schemas for a bidder's own bid history."""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from gembid.models.enums import AuctionStatus
from gembid.schemas.base import CamelModel

BidderBidFilter = Literal["all", "active", "winning", "won", "lost"]
UserStatus = Literal["winning", "outbid", "won", "lost", "pending"]


class BidderAuctionSummary(CamelModel):
    """The auction a bid belongs to, as shown in the bidder's history."""

    id: UUID
    title: str
    slug: str | None
    image: str | None
    current_bid: Decimal
    starting_bid: Decimal
    currency: str
    end_time: datetime
    status: AuctionStatus
    is_active: bool
    bid_count: int


class BidderBidResponse(CamelModel):
    id: UUID
    amount: Decimal
    max_bid: Decimal | None
    is_auto_bid: bool
    is_winning: bool
    created_at: datetime
    auction: BidderAuctionSummary
    user_status: UserStatus


class BidderStatsResponse(CamelModel):
    total_bids: int
    active_bids: int
    won_auctions: int
    currently_winning: int


class BidderHistoryResponse(CamelModel):
    """Schema for a bidder's bids with summary stats."""

    bids: list[BidderBidResponse]
    stats: BidderStatsResponse
    total: int
    limit: int
    offset: int
