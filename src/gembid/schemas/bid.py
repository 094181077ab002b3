"""Bid schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import EmailStr, Field, model_validator

from gembid.models.enums import BidStatus
from gembid.schemas.base import CamelModel


class BidderInfo(CamelModel):
    """Identity of the bidder, supplied by the authenticated storefront."""

    bidder_id: UUID
    bidder_email: EmailStr | None = None
    bidder_name: str | None = Field(default=None, max_length=255)


class BidCreate(BidderInfo):
    """Schema for bid placement request."""

    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    max_bid: Decimal | None = Field(default=None, gt=0, max_digits=10, decimal_places=2)

    @model_validator(mode="after")
    def check_max_bid(self) -> "BidCreate":
        if self.max_bid is not None and self.max_bid < self.amount:
            raise ValueError("maxBid must be greater than or equal to amount")
        return self


class BuyNowRequest(BidderInfo):
    """Schema for an instant purchase at the buy-now price."""


class BidAcceptedResponse(CamelModel):
    """Schema for an accepted bid."""

    bid_id: UUID | None
    new_current_bid: Decimal
    bid_count: int
    highest_bidder_id: UUID | None
    extended: bool
    extended_end_time: datetime | None
    buy_now: bool
    duplicate: bool
    auto_bids: int


class BidRejectedResponse(CamelModel):
    """Schema for a rejected bid attempt."""

    reason: str
    message: str
    next_minimum_bid: Decimal | None = None


class BidResponse(CamelModel):
    """Schema for one bid in the public bid history."""

    id: UUID
    auction_id: UUID
    bidder_id: UUID
    bidder_name: str | None
    amount: Decimal
    is_auto_bid: bool
    status: BidStatus
    is_winning: bool
    created_at: datetime


class BidHistoryResponse(CamelModel):
    """Schema for bid history response."""

    bids: list[BidResponse]
    total: int
