"""Auction schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import Field, model_validator

from gembid.models.enums import AuctionStatus
from gembid.schemas.base import CamelModel

Money = Decimal


class AuctionCreate(CamelModel):
    """Schema for auction creation request (admin)."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    images: list[str] = Field(default_factory=list)
    starting_bid: Money = Field(..., ge=0, max_digits=10, decimal_places=2)
    reserve_price: Money | None = Field(default=None, max_digits=10, decimal_places=2)
    buy_now_price: Money | None = Field(default=None, max_digits=10, decimal_places=2)
    bid_increment: Money = Field(default=Decimal("1.00"), gt=0, max_digits=10, decimal_places=2)
    currency: str = Field(default="CAD", min_length=3, max_length=3)
    start_time: datetime
    end_time: datetime
    auto_extend: bool = True
    extend_minutes: int = Field(default=5, ge=0)
    extend_threshold_minutes: int = Field(default=5, ge=0)
    gemstone_type: str | None = None
    carat_weight: Decimal | None = Field(default=None, ge=0)
    cut: str | None = None
    clarity: str | None = None
    color: str | None = None
    origin: str | None = None
    certification: str | None = None

    @model_validator(mode="after")
    def check_pricing_and_timing(self) -> "AuctionCreate":
        if self.end_time <= self.start_time:
            raise ValueError("endTime must be after startTime")
        if self.reserve_price is not None and self.reserve_price < self.starting_bid:
            raise ValueError("reservePrice must be at least startingBid")
        if self.buy_now_price is not None and self.buy_now_price <= self.starting_bid:
            raise ValueError("buyNowPrice must be greater than startingBid")
        return self


class AuctionUpdate(CamelModel):
    """Schema for admin auction edits and status override.

    Only fields present in the request body are applied.
    """

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    images: list[str] | None = None
    starting_bid: Money | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    reserve_price: Money | None = Field(default=None, max_digits=10, decimal_places=2)
    buy_now_price: Money | None = Field(default=None, max_digits=10, decimal_places=2)
    bid_increment: Money | None = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    start_time: datetime | None = None
    end_time: datetime | None = None
    auto_extend: bool | None = None
    extend_minutes: int | None = Field(default=None, ge=0)
    extend_threshold_minutes: int | None = Field(default=None, ge=0)
    status: AuctionStatus | None = None
    is_active: bool | None = None
    gemstone_type: str | None = None
    carat_weight: Decimal | None = Field(default=None, ge=0)
    cut: str | None = None
    clarity: str | None = None
    color: str | None = None
    origin: str | None = None
    certification: str | None = None


class AuctionResponse(CamelModel):
    """Current auction projection returned to storefront and admin."""

    id: UUID
    title: str
    slug: str | None
    description: str | None
    images: list[str]
    gemstone_type: str | None
    carat_weight: Decimal | None
    cut: str | None
    clarity: str | None
    color: str | None
    origin: str | None
    certification: str | None
    starting_bid: Decimal
    current_bid: Decimal
    next_minimum_bid: Decimal
    reserve_price: Decimal | None
    reserve_met: bool | None
    buy_now_price: Decimal | None
    bid_increment: Decimal
    currency: str
    bid_count: int
    highest_bidder_id: UUID | None
    start_time: datetime
    end_time: datetime
    extended_end_time: datetime | None
    effective_end_time: datetime
    auto_extend: bool
    extend_minutes: int
    extend_threshold_minutes: int
    status: AuctionStatus
    is_active: bool
    winner_id: UUID | None
    winning_bid: Decimal | None
    won_at: datetime | None
    created_at: datetime
    updated_at: datetime


class Pagination(CamelModel):
    page: int
    limit: int
    total: int


class AuctionListResponse(CamelModel):
    """Schema for auction list response."""

    data: list[AuctionResponse]
    pagination: Pagination


AuctionFilter = Literal["active", "upcoming", "ended"]
