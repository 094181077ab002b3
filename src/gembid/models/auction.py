"""Auction model for timed gemstone auctions."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, List

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gembid.core.clock import ensure_utc
from gembid.core.database import Base
from gembid.models.base import TimestampMixin
from gembid.models.enums import AuctionStatus

if TYPE_CHECKING:
    from gembid.models.bid import Bid


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Auction(Base, TimestampMixin):
    """Auction model holding current bid state, timing and outcome."""

    __tablename__ = "auctions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Gemstone attributes
    gemstone_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    carat_weight: Mapped[Decimal | None] = mapped_column(Numeric(6, 3), nullable=True)
    cut: Mapped[str | None] = mapped_column(String(100), nullable=True)
    clarity: Mapped[str | None] = mapped_column(String(100), nullable=True)
    color: Mapped[str | None] = mapped_column(String(100), nullable=True)
    origin: Mapped[str | None] = mapped_column(String(100), nullable=True)
    certification: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Pricing
    starting_bid: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    current_bid: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
    )
    reserve_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    buy_now_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    bid_increment: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("1.00"),
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="CAD")

    # Bidder state
    bid_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    highest_bidder_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    # Timing
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    extended_end_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    auto_extend: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    extend_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    extend_threshold_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=5)

    # Lifecycle
    status: Mapped[AuctionStatus] = mapped_column(
        Enum(
            AuctionStatus,
            native_enum=False,
            length=20,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=AuctionStatus.PENDING,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Outcome
    winner_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    winning_bid: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    won_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    details: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )

    # Optimistic concurrency counter, checked on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Relationships
    bids: Mapped[List["Bid"]] = relationship(
        "Bid",
        back_populates="auction",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    # eager_defaults reloads updated_at so detached instances stay readable
    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    __table_args__ = (
        CheckConstraint("starting_bid >= 0", name="chk_auction_starting_bid"),
        CheckConstraint("current_bid >= 0", name="chk_auction_current_bid"),
        CheckConstraint(
            "reserve_price IS NULL OR reserve_price >= starting_bid",
            name="chk_auction_reserve_price",
        ),
        CheckConstraint(
            "buy_now_price IS NULL OR buy_now_price > starting_bid",
            name="chk_auction_buy_now_price",
        ),
        CheckConstraint("bid_increment > 0", name="chk_auction_bid_increment"),
        CheckConstraint("end_time > start_time", name="chk_auction_time"),
        CheckConstraint(
            "status IN ('pending', 'scheduled', 'active', 'ended', 'sold', 'cancelled', 'no_sale')",
            name="chk_auction_status",
        ),
        Index("idx_auctions_status", "status"),
        Index("idx_auctions_end_time", "end_time"),
        Index("idx_auctions_current_bid", "current_bid"),
    )

    @property
    def effective_end_time(self) -> datetime:
        """Extended end time if auto-extension fired, else the scheduled end."""
        return ensure_utc(self.extended_end_time or self.end_time)

    @property
    def reserve_met(self) -> bool | None:
        """None when no reserve is set."""
        if self.reserve_price is None:
            return None
        return self.bid_count > 0 and self.current_bid >= self.reserve_price

    @property
    def next_minimum_bid(self) -> Decimal:
        """Lowest amount the next bid must reach."""
        if self.current_bid == 0:
            return Decimal(self.starting_bid)
        return Decimal(self.current_bid) + Decimal(self.bid_increment)

    def is_open_at(self, now: datetime) -> bool:
        """Whether bids are accepted at ``now``.

        Checks the clock as well as the status, so an auction the closer has
        not swept yet still refuses late bids.
        """
        return (
            self.status == AuctionStatus.ACTIVE
            and self.is_active
            and ensure_utc(self.start_time) <= now < self.effective_end_time
        )
