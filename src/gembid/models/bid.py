"""Bid model for the append-only bid ledger."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func, text

from gembid.core.database import Base
from gembid.models.enums import BidStatus

if TYPE_CHECKING:
    from gembid.models.auction import Auction


class Bid(Base):
    """Bid model; only status and is_winning change after insert."""

    __tablename__ = "bids"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    auction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("auctions.id", ondelete="CASCADE"),
        nullable=False,
    )
    bidder_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    bidder_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bidder_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    max_bid: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    is_auto_bid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[BidStatus] = mapped_column(
        Enum(
            BidStatus,
            native_enum=False,
            length=20,
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=BidStatus.ACTIVE,
    )
    is_winning: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Relationships
    auction: Mapped["Auction"] = relationship("Auction", back_populates="bids")

    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_bid_amount_positive"),
        CheckConstraint(
            "status IN ('active', 'outbid', 'winning', 'won', 'cancelled', 'retracted')",
            name="chk_bid_status",
        ),
        Index("idx_bids_auction_amount", "auction_id", "amount"),
        Index("idx_bids_bidder", "bidder_id"),
        # At most one winning bid per auction
        Index(
            "uq_bids_auction_winning",
            "auction_id",
            unique=True,
            postgresql_where=text("is_winning"),
            sqlite_where=text("is_winning"),
        ),
    )
