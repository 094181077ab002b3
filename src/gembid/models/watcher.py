"""Auction watcher model: who wants alerts for an auction, and which ones."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from gembid.core.database import Base


class AuctionWatcher(Base):
    """Watcher subscription; one row per (auction, email)."""

    __tablename__ = "auction_watchers"

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
    # Guests watch by email only
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    notify_outbid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_ending: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_result: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("auction_id", "email", name="uq_auction_watchers_auction_email"),
        Index("idx_auction_watchers_user", "user_id"),
    )

    def wants(self, topic: str) -> bool:
        """Whether this watcher asked for ``outbid``, ``ending`` or ``result`` alerts."""
        return bool(getattr(self, f"notify_{topic}"))
