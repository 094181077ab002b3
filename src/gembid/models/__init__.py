"""SQLAlchemy ORM models."""

from gembid.models.auction import Auction
from gembid.models.base import TimestampMixin
from gembid.models.bid import Bid
from gembid.models.enums import TERMINAL_AUCTION_STATUSES, AuctionStatus, BidStatus
from gembid.models.watcher import AuctionWatcher

__all__ = [
    "TimestampMixin",
    "Auction",
    "Bid",
    "AuctionWatcher",
    "AuctionStatus",
    "BidStatus",
    "TERMINAL_AUCTION_STATUSES",
]
