"""Closed status enumerations for auctions and bids."""

import enum


class AuctionStatus(str, enum.Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    ENDED = "ended"
    SOLD = "sold"
    CANCELLED = "cancelled"
    NO_SALE = "no_sale"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_AUCTION_STATUSES


TERMINAL_AUCTION_STATUSES = frozenset(
    {
        AuctionStatus.ENDED,
        AuctionStatus.SOLD,
        AuctionStatus.CANCELLED,
        AuctionStatus.NO_SALE,
    }
)


class BidStatus(str, enum.Enum):
    ACTIVE = "active"
    OUTBID = "outbid"
    WINNING = "winning"
    WON = "won"
    CANCELLED = "cancelled"
    RETRACTED = "retracted"
