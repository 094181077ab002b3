"""Domain exceptions raised by auction services."""

from uuid import UUID


class AuctionError(Exception):
    """Base class for auction domain errors."""


class AuctionNotFoundError(AuctionError):
    def __init__(self, auction_id: UUID):
        super().__init__(f"Auction {auction_id} not found")
        self.auction_id = auction_id


class LockTimeoutError(AuctionError):
    """Waiting for the per-auction lock exceeded the configured bound."""

    def __init__(self, auction_id: UUID, timeout: float):
        super().__init__(f"Timed out after {timeout}s waiting for auction {auction_id}")
        self.auction_id = auction_id
        self.timeout = timeout


class StaleStateError(AuctionError):
    """The auction row changed between read and write."""

    def __init__(self, auction_id: UUID):
        super().__init__(f"Auction {auction_id} was modified concurrently")
        self.auction_id = auction_id


class InvalidAuctionError(AuctionError):
    """Auction data or a requested transition violates an invariant."""
