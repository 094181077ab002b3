"""Pydantic schemas for request/response validation."""

from gembid.schemas.auction import (
    AuctionCreate,
    AuctionListResponse,
    AuctionResponse,
    AuctionUpdate,
    Pagination,
)
from gembid.schemas.bid import (
    BidAcceptedResponse,
    BidCreate,
    BidHistoryResponse,
    BidRejectedResponse,
    BidResponse,
    BuyNowRequest,
)
from gembid.schemas.bidder import BidderBidResponse, BidderHistoryResponse, BidderStatsResponse
from gembid.schemas.watcher import WatcherCreate, WatcherListResponse, WatcherResponse

__all__ = [
    "AuctionCreate",
    "AuctionUpdate",
    "AuctionResponse",
    "AuctionListResponse",
    "Pagination",
    "BidCreate",
    "BuyNowRequest",
    "BidAcceptedResponse",
    "BidRejectedResponse",
    "BidResponse",
    "BidHistoryResponse",
    "BidderBidResponse",
    "BidderHistoryResponse",
    "BidderStatsResponse",
    "WatcherCreate",
    "WatcherResponse",
    "WatcherListResponse",
]
