"""Bidder API endpoints: a bidder's own bids across auctions."""

from uuid import UUID

from fastapi import APIRouter, Query

from gembid.api.deps import BidderServiceDep
from gembid.schemas.bidder import BidderBidFilter, BidderHistoryResponse

router = APIRouter()


@router.get("/{bidder_id}/bids", response_model=BidderHistoryResponse)
async def get_bidder_bids(
    bidder_id: UUID,
    service: BidderServiceDep,
    status: BidderBidFilter = Query("all"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """Bids placed by one bidder, newest first, with where each auction stands for them."""
    return await service.get_history(bidder_id, status, limit, offset)
