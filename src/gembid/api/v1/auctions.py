"""Auction API endpoints: storefront reads and admin management."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Response, status

from gembid.api.deps import AuctionCloserDep, AuctionServiceDep, RepositoryDep
from gembid.core.exceptions import (
    AuctionNotFoundError,
    InvalidAuctionError,
    LockTimeoutError,
    StaleStateError,
)
from gembid.schemas.auction import (
    AuctionCreate,
    AuctionFilter,
    AuctionListResponse,
    AuctionResponse,
    AuctionUpdate,
    Pagination,
)
from gembid.schemas.bid import BidHistoryResponse, BidResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=AuctionListResponse)
async def list_auctions(
    service: AuctionServiceDep,
    filter: AuctionFilter | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(25, ge=1, le=100),
):
    """List auctions, newest first, optionally filtered by lifecycle stage."""
    auctions, total = await service.list_auctions(filter, page, limit)
    return AuctionListResponse(
        data=[AuctionResponse.model_validate(a) for a in auctions],
        pagination=Pagination(page=page, limit=limit, total=total),
    )


@router.get("/{auction_id}", response_model=AuctionResponse)
async def get_auction(
    auction_id: UUID,
    service: AuctionServiceDep,
    closer: AuctionCloserDep,
):
    """Get auction by ID, closing it first if its end time has passed."""
    try:
        await closer.close_if_due(auction_id)
    except (LockTimeoutError, StaleStateError) as e:
        # The sweep will close it; serve the current state
        logger.warning(f"Lazy close of auction {auction_id} skipped: {e}")

    auction = await service.get_auction(auction_id)
    if not auction:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Auction not found",
        )
    return AuctionResponse.model_validate(auction)


@router.get("/{auction_id}/bids", response_model=BidHistoryResponse)
async def get_bid_history(
    auction_id: UUID,
    repository: RepositoryDep,
    limit: int = Query(100, ge=1, le=500),
):
    """Bid history for an auction, highest first."""
    auction = await repository.get_auction(auction_id)
    if not auction:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Auction not found",
        )

    bids = await repository.list_bids_for_auction(auction_id, limit=limit)
    return BidHistoryResponse(
        bids=[BidResponse.model_validate(b) for b in bids],
        total=len(bids),
    )


@router.post("", response_model=AuctionResponse, status_code=status.HTTP_201_CREATED)
async def create_auction(
    auction_data: AuctionCreate,
    service: AuctionServiceDep,
):
    """Create a new auction (admin)."""
    try:
        auction = await service.create_auction(auction_data)
    except InvalidAuctionError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    return AuctionResponse.model_validate(auction)


@router.put("/{auction_id}", response_model=AuctionResponse)
async def update_auction(
    auction_id: UUID,
    auction_data: AuctionUpdate,
    service: AuctionServiceDep,
):
    """Edit an auction or override its status (admin)."""
    try:
        auction = await service.update_auction(auction_id, auction_data)
    except AuctionNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Auction not found",
        )
    except InvalidAuctionError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    except LockTimeoutError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Auction is busy, retry shortly",
            headers={"Retry-After": "1"},
        )
    except StaleStateError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Auction changed concurrently, re-read and retry",
        )
    return AuctionResponse.model_validate(auction)


@router.delete("/{auction_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_auction(
    auction_id: UUID,
    service: AuctionServiceDep,
):
    """Delete an auction and its bids (admin)."""
    try:
        await service.delete_auction(auction_id)
    except AuctionNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Auction not found",
        )
    except LockTimeoutError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Auction is busy, retry shortly",
            headers={"Retry-After": "1"},
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
