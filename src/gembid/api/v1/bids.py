"""Bidding API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from gembid.api.deps import BidEngineDep
from gembid.schemas.bid import (
    BidAcceptedResponse,
    BidCreate,
    BidRejectedResponse,
    BuyNowRequest,
)
from gembid.services.bid_engine import BidAccepted, BidRejected, BidRejectReason, BidResult

router = APIRouter()

REJECTION_STATUS = {
    BidRejectReason.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    BidRejectReason.TIMEOUT: status.HTTP_503_SERVICE_UNAVAILABLE,
}

REJECTION_RESPONSES = {
    status.HTTP_404_NOT_FOUND: {"model": BidRejectedResponse},
    status.HTTP_409_CONFLICT: {"model": BidRejectedResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": BidRejectedResponse},
}


def _rejection(result: BidRejected) -> JSONResponse:
    """Rejected bids: 404 unknown auction, 503 lock timeout, 409 everything else."""
    status_code = REJECTION_STATUS.get(result.reason, status.HTTP_409_CONFLICT)
    body = BidRejectedResponse(
        reason=result.reason.value,
        message=result.message,
        next_minimum_bid=result.next_minimum_bid,
    )
    headers = {"Retry-After": "1"} if result.reason == BidRejectReason.TIMEOUT else None
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True),
        headers=headers,
    )


def _to_response(result: BidResult) -> BidAcceptedResponse | JSONResponse:
    if isinstance(result, BidAccepted):
        return BidAcceptedResponse.model_validate(result)
    return _rejection(result)


@router.post(
    "/{auction_id}/bids",
    response_model=BidAcceptedResponse,
    responses=REJECTION_RESPONSES,
)
async def place_bid(
    auction_id: UUID,
    bid_data: BidCreate,
    request: Request,
    engine: BidEngineDep,
):
    """Place a bid, optionally with a max bid for proxy bidding."""
    result = await engine.place_bid(
        auction_id,
        bid_data.bidder_id,
        bid_data.amount,
        bid_data.max_bid,
        bidder_email=bid_data.bidder_email,
        bidder_name=bid_data.bidder_name,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return _to_response(result)


@router.post(
    "/{auction_id}/buy-now",
    response_model=BidAcceptedResponse,
    responses=REJECTION_RESPONSES,
)
async def buy_now(
    auction_id: UUID,
    buy_data: BuyNowRequest,
    request: Request,
    engine: BidEngineDep,
):
    """Buy the auction outright at its buy-now price."""
    result = await engine.buy_now(
        auction_id,
        buy_data.bidder_id,
        bidder_email=buy_data.bidder_email,
        bidder_name=buy_data.bidder_name,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return _to_response(result)
