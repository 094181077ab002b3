"""Watcher API endpoints: subscribe to and unsubscribe from auction alerts."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Response, status
from pydantic import EmailStr

from gembid.api.deps import RepositoryDep, WatcherServiceDep
from gembid.core.exceptions import AuctionNotFoundError
from gembid.schemas.watcher import WatcherCreate, WatcherListResponse, WatcherResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{auction_id}/watchers", response_model=WatcherResponse)
async def watch_auction(
    auction_id: UUID,
    watcher_data: WatcherCreate,
    service: WatcherServiceDep,
    response: Response,
):
    """Watch an auction. Re-posting the same email updates its preferences.

    Returns 201 for a new subscription, 200 for an update.
    """
    try:
        watcher, created = await service.watch(auction_id, watcher_data)
    except AuctionNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Auction not found",
        )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return WatcherResponse.model_validate(watcher)


@router.get("/{auction_id}/watchers", response_model=WatcherListResponse)
async def list_watchers(
    auction_id: UUID,
    service: WatcherServiceDep,
    repository: RepositoryDep,
):
    """List an auction's watchers (admin)."""
    if not await repository.get_auction(auction_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Auction not found",
        )
    watchers = await service.list_watchers(auction_id)
    return WatcherListResponse(
        watchers=[WatcherResponse.model_validate(w) for w in watchers],
        total=len(watchers),
    )


@router.delete("/{auction_id}/watchers", status_code=status.HTTP_204_NO_CONTENT)
async def unwatch_auction(
    auction_id: UUID,
    service: WatcherServiceDep,
    email: EmailStr = Query(...),
):
    """Stop watching an auction."""
    if not await service.unwatch(auction_id, email):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Watcher not found",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
