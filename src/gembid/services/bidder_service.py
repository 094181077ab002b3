"""A bidder's view of their own bids: where each one stands and summary stats."""

from uuid import UUID

from gembid.models.auction import Auction
from gembid.models.enums import AuctionStatus
from gembid.schemas.bidder import (
    BidderAuctionSummary,
    BidderBidResponse,
    BidderHistoryResponse,
    BidderStatsResponse,
)
from gembid.services.auction_repository import AuctionRepository


def user_status_for(auction: Auction, bidder_id: UUID) -> str:
    """How the auction stands for this bidder.

    ``won``/``lost`` once decided, ``winning``/``outbid`` while live,
    ``pending`` before it opens.
    """
    if auction.status.is_terminal:
        return "won" if auction.winner_id == bidder_id else "lost"
    if auction.status == AuctionStatus.ACTIVE:
        return "winning" if auction.highest_bidder_id == bidder_id else "outbid"
    return "pending"


class BidderService:
    """Service class for bidder bid history."""

    def __init__(self, repository: AuctionRepository):
        self.repository = repository

    async def get_history(
        self,
        bidder_id: UUID,
        status_filter: str = "all",
        limit: int = 50,
        offset: int = 0,
    ) -> BidderHistoryResponse:
        rows, total = await self.repository.list_bids_for_bidder(
            bidder_id, status_filter, limit, offset
        )
        stats = await self.repository.get_bidder_stats(bidder_id)

        bids = [
            BidderBidResponse(
                id=bid.id,
                amount=bid.amount,
                max_bid=bid.max_bid,
                is_auto_bid=bid.is_auto_bid,
                is_winning=bid.is_winning,
                created_at=bid.created_at,
                auction=BidderAuctionSummary(
                    id=auction.id,
                    title=auction.title,
                    slug=auction.slug,
                    image=auction.images[0] if auction.images else None,
                    current_bid=auction.current_bid,
                    starting_bid=auction.starting_bid,
                    currency=auction.currency,
                    end_time=auction.effective_end_time,
                    status=auction.status,
                    is_active=auction.is_active,
                    bid_count=auction.bid_count,
                ),
                user_status=user_status_for(auction, bidder_id),
            )
            for bid, auction in rows
        ]

        return BidderHistoryResponse(
            bids=bids,
            stats=BidderStatsResponse(
                total_bids=stats.total_bids,
                active_bids=stats.active_bids,
                won_auctions=stats.won_auctions,
                currently_winning=stats.currently_winning,
            ),
            total=total,
            limit=limit,
            offset=offset,
        )
