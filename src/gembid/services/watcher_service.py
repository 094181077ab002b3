"""Watcher subscriptions for outbid, ending-soon and result alerts."""

import logging
from uuid import UUID

from gembid.models.watcher import AuctionWatcher
from gembid.schemas.watcher import WatcherCreate
from gembid.services.auction_repository import AuctionRepository

logger = logging.getLogger(__name__)


class WatcherService:
    """Service class for auction watch subscriptions."""

    def __init__(self, repository: AuctionRepository):
        self.repository = repository

    async def watch(self, auction_id: UUID, data: WatcherCreate) -> tuple[AuctionWatcher, bool]:
        """Subscribe ``data.email`` to the auction, or update its preferences.

        Returns the watcher and whether the subscription is new.

        Raises:
            AuctionNotFoundError
        """
        watcher, created = await self.repository.add_watcher(
            AuctionWatcher(auction_id=auction_id, **data.model_dump())
        )
        logger.info(
            f"{'Added' if created else 'Updated'} watcher on auction {auction_id}: "
            f"user={watcher.user_id}, outbid={watcher.notify_outbid}, "
            f"ending={watcher.notify_ending}, result={watcher.notify_result}"
        )
        return watcher, created

    async def unwatch(self, auction_id: UUID, email: str) -> bool:
        removed = await self.repository.remove_watcher(auction_id, email.strip().lower())
        if removed:
            logger.info(f"Removed watcher from auction {auction_id}")
        return removed

    async def list_watchers(self, auction_id: UUID) -> list[AuctionWatcher]:
        return await self.repository.list_watchers(auction_id)
