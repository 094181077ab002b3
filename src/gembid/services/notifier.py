"""Outbox for auction events.

Engines enqueue events after their transaction commits; a background task
drains the queue and pushes each event to the WebSocket rooms. Enqueueing
never blocks and never raises, so a slow or broken push channel cannot
affect bid handling.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from gembid.core.config import settings
from gembid.middleware.metrics import record_notification_dropped
from gembid.schemas.ws import AuctionEvent
from gembid.services.auction_repository import AuctionRepository
from gembid.services.ws_manager import ConnectionManager, manager

logger = logging.getLogger(__name__)


class WatchTopic(str, Enum):
    """Watcher preference an event is filtered by."""

    OUTBID = "outbid"
    ENDING = "ending"
    RESULT = "result"


@dataclass(frozen=True)
class Notification:
    """One event for an auction room, or for one bidder when ``bidder_id`` is set.

    ``topic`` routes a copy to the personal channel of every watcher who asked
    for it (only the addressed bidder for outbid events). ``lobby`` also sends
    it to the auction listing channel.
    """

    auction_id: UUID
    event: AuctionEvent
    bidder_id: UUID | None = None
    topic: WatchTopic | None = None
    lobby: bool = False


class AuctionNotifier:
    """Queue of pending notifications and the loop that delivers them."""

    def __init__(
        self,
        connections: ConnectionManager = manager,
        maxsize: int = settings.NOTIFIER_QUEUE_SIZE,
        watchers: AuctionRepository | None = None,
    ):
        self.connections = connections
        self.watchers = watchers
        self.queue: asyncio.Queue[Notification] = asyncio.Queue(maxsize=maxsize)

    def publish(self, notification: Notification) -> None:
        try:
            self.queue.put_nowait(notification)
        except asyncio.QueueFull:
            record_notification_dropped("queue_full")
            logger.warning(
                f"Notification queue full, dropped {notification.event.event} "
                f"for auction {notification.auction_id}"
            )

    def publish_all(self, notifications: list[Notification]) -> None:
        for notification in notifications:
            self.publish(notification)

    @property
    def pending(self) -> int:
        return self.queue.qsize()

    async def deliver(self, notification: Notification) -> int:
        """Push one notification. Returns the number of sockets reached."""
        auction_id = str(notification.auction_id)
        message = notification.event.model_dump(mode="json", by_alias=True)
        preferences = await self._watch_preferences(notification)
        reached = 0

        if notification.bidder_id is not None:
            bidder = notification.bidder_id
            # A watcher who turned the topic off gets nothing, not even in the room
            if preferences.get(bidder, True):
                sent = await self.connections.send_to_user(auction_id, str(bidder), message)
                reached += 1 if sent else 0
            if preferences.get(bidder):
                reached += await self.connections.broadcast_to_user(str(bidder), message)
            return reached

        reached += await self.connections.broadcast_to_auction(auction_id, message)
        if notification.lobby:
            reached += await self.connections.broadcast_to_lobby(message)
        for user_id, wanted in preferences.items():
            if wanted:
                reached += await self.connections.broadcast_to_user(str(user_id), message)
        return reached

    async def _watch_preferences(self, notification: Notification) -> dict[UUID, bool]:
        if notification.topic is None or self.watchers is None:
            return {}
        return await self.watchers.get_watch_preferences(
            notification.auction_id, notification.topic.value
        )

    async def _deliver_safely(self, notification: Notification) -> None:
        try:
            await self.deliver(notification)
        except Exception as e:
            record_notification_dropped("delivery_failed")
            logger.error(
                f"Failed to deliver {notification.event.event} "
                f"for auction {notification.auction_id}: {e}"
            )

    async def run(self) -> None:
        """Deliver notifications until cancelled."""
        while True:
            notification = await self.queue.get()
            try:
                await self._deliver_safely(notification)
            finally:
                self.queue.task_done()

    async def drain(self) -> int:
        """Deliver everything currently queued. Returns how many were handled."""
        handled = 0
        while not self.queue.empty():
            notification = self.queue.get_nowait()
            try:
                await self._deliver_safely(notification)
            finally:
                self.queue.task_done()
            handled += 1
        return handled
