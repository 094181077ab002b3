"""WebSocket connection manager for real-time auction updates."""

import asyncio
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)

# Listing pages subscribe here for created, deleted and ended auctions
LOBBY_ROOM = "lobby"


def user_room(user_id: str) -> str:
    """Room carrying one watcher's personal alerts across auctions."""
    return f"user:{user_id}"


class ConnectionManager:
    """Manages WebSocket connections organized by auction rooms.

    Structure: {auction_id: {client_id: WebSocket}}

    ``client_id`` is the bidder id for signed-in bidders, so outbid events
    can be addressed to them, or a generated id for anonymous watchers.
    """

    def __init__(self):
        # {auction_id: {client_id: websocket}}
        self.active_connections: dict[str, dict[str, WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, auction_id: str, client_id: str, websocket: WebSocket) -> None:
        """Accept connection and add to auction room.

        Args:
            auction_id: Auction UUID string
            client_id: Bidder UUID string or watcher id
            websocket: WebSocket connection
        """
        await websocket.accept()

        async with self._lock:
            room = self.active_connections.setdefault(auction_id, {})

            # A bidder keeps one socket per auction; the newest wins
            old_ws = room.get(client_id)
            if old_ws is not None:
                try:
                    await old_ws.close()
                except RuntimeError as e:
                    logger.debug(f"Old WebSocket for {client_id} already closed: {e}")

            room[client_id] = websocket
            logger.info(
                f"WebSocket connected: auction={auction_id}, client={client_id}, "
                f"room_size={len(room)}"
            )

    async def disconnect(self, auction_id: str, client_id: str) -> None:
        """Remove connection from auction room."""
        async with self._lock:
            room = self.active_connections.get(auction_id)
            if room is None:
                return

            if room.pop(client_id, None) is not None:
                logger.info(f"WebSocket disconnected: auction={auction_id}, client={client_id}")

            # Clean up empty rooms
            if not room:
                del self.active_connections[auction_id]

    async def send_to_user(self, auction_id: str, client_id: str, message: dict[str, Any]) -> bool:
        """Send message to a specific client in an auction room.

        Returns:
            True if message was sent, False if client not connected
        """
        websocket = self.active_connections.get(auction_id, {}).get(client_id)
        if websocket is None:
            return False

        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"Failed to send to client {client_id}: {e}")
            await self.disconnect(auction_id, client_id)
            return False

    async def broadcast_to_auction(self, auction_id: str, message: dict[str, Any]) -> int:
        """Broadcast message to every client in an auction room using concurrent sends.

        Returns:
            Number of clients successfully sent to
        """
        # Copy to avoid modification during iteration
        connections = dict(self.active_connections.get(auction_id, {}))
        if not connections:
            return 0

        async def send_to_one(client_id: str, ws: WebSocket) -> tuple[str, bool]:
            try:
                await ws.send_json(message)
                return (client_id, True)
            except Exception as e:
                logger.warning(f"Failed to broadcast to client {client_id}: {e}")
                return (client_id, False)

        results = await asyncio.gather(
            *[send_to_one(cid, ws) for cid, ws in connections.items()],
        )

        sent_count = 0
        for client_id, success in results:
            if success:
                sent_count += 1
            else:
                await self.disconnect(auction_id, client_id)

        return sent_count

    async def broadcast_to_user(self, user_id: str, message: dict[str, Any]) -> int:
        """Send to every socket a watcher has open on their personal channel."""
        return await self.broadcast_to_auction(user_room(user_id), message)

    async def broadcast_to_lobby(self, message: dict[str, Any]) -> int:
        return await self.broadcast_to_auction(LOBBY_ROOM, message)

    def get_room_size(self, auction_id: str) -> int:
        """Get number of connected clients in an auction room."""
        return len(self.active_connections.get(auction_id, {}))

    def get_active_auctions(self) -> list[str]:
        """Get list of auction IDs with active connections."""
        return list(self.active_connections.keys())


# Global singleton instance
manager = ConnectionManager()
