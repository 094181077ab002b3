"""WebSocket endpoints for real-time auction updates."""

import logging
import uuid
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from gembid.services.ws_manager import LOBBY_ROOM, manager, user_room

logger = logging.getLogger(__name__)

router = APIRouter()


async def _serve(websocket: WebSocket, room: str, client_id: str) -> None:
    """Join ``room`` and answer heartbeats until the client leaves."""
    await manager.connect(room, client_id, websocket)

    try:
        while True:
            # Wait for messages from client (heartbeat)
            data = await websocket.receive_text()

            if data == "ping":
                await websocket.send_text("pong")

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: room={room}, client={client_id}")
    except Exception as e:
        logger.error(f"WebSocket error: room={room}, client={client_id}, error={e}")
    finally:
        await manager.disconnect(room, client_id)


@router.websocket("/ws/auctions")
async def lobby_endpoint(websocket: WebSocket):
    """Listing page feed: auction_created, auction_updated, auction_ended and
    auction_deleted for every auction."""
    await _serve(websocket, LOBBY_ROOM, f"watcher:{uuid.uuid4().hex}")


@router.websocket("/ws/auctions/{auction_id}")
async def websocket_endpoint(
    websocket: WebSocket,
    auction_id: str,
    bidder_id: str | None = Query(None, alias="bidderId"),
):
    """WebSocket endpoint for real-time auction updates.

    Connection URL: ws://host/ws/auctions/{auction_id}?bidderId={bidder_id}

    Events pushed to client:
    - bid_placed: every accepted bid, including proxy bids
    - outbid: to the bidder who just lost the lead (needs bidderId)
    - auction_ending: the auction is about to close
    - auction_ended: when the auction is sold or closes
    - auction_updated: operator edits and activation
    - auction_deleted: the auction was removed

    Client can send:
    - ping: Server responds with pong (heartbeat)
    """
    try:
        UUID(auction_id)
        if bidder_id is not None:
            UUID(bidder_id)
    except ValueError:
        await websocket.close(code=4002, reason="Invalid auction or bidder ID")
        return

    # Anonymous watchers get their own slot in the room
    client_id = bidder_id or f"watcher:{uuid.uuid4().hex}"
    await _serve(websocket, auction_id, client_id)


@router.websocket("/ws/users/{user_id}")
async def user_endpoint(websocket: WebSocket, user_id: str):
    """Personal alerts for a signed-in watcher across every auction they watch:
    outbid, auction_ending and auction_ended, filtered by their preferences."""
    try:
        UUID(user_id)
    except ValueError:
        await websocket.close(code=4002, reason="Invalid user ID")
        return

    # Several tabs may be open; each gets a slot in the personal room
    await _serve(websocket, user_room(user_id), f"tab:{uuid.uuid4().hex}")
