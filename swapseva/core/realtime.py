"""
Realtime relay.

Pushes events to the WebSocket sessions of connected users. Delivery is a
side channel only: callers persist their state change first and then emit,
and a failed send never fails the caller.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Set, Any
from fastapi import WebSocket

logger = logging.getLogger(__name__)

# Events pushed to clients
NEW_MESSAGE = "new-message"
TRADE_COMPLETED = "trade-completed"
PLATFORM_NOTIFICATION = "platform-notification"


def room_for(user_id: str) -> str:
    return f"user-{user_id}"


class ConnectionManager:
    def __init__(self):
        # Map of room -> open sockets (a user may have several tabs open)
        self.rooms: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, user_id: str):
        """Register an accepted socket in the user's room."""
        self.rooms.setdefault(room_for(user_id), set()).add(websocket)
        logger.info(f"User {user_id} connected ({len(self.rooms[room_for(user_id)])} sessions)")
        await self._send(websocket, room_for(user_id), {
            "event": "connection_status",
            "data": {"status": "connected", "userId": user_id}
        })

    def disconnect(self, websocket: WebSocket, user_id: str):
        room = room_for(user_id)
        sockets = self.rooms.get(room)
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            del self.rooms[room]
        logger.info(f"User {user_id} disconnected")

    def is_connected(self, user_id: str) -> bool:
        return bool(self.rooms.get(room_for(user_id)))

    async def _send(self, websocket: WebSocket, room: str, frame: Dict[str, Any]) -> bool:
        try:
            await websocket.send_json(frame)
            return True
        except Exception as e:
            logger.warning(f"Dropping socket in {room} after failed send: {e}")
            sockets = self.rooms.get(room)
            if sockets is not None:
                sockets.discard(websocket)
                if not sockets:
                    del self.rooms[room]
            return False

    async def emit_to_user(self, user_id: str, event: str, payload: Dict[str, Any]) -> int:
        """Send an event to every session of a user. Returns the number of sessions reached."""
        room = room_for(user_id)
        frame = {"event": event, "data": payload}
        delivered = 0
        for websocket in list(self.rooms.get(room, ())):
            if await self._send(websocket, room, frame):
                delivered += 1
        if not delivered:
            logger.debug(f"No live session for {room}, {event} not delivered")
        return delivered

    async def broadcast(self, event: str, payload: Dict[str, Any]) -> int:
        """Send an event to every connected session."""
        payload = {**payload, "timestamp": payload.get("timestamp") or datetime.now(timezone.utc).isoformat()}
        delivered = 0
        for room in list(self.rooms):
            for websocket in list(self.rooms.get(room, ())):
                if await self._send(websocket, room, {"event": event, "data": payload}):
                    delivered += 1
        return delivered


manager = ConnectionManager()


async def emit_safely(user_id: str, event: str, payload: Dict[str, Any]):
    """Fire-and-forget emit used after a committed write."""
    try:
        await manager.emit_to_user(str(user_id), event, payload)
    except Exception as e:
        logger.warning(f"Realtime emit {event} to {user_id} failed: {e}")
