"""WebSocket endpoint for realtime events."""
import json
import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from ...core import supabase as db
from ...core.exceptions import Unauthenticated
from ...core.realtime import manager
from .users import decode_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    Realtime channel for a signed-in user.

    The first frame must be {"token": "<access token>"}. After that the server
    pushes events; the only client frame it answers is {"type": "ping"}.
    """
    await websocket.accept()

    try:
        auth_message = await websocket.receive_json()
    except ValueError:
        await websocket.close(code=4001, reason="Authentication required")
        return

    if not isinstance(auth_message, dict) or "token" not in auth_message:
        await websocket.close(code=4001, reason="Authentication required")
        return

    try:
        user_id = decode_token(auth_message["token"])
    except Unauthenticated:
        await websocket.close(code=4001, reason="Invalid token")
        return

    if not await db.fetch_one("users", {"id": user_id}):
        await websocket.close(code=4001, reason="Invalid token")
        return

    await manager.connect(websocket, user_id)
    try:
        while True:
            text = await websocket.receive_text()
            try:
                data = json.loads(text)
            except ValueError:
                logger.debug(f"Ignoring malformed frame from {user_id}")
                continue

            if isinstance(data, dict) and data.get("type") == "ping":
                await websocket.send_json({"event": "pong", "data": {}})
            else:
                logger.debug(f"Ignoring client frame from {user_id}: {data}")
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket, user_id)
