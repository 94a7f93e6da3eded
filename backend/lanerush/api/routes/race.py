"""
WebSocket API for the real-time race.

Each browser tab holds one socket. Frames are JSON intents in, JSON
events out; see lanerush.core.protocol for the message shapes.
"""

import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from lanerush.config import get_settings
from lanerush.core.synchronizer import get_synchronizer

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()


def origin_allowed(origin: str) -> bool:
    """
    Check a browser Origin header against the configured allow-list.

    Connections without an Origin header (non-browser clients) and servers
    with an empty allow-list accept everything.
    """
    allowed = settings.server.ALLOWED_ORIGINS
    if not allowed or not origin:
        return True
    return origin in allowed


@router.websocket(settings.server.WEBSOCKET_PATH)
async def race_websocket(websocket: WebSocket):
    """
    WebSocket endpoint for racing.

    Message format (client -> server, text or binary frames):
        {"type": "JOIN_GAME", "name": str}
        {"type": "START_GAME"}
        {"type": "IMPEDE_RUNNER", "targetLane": int}
        {"type": "RESTART_GAME"}

    Message format (server -> client):
        {"type": "LOBBY_UPDATE" | "STATE_UPDATE", "status": ..., "players": [...],
         "raceTime": float, "countdown": int | null}
        plus PLAYER_ASSIGNED, COUNTDOWN_START, GAME_START, IMPEDE_EFFECT,
        GAME_END, GAME_RESET and ERROR events.
    """
    origin = websocket.headers.get("origin", "")
    if not origin_allowed(origin):
        logger.warning(f"Rejected race socket from origin {origin}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    synchronizer = get_synchronizer()
    session = await synchronizer.connect(websocket)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))

            # Text and binary frames carry the same JSON intents
            data = message.get("text") or message.get("bytes")
            if data:
                await synchronizer.handle_message(session, data)
    except WebSocketDisconnect:
        pass
    finally:
        await synchronizer.disconnect(session)


@router.get("/race/state")
async def race_state() -> dict:
    """
    Read-only snapshot of the current race.

    Returns:
        dict: Same shape as the LOBBY_UPDATE event body
    """
    return get_synchronizer().race.snapshot()
