"""WebSocket endpoint — real-time event delivery to local bridges.

Learn: Each bridge connects to /bridge?channel_id=<broadcaster id>. The
handler:
1. Requires a non-empty channel_id in the handshake (closed otherwise)
2. Checks the optional shared bridge key
3. Registers the socket with the hub for the lifetime of the connection
4. Reads client frames: "pong" answers the hub heartbeat, "ping" gets a
   "pong" back (bridge-side keepalive); anything else is ignored

Events are pushed by the hub, not by this handler. This is a long-lived
connection, one per bridge process (several tools may share a channel).
"""

import json
import secrets

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from mxeaez.config import settings
from mxeaez.events.types import PING, PONG
from mxeaez.realtime.hub import ChannelSubscription, hub

logger = structlog.get_logger()
router = APIRouter()

CLOSE_MISSING_CHANNEL = 4400
CLOSE_BAD_KEY = 4001


@router.websocket("/bridge")
async def bridge_websocket(websocket: WebSocket):
    """WebSocket endpoint for a channel's redemption stream."""
    # ── Handshake parameters ───────────────────────────────
    channel_id = (websocket.query_params.get("channel_id") or "").strip()
    if not channel_id:
        logger.info("bridge.rejected", reason="missing channel_id")
        await websocket.close(code=CLOSE_MISSING_CHANNEL, reason="channel_id required")
        return

    if settings.bridge_key:
        key = websocket.query_params.get("key") or ""
        if not secrets.compare_digest(key, settings.bridge_key):
            logger.info("bridge.rejected", reason="bad key", channel_id=channel_id)
            await websocket.close(code=CLOSE_BAD_KEY, reason="Invalid bridge key")
            return

    # ── Connection accepted ─────────────────────────────────
    await websocket.accept()

    async with hub.subscription(channel_id, websocket) as sub:
        try:
            await _client_listener(websocket, sub)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.warning("bridge.transport_error", channel_id=channel_id, error=str(e))
        finally:
            if sub.is_open:
                try:
                    await websocket.close()
                except RuntimeError:
                    pass


async def _client_listener(websocket: WebSocket, sub: ChannelSubscription) -> None:
    """Handle frames coming up from the bridge until it disconnects."""
    while True:
        data = await websocket.receive_text()
        # Any traffic proves the transport is alive
        sub.mark_alive()
        try:
            msg = json.loads(data)
        except json.JSONDecodeError:
            continue
        if isinstance(msg, dict) and msg.get("type") == PING:
            await websocket.send_text(json.dumps({"type": PONG}))
