"""Bridge WebSocket client — one gated subscription to the EBS.

Learn: The client holds a connection only while it is *desired* (the
broadcast is active). The flag is flipped from outside by the activity
gate; the client owns the state machine:

    DISCONNECTED ──set_desired(True)──→ CONNECTING ──open──→ CONNECTED
         ↑                                  │                    │
         └──────── error / close ───────────┴────────────────────┘
                 (retry after backoff, only if still desired)

A single loop task does connect → read → backoff → connect. The desired
flag is re-checked after every backoff, so switching it off during a
retry wait stops the loop instead of opening one last connection.

Inbound text frames are parsed into Events. Malformed frames are dropped
with a warning; control pings get a pong; redeem events addressed to
this client's channel go through the deduplicator and registry and are
appended to the serial queue without blocking the read loop.
"""

import asyncio
import enum
import json
from typing import Awaitable, Callable, Optional

import aiohttp
import structlog
from pydantic import ValidationError

from mxeaez.bridge.dedup import Deduplicator
from mxeaez.bridge.queue import EffectQueue, QueuedEffect
from mxeaez.bridge.registry import EffectContext, EffectRegistry
from mxeaez.events import Event
from mxeaez.events.types import PING, PONG, REDEEM

logger = structlog.get_logger()

RECONNECT_BACKOFF_SECONDS = 1.5


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class BridgeClient:
    def __init__(
        self,
        url: str,
        channel_id: str,
        registry: EffectRegistry,
        queue: EffectQueue,
        dedup: Deduplicator,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        backoff: float = RECONNECT_BACKOFF_SECONDS,
        heartbeat: Optional[float] = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.url = url
        self.channel_id = channel_id
        self.registry = registry
        self.queue = queue
        self.dedup = dedup
        self.backoff = backoff
        self.heartbeat = heartbeat
        self._sleep = sleep
        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._desired = False
        self.state = ConnectionState.DISCONNECTED
        self.connect_attempts = 0

    @property
    def desired(self) -> bool:
        return self._desired

    # ─── Desired-state control ───────────────────────────────

    async def set_desired(self, want: bool) -> None:
        """Turn the subscription on or off.

        Safe to call repeatedly with the same value; only the first call
        after a change does anything.
        """
        if want == self._desired:
            if want:
                self._ensure_loop()
            return

        self._desired = want
        logger.info("bridge.desired", desired=want, state=self.state.value)
        if want:
            self._ensure_loop()
        elif self._ws is not None and not self._ws.closed:
            await self._ws.close()

    def _ensure_loop(self) -> None:
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self._connection_loop())

    async def stop(self) -> None:
        """Drop the connection and stop reconnecting."""
        await self.set_desired(False)
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    # ─── Connection loop ─────────────────────────────────────

    async def _connection_loop(self) -> None:
        try:
            while self._desired:
                try:
                    await self._connect_and_read()
                except Exception:
                    logger.exception("bridge.loop_error", url=self.url)
                    self.state = ConnectionState.DISCONNECTED
                if not self._desired:
                    break
                logger.info("bridge.reconnecting", backoff_s=self.backoff)
                await self._sleep(self.backoff)
        finally:
            self.state = ConnectionState.DISCONNECTED

    async def _connect_and_read(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()

        self.state = ConnectionState.CONNECTING
        self.connect_attempts += 1
        try:
            ws = await self._session.ws_connect(self.url, heartbeat=self.heartbeat)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.warning("bridge.connect_failed", url=self.url, error=str(e))
            self.state = ConnectionState.DISCONNECTED
            return

        if not self._desired:
            # Gate closed while the handshake was in progress
            await ws.close()
            self.state = ConnectionState.DISCONNECTED
            return

        self._ws = ws
        self.state = ConnectionState.CONNECTED
        logger.info("bridge.connected", url=self.url)
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self.handle_message(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.warning("bridge.ws_error", error=str(ws.exception()))
                    break
        finally:
            self._ws = None
            self.state = ConnectionState.DISCONNECTED
            if not ws.closed:
                await ws.close()
            logger.info("bridge.disconnected", code=ws.close_code)

    # ─── Message handling ────────────────────────────────────

    async def handle_message(self, raw: str) -> Optional[asyncio.Task]:
        """Process one inbound frame. Returns the queue task for redeems."""
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("bridge.bad_frame", raw=raw[:200])
            return None
        if not isinstance(data, dict):
            logger.warning("bridge.bad_frame", raw=raw[:200])
            return None

        frame_type = data.get("type")
        if frame_type == PING:
            await self._send_json({"type": PONG})
            return None
        if frame_type == PONG:
            return None

        try:
            event = Event.model_validate(data)
        except ValidationError as e:
            logger.warning("bridge.bad_event", error=str(e), type=frame_type)
            return None

        if event.type != REDEEM:
            logger.debug("bridge.event_ignored", type=event.type, item_id=event.item_id)
            return None

        # Only this broadcaster's redeems; a foreign one must not take a dedup slot
        if event.channel_id != self.channel_id:
            logger.warning(
                "bridge.foreign_channel",
                channel_id=event.channel_id,
                expected=self.channel_id,
                item_id=event.item_id,
            )
            return None

        if not self.dedup.should_process(event):
            logger.info("bridge.duplicate", item_id=event.item_id)
            return None

        effect = self.registry.lookup(event.item_id)
        if effect is None:
            logger.warning("bridge.unknown_item", item_id=event.item_id)
            return None

        ctx = EffectContext.from_event(event)
        return self.queue.enqueue(QueuedEffect(effect=effect, context=ctx, hold_ms=effect.hold_ms))

    async def _send_json(self, payload: dict) -> None:
        ws = self._ws
        if ws is None or ws.closed:
            return
        try:
            await ws.send_str(json.dumps(payload))
        except (aiohttp.ClientError, ConnectionError) as e:
            logger.warning("bridge.send_failed", error=str(e))
