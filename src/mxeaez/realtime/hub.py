"""Channel fan-out hub — per-channel registry of open bridge sockets.

Learn: Each local bridge connects to /bridge?channel_id=... and stays
connected while the broadcaster is live. The hub keeps one set of
subscriptions per channel id and pushes every published event to all of
them:

    channel_id → {ChannelSubscription, ChannelSubscription, ...}

Rules:
1. Only the hub mutates the registry. Subscriptions are added when the
   handshake succeeds and removed when the socket handler exits, via the
   subscription() context manager; there is no manual unregister call.
2. publish() serializes once and never raises. Sockets that are not open
   are skipped; a send that fails is logged and the rest still receive it.
3. A heartbeat loop pings every subscriber. Anyone that did not answer the
   previous ping gets terminated, which reaps half-dead transports sooner
   than the TCP stack would.

Everything runs on one event loop, so the per-channel sets need no locks.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

import structlog
from starlette.websockets import WebSocket, WebSocketState

from mxeaez.config import settings
from mxeaez.events import Event
from mxeaez.events.types import PING

logger = structlog.get_logger()

PING_FRAME = json.dumps({"type": PING})


@dataclass(eq=False)
class ChannelSubscription:
    """One live transport connection from a bridge for a channel."""

    channel_id: str
    websocket: WebSocket
    is_alive: bool = True
    remote: Optional[str] = field(default=None)

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def mark_alive(self) -> None:
        self.is_alive = True


class ChannelHub:
    """Registry of subscriptions per channel + publish-to-all."""

    def __init__(self, heartbeat_interval: float = 25.0):
        self.heartbeat_interval = heartbeat_interval
        self._channels: dict[str, set[ChannelSubscription]] = {}

    # ─── Registry ──────────────────────────────────────────

    def register(self, channel_id: str, websocket: WebSocket) -> ChannelSubscription:
        """Add a socket to the channel's set, creating the set if absent."""
        sub = ChannelSubscription(
            channel_id=channel_id,
            websocket=websocket,
            remote=_remote(websocket),
        )
        self._channels.setdefault(channel_id, set()).add(sub)
        logger.info(
            "hub.subscriber_added",
            channel_id=channel_id,
            remote=sub.remote,
            subscribers=len(self._channels[channel_id]),
        )
        return sub

    def _discard(self, sub: ChannelSubscription) -> None:
        subs = self._channels.get(sub.channel_id)
        if subs is None or sub not in subs:
            return
        subs.remove(sub)
        if not subs:
            del self._channels[sub.channel_id]
        logger.info(
            "hub.subscriber_removed",
            channel_id=sub.channel_id,
            remote=sub.remote,
            subscribers=len(subs),
        )

    @asynccontextmanager
    async def subscription(
        self, channel_id: str, websocket: WebSocket
    ) -> AsyncIterator[ChannelSubscription]:
        """Register for the lifetime of the block; cleanup is automatic.

        The socket handler runs inside this block for as long as the
        transport is open. Leaving it for any reason (remote close, error or reaping)
        removes the subscription and drops the channel set once empty.
        """
        sub = self.register(channel_id, websocket)
        try:
            yield sub
        finally:
            self._discard(sub)

    def subscribers(self, channel_id: str) -> frozenset[ChannelSubscription]:
        return frozenset(self._channels.get(channel_id, ()))

    def channel_ids(self) -> list[str]:
        return list(self._channels)

    # ─── Publish ───────────────────────────────────────────

    async def publish(self, channel_id: str, event: Event) -> int:
        """Fan an event out to every open subscriber of the channel.

        Returns the number of sockets the event was written to.
        """
        return await self.broadcast(channel_id, event.to_wire())

    async def broadcast(self, channel_id: str, data: str) -> int:
        """Send an already-serialized payload to the channel's subscribers."""
        subs = self._channels.get(channel_id)
        if not subs:
            return 0

        delivered = 0
        # Snapshot: a send can yield and let a handler exit mid-loop.
        for sub in list(subs):
            if not sub.is_open:
                continue
            try:
                await sub.websocket.send_text(data)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "hub.send_failed",
                    channel_id=channel_id,
                    remote=sub.remote,
                    error=str(e),
                )
        return delivered

    # ─── Liveness ──────────────────────────────────────────

    async def sweep(self) -> int:
        """One heartbeat pass: terminate silent subscribers, ping the rest.

        Returns the number of subscriptions terminated.
        """
        terminated = 0
        for subs in list(self._channels.values()):
            for sub in list(subs):
                if not sub.is_alive:
                    terminated += 1
                    await self._terminate(sub)
                    continue
                sub.is_alive = False
                try:
                    await sub.websocket.send_text(PING_FRAME)
                except Exception as e:
                    logger.debug("hub.ping_failed", remote=sub.remote, error=str(e))
        return terminated

    async def _terminate(self, sub: ChannelSubscription) -> None:
        logger.info(
            "hub.subscriber_reaped", channel_id=sub.channel_id, remote=sub.remote
        )
        self._discard(sub)
        try:
            await sub.websocket.close(code=1001, reason="Heartbeat timeout")
        except Exception as e:
            logger.debug("hub.close_failed", remote=sub.remote, error=str(e))

    async def run_heartbeat(self) -> None:
        """Ping forever at the configured interval (run as a background task)."""
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("hub.heartbeat_error")


def _remote(websocket: WebSocket) -> Optional[str]:
    client = getattr(websocket, "client", None)
    if client is None:
        return None
    return f"{client.host}:{client.port}"


# Process-wide hub (one per EBS instance)
hub = ChannelHub(heartbeat_interval=settings.heartbeat_interval_seconds)
