"""Activity gate — decides when the bridge should be connected.

Learn: The bridge should only hold a subscription while the broadcast is
active (streaming OR recording). Activity signals come from OBS (both
flags), a Helix live poll (streaming only), or "always on" for testing. The
gate folds them into one boolean and pushes it to the client on every
update, so a missed transition is corrected by the next signal.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import httpx
import simpleobsws
import structlog

from mxeaez.services.twitch import TwitchClient, TwitchError

logger = structlog.get_logger()

DesiredCallback = Callable[[bool], Awaitable[None]]


class ActivityGate:
    def __init__(self, on_change: DesiredCallback):
        self._on_change = on_change
        self.streaming = False
        self.recording = False

    @property
    def active(self) -> bool:
        return self.streaming or self.recording

    async def update(
        self, *, streaming: Optional[bool] = None, recording: Optional[bool] = None
    ) -> bool:
        """Apply new signal values and re-evaluate the desired state."""
        if streaming is not None:
            self.streaming = streaming
        if recording is not None:
            self.recording = recording
        await self._on_change(self.active)
        return self.active


class HelixLivePoller:
    """Feeds the gate's streaming flag from the Helix streams endpoint."""

    def __init__(
        self,
        twitch: TwitchClient,
        broadcaster_id: str,
        gate: ActivityGate,
        interval: float = 60.0,
    ):
        self.twitch = twitch
        self.broadcaster_id = broadcaster_id
        self.gate = gate
        self.interval = interval

    async def poll_once(self) -> Optional[bool]:
        """One poll. On failure the previous state is kept and None returned."""
        try:
            live = await self.twitch.is_live(self.broadcaster_id)
        except (TwitchError, httpx.HTTPError) as e:
            logger.warning("gate.poll_failed", error=str(e))
            return None
        if live != self.gate.streaming:
            logger.info("gate.live_changed", live=live, broadcaster_id=self.broadcaster_id)
        await self.gate.update(streaming=live)
        return live

    async def run(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval)


class ObsActivitySource:
    """Feeds both gate flags from OBS over obs-websocket v5.

    Learn: On connect the source reads GetStreamStatus and GetRecordStatus
    once, then follows StreamStateChanged / RecordStateChanged events. OBS
    is often started after the bridge, so an unreachable OBS is retried on
    an interval; once armed, the same interval checks the socket is still
    identified and re-arms after OBS restarts.
    """

    def __init__(
        self,
        gate: ActivityGate,
        obs: simpleobsws.WebSocketClient,
        retry_interval: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.gate = gate
        self.obs = obs
        self.retry_interval = retry_interval
        self._sleep = sleep
        self.armed = False
        obs.register_event_callback(self.on_stream_state, "StreamStateChanged")
        obs.register_event_callback(self.on_record_state, "RecordStateChanged")

    async def arm(self) -> bool:
        """Connect, identify and take the initial snapshot. False if OBS is unreachable."""
        try:
            await self.obs.connect()
            if not await self.obs.wait_until_identified():
                logger.warning("gate.obs_not_identified")
                await self.obs.disconnect()
                return False
            await self.refresh()
        except Exception as e:
            logger.warning("gate.obs_unreachable", error=str(e), retry_s=self.retry_interval)
            return False
        self.armed = True
        logger.info("gate.obs_armed", streaming=self.gate.streaming, recording=self.gate.recording)
        return True

    async def refresh(self) -> None:
        stream = await self.obs.call(simpleobsws.Request("GetStreamStatus"))
        record = await self.obs.call(simpleobsws.Request("GetRecordStatus"))
        if not (stream.ok() and record.ok()):
            logger.warning("gate.obs_status_failed")
            return
        await self.gate.update(
            streaming=bool(stream.responseData.get("outputActive")),
            recording=bool(record.responseData.get("outputActive")),
        )

    async def on_stream_state(self, data: dict) -> None:
        await self.gate.update(streaming=bool(data.get("outputActive")))

    async def on_record_state(self, data: dict) -> None:
        await self.gate.update(recording=bool(data.get("outputActive")))

    async def run(self) -> None:
        while True:
            if self.armed and not self.obs.is_identified():
                logger.warning("gate.obs_lost")
                self.armed = False
            if not self.armed:
                await self.arm()
            await self._sleep(self.retry_interval)

    async def close(self) -> None:
        if self.armed:
            await self.obs.disconnect()
            self.armed = False
