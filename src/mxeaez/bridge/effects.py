"""Built-in effects — what each shop item does on stream.

Learn: The bridge never drives OBS, speakers or chat directly. Effects
are thin HTTP calls to programs already running on the streaming PC:

    StreamerBotEffect  POST {sb_http}/DoAction  {"action": {"name"}, "args"}
    HookEffect         POST {local_hook_base}{path}  {"viewer", "seconds", ...}
    NoopEffect         log only (items handled entirely by the EBS)

The hold table below is the one place durations are declared. The queue
reads hold_ms from the registered effect, and hook payloads report the
same duration to the local daemon so its timers line up with the queue.
"""

from typing import Optional

import httpx
import structlog

from mxeaez.bridge.config import BridgeSettings
from mxeaez.bridge.registry import Effect, EffectContext, EffectRegistry

logger = structlog.get_logger()

EFFECT_DURATIONS_MS: dict[str, int] = {
    "dramatic_zoom": 5000,
    "camera_flip": 5000,
    "tiny_cam": 5000,
    "fullscreen_cam": 5000,
    "mute_streamer": 10000,
    "voice_changer": 10000,
    "rave_party": 10000,
    "spongebob_stfu": 3000,
    "titanic_flute": 30000,
    "tts_message": 0,
    "timeout_anyone": 0,
    "fake_dc": 5000,
}

# item id → local hook path (OBS transforms, sound effects, lights, overlays)
HOOK_PATHS: dict[str, str] = {
    "dramatic_zoom": "/obs/zoom",
    "camera_flip": "/obs/flip",
    "tiny_cam": "/obs/tiny",
    "fullscreen_cam": "/obs/fullscreen",
    "fake_dc": "/obs/fake-dc",
    "mute_streamer": "/obs/mute",
    "spongebob_stfu": "/sfx/spongebob_stfu",
    "titanic_flute": "/sfx/titanic_flute",
    "rave_party": "/hue/rave",
    "notice_me_senpai": "/overlay/notice",
}

# Redeemable, but everything happens on the EBS side or by hand
NOOP_ITEMS = (
    "streamer_asmr",
    "mystery_box",
    "vip_badge",
    "carry_now",
    "game_master",
    "equipment_master",
    "kc_1000",
    "kc_5000",
    "kc_25000",
    "kc_50000",
)


def hold_for(item_id: str) -> int:
    return EFFECT_DURATIONS_MS.get(item_id, 0)


class HookEffect(Effect):
    """POST to the local hook daemon."""

    def __init__(self, item_id: str, http: httpx.AsyncClient, base_url: str, path: str):
        super().__init__(item_id, hold_for(item_id))
        self.http = http
        self.url = f"{base_url.rstrip('/')}{path}"

    async def apply(self, ctx: EffectContext) -> None:
        logger.info("effect.hook", item_id=self.item_id, viewer=ctx.viewer.label, url=self.url)
        payload = {"itemId": self.item_id, "viewer": ctx.viewer.label}
        if self.hold_ms:
            payload["seconds"] = self.hold_ms / 1000
        resp = await self.http.post(self.url, json=payload)
        resp.raise_for_status()


class StreamerBotEffect(Effect):
    """Run a named Streamer.bot action through its HTTP server."""

    def __init__(self, item_id: str, http: httpx.AsyncClient, base_url: str, action: str):
        super().__init__(item_id, hold_for(item_id))
        self.http = http
        self.url = f"{base_url.rstrip('/')}/DoAction"
        self.action = action

    def build_args(self, ctx: EffectContext) -> Optional[dict]:
        """Action arguments, or None to skip the call."""
        args = {"viewer": ctx.viewer.login or ""}
        if self.hold_ms:
            args["seconds"] = self.hold_ms // 1000
        return args

    async def apply(self, ctx: EffectContext) -> None:
        args = self.build_args(ctx)
        if args is None:
            return
        logger.info("effect.streamerbot", item_id=self.item_id, action=self.action, viewer=ctx.viewer.label)
        resp = await self.http.post(self.url, json={"action": {"name": self.action}, "args": args})
        resp.raise_for_status()


class TtsEffect(StreamerBotEffect):
    def build_args(self, ctx: EffectContext) -> Optional[dict]:
        return {
            "text": ctx.text or "Hello chat",
            "viewer": ctx.viewer.login or ctx.viewer.user_id or "Unknown",
        }


class TimeoutEffect(StreamerBotEffect):
    """Time out the chatter named in the redemption's target."""

    def __init__(self, item_id: str, http: httpx.AsyncClient, base_url: str, action: str, seconds: int = 300):
        super().__init__(item_id, http, base_url, action)
        self.seconds = seconds

    def build_args(self, ctx: EffectContext) -> Optional[dict]:
        target = (ctx.target or "").strip().lstrip("@")
        if not target:
            logger.warning("effect.timeout_missing_target", viewer=ctx.viewer.label)
            return None
        return {"target": target, "seconds": self.seconds, "requester": ctx.viewer.login or ""}


class NoopEffect(Effect):
    async def apply(self, ctx: EffectContext) -> None:
        logger.info("effect.noop", item_id=self.item_id, viewer=ctx.viewer.label)


def build_default_registry(settings: BridgeSettings, http: httpx.AsyncClient) -> EffectRegistry:
    """Registry with every built-in effect wired to the configured endpoints."""
    registry = EffectRegistry()

    for item_id, path in HOOK_PATHS.items():
        registry.register(HookEffect(item_id, http, settings.local_hook_base, path))

    registry.register(TtsEffect("tts_message", http, settings.sb_http, settings.sb_action_tts))
    registry.register(StreamerBotEffect("voice_changer", http, settings.sb_http, settings.sb_action_voicemod))
    registry.register(
        TimeoutEffect(
            "timeout_anyone",
            http,
            settings.sb_http,
            settings.sb_action_timeout,
            seconds=settings.timeout_seconds,
        )
    )

    for item_id in NOOP_ITEMS:
        registry.register(NoopEffect(item_id, hold_for(item_id)))

    return registry
