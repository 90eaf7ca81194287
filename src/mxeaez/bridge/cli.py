"""mxeaez bridge CLI — run the bridge, list effects, fire one by hand.

Usage:
    mxeaez-bridge run                                # Subscribe and run effects
    mxeaez-bridge list                               # Item ids + hold durations
    mxeaez-bridge test dramatic_zoom                 # Fire one effect locally
    mxeaez-bridge test timeout_anyone --target bob   # ...with a target
    mxeaez-bridge test tts_message --text "hi" --wait 3000
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import signal
import sys
from typing import Optional

import aiohttp
import click
import httpx
import simpleobsws
import structlog

from mxeaez import __version__
from mxeaez.bridge.client import BridgeClient
from mxeaez.bridge.config import BridgeSettings
from mxeaez.bridge.dedup import Deduplicator
from mxeaez.bridge.effects import build_default_registry
from mxeaez.bridge.gating import ActivityGate, HelixLivePoller, ObsActivitySource
from mxeaez.bridge.queue import EffectQueue
from mxeaez.bridge.registry import EffectContext
from mxeaez.events import Viewer, now_ms

logger = structlog.get_logger()

SELF_TEST_SLACK_MS = 1000


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Falls back to a worker thread when a loop is already running (e.g.
    CliRunner inside an async test).
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _fail(message: str):
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="mxeaez-bridge")
def main():
    """mxeaez bridge — run shop redemptions as stream effects.

    Configure with MXEAEZ_BRIDGE_* environment variables or a .env file.
    """


@main.command()
def run():
    """Connect to the EBS and run effects until interrupted."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    settings = BridgeSettings()
    if not settings.ebs_ws or not settings.channel_id:
        _fail("MXEAEZ_BRIDGE_EBS_WS and MXEAEZ_BRIDGE_CHANNEL_ID are required")
    _run(_run_bridge(settings))


async def _run_bridge(settings: BridgeSettings) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops, or not on the main thread
            pass

    async with aiohttp.ClientSession() as session, httpx.AsyncClient(timeout=10.0) as http:
        registry = build_default_registry(settings, http)
        queue = EffectQueue()
        client = BridgeClient(
            settings.subscribe_url(),
            settings.channel_id,
            registry,
            queue,
            Deduplicator(),
            session=session,
            backoff=settings.reconnect_backoff_seconds,
            heartbeat=settings.ws_heartbeat_seconds,
        )
        gate = ActivityGate(client.set_desired)

        poll_task = None
        obs_source = None
        if settings.gate == "obs":
            obs = simpleobsws.WebSocketClient(url=settings.obs_url, password=settings.obs_password)
            obs_source = ObsActivitySource(gate, obs, retry_interval=settings.obs_retry_seconds)
            poll_task = asyncio.create_task(obs_source.run())
        elif settings.gate == "helix":
            from mxeaez.services.twitch import TwitchClient

            twitch = TwitchClient(settings.twitch_client_id, settings.twitch_client_secret, client=http)
            poller = HelixLivePoller(
                twitch,
                settings.broadcaster_user_id or settings.channel_id,
                gate,
                interval=settings.live_poll_seconds,
            )
            poll_task = asyncio.create_task(poller.run())
        else:
            await gate.update(streaming=True)

        logger.info(
            "bridge.started",
            channel_id=settings.channel_id,
            gate=settings.gate,
            effects=len(registry),
        )
        try:
            await stop.wait()
        finally:
            logger.info("bridge.stopping")
            if poll_task is not None:
                poll_task.cancel()
                await asyncio.wait([poll_task])
            if obs_source is not None:
                await obs_source.close()
            await client.stop()
            await queue.close()


@main.command("list")
def list_effects():
    """Show every registered item id and its hold duration."""
    settings = BridgeSettings()
    _run(_list_impl(settings))


async def _list_impl(settings: BridgeSettings) -> None:
    async with httpx.AsyncClient() as http:
        registry = build_default_registry(settings, http)
        click.echo(f"{'ITEM':<20} {'HOLD':>8}  EFFECT")
        click.echo("-" * 48)
        for item_id in registry.item_ids():
            effect = registry.lookup(item_id)
            click.echo(f"{item_id:<20} {effect.hold_ms:>6}ms  {type(effect).__name__}")


@main.command()
@click.argument("item_id")
@click.option("--viewer", default="tester", help="Login to attribute the redemption to")
@click.option("--text", help="Message text (tts_message)")
@click.option("--target", help="Target chatter (timeout_anyone)")
@click.option("--wait", "wait_ms", type=int, help="Milliseconds to wait afterwards (default: hold + 1s)")
def test(item_id: str, viewer: str, text: Optional[str], target: Optional[str], wait_ms: Optional[int]):
    """Fire one effect locally without the EBS."""
    settings = BridgeSettings()
    _run(_test_impl(settings, item_id, viewer, text, target, wait_ms))


async def _test_impl(
    settings: BridgeSettings,
    item_id: str,
    viewer: str,
    text: Optional[str],
    target: Optional[str],
    wait_ms: Optional[int],
) -> None:
    async with httpx.AsyncClient(timeout=10.0) as http:
        registry = build_default_registry(settings, http)
        effect = registry.lookup(item_id)
        if effect is None:
            _fail(f"Unknown item '{item_id}'. Try: mxeaez-bridge list")

        ctx = EffectContext(
            item_id=item_id,
            viewer=Viewer(login=viewer),
            target=target,
            text=text,
            at=now_ms(),
        )
        click.echo(f"Firing {item_id} as {viewer}...")
        try:
            await effect.apply(ctx)
        except httpx.HTTPError as e:
            _fail(f"{item_id} failed: {e}")

        wait = wait_ms if wait_ms is not None else effect.hold_ms + SELF_TEST_SLACK_MS
        if wait > 0:
            click.echo(f"Waiting {wait}ms")
            await asyncio.sleep(wait / 1000)
        click.secho("Done", fg="green")


if __name__ == "__main__":
    main()
