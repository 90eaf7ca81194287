"""Redis pub/sub — event relay between EBS instances.

Learn: A bridge is connected to exactly one EBS instance, but the viewer's
/redeem request may land on another one. When Redis is up, every instance
PUBLISHes events to Redis and every instance's relay task PSUBSCRIBEs and
hands the payload to its local hub. Without Redis (single instance, tests)
publish_event() goes straight to the local hub.

Redis pub/sub is fire-and-forget. If no one is listening, the message is
lost. That matches the hub's at-most-once contract: a bridge connected
after emission never sees the event, and nothing is replayed.

Channel naming: mxeaez:events:{channel_id}
"""

import asyncio
from typing import Optional

import redis.asyncio as aioredis
import structlog

from mxeaez.config import settings
from mxeaez.events import Event
from mxeaez.realtime.hub import ChannelHub, hub

logger = structlog.get_logger()

CHANNEL_PREFIX = "mxeaez:events:"

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection before exposing it
    await client.ping()
    _redis = client
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


def redis_channel(channel_id: str) -> str:
    return f"{CHANNEL_PREFIX}{channel_id}"


async def publish_event(event: Event, local_hub: Optional[ChannelHub] = None) -> None:
    """Publish an event to every bridge subscribed to its channel.

    Learn: Services call this after their database/currency writes commit.
    Exactly one path is taken per event: Redis when available, otherwise
    the local hub. No instance ever sees it twice from us.
    """
    target_hub = local_hub or hub
    channel_id = event.channel_id or ""
    data = event.to_wire()

    if _redis is not None:
        try:
            await _redis.publish(redis_channel(channel_id), data)
            return
        except Exception as e:
            logger.warning(
                "pubsub.publish_failed", channel_id=channel_id, error=str(e)
            )

    await target_hub.broadcast(channel_id, data)


async def relay_message(message: dict, local_hub: ChannelHub) -> None:
    """Hand one Redis pmessage to the local hub."""
    if message.get("type") != "pmessage":
        return
    channel = message.get("channel") or ""
    if not channel.startswith(CHANNEL_PREFIX):
        return
    await local_hub.broadcast(channel[len(CHANNEL_PREFIX):], message["data"])


async def run_relay(local_hub: Optional[ChannelHub] = None) -> None:
    """Forward Redis events to local subscribers until cancelled."""
    target_hub = local_hub or hub
    pubsub = get_redis().pubsub()
    await pubsub.psubscribe(f"{CHANNEL_PREFIX}*")
    logger.info("pubsub.relay_started")
    try:
        async for message in pubsub.listen():
            try:
                await relay_message(message, target_hub)
            except Exception:
                logger.exception("pubsub.relay_error")
    except asyncio.CancelledError:
        pass
    finally:
        await pubsub.punsubscribe()
        await pubsub.aclose()
