"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (database schema, Redis relay,
hub heartbeat, outbound HTTP clients). Middleware, CORS, and routers are
all registered here.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mxeaez import __version__
from mxeaez.api import api_router
from mxeaez.config import settings
from mxeaez.realtime.hub import hub

logger = structlog.get_logger()


async def _cancel(task: asyncio.Task) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown. Redis is optional; without it this instance fans events out
    to its own bridges only.
    """
    logger.info(
        "mxeaez.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    if settings.environment == "development":
        from mxeaez.db.engine import create_schema

        try:
            await create_schema()
        except Exception as e:
            logger.warning("mxeaez.schema_unavailable", error=str(e))

    from mxeaez.realtime.pubsub import close_redis, init_redis, run_relay

    relay_task = None
    try:
        await init_redis()
        relay_task = asyncio.create_task(run_relay(hub))
        logger.info("mxeaez.redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("mxeaez.redis_unavailable", error=str(e))

    heartbeat_task = asyncio.create_task(hub.run_heartbeat())

    yield

    logger.info("mxeaez.shutdown")

    await _cancel(heartbeat_task)
    if relay_task is not None:
        await _cancel(relay_task)
    await close_redis()

    from mxeaez.services.currency import get_currency_store
    from mxeaez.services.twitch import get_twitch_client

    await get_currency_store().aclose()
    await get_twitch_client().aclose()

    from mxeaez.db.engine import engine

    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="mxeaez EBS",
        description="Extension backend: item shop, redemptions and bridge fan-out",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → RateLimit → SecurityHeaders → CORS → handler

    from mxeaez.middleware.rate_limit import RateLimitMiddleware
    from mxeaez.middleware.request_id import RequestIdMiddleware
    from mxeaez.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_origin_regex=settings.cors_origin_regex,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization", "X-Admin-Key"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        spend_rpm=settings.rate_limit_spend_rpm,
    )
    app.add_middleware(RequestIdMiddleware)

    # Mount API routes
    app.include_router(api_router)

    # Mount bridge WebSocket route
    from mxeaez.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: mxeaez.main:app)
app = create_app()
