"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running,
reports how many bridges are connected, and whether Redis (the
cross-instance relay) is reachable.
"""

from fastapi import APIRouter

from mxeaez import __version__
from mxeaez.realtime.hub import hub

router = APIRouter()


@router.get("/health")
async def health_check():
    """Check server health and relay connectivity."""
    checks = {"server": "ok", "version": __version__}

    # Redis is optional: without it events fan out from this instance only
    from mxeaez.realtime.pubsub import get_redis

    try:
        await get_redis().ping()
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"unavailable: {e}"

    checks["bridges"] = sum(len(hub.subscribers(c)) for c in hub.channel_ids())
    status = "healthy" if checks["redis"] == "ok" else "degraded"
    return {"status": status, **checks}
