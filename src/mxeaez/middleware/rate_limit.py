"""Rate limiting middleware — Redis-based fixed window per minute.

Learn: Each IP gets a counter key like "mxeaez:rl:{ip}:{bucket}:{minute}".
Spending endpoints (/buy, /redeem, /sell) get a stricter limit because
each one hits the points store and may trigger an on-stream effect.

Gracefully skips rate limiting if Redis is unavailable (e.g., in tests).
WebSocket upgrades never pass through here (HTTP only).
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = structlog.get_logger()

SPEND_PATHS = frozenset({"/buy", "/redeem", "/sell"})


def bucket_for(path: str) -> str:
    return "spend" if path in SPEND_PATHS else "api"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-based rate limiting per IP per minute."""

    def __init__(self, app, default_rpm: int = 120, spend_rpm: int = 30):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.spend_rpm = spend_rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        # No Redis, no rate limiting
        from mxeaez.realtime.pubsub import get_redis

        try:
            redis = get_redis()
        except RuntimeError:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        bucket = bucket_for(request.url.path)
        rpm = self.spend_rpm if bucket == "spend" else self.default_rpm
        key = f"mxeaez:rl:{client_ip}:{bucket}:{int(time.time() // 60)}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, 120)
        except Exception as e:
            # Redis error: let the request through
            logger.warning("ratelimit.redis_error", error=str(e))
            return await call_next(request)

        if count > rpm:
            logger.info("ratelimit.exceeded", ip=client_ip, bucket=bucket)
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rpm - count))
        return response
