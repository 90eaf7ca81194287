"""Response headers for an API that only serves JSON to the extension panel.

Learn: Nothing here renders HTML, so the headers mostly stop responses
from being reinterpreted or stored:
- X-Content-Type-Options: the panel must never sniff JSON as script
- Cache-Control: balances and inventories change on every purchase, so
  viewer and admin responses are never cached by a proxy
- Strict-Transport-Security: only on HTTPS, where the EBS runs in production
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

NO_STORE_PREFIXES = ("/me", "/buy", "/redeem", "/sell", "/admin")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach hardening headers to every response."""

    def __init__(self, app, hsts_max_age: int = 31536000):
        super().__init__(app)
        self.hsts_max_age = hsts_max_age

    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        if request.url.path.startswith(NO_STORE_PREFIXES):
            response.headers["Cache-Control"] = "no-store"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = f"max-age={self.hsts_max_age}"
        return response
