"""Twitch extension JWT verification.

Learn: The extension panel calls the EBS with the JWT Twitch hands it
(Authorization: Bearer <token>). Twitch signs it with the extension's
shared secret, which the developer console shows base64-encoded, so we
decode the secret before verifying.

Claims we rely on:
- channel_id       broadcaster the panel is running on
- opaque_user_id   per-extension viewer id (always present, may be anonymous)
- user_id          real Twitch user id, only if the viewer shared identity
"""

import base64
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from mxeaez.config import settings


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def _secret() -> bytes:
    if not settings.extension_secret:
        raise TokenError("Extension secret is not configured")
    try:
        return base64.b64decode(settings.extension_secret)
    except ValueError as e:
        raise TokenError(f"Extension secret is not valid base64: {e}")


def verify_token(token: str) -> dict:
    """Verify and decode an extension JWT.

    Returns the payload dict on success.
    Raises TokenError on failure or when required claims are missing.
    """
    try:
        payload = jwt.decode(token, _secret(), algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")

    if not payload.get("channel_id") or not payload.get("opaque_user_id"):
        raise TokenError("Bad claims")
    return payload


def verify_bearer(authorization: Optional[str]) -> dict:
    """Verify an Authorization header value of the form 'Bearer <jwt>'."""
    if not authorization or not authorization.startswith("Bearer "):
        raise TokenError("Missing bearer")
    return verify_token(authorization[7:])


def create_token(
    channel_id: str,
    opaque_user_id: str,
    user_id: Optional[str] = None,
    role: str = "viewer",
    expires_minutes: int = 60,
) -> str:
    """Sign an extension-style token (local tooling and tests)."""
    now = datetime.now(timezone.utc)
    payload = {
        "channel_id": channel_id,
        "opaque_user_id": opaque_user_id,
        "role": role,
        "exp": now + timedelta(minutes=expires_minutes),
        "iat": now,
    }
    if user_id:
        payload["user_id"] = user_id
    return jwt.encode(payload, _secret(), algorithm=settings.jwt_algorithm)
