"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract
and validate the caller.

Two auth mechanisms:
1. Twitch extension JWT in Authorization: Bearer (viewers, via the panel)
2. Shared admin key in the x-admin-key header (broadcaster tooling)
"""

import secrets
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException

from mxeaez.auth.jwt import TokenError, verify_bearer
from mxeaez.config import settings


@dataclass(frozen=True)
class ExtensionClaims:
    """The verified identity behind a panel request."""

    channel_id: str
    opaque_user_id: str
    user_id: Optional[str] = None
    role: str = "viewer"

    @classmethod
    def from_payload(cls, payload: dict) -> "ExtensionClaims":
        return cls(
            channel_id=str(payload["channel_id"]),
            opaque_user_id=str(payload["opaque_user_id"]),
            user_id=str(payload["user_id"]) if payload.get("user_id") else None,
            role=payload.get("role", "viewer"),
        )


async def get_viewer(
    authorization: Optional[str] = Header(None),
) -> ExtensionClaims:
    """Extract the viewer identity (required — 401 if missing/invalid)."""
    try:
        return ExtensionClaims.from_payload(verify_bearer(authorization))
    except TokenError as e:
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_admin(x_admin_key: Optional[str] = Header(None)) -> None:
    """Gate admin routes on the shared admin key."""
    if not settings.admin_key or not x_admin_key or not secrets.compare_digest(
        x_admin_key, settings.admin_key
    ):
        raise HTTPException(status_code=401, detail="Unauthorized")
