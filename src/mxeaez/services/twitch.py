"""Twitch Helix client — login lookups and live status.

Learn: The extension JWT only carries a numeric user_id, but the points
store is keyed by login, so the shop resolves user_id → login through
Helix. Lookups use an app access token (client credentials) cached until
a minute before it expires, and results are cached for 5 minutes.

The bridge reuses is_live() to decide whether it should be connected.
"""

import time
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from cachetools import TTLCache

logger = structlog.get_logger()

HELIX_BASE = "https://api.twitch.tv/helix"
TOKEN_URL = "https://id.twitch.tv/oauth2/token"
CACHE_TTL_SECONDS = 5 * 60


class TwitchError(Exception):
    """Raised when Helix credentials are missing or a call fails."""


@dataclass(frozen=True)
class HelixUser:
    id: str
    login: str
    display_name: str
    profile_image_url: str


class TwitchClient:
    """Minimal Helix client with app-token and lookup caches."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._client = client or httpx.AsyncClient(timeout=10.0)
        self._app_token: Optional[str] = None
        self._app_token_exp = 0.0
        self._logins: TTLCache = TTLCache(maxsize=4096, ttl=CACHE_TTL_SECONDS)
        self._users: TTLCache = TTLCache(maxsize=1024, ttl=CACHE_TTL_SECONDS)

    @property
    def configured(self) -> bool:
        return bool(self._client_id and self._client_secret)

    async def _get_app_token(self) -> str:
        now = time.time()
        if self._app_token and self._app_token_exp > now + 60:
            return self._app_token

        try:
            resp = await self._client.post(
                TOKEN_URL,
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "grant_type": "client_credentials",
                },
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise TwitchError(f"App token request failed: {e}")
        body = resp.json()
        self._app_token = body["access_token"]
        self._app_token_exp = now + float(body.get("expires_in") or 3600)
        return self._app_token

    async def _helix_get(self, path: str, params: dict) -> dict:
        if not self.configured:
            raise TwitchError("Twitch client id / secret not set")
        token = await self._get_app_token()
        try:
            resp = await self._client.get(
                f"{HELIX_BASE}{path}",
                params=params,
                headers={"Client-ID": self._client_id, "Authorization": f"Bearer {token}"},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise TwitchError(f"Helix {path} failed: {e}")
        return resp.json()

    async def get_login_from_user_id(self, user_id: str) -> str:
        """Resolve a user id to its lowercase login ('' if unknown/unconfigured)."""
        if not self.configured:
            return ""
        cached = self._logins.get(user_id)
        if cached is not None:
            return cached

        data = await self._helix_get("/users", {"id": user_id})
        users = data.get("data") or []
        login = (users[0].get("login") or "").lower() if users else ""
        if login:
            self._logins[user_id] = login
        return login

    async def get_user_by_login(self, login: str) -> Optional[HelixUser]:
        key = login.strip().lower()
        if not key:
            return None
        if key in self._users:
            return self._users[key]

        data = await self._helix_get("/users", {"login": key})
        users = data.get("data") or []
        user = None
        if users:
            u = users[0]
            user = HelixUser(
                id=str(u["id"]),
                login=str(u.get("login") or key).lower(),
                display_name=str(u.get("display_name") or u.get("login") or key),
                profile_image_url=str(u.get("profile_image_url") or ""),
            )
        self._users[key] = user
        return user

    async def is_live(self, user_id: str) -> bool:
        """True when the broadcaster currently has a live stream."""
        data = await self._helix_get("/streams", {"user_id": user_id})
        return any(s.get("type") == "live" for s in data.get("data") or [])

    async def aclose(self) -> None:
        await self._client.aclose()


_client: Optional[TwitchClient] = None


def get_twitch_client() -> TwitchClient:
    """FastAPI dependency — process-wide Helix client."""
    global _client
    if _client is None:
        from mxeaez.config import settings

        _client = TwitchClient(settings.twitch_client_id, settings.twitch_client_secret)
    return _client
