"""Currency store — viewer point balances held by StreamElements.

Learn: Points live in StreamElements, not in our database, so every
spend/credit is a remote call. Two things keep it sane:

1. A short per-login balance cache (30s) so opening the panel doesn't
   hammer the SE API; every write updates the cache with the new value.
2. A per-login asyncio.Lock. Every caller of apply_delta holds
   lock(login), and a purchase holds it across read balance → check →
   apply delta, so two requests from the same viewer can't both pass the
   balance check and no write lands on a stale cached base.

When no SE token is configured (local development) balances read as 0 and
deltas are no-ops, so the rest of the shop still works.
"""

import asyncio
import weakref
from typing import Callable, Optional

import httpx
import structlog
from cachetools import TTLCache

from mxeaez.config import settings

logger = structlog.get_logger()


class CurrencyError(Exception):
    """Raised when the points store can't be reached or answers badly."""


class CurrencyStore:
    """StreamElements points client with a read-through balance cache."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        base_url: str = settings.se_base_url,
        token: str = settings.se_jwt,
        channel_id: str = settings.se_channel_id,
        channel_login: str = settings.se_channel_login,
        cache_ttl: float = settings.points_cache_ttl_seconds,
        timer: Optional[Callable[[], float]] = None,
    ):
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=10.0)
        self._token = token
        self._channel_id = channel_id or None
        self._channel_login = channel_login
        cache_kwargs = {"timer": timer} if timer else {}
        self._balances: TTLCache = TTLCache(maxsize=4096, ttl=cache_ttl, **cache_kwargs)
        # Entries vanish once no caller holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @property
    def enabled(self) -> bool:
        return bool(self._token)

    def lock(self, login: str) -> asyncio.Lock:
        """Per-login lock for read-modify-write sequences."""
        key = login.lower()
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    async def _se_channel_id(self) -> str:
        if self._channel_id:
            return self._channel_id
        if not self._channel_login:
            raise CurrencyError("Set MXEAEZ_SE_CHANNEL_ID or MXEAEZ_SE_CHANNEL_LOGIN")
        try:
            resp = await self._client.get(f"/channels/{self._channel_login}")
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise CurrencyError(f"Channel lookup failed for {self._channel_login}: {e}")
        channel_id = resp.json().get("_id")
        if not channel_id:
            raise CurrencyError("Unable to resolve StreamElements channel id")
        self._channel_id = channel_id
        return channel_id

    async def get_balance(self, login: str) -> int:
        """Current points for a Twitch login (cached briefly)."""
        if not self.enabled:
            return 0
        key = login.lower()
        cached = self._balances.get(key)
        if cached is not None:
            return cached

        channel_id = await self._se_channel_id()
        try:
            resp = await self._client.get(
                f"/points/{channel_id}/{key}", headers=self._headers()
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise CurrencyError(f"Points lookup failed for {key}: {e}")

        points = int(resp.json().get("points") or 0)
        self._balances[key] = points
        return points

    async def apply_delta(
        self, login: str, delta: int, known_current: Optional[int] = None
    ) -> int:
        """Add (or subtract) points. Returns the new balance.

        known_current avoids a second read when the caller just checked
        the balance under lock(login).
        """
        if not self.enabled:
            return known_current or 0
        key = login.lower()
        amount = int(delta)
        base = known_current if known_current is not None else await self.get_balance(key)
        channel_id = await self._se_channel_id()
        try:
            resp = await self._client.put(
                f"/points/{channel_id}/{key}/{amount}", headers=self._headers()
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise CurrencyError(f"Points update failed for {key}: {e}")

        new_balance = base + amount
        self._balances[key] = new_balance
        logger.info("currency.delta_applied", login=key, delta=amount, balance=new_balance)
        return new_balance

    async def aclose(self) -> None:
        await self._client.aclose()


_store: Optional[CurrencyStore] = None


def get_currency_store() -> CurrencyStore:
    """FastAPI dependency — process-wide currency store."""
    global _store
    if _store is None:
        _store = CurrencyStore()
    return _store
