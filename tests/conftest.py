"""Test fixtures — in-memory shop collaborators and an ASGI test client.

Learn: The shop service only talks to its collaborators through a handful
of async methods, so tests swap them for in-memory fakes:

1. FakeInventory keeps InventoryEntry / Redemption / ViewerPresence rows
   in lists instead of Postgres
2. FakeCurrency keeps point balances in a dict instead of StreamElements
3. FakeTwitch resolves user ids from a dict instead of Helix
4. PublishRecorder collects every Event instead of fanning it out

The HTTP client overrides get_shop_service so routes run the real service
against the fakes. Redis is never initialized, so rate limiting is skipped
and health reports "degraded".
"""

import asyncio
import base64
import random
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import SQLAlchemyError

from mxeaez.auth.jwt import create_token
from mxeaez.config import settings
from mxeaez.db.models import InventoryEntry, Redemption, ViewerPresence, new_id, utcnow
from mxeaez.services.currency import CurrencyError
from mxeaez.services.shop_service import ShopService
from mxeaez.services.twitch import HelixUser

TEST_EXTENSION_SECRET = base64.b64encode(b"test-extension-secret").decode()
TEST_ADMIN_KEY = "test-admin-key"

CHANNEL_ID = "chan-1"
OPAQUE_ID = "U-opaque-1"
USER_ID = "1001"
LOGIN = "alice"


# ─── Fakes ────────────────────────────────────────────────


class FakeInventory:
    """In-memory stand-in for InventoryStore."""

    def __init__(self):
        self.entries: list[InventoryEntry] = []
        self.redemptions: list[Redemption] = []
        self.presence: dict[tuple[str, str], ViewerPresence] = {}
        self.fail_add = False

    def _new_entry(self, channel_id, opaque_user_id, item_id):
        return InventoryEntry(
            id=new_id(),
            channel_id=channel_id,
            opaque_user_id=opaque_user_id,
            item_id=item_id,
            acquired_at=utcnow(),
        )

    def owned(self, channel_id: str, opaque_user_id: str, item_id: str) -> int:
        return sum(
            1
            for e in self.entries
            if (e.channel_id, e.opaque_user_id, e.item_id)
            == (channel_id, opaque_user_id, item_id)
        )

    async def add_entry(self, channel_id, opaque_user_id, item_id, qty=1):
        if self.fail_add:
            raise RuntimeError("inventory unavailable")
        for _ in range(qty):
            self.entries.append(self._new_entry(channel_id, opaque_user_id, item_id))

    async def add_entries_for(self, channel_id, opaque_user_ids, item_id, qty=1):
        count = 0
        for opaque in opaque_user_ids:
            for _ in range(qty):
                self.entries.append(self._new_entry(channel_id, opaque, item_id))
                count += 1
        return count

    async def find_latest_entry(self, channel_id, opaque_user_id, item_id):
        for e in reversed(self.entries):
            if (e.channel_id, e.opaque_user_id, e.item_id) == (
                channel_id,
                opaque_user_id,
                item_id,
            ):
                return e
        return None

    async def delete_entry(self, entry):
        self.entries.remove(entry)

    async def list_entries(self, channel_id, opaque_user_id):
        return [
            e
            for e in self.entries
            if e.channel_id == channel_id and e.opaque_user_id == opaque_user_id
        ]

    async def redeem_latest(self, channel_id, opaque_user_id, item_id, **fields):
        entry = await self.find_latest_entry(channel_id, opaque_user_id, item_id)
        if entry is None:
            return None
        self.entries.remove(entry)
        redemption = Redemption(
            id=new_id(),
            channel_id=channel_id,
            opaque_user_id=opaque_user_id,
            item_id=item_id,
            awarded_points=0,
            created_at=utcnow(),
            **fields,
        )
        self.redemptions.append(redemption)
        return redemption

    async def get_redemption(self, channel_id, redemption_id):
        for r in self.redemptions:
            if r.id == redemption_id and r.channel_id == channel_id:
                return r
        return None

    async def record_award(self, redemption, points):
        redemption.awarded_points = points

    async def mark_refunded(self, redemption):
        redemption.refunded_at = utcnow()

    async def list_redemptions(self, channel_id, limit=50):
        rows = [r for r in self.redemptions if r.channel_id == channel_id]
        return list(reversed(rows))[:limit]

    async def touch_presence(self, channel_id, opaque_user_id, user_id=None, login=None):
        key = (channel_id, opaque_user_id)
        presence = self.presence.get(key)
        if presence is None:
            presence = ViewerPresence(channel_id=channel_id, opaque_user_id=opaque_user_id)
            self.presence[key] = presence
        presence.user_id = user_id or presence.user_id
        presence.login = login or presence.login
        presence.last_seen = utcnow()

    async def active_viewers(self, channel_id, since):
        return [
            p
            for (ch, _), p in self.presence.items()
            if ch == channel_id and p.last_seen >= since
        ]


class FakeCurrency:
    """In-memory stand-in for CurrencyStore."""

    enabled = True

    def __init__(self, balances: Optional[dict[str, int]] = None):
        self.balances = dict(balances or {})
        self.deltas: list[tuple[str, int]] = []
        self.fail = False
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, login):
        return self._locks.setdefault(login.lower(), asyncio.Lock())

    async def get_balance(self, login):
        return self.balances.get(login.lower(), 0)

    async def apply_delta(self, login, delta, known_current=None):
        if self.fail:
            raise CurrencyError("points store unavailable")
        key = login.lower()
        self.balances[key] = self.balances.get(key, 0) + delta
        self.deltas.append((key, delta))
        return self.balances[key]


class FakeTwitch:
    """In-memory stand-in for TwitchClient."""

    configured = True

    def __init__(self, logins: Optional[dict[str, str]] = None):
        self.logins = dict(logins or {})
        self.live = False

    async def get_login_from_user_id(self, user_id):
        return self.logins.get(user_id, "")

    async def get_user_by_login(self, login):
        for uid, name in self.logins.items():
            if name == login:
                return HelixUser(
                    id=uid,
                    login=name,
                    display_name=name.title(),
                    profile_image_url=f"https://img.example/{name}.png",
                )
        return None

    async def is_live(self, user_id):
        return self.live


class PublishRecorder:
    """Collects published events in order."""

    def __init__(self):
        self.events = []

    async def __call__(self, event):
        self.events.append(event)

    def of_type(self, event_type):
        return [e for e in self.events if e.type == event_type]


# ─── Fixtures ─────────────────────────────────────────────


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Known secrets for every test; no bridge key unless a test sets one."""
    monkeypatch.setattr(settings, "extension_secret", TEST_EXTENSION_SECRET)
    monkeypatch.setattr(settings, "admin_key", TEST_ADMIN_KEY)
    monkeypatch.setattr(settings, "bridge_key", "")
    return settings


@pytest.fixture()
def inventory():
    return FakeInventory()


@pytest.fixture()
def currency():
    return FakeCurrency({LOGIN: 10_000})


@pytest.fixture()
def twitch():
    return FakeTwitch({USER_ID: LOGIN, "2002": "bob"})


@pytest.fixture()
def published():
    return PublishRecorder()


@pytest.fixture()
def shop(inventory, currency, twitch, published):
    return ShopService(inventory, currency, twitch, published, rng=random.Random(7))


@pytest.fixture()
def viewer_headers():
    """Factory for Authorization headers carrying a signed extension JWT."""

    def _headers(
        channel_id: str = CHANNEL_ID,
        opaque_user_id: str = OPAQUE_ID,
        user_id: Optional[str] = USER_ID,
    ) -> dict:
        token = create_token(channel_id, opaque_user_id, user_id=user_id)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def admin_headers():
    return {"X-Admin-Key": TEST_ADMIN_KEY}


@pytest_asyncio.fixture()
async def client(shop):
    """HTTP client with get_shop_service overridden to use the fakes."""
    from mxeaez.api.deps import get_shop_service
    from mxeaez.main import app

    app.dependency_overrides[get_shop_service] = lambda: shop

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def db_session():
    """Per-test session with automatic rollback via savepoints.

    Learn: join_transaction_mode="create_savepoint" turns every
    session.commit() inside the store into a SAVEPOINT; the outer
    transaction rolls back after the test so no rows survive it. Skipped
    when the configured database isn't reachable.
    """
    from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

    from mxeaez.db.models import Base

    engine = create_async_engine(settings.database_url, echo=False)
    try:
        conn = await engine.connect()
    except (OSError, SQLAlchemyError) as e:
        await engine.dispose()
        pytest.skip(f"database unavailable: {e}")

    trans = await conn.begin()
    await conn.run_sync(Base.metadata.create_all)
    session = AsyncSession(
        bind=conn,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )
    try:
        yield session
    finally:
        await session.close()
        await trans.rollback()
        await conn.close()
        await engine.dispose()
