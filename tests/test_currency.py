"""StreamElements currency store tests.

Learn: A MockTransport plays the SE API: it serves balances from a dict,
applies PUT deltas to it, and counts calls so the cache can be observed.
"""

import asyncio
import gc

import httpx
import pytest

from mxeaez.auth.dependencies import ExtensionClaims
from mxeaez.services.currency import CurrencyError, CurrencyStore
from mxeaez.services.shop_service import ShopService
from conftest import CHANNEL_ID, OPAQUE_ID, USER_ID


class FakeStreamElements:
    def __init__(self, balances=None):
        self.balances = dict(balances or {})
        self.calls: list[tuple[str, str]] = []
        self.fail = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, request.url.path))
        if self.fail:
            return httpx.Response(503)
        parts = request.url.path.strip("/").split("/")
        if parts[0] == "channels":
            return httpx.Response(200, json={"_id": "se-chan"})
        login = parts[2]
        if request.method == "PUT":
            self.balances[login] = self.balances.get(login, 0) + int(parts[3])
            return httpx.Response(200, json={"newAmount": self.balances[login]})
        return httpx.Response(200, json={"points": self.balances.get(login, 0)})


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture()
def se():
    return FakeStreamElements({"alice": 500})


def _store(se, token="se-token", channel_id="se-chan", channel_login="", timer=None):
    client = httpx.AsyncClient(base_url="https://se.test", transport=httpx.MockTransport(se))
    return CurrencyStore(
        client,
        token=token,
        channel_id=channel_id,
        channel_login=channel_login,
        cache_ttl=30,
        timer=timer,
    )


@pytest.mark.asyncio
async def test_balance_is_cached(se):
    clock = Clock()
    store = _store(se, timer=clock)

    assert await store.get_balance("Alice") == 500
    assert await store.get_balance("alice") == 500
    assert len(se.calls) == 1

    clock.now = 31
    await store.get_balance("alice")
    assert len(se.calls) == 2


@pytest.mark.asyncio
async def test_apply_delta_updates_cache(se):
    store = _store(se)
    balance = await store.get_balance("alice")

    new_balance = await store.apply_delta("alice", -200, balance)

    assert new_balance == 300
    assert se.balances["alice"] == 300
    assert ("PUT", "/points/se-chan/alice/-200") in se.calls
    calls_before = len(se.calls)
    assert await store.get_balance("alice") == 300
    assert len(se.calls) == calls_before


@pytest.mark.asyncio
async def test_apply_delta_reads_base_when_unknown(se):
    store = _store(se)
    assert await store.apply_delta("alice", 100) == 600


@pytest.mark.asyncio
async def test_channel_id_resolved_from_login(se):
    store = _store(se, channel_id="", channel_login="streamer")
    assert await store.get_balance("alice") == 500
    assert se.calls[0] == ("GET", "/channels/streamer")


@pytest.mark.asyncio
async def test_missing_channel_config(se):
    store = _store(se, channel_id="", channel_login="")
    with pytest.raises(CurrencyError):
        await store.get_balance("alice")


@pytest.mark.asyncio
async def test_http_failure_raises_currency_error(se):
    se.fail = True
    store = _store(se)
    with pytest.raises(CurrencyError):
        await store.get_balance("alice")


@pytest.mark.asyncio
async def test_disabled_without_token(se):
    store = _store(se, token="")
    assert not store.enabled
    assert await store.get_balance("alice") == 0
    assert await store.apply_delta("alice", 50, 10) == 10
    assert se.calls == []


def test_lock_is_per_login(se):
    store = _store(se)
    assert store.lock("Alice") is store.lock("alice")
    assert store.lock("alice") is not store.lock("bob")


def test_unused_locks_are_released(se):
    store = _store(se)
    lock = store.lock("alice")
    assert len(store._locks) == 1

    del lock
    gc.collect()
    assert len(store._locks) == 0


class SlowStreamElements(FakeStreamElements):
    """Answers after a short delay so concurrent requests interleave."""

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.01)
        return super().__call__(request)


@pytest.mark.asyncio
async def test_award_during_purchase_keeps_cache_in_step(inventory, twitch, published):
    se = SlowStreamElements({"alice": 1500})
    store = _store(se)
    shop = ShopService(inventory, store, twitch, published)
    viewer = ExtensionClaims(channel_id=CHANNEL_ID, opaque_user_id=OPAQUE_ID, user_id=USER_ID)
    await inventory.add_entry(CHANNEL_ID, OPAQUE_ID, "kc_1000")

    await asyncio.gather(
        shop.buy(viewer, "dramatic_zoom"),
        shop.redeem(viewer, "kc_1000"),
    )

    # -1000 for the zoom, +1000 from the bundle
    assert se.balances["alice"] == 1500
    assert await store.get_balance("alice") == 1500
