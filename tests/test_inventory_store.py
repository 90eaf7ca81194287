"""InventoryStore tests against Postgres (skipped without a database)."""

from datetime import timedelta

import pytest

from mxeaez.db.models import utcnow
from mxeaez.services.inventory import InventoryStore


@pytest.mark.asyncio
async def test_redeem_latest_consumes_one(db_session):
    store = InventoryStore(db_session)
    await store.add_entry("chan-db", "U-1", "fake_dc", qty=2)

    redemption = await store.redeem_latest(
        "chan-db", "U-1", "fake_dc", login="alice", item_name="Fake DC"
    )

    assert redemption is not None
    assert redemption.item_id == "fake_dc"
    assert len(await store.list_entries("chan-db", "U-1")) == 1
    assert await store.get_redemption("chan-db", redemption.id) is redemption


@pytest.mark.asyncio
async def test_redeem_latest_without_item(db_session):
    store = InventoryStore(db_session)
    assert await store.redeem_latest("chan-db", "U-1", "fake_dc") is None
    assert await store.list_redemptions("chan-db") == []


@pytest.mark.asyncio
async def test_redemption_scoped_to_channel(db_session):
    store = InventoryStore(db_session)
    await store.add_entry("chan-db", "U-1", "tiny_cam")
    redemption = await store.redeem_latest("chan-db", "U-1", "tiny_cam")
    assert await store.get_redemption("other", redemption.id) is None


@pytest.mark.asyncio
async def test_refund_and_award_persist(db_session):
    store = InventoryStore(db_session)
    await store.add_entry("chan-db", "U-1", "kc_1000")
    redemption = await store.redeem_latest("chan-db", "U-1", "kc_1000", login="alice")

    await store.record_award(redemption, 1000)
    await store.mark_refunded(redemption)

    [row] = await store.list_redemptions("chan-db")
    assert row.awarded_points == 1000
    assert row.refunded_at is not None


@pytest.mark.asyncio
async def test_presence_window(db_session):
    store = InventoryStore(db_session)
    await store.touch_presence("chan-db", "U-1", "1001", "alice")
    await store.touch_presence("chan-db", "U-1")  # keeps the known login

    [viewer] = await store.active_viewers("chan-db", utcnow() - timedelta(minutes=5))
    assert viewer.login == "alice"
    assert await store.active_viewers("chan-db", utcnow() + timedelta(minutes=1)) == []


@pytest.mark.asyncio
async def test_add_entries_for_counts_rows(db_session):
    store = InventoryStore(db_session)
    granted = await store.add_entries_for("chan-db", ["U-1", "U-2"], "vip_badge", qty=2)
    assert granted == 4
    assert len(await store.list_entries("chan-db", "U-2")) == 2
