"""Inventory store — owned items, redemptions and panel presence.

Learn: This is the authoritative item state. Every method commits its own
unit of work so the caller can publish an event right after it returns,
knowing the change is durable.

redeem_latest() is the one multi-row operation: deleting the newest entry
and inserting the redemption record happen in a single transaction, with
the entry row locked so two concurrent redeems can't consume the same item.
"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mxeaez.db.models import InventoryEntry, Redemption, ViewerPresence, utcnow


class InventoryStore:
    """SQLAlchemy-backed inventory for one request/session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Entries ─────────────────────────────────────────

    async def add_entry(
        self, channel_id: str, opaque_user_id: str, item_id: str, qty: int = 1
    ) -> None:
        for _ in range(qty):
            self.db.add(
                InventoryEntry(
                    channel_id=channel_id,
                    opaque_user_id=opaque_user_id,
                    item_id=item_id,
                    acquired_at=utcnow(),
                )
            )
        await self.db.commit()

    async def add_entries_for(
        self,
        channel_id: str,
        opaque_user_ids: Iterable[str],
        item_id: str,
        qty: int = 1,
    ) -> int:
        """Grant qty of an item to each viewer in one commit. Returns rows added."""
        count = 0
        for opaque in opaque_user_ids:
            for _ in range(qty):
                self.db.add(
                    InventoryEntry(
                        channel_id=channel_id,
                        opaque_user_id=opaque,
                        item_id=item_id,
                        acquired_at=utcnow(),
                    )
                )
                count += 1
        await self.db.commit()
        return count

    def _latest_query(self, channel_id: str, opaque_user_id: str, item_id: str):
        return (
            select(InventoryEntry)
            .where(
                InventoryEntry.channel_id == channel_id,
                InventoryEntry.opaque_user_id == opaque_user_id,
                InventoryEntry.item_id == item_id,
            )
            .order_by(InventoryEntry.acquired_at.desc())
            .limit(1)
        )

    async def find_latest_entry(
        self, channel_id: str, opaque_user_id: str, item_id: str
    ) -> Optional[InventoryEntry]:
        result = await self.db.execute(
            self._latest_query(channel_id, opaque_user_id, item_id)
        )
        return result.scalars().first()

    async def delete_entry(self, entry: InventoryEntry) -> None:
        await self.db.delete(entry)
        await self.db.commit()

    async def list_entries(
        self, channel_id: str, opaque_user_id: str
    ) -> list[InventoryEntry]:
        result = await self.db.execute(
            select(InventoryEntry)
            .where(
                InventoryEntry.channel_id == channel_id,
                InventoryEntry.opaque_user_id == opaque_user_id,
            )
            .order_by(InventoryEntry.acquired_at)
        )
        return list(result.scalars().all())

    async def redeem_latest(
        self,
        channel_id: str,
        opaque_user_id: str,
        item_id: str,
        **redemption_fields,
    ) -> Optional[Redemption]:
        """Consume the newest entry and record the redemption atomically.

        Returns None (and changes nothing) when the viewer owns no such item.
        """
        try:
            result = await self.db.execute(
                self._latest_query(channel_id, opaque_user_id, item_id).with_for_update()
            )
            entry = result.scalars().first()
            if entry is None:
                await self.db.rollback()
                return None

            await self.db.delete(entry)
            redemption = Redemption(
                channel_id=channel_id,
                opaque_user_id=opaque_user_id,
                item_id=item_id,
                created_at=utcnow(),
                **redemption_fields,
            )
            self.db.add(redemption)
            await self.db.commit()
            return redemption
        except Exception:
            await self.db.rollback()
            raise

    # ─── Redemptions ─────────────────────────────────────

    async def get_redemption(
        self, channel_id: str, redemption_id: str
    ) -> Optional[Redemption]:
        redemption = await self.db.get(Redemption, redemption_id)
        if redemption is None or redemption.channel_id != channel_id:
            return None
        return redemption

    async def record_award(self, redemption: Redemption, points: int) -> None:
        redemption.awarded_points = points
        await self.db.commit()

    async def mark_refunded(self, redemption: Redemption) -> None:
        redemption.refunded_at = utcnow()
        await self.db.commit()

    async def list_redemptions(self, channel_id: str, limit: int = 50) -> list[Redemption]:
        result = await self.db.execute(
            select(Redemption)
            .where(Redemption.channel_id == channel_id)
            .order_by(Redemption.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # ─── Presence ────────────────────────────────────────

    async def touch_presence(
        self,
        channel_id: str,
        opaque_user_id: str,
        user_id: Optional[str] = None,
        login: Optional[str] = None,
    ) -> None:
        presence = await self.db.get(ViewerPresence, (channel_id, opaque_user_id))
        if presence is None:
            presence = ViewerPresence(
                channel_id=channel_id, opaque_user_id=opaque_user_id
            )
            self.db.add(presence)
        presence.user_id = user_id or presence.user_id
        presence.login = login or presence.login
        presence.last_seen = utcnow()
        await self.db.commit()

    async def active_viewers(
        self, channel_id: str, since: datetime
    ) -> list[ViewerPresence]:
        result = await self.db.execute(
            select(ViewerPresence).where(
                ViewerPresence.channel_id == channel_id,
                ViewerPresence.last_seen >= since,
            )
        )
        return list(result.scalars().all())
