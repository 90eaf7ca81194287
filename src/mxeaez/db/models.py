"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Everything is partitioned by channel_id: a channel
is one broadcaster's isolated namespace.

Key concepts:
- One row per owned item (not a quantity column): redeeming deletes the
  newest row for that item, so a grant and a purchase are indistinguishable
- Redemptions are an append-only audit log; refunds only stamp refunded_at
- Presence rows remember who opened the panel recently (for grant-all)
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class InventoryEntry(Base):
    """One item owned by one viewer on one channel."""

    __tablename__ = "inventory_entries"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    opaque_user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index(
            "ix_inventory_owner_item",
            "channel_id",
            "opaque_user_id",
            "item_id",
            "acquired_at",
        ),
    )


class Redemption(Base):
    """Audit record of a redeemed item."""

    __tablename__ = "redemptions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    channel_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    opaque_user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(64))
    login: Mapped[Optional[str]] = mapped_column(String(64))
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    item_name: Mapped[Optional[str]] = mapped_column(String(200))
    target: Mapped[Optional[str]] = mapped_column(String(100))
    text: Mapped[Optional[str]] = mapped_column(Text)
    awarded_points: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class ViewerPresence(Base):
    """Last time a viewer opened the panel on a channel."""

    __tablename__ = "viewer_presence"

    channel_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    opaque_user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64))
    login: Mapped[Optional[str]] = mapped_column(String(64))
    last_seen: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, index=True
    )
