"""Event value objects fanned out to bridge subscribers.

Learn: An Event is an immutable fact. It is constructed at the moment the
authoritative inventory/currency change commits, serialized once by the
hub, and never mutated afterwards. Consumers parse it back into the same
model and treat it as a value.

Wire format uses camelCase keys (channelId, itemId, ...) and omits unset
fields, so the panel and bridge can read exactly what the EBS sent.
"""

import time
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

EventType = Literal["redeem", "grant", "grant_all", "refund", "mystery", "sell"]


def now_ms() -> int:
    """Current wall clock as epoch milliseconds."""
    return int(time.time() * 1000)


class Viewer(BaseModel):
    """Who triggered an event. Every field is independently optional."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    opaque_user_id: Optional[str] = None
    user_id: Optional[str] = None
    login: Optional[str] = None
    display_name: Optional[str] = None
    avatar: Optional[str] = None

    @property
    def identity(self) -> str:
        """Most stable identifier available, or empty string."""
        return self.opaque_user_id or self.user_id or self.login or ""

    @property
    def label(self) -> str:
        """Human-readable name for logs."""
        return self.login or self.user_id or self.opaque_user_id or "unknown"


class Event(BaseModel):
    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    type: EventType
    channel_id: Optional[str] = None
    item_id: Optional[str] = None
    item_name: Optional[str] = None
    viewer: Optional[Viewer] = None
    target: Optional[str] = None
    text: Optional[str] = None
    target_opaque: Optional[str] = None
    qty: Optional[int] = None
    awarded_points: Optional[int] = None
    prize_id: Optional[str] = None
    prize_name: Optional[str] = None
    rarity: Optional[str] = None
    at: Optional[int] = None

    def to_wire(self) -> str:
        """Serialize for the transport (camelCase, unset fields dropped)."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


def new_event(event_type: EventType, channel_id: str, **fields) -> Event:
    """Build an Event stamped with the current emission time."""
    return Event(type=event_type, channel_id=channel_id, at=now_ms(), **fields)
