"""Pydantic schemas for shop and admin requests.

Learn: Field names follow what the panel and admin tools already send
(itemId, opaqueUserId, sinceMinutes, but channel_id / redemption_id),
so aliases map them onto snake_case attributes.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ─── Viewer ──────────────────────────────────────────────

class ItemRequest(_Body):
    """Body for /buy and /sell."""
    item_id: str = Field(..., alias="itemId", min_length=1)


class RedeemRequest(_Body):
    item_id: str = Field(..., alias="itemId", min_length=1)
    target: Optional[str] = None
    text: Optional[str] = None


class RedeemResponse(BaseModel):
    ok: bool = True
    awardedPoints: int = 0
    prizeId: Optional[str] = None


class MeResponse(BaseModel):
    coins: int = 0
    inventory: list[dict] = Field(default_factory=list)
    needsIdShare: bool = False


# ─── Admin ───────────────────────────────────────────────

class RefundRequest(_Body):
    channel_id: str = Field(..., min_length=1)
    redemption_id: str = Field(..., min_length=1)


class GrantItemRequest(_Body):
    channel_id: str = Field(..., min_length=1)
    item_id: str = Field(..., alias="itemId", min_length=1)
    qty: int = 1
    opaque_user_id: str = Field(..., alias="opaqueUserId", min_length=1)


class GrantItemAllRequest(_Body):
    channel_id: str = Field(..., min_length=1)
    item_id: str = Field(..., alias="itemId", min_length=1)
    qty: int = 1
    since_minutes: Optional[int] = Field(None, alias="sinceMinutes")


class GrantCoinsRequest(_Body):
    login: str = Field(..., min_length=1)
    amount: int = Field(..., description="Points to add (negative to remove)")


class GrantCoinsAllRequest(_Body):
    channel_id: str = Field(..., min_length=1)
    amount: int
    since_minutes: Optional[int] = Field(None, alias="sinceMinutes")


class BulkGrantResponse(BaseModel):
    ok: bool = True
    granted: int
    viewers: int
    minutes: int
