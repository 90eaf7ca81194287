"""Viewer-facing shop routes, called by the extension panel.

Learn: Routes just translate HTTP to ShopService calls. Every route except
the catalog requires the Twitch extension JWT; the service layer owns all
validation and raises ShopError subclasses that carry their HTTP status.
"""

import structlog
from fastapi import APIRouter, Depends

from mxeaez.api.deps import get_shop_service, http_error
from mxeaez.auth.dependencies import ExtensionClaims, get_viewer
from mxeaez.catalog import ITEMS, sellable_items
from mxeaez.schemas.shop import ItemRequest, MeResponse, RedeemRequest, RedeemResponse
from mxeaez.services.shop_service import ShopError, ShopService

logger = structlog.get_logger()
router = APIRouter()


@router.get("/catalog")
async def catalog():
    """Items offered for purchase."""
    return [item.to_dict() for item in sellable_items()]


@router.get("/items-index")
async def items_index():
    """Every known item, including grant-only ones (for inventory display)."""
    return [item.to_dict() for item in ITEMS]


@router.get("/me", response_model=MeResponse)
async def me(
    claims: ExtensionClaims = Depends(get_viewer),
    svc: ShopService = Depends(get_shop_service),
):
    """Coins + inventory. Never fails the panel: errors degrade to empty."""
    try:
        result = await svc.me(claims)
    except Exception:
        logger.exception("shop.me_failed", channel_id=claims.channel_id)
        return MeResponse(coins=0, inventory=[], needsIdShare=False)
    return MeResponse(
        coins=result.coins,
        inventory=result.inventory,
        needsIdShare=result.needs_id_share,
    )


@router.post("/buy")
async def buy(
    body: ItemRequest,
    claims: ExtensionClaims = Depends(get_viewer),
    svc: ShopService = Depends(get_shop_service),
):
    try:
        await svc.buy(claims, body.item_id)
    except ShopError as e:
        raise http_error(e)
    return {"ok": True}


@router.post("/redeem", response_model=RedeemResponse)
async def redeem(
    body: RedeemRequest,
    claims: ExtensionClaims = Depends(get_viewer),
    svc: ShopService = Depends(get_shop_service),
):
    try:
        result = await svc.redeem(claims, body.item_id, body.target, body.text)
    except ShopError as e:
        raise http_error(e)
    return RedeemResponse(awardedPoints=result.awarded_points, prizeId=result.prize_id)


@router.post("/sell")
async def sell(
    body: ItemRequest,
    claims: ExtensionClaims = Depends(get_viewer),
    svc: ShopService = Depends(get_shop_service),
):
    try:
        awarded = await svc.sell(claims, body.item_id)
    except ShopError as e:
        raise http_error(e)
    return {"ok": True, "awardedPoints": awarded}
