"""Admin routes — redemption log, refunds and grants.

Learn: The whole router is gated by require_admin (x-admin-key header) at
include time, so handlers don't repeat the check.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from mxeaez.api.deps import get_shop_service, http_error
from mxeaez.catalog import GRANT_ONLY_IDS, ITEMS
from mxeaez.schemas.shop import (
    BulkGrantResponse,
    GrantCoinsAllRequest,
    GrantCoinsRequest,
    GrantItemAllRequest,
    GrantItemRequest,
    RefundRequest,
)
from mxeaez.services.shop_service import ShopError, ShopService

router = APIRouter(prefix="/admin")


@router.get("/items")
async def admin_items():
    return {
        "items": [item.to_dict() for item in ITEMS],
        "grantOnlyIds": sorted(GRANT_ONLY_IDS),
    }


@router.get("/redemptions")
async def list_redemptions(
    channel_id: str = Query(""),
    limit: int = Query(50),
    svc: ShopService = Depends(get_shop_service),
):
    if not channel_id:
        raise HTTPException(status_code=400, detail="channel_id required")
    return await svc.list_redemptions(channel_id, limit)


@router.post("/refund")
async def refund(body: RefundRequest, svc: ShopService = Depends(get_shop_service)):
    try:
        await svc.refund(body.channel_id, body.redemption_id)
    except ShopError as e:
        raise http_error(e)
    return {"ok": True}


@router.post("/grant-item")
async def grant_item(body: GrantItemRequest, svc: ShopService = Depends(get_shop_service)):
    try:
        await svc.grant_item(body.channel_id, body.item_id, body.qty, body.opaque_user_id)
    except ShopError as e:
        raise http_error(e)
    return {"ok": True}


@router.post("/grant-item-all", response_model=BulkGrantResponse)
async def grant_item_all(
    body: GrantItemAllRequest, svc: ShopService = Depends(get_shop_service)
):
    try:
        result = await svc.grant_item_all(
            body.channel_id, body.item_id, body.qty, body.since_minutes
        )
    except ShopError as e:
        raise http_error(e)
    return BulkGrantResponse(
        granted=result.granted, viewers=result.viewers, minutes=result.minutes
    )


@router.post("/grant-coins")
async def grant_coins(body: GrantCoinsRequest, svc: ShopService = Depends(get_shop_service)):
    if not body.amount:
        raise HTTPException(status_code=400, detail="login and amount required")
    await svc.grant_coins(body.login, body.amount)
    return {"ok": True}


@router.post("/grant-coins-all", response_model=BulkGrantResponse)
async def grant_coins_all(
    body: GrantCoinsAllRequest, svc: ShopService = Depends(get_shop_service)
):
    if not body.amount:
        raise HTTPException(status_code=400, detail="channel_id and amount required")
    result = await svc.grant_coins_all(body.channel_id, body.amount, body.since_minutes)
    return BulkGrantResponse(
        granted=result.granted, viewers=result.viewers, minutes=result.minutes
    )
