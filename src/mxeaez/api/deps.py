"""Shared route dependencies."""

from fastapi import Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from mxeaez.db.engine import get_db
from mxeaez.realtime.pubsub import publish_event
from mxeaez.services.currency import CurrencyStore, get_currency_store
from mxeaez.services.inventory import InventoryStore
from mxeaez.services.shop_service import ShopError, ShopService
from mxeaez.services.twitch import TwitchClient, get_twitch_client


def get_shop_service(
    db: AsyncSession = Depends(get_db),
    currency: CurrencyStore = Depends(get_currency_store),
    twitch: TwitchClient = Depends(get_twitch_client),
) -> ShopService:
    return ShopService(InventoryStore(db), currency, twitch, publish_event)


def http_error(e: ShopError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)
