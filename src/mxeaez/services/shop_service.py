"""Shop service — buy, redeem, sell and admin grants/refunds.

Learn: This is the producer side of the redemption pipeline. Every
state-changing action follows the same order:

1. Validate (catalog, identity, balance)
2. Commit the authoritative change (inventory rows, points delta)
3. Publish an Event for the channel's bridges

Publishing last means a bridge can never run an effect for a redemption
that didn't happen. The reverse failure (state committed, event
lost) is accepted: delivery is at-most-once, and the viewer-visible
contract (the inventory/points change) already holds.

Points and items live in two independent stores with no shared
transaction. Every points change holds the currency store's per-login
lock (purchases around the whole read → check → debit), so the cached
balance a purchase checks is never stale, and a purchase undoes its debit
if the inventory write fails.
"""

import random
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Awaitable, Callable, Optional

import structlog

from mxeaez.auth.dependencies import ExtensionClaims
from mxeaez.catalog import (
    GRANT_ONLY_IDS,
    KC_DELTAS,
    MYSTERY_BOX_ID,
    get_item,
    known_ids,
    mystery_pool,
)
from mxeaez.db.models import utcnow
from mxeaez.events import Event, Viewer, new_event
from mxeaez.events.types import GRANT, GRANT_ALL, MYSTERY, REDEEM, REFUND, SELL
from mxeaez.services.currency import CurrencyError
from mxeaez.services.twitch import TwitchError

logger = structlog.get_logger()

Publisher = Callable[[Event], Awaitable[None]]

TEXT_MAX_LENGTH = 500
REDEMPTION_LIST_MAX = 200
ACTIVE_MINUTES_MIN = 1
ACTIVE_MINUTES_MAX = 120


# ═══════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════


class ShopError(Exception):
    """Base for shop failures the API reports to the caller."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnknownItemError(ShopError):
    status_code = 400


class NoItemError(ShopError):
    status_code = 400


class NotEnoughPointsError(ShopError):
    status_code = 400


class GrantOnlyItemError(ShopError):
    status_code = 403


class IdentityRequiredError(ShopError):
    status_code = 403


class RedemptionNotFoundError(ShopError):
    status_code = 404


class AlreadyRefundedError(ShopError):
    status_code = 409


# ═══════════════════════════════════════════════════════════
# Results
# ═══════════════════════════════════════════════════════════


@dataclass
class RedeemResult:
    awarded_points: int = 0
    prize_id: Optional[str] = None


@dataclass
class MeResult:
    coins: int = 0
    inventory: list[dict] = field(default_factory=list)
    needs_id_share: bool = True


@dataclass
class BulkGrantResult:
    granted: int
    viewers: int
    minutes: int


# ═══════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════


def clean_target(raw: Optional[str]) -> Optional[str]:
    """Trim a chat target and drop a leading @."""
    if not isinstance(raw, str):
        return None
    target = raw.strip()
    if target.startswith("@"):
        target = target[1:]
    return target or None


def clean_text(raw: Optional[str]) -> Optional[str]:
    """Cap TTS text and trim it."""
    if not isinstance(raw, str):
        return None
    return raw[:TEXT_MAX_LENGTH].strip() or None


def clamp_minutes(value: Optional[int], default: int = 5) -> int:
    minutes = default if value is None else int(value)
    return max(ACTIVE_MINUTES_MIN, min(ACTIVE_MINUTES_MAX, minutes))


# ═══════════════════════════════════════════════════════════
# Service
# ═══════════════════════════════════════════════════════════


class ShopService:
    """Business logic for the extension shop."""

    def __init__(
        self,
        inventory,
        currency,
        twitch,
        publish: Publisher,
        rng: Optional[random.Random] = None,
    ):
        self.inventory = inventory
        self.currency = currency
        self.twitch = twitch
        self.publish = publish
        self.rng = rng or random.Random()

    async def _login_for(self, user_id: Optional[str]) -> Optional[str]:
        if not user_id:
            return None
        try:
            return await self.twitch.get_login_from_user_id(user_id) or None
        except TwitchError as e:
            logger.warning("shop.login_lookup_failed", user_id=user_id, error=str(e))
            return None

    async def _require_login(self, claims: ExtensionClaims, message: str) -> str:
        if not claims.user_id:
            raise IdentityRequiredError(message)
        login = await self._login_for(claims.user_id)
        if not login:
            raise IdentityRequiredError("Twitch login not found")
        return login

    # ─── Viewer: profile ─────────────────────────────────

    async def me(self, claims: ExtensionClaims) -> MeResult:
        """Coins + inventory for the panel; also refreshes presence."""
        login = await self._login_for(claims.user_id)
        await self.inventory.touch_presence(
            claims.channel_id, claims.opaque_user_id, claims.user_id, login
        )

        allowed = known_ids()
        entries = await self.inventory.list_entries(
            claims.channel_id, claims.opaque_user_id
        )
        inventory = [
            {"id": e.item_id, "acquiredAt": int(e.acquired_at.timestamp() * 1000)}
            for e in entries
            if e.item_id in allowed
        ]

        coins = await self.currency.get_balance(login) if login else 0
        return MeResult(
            coins=coins,
            inventory=inventory,
            needs_id_share=not claims.user_id,
        )

    # ─── Viewer: buy ─────────────────────────────────────

    async def buy(self, claims: ExtensionClaims, item_id: str) -> None:
        """Spend points on an item. No event: nothing happens on stream."""
        item = get_item(item_id)
        if item is None:
            raise UnknownItemError("Unknown item")
        if item.id in GRANT_ONLY_IDS:
            raise GrantOnlyItemError("This item is not sold in the shop.")
        login = await self._require_login(claims, "Sign in to spend points")

        async with self.currency.lock(login):
            current = await self.currency.get_balance(login)
            if current < item.cost:
                raise NotEnoughPointsError("Not enough points")
            await self.currency.apply_delta(login, -item.cost, current)

            try:
                await self.inventory.add_entry(
                    claims.channel_id, claims.opaque_user_id, item.id
                )
            except Exception:
                logger.exception("shop.buy_inventory_failed", login=login, item_id=item.id)
                await self.currency.apply_delta(login, item.cost)
                raise

        logger.info("shop.bought", channel_id=claims.channel_id, login=login, item_id=item.id)

    # ─── Viewer: redeem ──────────────────────────────────

    async def redeem(
        self,
        claims: ExtensionClaims,
        item_id: str,
        target: Optional[str] = None,
        text: Optional[str] = None,
    ) -> RedeemResult:
        """Consume an owned item and ask the bridges to run its effect."""
        target = clean_target(target)
        text = clean_text(text)
        login = await self._login_for(claims.user_id)
        item = get_item(item_id)

        redemption = await self.inventory.redeem_latest(
            claims.channel_id,
            claims.opaque_user_id,
            item_id,
            user_id=claims.user_id,
            login=login,
            item_name=item.name if item else item_id,
            target=target,
            text=text,
        )
        if redemption is None:
            raise NoItemError("No such item in inventory")

        result = RedeemResult()
        viewer = Viewer(
            opaque_user_id=claims.opaque_user_id,
            user_id=claims.user_id,
            login=login,
        )

        # KC bundles pay out points; the item is already consumed either way
        grant = KC_DELTAS.get(item_id, 0)
        if grant > 0 and login:
            try:
                async with self.currency.lock(login):
                    await self.currency.apply_delta(login, grant)
                result.awarded_points = grant
                await self.inventory.record_award(redemption, grant)
            except CurrencyError as e:
                logger.error("shop.kc_grant_failed", login=login, item_id=item_id, error=str(e))

        if item_id == MYSTERY_BOX_ID:
            pool = mystery_pool()
            if pool:
                prize = self.rng.choice(pool)
                result.prize_id = prize.id
                await self.inventory.add_entry(
                    claims.channel_id, claims.opaque_user_id, prize.id
                )
                await self.publish(
                    new_event(
                        MYSTERY,
                        claims.channel_id,
                        viewer=viewer,
                        prize_id=prize.id,
                        prize_name=prize.name,
                        rarity=prize.rarity,
                    )
                )

        await self.publish(
            new_event(
                REDEEM,
                claims.channel_id,
                item_id=item_id,
                item_name=item.name if item else item_id,
                viewer=viewer,
                target=target,
                text=text,
                awarded_points=result.awarded_points,
            )
        )
        logger.info(
            "shop.redeemed",
            channel_id=claims.channel_id,
            item_id=item_id,
            viewer=viewer.label,
            awarded_points=result.awarded_points,
        )
        return result

    # ─── Viewer: sell ────────────────────────────────────

    async def sell(self, claims: ExtensionClaims, item_id: str) -> int:
        """Sell an owned item back for its cost. Returns points credited."""
        item = get_item(item_id)
        if item is None:
            raise UnknownItemError("Unknown item")
        login = await self._require_login(claims, "Share identity to sell items")

        entry = await self.inventory.find_latest_entry(
            claims.channel_id, claims.opaque_user_id, item_id
        )
        if entry is None:
            raise NoItemError("No item to sell")
        await self.inventory.delete_entry(entry)

        async with self.currency.lock(login):
            current = await self.currency.get_balance(login)
            await self.currency.apply_delta(login, item.cost, current)

        await self.publish(
            new_event(
                SELL,
                claims.channel_id,
                item_id=item.id,
                item_name=item.name,
                awarded_points=item.cost,
                viewer=Viewer(
                    opaque_user_id=claims.opaque_user_id,
                    user_id=claims.user_id,
                    login=login,
                ),
            )
        )
        return item.cost

    # ─── Admin ───────────────────────────────────────────

    async def list_redemptions(self, channel_id: str, limit: int = 50) -> list[dict]:
        limit = max(1, min(REDEMPTION_LIST_MAX, int(limit)))
        rows = []
        for r in await self.inventory.list_redemptions(channel_id, limit):
            login = r.login or await self._login_for(r.user_id)
            avatar = None
            if login and self.twitch.configured:
                try:
                    user = await self.twitch.get_user_by_login(login)
                    avatar = user.profile_image_url if user else None
                except TwitchError as e:
                    logger.debug("shop.avatar_lookup_failed", login=login, error=str(e))
            rows.append(
                {
                    "id": r.id,
                    "itemId": r.item_id,
                    "itemName": r.item_name or r.item_id,
                    "createdAt": int(r.created_at.timestamp() * 1000),
                    "refunded": r.refunded_at is not None,
                    "viewer": {
                        "login": login,
                        "userId": r.user_id,
                        "opaqueUserId": r.opaque_user_id,
                        "avatar": avatar,
                    },
                    "awardedPoints": r.awarded_points or 0,
                    "target": r.target,
                    "text": r.text,
                }
            )
        return rows

    async def refund(self, channel_id: str, redemption_id: str) -> None:
        """Give the item back and reverse any points the redemption paid."""
        r = await self.inventory.get_redemption(channel_id, redemption_id)
        if r is None:
            raise RedemptionNotFoundError("redemption not found")
        if r.refunded_at is not None:
            raise AlreadyRefundedError("redemption already refunded")

        await self.inventory.add_entry(channel_id, r.opaque_user_id, r.item_id)
        if r.login and r.awarded_points:
            async with self.currency.lock(r.login):
                await self.currency.apply_delta(r.login, -r.awarded_points)
        await self.inventory.mark_refunded(r)

        await self.publish(
            new_event(
                REFUND,
                channel_id,
                item_id=r.item_id,
                viewer=Viewer(
                    opaque_user_id=r.opaque_user_id, user_id=r.user_id, login=r.login
                ),
            )
        )

    async def grant_item(
        self, channel_id: str, item_id: str, qty: int, opaque_user_id: str
    ) -> None:
        if get_item(item_id) is None:
            raise UnknownItemError("unknown itemId")
        qty = max(1, qty)
        await self.inventory.add_entry(channel_id, opaque_user_id, item_id, qty)
        # targetOpaque lets only that viewer's panel refresh
        await self.publish(
            new_event(GRANT, channel_id, item_id=item_id, qty=qty, target_opaque=opaque_user_id)
        )

    async def grant_item_all(
        self, channel_id: str, item_id: str, qty: int, since_minutes: Optional[int]
    ) -> BulkGrantResult:
        """Grant an item to everyone who opened the panel recently."""
        if get_item(item_id) is None:
            raise UnknownItemError("unknown itemId")
        qty = max(1, qty)
        minutes = clamp_minutes(since_minutes)
        viewers = await self.inventory.active_viewers(
            channel_id, utcnow() - timedelta(minutes=minutes)
        )
        granted = await self.inventory.add_entries_for(
            channel_id, [v.opaque_user_id for v in viewers], item_id, qty
        )
        await self.publish(new_event(GRANT_ALL, channel_id, item_id=item_id, qty=qty))
        return BulkGrantResult(granted=granted, viewers=len(viewers), minutes=minutes)

    async def grant_coins(self, login: str, amount: int) -> int:
        login = login.lower()
        async with self.currency.lock(login):
            return await self.currency.apply_delta(login, amount)

    async def grant_coins_all(
        self, channel_id: str, amount: int, since_minutes: Optional[int]
    ) -> BulkGrantResult:
        minutes = clamp_minutes(since_minutes)
        viewers = await self.inventory.active_viewers(
            channel_id, utcnow() - timedelta(minutes=minutes)
        )
        granted = 0
        for v in viewers:
            # Points are keyed by login; anonymous viewers can't receive them
            if not v.login:
                continue
            async with self.currency.lock(v.login):
                await self.currency.apply_delta(v.login, amount)
            granted += 1
        return BulkGrantResult(granted=granted, viewers=len(viewers), minutes=minutes)
