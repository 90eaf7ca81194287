"""Shop catalog — static item definitions.

Learn: The catalog is configuration, not data. Items are sold in the panel
for channel points; grant-only items (KC point bundles, mystery box) can
only reach an inventory through an admin grant or a mystery box roll.
"""

from dataclasses import asdict, dataclass
from typing import Optional


@dataclass(frozen=True)
class CatalogItem:
    id: str
    name: str
    description: str
    cost: int
    rarity: str
    icon_url: str = ""

    def to_dict(self) -> dict:
        data = asdict(self)
        data["iconUrl"] = data.pop("icon_url")
        return data


ITEMS: tuple[CatalogItem, ...] = (
    # ─── Common ───────────────────────────────────────────
    CatalogItem("dramatic_zoom", "Dramatic Zoom", "Dramatically zoom in the webcam for 5 seconds.", 1000, "Common", "https://i.imgur.com/5oc1Sy1.png"),
    CatalogItem("spongebob_stfu", "SpongeBob STFU", "Play the SpongeBob STFU audio.", 1000, "Common", "https://i.imgur.com/2RAqHrG.png"),
    CatalogItem("titanic_flute", "Titanic Flute", "Play the Titanic Flute audio.", 1000, "Common", "https://i.imgur.com/kDPfkPc.png"),
    CatalogItem("kc_1000", "1000 KC Points", "Redeem 1000 KC Points.", 1000, "Common", "https://i.imgur.com/363mGPN.png"),
    CatalogItem("fake_dc", "Fake DC", 'Show the "Connection Lost" overlay for 5 seconds.', 1000, "Common", "https://i.imgur.com/03Tb4wv.png"),
    # ─── Rare ─────────────────────────────────────────────
    CatalogItem("kc_5000", "5000 KC Points", "Redeem 5000 KC Points.", 5000, "Rare", "https://i.imgur.com/AScnziL.png"),
    CatalogItem("tts_message", "TTS Message", "Send a TTS message.", 5000, "Rare", "https://i.imgur.com/jt4H56w.png"),
    CatalogItem("voice_changer", "Voice Changer", "Enable random voice changer for 5 seconds.", 5000, "Rare", "https://i.imgur.com/FeIqjaU.png"),
    CatalogItem("camera_flip", "Camera Flip", "Flip webcam upside down for 5 seconds.", 5000, "Rare", "https://i.imgur.com/WUWfTq9.png"),
    CatalogItem("tiny_cam", "Tiny Cam", "Shrink webcam for 5 seconds.", 5000, "Rare", "https://i.imgur.com/nITuUhi.png"),
    # ─── Unique ───────────────────────────────────────────
    CatalogItem("timeout_anyone", "Timeout Anyone", "Time out anybody in the chat for 5 minutes.", 25000, "Unique", "https://i.imgur.com/rqdYjzN.png"),
    CatalogItem("kc_25000", "25000 KC Points", "Redeem 25000 KC points.", 25000, "Unique", "https://i.imgur.com/ebJ8w4Q.png"),
    CatalogItem("mute_streamer", "Mute", "Force mute mic for 10 seconds.", 25000, "Unique", "https://i.imgur.com/RchSsRd.png"),
    CatalogItem("mystery_box", "Mystery Box", "Could contain anything! It could even be a mystery box!", 2500, "Unique", "https://i.imgur.com/N1ES3oc.png"),
    # ─── Legendary ────────────────────────────────────────
    CatalogItem("kc_50000", "50000 KC Points", "Redeem 50000 KC Points.", 50000, "Legendary", "https://i.imgur.com/z4w8bxa.png"),
    CatalogItem("vip_badge", "VIP", "Become a VIP in the chat.", 1000000, "Legendary", "https://i.imgur.com/zRnirbX.png"),
    CatalogItem("carry_now", "Carry Now", "You will be the next one to go on a Fang Kit Carry.", 1000000, "Legendary", "https://i.imgur.com/5QSLc0d.png"),
    CatalogItem("game_master", "Game Master", "Select an activity I have to do for 30 minutes.", 1000000, "Legendary", "https://i.imgur.com/cBPQ4vP.png"),
    CatalogItem("equipment_master", "Equipment Master", "Swap out any single piece of equipment with your choice for a raid.", 1000000, "Legendary", "https://i.imgur.com/QioD5ut.png"),
)

GRANT_ONLY_IDS = frozenset({"kc_1000", "kc_5000", "kc_25000", "kc_50000", "mystery_box"})

# Points credited to the viewer when a KC bundle is redeemed
KC_DELTAS: dict[str, int] = {
    "kc_1000": 1000,
    "kc_5000": 5000,
    "kc_25000": 25000,
    "kc_50000": 50000,
}

MYSTERY_BOX_ID = "mystery_box"

_BY_ID = {item.id: item for item in ITEMS}


def get_item(item_id: str) -> Optional[CatalogItem]:
    return _BY_ID.get(item_id)


def known_ids() -> frozenset[str]:
    return frozenset(_BY_ID)


def sellable_items() -> list[CatalogItem]:
    """Items the panel offers for purchase."""
    return [item for item in ITEMS if item.id not in GRANT_ONLY_IDS]


def mystery_pool() -> list[CatalogItem]:
    """Prizes a mystery box can roll (anything but another box)."""
    return [item for item in ITEMS if item.id != MYSTERY_BOX_ID]
