"""Effect registry — item id → effect implementation + hold duration.

Learn: An effect is anything the stream does when an item is redeemed:
zoom the webcam, play a sound, time someone out. The queue only needs two
things from it, a coroutine to call and how long to keep the queue
occupied afterwards (hold_ms), so every effect implements this small
interface and the registry is a plain mapping.

    effect = registry.lookup("dramatic_zoom")
    if effect is None:  # unknown item: warn and skip, never crash
        ...

Unknown item ids are a normal condition (the EBS catalog can be ahead of
the bridge), so lookup() returns None instead of raising.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional

from mxeaez.events import Event, Viewer


@dataclass(frozen=True)
class EffectContext:
    """What a handler gets: who redeemed what, plus optional target/text."""

    item_id: str
    viewer: Viewer
    target: Optional[str] = None
    text: Optional[str] = None
    at: Optional[int] = None

    @classmethod
    def from_event(cls, event: Event) -> "EffectContext":
        return cls(
            item_id=event.item_id or "",
            viewer=event.viewer or Viewer(),
            target=event.target,
            text=event.text,
            at=event.at,
        )


class Effect(ABC):
    """Abstract base for stream effects.

    Learn: apply() may return as soon as it has *scheduled* its work
    (e.g. "mute now, unmute in 10s"). hold_ms is what keeps the next
    effect from starting mid-transition.
    """

    def __init__(self, item_id: str, hold_ms: int = 0):
        if hold_ms < 0:
            raise ValueError(f"hold_ms must be >= 0 (got {hold_ms} for {item_id})")
        self.item_id = item_id
        self.hold_ms = hold_ms

    @abstractmethod
    async def apply(self, ctx: EffectContext) -> None:
        """Run the effect for one redemption."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.item_id!r}, hold_ms={self.hold_ms})"


class EffectRegistry:
    """Static, process-wide mapping of item ids to effects."""

    def __init__(self, effects: Iterable[Effect] = ()):
        self._effects: dict[str, Effect] = {}
        for effect in effects:
            self.register(effect)

    def register(self, effect: Effect) -> None:
        """Add an effect. Each item id is declared exactly once."""
        if effect.item_id in self._effects:
            raise ValueError(f"Effect already registered for '{effect.item_id}'")
        self._effects[effect.item_id] = effect

    def lookup(self, item_id: Optional[str]) -> Optional[Effect]:
        if not item_id:
            return None
        return self._effects.get(item_id)

    def hold_ms(self, item_id: str) -> int:
        effect = self._effects.get(item_id)
        return effect.hold_ms if effect else 0

    def item_ids(self) -> list[str]:
        return sorted(self._effects)

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._effects

    def __len__(self) -> int:
        return len(self._effects)
