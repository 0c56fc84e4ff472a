"""Random economic events that shock city prices."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import Settings
from .economy import EconomyConfig
from .models import Effect, GameState, Season
from .rng import DeterministicRNG

logger = logging.getLogger(__name__)


@dataclass
class EconomicEvent:
    id: str
    name: str
    description: str
    probability: float
    duration: int
    category: str = "supply_shock"
    season: Optional[Season] = None
    min_round: int = 1
    price_modifiers: Dict[str, float] = field(default_factory=dict)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "EconomicEvent":
        conditions = data.get("conditions", {})
        season = conditions.get("season")
        return EconomicEvent(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            description=str(data.get("description", "")),
            probability=float(data.get("probability", 0.0)),
            duration=int(data.get("duration", 1)),
            category=str(data.get("category", "supply_shock")),
            season=Season(season) if season else None,
            min_round=int(conditions.get("min_round", 1)),
            price_modifiers={key: float(value) for key, value in data.get("price_modifiers", {}).items()},
        )

    @property
    def active_flag(self) -> str:
        return f"econ:{self.id}"

    @property
    def cooldown_flag(self) -> str:
        return f"econ_cooldown:{self.id}"

    def can_fire(self, state: GameState) -> bool:
        if state.flag_active(self.cooldown_flag):
            return False
        if state.round < self.min_round:
            return False
        return self.season is None or state.season == self.season


class EconomicEventDeck:
    """Decides when economic events happen and turns them into effects."""

    def __init__(self, events: List[EconomicEvent], settings: Settings) -> None:
        self._events = list(events)
        self._settings = settings

    @classmethod
    def from_config(cls, economy: EconomyConfig, settings: Settings) -> "EconomicEventDeck":
        return cls([EconomicEvent.from_dict(entry) for entry in economy.events], settings)

    @property
    def events(self) -> List[EconomicEvent]:
        return list(self._events)

    def get(self, event_id: str) -> EconomicEvent:
        for event in self._events:
            if event.id == event_id:
                return event
        raise KeyError(event_id)

    def trigger(self, event: EconomicEvent) -> List[Effect]:
        """Effects for ``event`` firing now, regardless of its odds."""

        effects = [
            Effect.price_shock("*", resource, multiplier, event.duration, source=event.id)
            for resource, multiplier in event.price_modifiers.items()
        ]
        effects.append(Effect.flag_set(event.active_flag, event.duration, event.name))
        effects.append(
            Effect.flag_set(event.cooldown_flag, event.duration + self._settings.event_cooldown_rounds)
        )
        effects.append(
            Effect.record(
                "economic_event",
                {"event": event.id, "category": event.category, "duration": event.duration},
                event.description,
            )
        )
        return effects

    def roll(self, state: GameState, rng: DeterministicRNG) -> List[Effect]:
        effects: List[Effect] = []
        for event in self._events:
            if not event.can_fire(state):
                continue
            if rng.random() < event.probability:
                logger.info("Economic event %s fires in round %d", event.id, state.round)
                effects.extend(self.trigger(event))
        return effects


__all__ = ["EconomicEvent", "EconomicEventDeck"]
