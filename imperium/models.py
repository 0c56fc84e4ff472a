"""Core data models for the simulation."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Season(str, Enum):
    SPRING = "spring"
    SUMMER = "summer"
    AUTUMN = "autumn"
    WINTER = "winter"

    def next(self) -> "Season":
        order = list(Season)
        return order[(order.index(self) + 1) % len(order)]


class EventStatus(str, Enum):
    """Lifecycle of a senate event for one senator."""

    DORMANT = "dormant"
    ELIGIBLE = "eligible"
    PRESENTED = "presented"
    RESOLVED = "resolved"


class SuccessTier(str, Enum):
    UNLIKELY = "Unlikely"
    UNCERTAIN = "Uncertain"
    LIKELY = "Likely"


class RejectionKind(str, Enum):
    """Reasons an effect was altered or skipped by the processor."""

    CLAMPED_TO_ZERO = "ClampedToZero"
    CLAMPED_TO_BOUND = "ClampedToBound"
    REFERENCE_ERROR = "ReferenceError"
    INVALID_VALUE = "InvalidValue"
    INVALID_TRANSITION = "InvalidTransition"


class EffectType(str, Enum):
    """Atomic state mutations understood by the effect processor."""

    RESOURCE_DELTA = "resource_delta"
    RELATION_DELTA = "relation_delta"
    REPUTATION_DELTA = "reputation_delta"
    FACTION_RELATION_DELTA = "faction_relation_delta"
    MERCHANT_REPUTATION_DELTA = "merchant_reputation_delta"
    SUPPLY_DELTA = "supply_delta"
    FLAG_SET = "flag_set"
    FLAG_CLEAR = "flag_clear"
    PRICE_SHOCK = "price_shock"
    BEHAVIOUR_DELTA = "behaviour_delta"
    ATTENTION_SET = "attention_set"
    DISPOSITION_CHANGE = "disposition_change"
    EVENT_STATUS = "event_status"
    DISABLE_EVENT = "disable_event"
    ARC_ADVANCE = "arc_advance"
    SCHEDULE = "schedule"
    ADVANCE_ROUND = "advance_round"
    REPRICE = "reprice"
    RECORD = "record"


@dataclass
class Effect:
    """A single typed state delta. Pure data; the processor gives it meaning."""

    effect_type: EffectType
    payload: Dict[str, Any] = field(default_factory=dict)
    description: str = ""

    @staticmethod
    def resource_delta(resource: str, amount: float, description: str = "") -> "Effect":
        return Effect(EffectType.RESOURCE_DELTA, {"resource": resource, "amount": amount}, description)

    @staticmethod
    def relation_delta(senator: str, amount: float, description: str = "") -> "Effect":
        return Effect(EffectType.RELATION_DELTA, {"senator": senator, "amount": amount}, description)

    @staticmethod
    def reputation_delta(amount: float, description: str = "") -> "Effect":
        return Effect(EffectType.REPUTATION_DELTA, {"amount": amount}, description)

    @staticmethod
    def faction_relation_delta(faction: str, amount: float, description: str = "") -> "Effect":
        return Effect(
            EffectType.FACTION_RELATION_DELTA, {"faction": faction, "amount": amount}, description
        )

    @staticmethod
    def merchant_reputation_delta(city: str, amount: float, description: str = "") -> "Effect":
        return Effect(
            EffectType.MERCHANT_REPUTATION_DELTA, {"city": city, "amount": amount}, description
        )

    @staticmethod
    def supply_delta(city: str, resource: str, amount: float, description: str = "") -> "Effect":
        return Effect(
            EffectType.SUPPLY_DELTA,
            {"city": city, "resource": resource, "amount": amount},
            description,
        )

    @staticmethod
    def flag_set(tag: str, expiry: Optional[int] = None, description: str = "") -> "Effect":
        """Set a flag; ``expiry`` counts rounds from the round it is applied in."""
        return Effect(EffectType.FLAG_SET, {"tag": tag, "expiry": expiry}, description)

    @staticmethod
    def flag_clear(tag: str, description: str = "") -> "Effect":
        return Effect(EffectType.FLAG_CLEAR, {"tag": tag}, description)

    @staticmethod
    def price_shock(
        city: str,
        resource: str,
        multiplier: float,
        duration: int,
        source: str = "",
        description: str = "",
    ) -> "Effect":
        """Timed multiplicative price modifier. ``city`` may be ``*`` for every market."""
        return Effect(
            EffectType.PRICE_SHOCK,
            {
                "city": city,
                "resource": resource,
                "multiplier": multiplier,
                "duration": duration,
                "source": source,
            },
            description,
        )

    @staticmethod
    def behaviour_delta(senator: str, flag: str, amount: int, description: str = "") -> "Effect":
        return Effect(
            EffectType.BEHAVIOUR_DELTA,
            {"senator": senator, "flag": flag, "amount": amount},
            description,
        )

    @staticmethod
    def attention_set(senator: str, points: int, description: str = "") -> "Effect":
        return Effect(EffectType.ATTENTION_SET, {"senator": senator, "points": points}, description)

    @staticmethod
    def disposition_change(senator: str, disposition: str, description: str = "") -> "Effect":
        return Effect(
            EffectType.DISPOSITION_CHANGE,
            {"senator": senator, "disposition": disposition},
            description,
        )

    @staticmethod
    def event_status(
        senator: str, event_id: str, status: EventStatus, description: str = "", rearm: bool = False
    ) -> "Effect":
        payload: Dict[str, Any] = {"senator": senator, "event": event_id, "status": EventStatus(status).value}
        if rearm:
            payload["rearm"] = True
        return Effect(EffectType.EVENT_STATUS, payload, description)

    @staticmethod
    def disable_event(senator: str, event_id: str, reason: str) -> "Effect":
        return Effect(
            EffectType.DISABLE_EVENT,
            {"senator": senator, "event": event_id, "reason": reason},
            f"{event_id} disabled",
        )

    @staticmethod
    def arc_advance(senator: str, position: int, description: str = "") -> "Effect":
        return Effect(EffectType.ARC_ADVANCE, {"senator": senator, "position": position}, description)

    @staticmethod
    def schedule(effect: "Effect", delay: int, description: str = "") -> "Effect":
        """Queue ``effect`` to apply ``delay`` rounds from now."""
        return Effect(
            EffectType.SCHEDULE,
            {"effect": effect, "delay": delay},
            description or effect.description,
        )

    @staticmethod
    def advance_round() -> "Effect":
        return Effect(EffectType.ADVANCE_ROUND, {}, "The season turns")

    @staticmethod
    def reprice() -> "Effect":
        return Effect(EffectType.REPRICE, {}, "Markets settle")

    @staticmethod
    def record(kind: str, details: Dict[str, Any], description: str = "") -> "Effect":
        return Effect(EffectType.RECORD, {"kind": kind, "details": dict(details)}, description)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.effect_type.value}
        for key, value in self.payload.items():
            data[key] = value.to_dict() if isinstance(value, Effect) else copy.deepcopy(value)
        if self.description:
            data["description"] = self.description
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Effect":
        """Parse the mapping form used in data files and snapshots."""

        raw = dict(data)
        try:
            effect_type = EffectType(raw.pop("type"))
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Unknown effect definition: {data!r}") from exc
        description = str(raw.pop("description", ""))
        if effect_type is EffectType.SCHEDULE:
            raw["effect"] = Effect.from_dict(raw["effect"])
            raw["delay"] = int(raw.get("delay", 1))
        if effect_type is EffectType.FLAG_SET:
            raw.setdefault("expiry", None)
        if effect_type is EffectType.PRICE_SHOCK:
            raw.setdefault("source", "")
        return Effect(effect_type, raw, description)


@dataclass
class Rejection:
    """An effect the processor clamped or skipped, with the reason."""

    kind: RejectionKind
    effect: Effect
    message: str


@dataclass
class PriceModifier:
    multiplier: float
    expires_round: int
    source: str = ""


@dataclass
class PriceEntry:
    """Price state for one resource in one city."""

    base: float
    current: float
    supply: float = 100.0
    demand: float = 100.0
    modifiers: List[PriceModifier] = field(default_factory=list)


@dataclass
class EventProgress:
    status: EventStatus = EventStatus.DORMANT
    presented_round: Optional[int] = None
    resolved_round: Optional[int] = None
    times_resolved: int = 0
    # Set when a rearm flag reopens the event; lets an arc event recur past the cursor.
    rearmed: bool = False


@dataclass
class SenatorRecord:
    """Mutable per-senator political state."""

    id: str
    name: str
    relation: float
    disposition: str
    behaviour: Dict[str, int] = field(default_factory=dict)
    arc_cursor: int = 0
    triggered: List[str] = field(default_factory=list)
    events: Dict[str, EventProgress] = field(default_factory=dict)
    disabled_events: List[str] = field(default_factory=list)

    def progress(self, event_id: str) -> EventProgress:
        return self.events.get(event_id) or EventProgress()

    def status_of(self, event_id: str) -> EventStatus:
        return self.progress(event_id).status


@dataclass
class QueuedEffect:
    due_round: int
    effect: Effect


@dataclass
class HistoryEntry:
    round: int
    kind: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GameState:
    """Root snapshot of a game. Only the effect processor produces new ones."""

    seed: int
    round: int
    season: Season
    year: int
    resources: Dict[str, float]
    reputation: float
    senators: Dict[str, SenatorRecord] = field(default_factory=dict)
    markets: Dict[str, Dict[str, PriceEntry]] = field(default_factory=dict)
    merchant_reputation: Dict[str, float] = field(default_factory=dict)
    factions: Dict[str, float] = field(default_factory=dict)
    flags: Dict[str, Optional[int]] = field(default_factory=dict)
    attention: Dict[str, int] = field(default_factory=dict)
    queued: List[QueuedEffect] = field(default_factory=list)
    history: List[HistoryEntry] = field(default_factory=list)

    def flag_active(self, tag: str) -> bool:
        if tag not in self.flags:
            return False
        expiry = self.flags[tag]
        return expiry is None or self.round < expiry

    def active_flags(self) -> Dict[str, Optional[int]]:
        return {tag: expiry for tag, expiry in self.flags.items() if self.flag_active(tag)}

    def price(self, city: str, resource: str) -> float:
        return self.markets[city][resource].current

    def copy(self) -> "GameState":
        return copy.deepcopy(self)


@dataclass(frozen=True)
class SuccessFactors:
    """Scored odds for an envoy mission."""

    reputation_bonus: float
    relation_bonus: float
    god_bonus: float
    total_chance: float
    tier: SuccessTier


__all__ = [
    "Season",
    "EventStatus",
    "SuccessTier",
    "RejectionKind",
    "EffectType",
    "Effect",
    "Rejection",
    "PriceModifier",
    "PriceEntry",
    "EventProgress",
    "SenatorRecord",
    "QueuedEffect",
    "HistoryEntry",
    "GameState",
    "SuccessFactors",
]
