"""Senator roster and senate event definitions."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set

import yaml

from ..models import Effect, EffectType, GameState, SenatorRecord
from .transitions import DispositionRule

logger = logging.getLogger(__name__)

_DATA_PATH = Path(__file__).resolve().parent.parent / "data"

_SENATOR_SCOPED = {
    EffectType.RELATION_DELTA,
    EffectType.BEHAVIOUR_DELTA,
    EffectType.ATTENTION_SET,
    EffectType.DISPOSITION_CHANGE,
    EffectType.EVENT_STATUS,
    EffectType.DISABLE_EVENT,
    EffectType.ARC_ADVANCE,
}

Predicate = Callable[[GameState, SenatorRecord], bool]


def _scope(effect: Effect, senator: str) -> Effect:
    if effect.effect_type in _SENATOR_SCOPED:
        effect.payload.setdefault("senator", senator)
    elif effect.effect_type is EffectType.SCHEDULE:
        _scope(effect.payload["effect"], senator)
    return effect


def parse_effects(entries: Optional[Iterable[Dict[str, Any]]], senator: str) -> List[Effect]:
    """Parse effect mappings, defaulting senator targets to ``senator``."""

    return [_scope(Effect.from_dict(entry), senator) for entry in entries or []]


@dataclass
class ChanceSpec:
    base: float
    relation_weight: float = 0.0
    reputation_weight: float = 0.0


@dataclass
class Choice:
    text: str
    effects: List[Effect] = field(default_factory=list)
    requirements: Dict[str, Any] = field(default_factory=dict)
    chance: Optional[ChanceSpec] = None
    failure_effects: List[Effect] = field(default_factory=list)
    branch: Optional[str] = None


def _mapping(data: Dict[str, Any], key: str, owner: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"{key} of {owner} must be a mapping, got {value!r}")
    return dict(value)


@dataclass
class SenateEvent:
    """A narrative node offered to the player through one senator."""

    id: str
    senator: str
    title: str
    description: str
    choices: List[Choice]
    urgent: bool = False
    valid_states: List[str] = field(default_factory=list)
    min_round: int = 1
    max_round: Optional[int] = None
    conditions: Dict[str, Any] = field(default_factory=dict)
    predicate: Optional[Predicate] = None
    cooldown: int = 0
    rearm_flag: Optional[str] = None

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "SenateEvent":
        senator = str(data["senator"])
        choices = []
        for entry in data.get("choices", []):
            chance = entry.get("chance")
            choices.append(
                Choice(
                    text=str(entry["text"]),
                    effects=parse_effects(entry.get("effects"), senator),
                    requirements=_mapping(entry, "requirements", str(data["id"])),
                    chance=ChanceSpec(**chance) if chance else None,
                    failure_effects=parse_effects(entry.get("failure_effects"), senator),
                    branch=entry.get("branch"),
                )
            )
        if not choices:
            raise ValueError(f"Event {data['id']} has no choices")
        max_round = data.get("max_round")
        if max_round is not None:
            max_round = int(max_round)
        return SenateEvent(
            id=str(data["id"]),
            senator=senator,
            title=str(data.get("title", data["id"])),
            description=str(data.get("description", "")),
            choices=choices,
            urgent=bool(data.get("urgent", False)),
            valid_states=list(data.get("valid_states", [])),
            min_round=int(data.get("min_round", 1)),
            max_round=max_round,
            conditions=_mapping(data, "conditions", str(data["id"])),
            cooldown=int(data.get("cooldown", 0)),
            rearm_flag=data.get("rearm_flag"),
        )


@dataclass
class AttentionTier:
    max: int
    label: str
    drift: int
    event_chance: float = 1.0


@dataclass
class SenatorProfile:
    id: str
    name: str
    relation: float
    disposition: str
    arc: List[str] = field(default_factory=list)
    transitions: List[DispositionRule] = field(default_factory=list)
    terminal: Set[str] = field(default_factory=set)
    lethal: Set[str] = field(default_factory=set)

    @staticmethod
    def from_dict(senator_id: str, data: Dict[str, Any]) -> "SenatorProfile":
        return SenatorProfile(
            id=senator_id,
            name=str(data.get("name", senator_id)),
            relation=float(data.get("relation", 0)),
            disposition=str(data["disposition"]),
            arc=list(data.get("arc", [])),
            transitions=[DispositionRule.from_dict(rule) for rule in data.get("transitions", [])],
            terminal=set(data.get("terminal", [])),
            lethal=set(data.get("lethal", [])),
        )


_DEFAULT_TIERS = [AttentionTier(max=100, label="focused", drift=0, event_chance=1.0)]


class SenateCatalog:
    """Validated, ordered view of the roster and its events."""

    def __init__(
        self,
        profiles: Sequence[SenatorProfile],
        events: Sequence[SenateEvent],
        attention_tiers: Sequence[AttentionTier] = (),
        default_attention: int = 20,
    ) -> None:
        self._profiles: Dict[str, SenatorProfile] = {profile.id: profile for profile in profiles}
        self._events: Dict[str, SenateEvent] = {}
        for event in events:
            if event.id in self._events:
                raise ValueError(f"Duplicate senate event {event.id}")
            if event.senator not in self._profiles:
                raise ValueError(f"Event {event.id} belongs to unknown senator {event.senator}")
            self._events[event.id] = event
        for profile in self._profiles.values():
            for event_id in profile.arc:
                event = self._events.get(event_id)
                if event is None or event.senator != profile.id:
                    raise ValueError(f"Arc of {profile.id} references unknown event {event_id}")
        for event in self._events.values():
            for choice in event.choices:
                if choice.branch and self.arc_index(event.senator, choice.branch) is None:
                    raise ValueError(f"Choice in {event.id} branches to {choice.branch}, not in the arc")
        self._tiers = sorted(attention_tiers, key=lambda tier: tier.max) or list(_DEFAULT_TIERS)
        self.default_attention = default_attention

    @classmethod
    def load(cls, senators_path: Path | None = None, events_path: Path | None = None) -> "SenateCatalog":
        with (senators_path or _DATA_PATH / "senators.yaml").open("r", encoding="utf-8") as fh:
            roster = yaml.safe_load(fh) or {}
        with (events_path or _DATA_PATH / "senate_events.yaml").open("r", encoding="utf-8") as fh:
            event_data = yaml.safe_load(fh) or {}
        attention = roster.get("attention", {})
        catalog = cls(
            profiles=[SenatorProfile.from_dict(key, value) for key, value in roster.get("senators", {}).items()],
            events=[SenateEvent.from_dict(entry) for entry in event_data.get("events", [])],
            attention_tiers=[AttentionTier(**tier) for tier in attention.get("tiers", [])],
            default_attention=int(attention.get("default", 20)),
        )
        logger.debug("Loaded %d senators and %d senate events", len(catalog.roster()), len(catalog.events()))
        return catalog

    def roster(self) -> List[str]:
        return list(self._profiles)

    def profile(self, senator_id: str) -> SenatorProfile:
        return self._profiles[senator_id]

    def has_senator(self, senator_id: str) -> bool:
        return senator_id in self._profiles

    def event(self, event_id: str) -> SenateEvent:
        return self._events[event_id]

    def get_event(self, event_id: str) -> Optional[SenateEvent]:
        return self._events.get(event_id)

    def events(self) -> List[SenateEvent]:
        return list(self._events.values())

    def events_for(self, senator_id: str) -> List[SenateEvent]:
        return [event for event in self._events.values() if event.senator == senator_id]

    def arc_index(self, senator_id: str, event_id: str) -> Optional[int]:
        arc = self._profiles[senator_id].arc
        return arc.index(event_id) if event_id in arc else None

    def attention_tier(self, points: int) -> AttentionTier:
        for tier in self._tiers:
            if points <= tier.max:
                return tier
        return self._tiers[-1]

    def terminal_dispositions(self) -> Dict[str, Set[str]]:
        return {senator_id: set(profile.terminal) for senator_id, profile in self._profiles.items()}

    def new_senators(self) -> Dict[str, SenatorRecord]:
        return {
            profile.id: SenatorRecord(
                id=profile.id,
                name=profile.name,
                relation=profile.relation,
                disposition=profile.disposition,
            )
            for profile in self._profiles.values()
        }


__all__ = [
    "parse_effects",
    "ChanceSpec",
    "Choice",
    "SenateEvent",
    "AttentionTier",
    "SenatorProfile",
    "SenateCatalog",
]
