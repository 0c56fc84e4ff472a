"""State tables for senate events and senator dispositions."""
from __future__ import annotations

import operator
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Optional, Sequence

from ..models import EventStatus, GameState, SenatorRecord

EVENT_TRANSITIONS: Dict[EventStatus, FrozenSet[EventStatus]] = {
    EventStatus.DORMANT: frozenset({EventStatus.ELIGIBLE}),
    EventStatus.ELIGIBLE: frozenset({EventStatus.DORMANT, EventStatus.PRESENTED}),
    # Presented events fall back to dormant when their window closes unanswered.
    EventStatus.PRESENTED: frozenset({EventStatus.RESOLVED, EventStatus.DORMANT}),
    # Only a re-arm moves a resolved event.
    EventStatus.RESOLVED: frozenset({EventStatus.DORMANT}),
}

OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "lt": operator.lt,
    "lte": operator.le,
    "gt": operator.gt,
    "gte": operator.ge,
    "eq": operator.eq,
    "ne": operator.ne,
}


def can_transition(current: EventStatus, target: EventStatus) -> bool:
    return target in EVENT_TRANSITIONS[EventStatus(current)]


def compare(op: str, left: Any, right: Any) -> bool:
    """Apply a named comparison; unknown names raise ``KeyError``."""

    return OPERATORS[op](left, right)


def _check_ops(spec: Dict[str, Any], where: str) -> Dict[str, Any]:
    unknown = set(spec) - set(OPERATORS)
    if unknown:
        raise ValueError(f"Unknown comparison {sorted(unknown)} in {where}")
    return dict(spec)


@dataclass
class DispositionRule:
    """Move a senator from ``source`` to ``target`` when every bound holds."""

    source: str
    target: str
    min_round: Optional[int] = None
    max_round: Optional[int] = None
    min_relation: Optional[float] = None
    max_relation: Optional[float] = None
    behaviour: Dict[str, int] = field(default_factory=dict)
    resources: Dict[str, Dict[str, float]] = field(default_factory=dict)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "DispositionRule":
        where = f"{data.get('from')} -> {data.get('to')}"
        return DispositionRule(
            source=str(data["from"]),
            target=str(data["to"]),
            min_round=data.get("min_round"),
            max_round=data.get("max_round"),
            min_relation=data.get("min_relation"),
            max_relation=data.get("max_relation"),
            behaviour={flag: int(value) for flag, value in data.get("behaviour", {}).items()},
            resources={
                name: _check_ops(spec, where) for name, spec in data.get("resources", {}).items()
            },
        )

    def matches(self, senator: SenatorRecord, state: GameState) -> bool:
        if senator.disposition != self.source:
            return False
        if self.min_round is not None and state.round < self.min_round:
            return False
        if self.max_round is not None and state.round > self.max_round:
            return False
        if self.min_relation is not None and senator.relation < self.min_relation:
            return False
        if self.max_relation is not None and senator.relation > self.max_relation:
            return False
        for flag, minimum in self.behaviour.items():
            if senator.behaviour.get(flag, 0) < minimum:
                return False
        for resource, spec in self.resources.items():
            amount = state.resources.get(resource, 0.0)
            if not all(compare(op, amount, value) for op, value in spec.items()):
                return False
        return True


def next_disposition(
    rules: Sequence[DispositionRule], senator: SenatorRecord, state: GameState
) -> Optional[DispositionRule]:
    """First rule that fires for the senator's current disposition."""

    for rule in rules:
        if rule.matches(senator, state):
            return rule
    return None


__all__ = [
    "EVENT_TRANSITIONS",
    "OPERATORS",
    "can_transition",
    "compare",
    "DispositionRule",
    "next_disposition",
]
