"""Eligibility checks and choice resolution for senate events.

Nothing here mutates state: evaluation returns effects for the caller to
apply through the effect processor.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..causal import bernoulli, shifted_probability
from ..errors import IneligibleEventError
from ..models import Effect, EventStatus, GameState, SenatorRecord
from ..rng import DeterministicRNG
from .catalog import ChanceSpec, Choice, SenateCatalog, SenateEvent
from .transitions import compare

logger = logging.getLogger(__name__)


def _check_ops(event_id: str, label: str, spec: Any, value: Any) -> bool:
    if not isinstance(spec, dict) or not spec:
        raise IneligibleEventError(event_id, f"condition {label} must map operators to values")
    for op, target in spec.items():
        try:
            if not compare(op, value, target):
                return False
        except KeyError as exc:
            raise IneligibleEventError(event_id, f"unknown operator {op} in {label}") from exc
        except TypeError as exc:
            raise IneligibleEventError(event_id, f"cannot compare {label}: {exc}") from exc
    return True


def check_conditions(
    conditions: Dict[str, Any], state: GameState, senator: SenatorRecord, event_id: str
) -> bool:
    """Evaluate a declarative condition block.

    Raises :class:`IneligibleEventError` when the block itself is malformed.
    """

    if not isinstance(conditions, dict):
        raise IneligibleEventError(event_id, "conditions must be a mapping")
    for key, spec in conditions.items():
        if key == "relation":
            ok = _check_ops(event_id, key, spec, senator.relation)
        elif key == "reputation":
            ok = _check_ops(event_id, key, spec, state.reputation)
        elif key == "round":
            ok = _check_ops(event_id, key, spec, state.round)
        elif key in ("resources", "behaviour", "factions", "senators"):
            if not isinstance(spec, dict):
                raise IneligibleEventError(event_id, f"condition {key} must be a mapping")
            ok = True
            for name, ops in spec.items():
                if key == "resources":
                    value = state.resources.get(name, 0.0)
                elif key == "behaviour":
                    value = senator.behaviour.get(name, 0)
                elif key == "factions":
                    value = state.factions.get(name, 0.0)
                else:
                    other = state.senators.get(name)
                    if other is None:
                        raise IneligibleEventError(event_id, f"unknown senator {name}")
                    value = other.relation
                if not _check_ops(event_id, f"{key}.{name}", ops, value):
                    ok = False
                    break
        elif key in ("flags_all", "flags_none"):
            if not isinstance(spec, (list, tuple)) or not all(isinstance(tag, str) for tag in spec):
                raise IneligibleEventError(event_id, f"condition {key} must be a list of flag names")
            if key == "flags_all":
                ok = all(state.flag_active(tag) for tag in spec)
            else:
                ok = not any(state.flag_active(tag) for tag in spec)
        else:
            raise IneligibleEventError(event_id, f"unknown condition {key}")
        if not ok:
            return False
    return True


@dataclass
class ChoiceResolution:
    event_id: str
    senator: str
    choice_index: int
    effects: List[Effect] = field(default_factory=list)
    probability: Optional[float] = None
    roll: Optional[float] = None
    succeeded: Optional[bool] = None


class EventEvaluator:
    """Evaluates eligibility and resolves player choices."""

    def __init__(self, catalog: SenateCatalog) -> None:
        self._catalog = catalog

    @staticmethod
    def past_window(event: SenateEvent, state: GameState) -> bool:
        """Whether the round is beyond the event's last round."""

        if event.max_round is None:
            return False
        if isinstance(event.max_round, bool) or not isinstance(event.max_round, int):
            raise IneligibleEventError(event.id, f"max_round must be a whole number, got {event.max_round!r}")
        return state.round > event.max_round

    def is_eligible(self, event: SenateEvent, state: GameState, senator: SenatorRecord) -> bool:
        """Raises :class:`IneligibleEventError` for any malformed event data."""

        try:
            return self._eligible(event, state, senator)
        except (TypeError, ValueError) as exc:
            raise IneligibleEventError(event.id, repr(exc)) from exc

    def _eligible(self, event: SenateEvent, state: GameState, senator: SenatorRecord) -> bool:
        if event.id in senator.disabled_events:
            return False
        if state.round < event.min_round:
            return False
        if self.past_window(event, state):
            return False
        if event.valid_states and senator.disposition not in event.valid_states:
            return False
        arc_position = self._catalog.arc_index(senator.id, event.id)
        off_cursor = arc_position is not None and senator.arc_cursor != arc_position
        if off_cursor and not senator.progress(event.id).rearmed:
            return False
        if not check_conditions(event.conditions, state, senator, event.id):
            return False
        if event.predicate is not None:
            try:
                return bool(event.predicate(state, senator))
            except Exception as exc:
                raise IneligibleEventError(event.id, repr(exc)) from exc
        return True

    def choice_available(self, event: SenateEvent, choice: Choice, state: GameState, senator: SenatorRecord) -> bool:
        try:
            return check_conditions(choice.requirements, state, senator, event.id)
        except IneligibleEventError:
            logger.warning("Malformed requirements on a choice of %s", event.id, exc_info=True)
            return False

    def available_choices(self, event: SenateEvent, state: GameState, senator: SenatorRecord) -> List[int]:
        return [
            index
            for index, choice in enumerate(event.choices)
            if self.choice_available(event, choice, state, senator)
        ]

    @staticmethod
    def choice_probability(chance: ChanceSpec, state: GameState, senator: SenatorRecord) -> float:
        return shifted_probability(
            chance.base,
            [senator.relation * chance.relation_weight, state.reputation * chance.reputation_weight],
        )

    def outcome_effects(
        self,
        event: SenateEvent,
        choice_index: int,
        senator: SenatorRecord,
        succeeded: bool = True,
    ) -> List[Effect]:
        """Effects of one branch of a choice, including event bookkeeping."""

        choice = event.choices[choice_index]
        chosen = choice.effects if succeeded or choice.chance is None else choice.failure_effects
        effects = copy.deepcopy(list(chosen))
        effects.append(Effect.event_status(senator.id, event.id, EventStatus.RESOLVED))
        arc_position = self._catalog.arc_index(senator.id, event.id)
        target = None
        if choice.branch:
            target = self._catalog.arc_index(senator.id, choice.branch)
        elif arc_position is not None:
            target = arc_position + 1
        # A re-armed beat replayed behind the cursor leaves the arc where it is.
        if target is not None and target > senator.arc_cursor:
            effects.append(Effect.arc_advance(senator.id, target))
        effects.append(
            Effect.record(
                "choice",
                {
                    "senator": senator.id,
                    "event": event.id,
                    "choice": choice_index,
                    "succeeded": succeeded,
                },
                f"{event.title}: {choice.text}",
            )
        )
        return effects

    def resolve_choice(
        self,
        event: SenateEvent,
        choice_index: int,
        state: GameState,
        senator: SenatorRecord,
        rng: DeterministicRNG,
    ) -> ChoiceResolution:
        choice = event.choices[choice_index]
        resolution = ChoiceResolution(event_id=event.id, senator=senator.id, choice_index=choice_index)
        succeeded = True
        if choice.chance is not None:
            resolution.probability = self.choice_probability(choice.chance, state, senator)
            resolution.roll, succeeded = bernoulli(resolution.probability, rng)
            resolution.succeeded = succeeded
        resolution.effects = self.outcome_effects(event, choice_index, senator, succeeded)
        return resolution


__all__ = ["check_conditions", "ChoiceResolution", "EventEvaluator"]
