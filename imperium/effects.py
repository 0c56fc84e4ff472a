"""Apply ordered effect lists to game state snapshots."""
from __future__ import annotations

import logging
import math
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, Set, Tuple

from . import economy
from .config import Settings, get_settings
from .models import (
    Effect,
    EffectType,
    EventProgress,
    EventStatus,
    GameState,
    HistoryEntry,
    PriceModifier,
    QueuedEffect,
    Rejection,
    RejectionKind,
    SenatorRecord,
)
from .senate.transitions import can_transition

logger = logging.getLogger(__name__)


class ApplyResult(NamedTuple):
    state: GameState
    applied: List[Effect]
    rejected: List[Rejection]


def _number(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


class EffectProcessor:
    """Total, side-effect free application of effects.

    ``apply`` never mutates its input and never raises for bad effects:
    anything it cannot honour exactly ends up in ``rejected``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        terminal_dispositions: Optional[Dict[str, Set[str]]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._terminal = terminal_dispositions or {}
        self._handlers: Dict[EffectType, Callable[[GameState, Effect], Optional[Rejection]]] = {
            EffectType.RESOURCE_DELTA: self._resource_delta,
            EffectType.RELATION_DELTA: self._relation_delta,
            EffectType.REPUTATION_DELTA: self._reputation_delta,
            EffectType.FACTION_RELATION_DELTA: self._faction_relation_delta,
            EffectType.MERCHANT_REPUTATION_DELTA: self._merchant_reputation_delta,
            EffectType.SUPPLY_DELTA: self._supply_delta,
            EffectType.FLAG_SET: self._flag_set,
            EffectType.FLAG_CLEAR: self._flag_clear,
            EffectType.PRICE_SHOCK: self._price_shock,
            EffectType.BEHAVIOUR_DELTA: self._behaviour_delta,
            EffectType.ATTENTION_SET: self._attention_set,
            EffectType.DISPOSITION_CHANGE: self._disposition_change,
            EffectType.EVENT_STATUS: self._event_status,
            EffectType.DISABLE_EVENT: self._disable_event,
            EffectType.ARC_ADVANCE: self._arc_advance,
            EffectType.SCHEDULE: self._schedule,
            EffectType.REPRICE: self._reprice,
            EffectType.RECORD: self._record,
        }

    @property
    def settings(self) -> Settings:
        return self._settings

    def apply(self, state: GameState, effects: Sequence[Effect]) -> ApplyResult:
        working = state.copy()
        applied: List[Effect] = []
        rejected: List[Rejection] = []
        for effect in effects:
            self._apply_one(working, effect, applied, rejected)
        for rejection in rejected:
            logger.debug("Effect %s rejected (%s): %s", rejection.effect.effect_type, rejection.kind.value, rejection.message)
        return ApplyResult(working, applied, rejected)

    def _apply_one(
        self,
        state: GameState,
        effect: Effect,
        applied: List[Effect],
        rejected: List[Rejection],
    ) -> None:
        if effect.effect_type is EffectType.ADVANCE_ROUND:
            self._advance_round(state, effect, applied, rejected)
            return
        handler = self._handlers.get(effect.effect_type)
        if handler is None:
            rejected.append(Rejection(RejectionKind.REFERENCE_ERROR, effect, "Unhandled effect type"))
            return
        try:
            rejection = handler(state, effect)
        except KeyError as exc:
            rejection = Rejection(RejectionKind.REFERENCE_ERROR, effect, f"Missing payload field {exc}")
        except (TypeError, ValueError, AttributeError) as exc:
            rejection = Rejection(RejectionKind.INVALID_VALUE, effect, f"Malformed payload: {exc}")
        if rejection is None:
            applied.append(effect)
            return
        rejected.append(rejection)
        if rejection.kind in (RejectionKind.CLAMPED_TO_ZERO, RejectionKind.CLAMPED_TO_BOUND):
            applied.append(effect)

    # Numeric deltas -------------------------------------------------

    def _clamp(
        self, effect: Effect, current: float, delta: float, bounds: Tuple[float, float]
    ) -> Tuple[float, Optional[Rejection]]:
        low, high = bounds
        target = current + delta
        if target < low or target > high:
            value = min(high, max(low, target))
            return value, Rejection(
                RejectionKind.CLAMPED_TO_BOUND,
                effect,
                f"{target:g} clamped to {value:g}",
            )
        return target, None

    def _amount(self, effect: Effect, key: str = "amount") -> Tuple[Optional[float], Optional[Rejection]]:
        amount = _number(effect.payload.get(key))
        if amount is None:
            return None, Rejection(
                RejectionKind.INVALID_VALUE, effect, f"Invalid {key} {effect.payload.get(key)!r}"
            )
        return amount, None

    def _senator(self, state: GameState, effect: Effect) -> Tuple[Optional[SenatorRecord], Optional[Rejection]]:
        senator_id = effect.payload["senator"]
        senator = state.senators.get(senator_id)
        if senator is None:
            return None, Rejection(RejectionKind.REFERENCE_ERROR, effect, f"Unknown senator {senator_id}")
        return senator, None

    def _resource_delta(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        amount, problem = self._amount(effect)
        if problem:
            return problem
        resource = effect.payload["resource"]
        if resource not in state.resources:
            return Rejection(RejectionKind.REFERENCE_ERROR, effect, f"Unknown resource {resource}")
        target = state.resources[resource] + amount
        if target < 0:
            state.resources[resource] = 0.0
            return Rejection(RejectionKind.CLAMPED_TO_ZERO, effect, f"{resource} would be {target:g}")
        state.resources[resource] = target
        return None

    def _relation_delta(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        senator, problem = self._senator(state, effect)
        if problem:
            return problem
        amount, problem = self._amount(effect)
        if problem:
            return problem
        senator.relation, clamped = self._clamp(effect, senator.relation, amount, self._settings.relation_bounds)
        return clamped

    def _reputation_delta(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        amount, problem = self._amount(effect)
        if problem:
            return problem
        state.reputation, clamped = self._clamp(effect, state.reputation, amount, self._settings.reputation_bounds)
        return clamped

    def _faction_relation_delta(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        faction = effect.payload["faction"]
        if faction not in state.factions:
            return Rejection(RejectionKind.REFERENCE_ERROR, effect, f"Unknown faction {faction}")
        amount, problem = self._amount(effect)
        if problem:
            return problem
        state.factions[faction], clamped = self._clamp(
            effect, state.factions[faction], amount, self._settings.faction_bounds
        )
        return clamped

    def _merchant_reputation_delta(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        city = effect.payload["city"]
        if city not in state.merchant_reputation:
            return Rejection(RejectionKind.REFERENCE_ERROR, effect, f"Unknown city {city}")
        amount, problem = self._amount(effect)
        if problem:
            return problem
        state.merchant_reputation[city], clamped = self._clamp(
            effect, state.merchant_reputation[city], amount, self._settings.merchant_bounds
        )
        economy.reprice_city(state, city, self._settings)
        return clamped

    def _supply_delta(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        city = effect.payload["city"]
        resource = effect.payload["resource"]
        entry = state.markets.get(city, {}).get(resource)
        if entry is None:
            return Rejection(RejectionKind.REFERENCE_ERROR, effect, f"Unknown market {city}/{resource}")
        amount, problem = self._amount(effect)
        if problem:
            return problem
        target = entry.supply + amount
        if target < 0:
            entry.supply = 0.0
            return Rejection(RejectionKind.CLAMPED_TO_ZERO, effect, f"{city} supply of {resource} would be {target:g}")
        entry.supply = target
        return None

    # Flags ----------------------------------------------------------

    def _prune_flags(self, state: GameState) -> None:
        for tag in [tag for tag in state.flags if not state.flag_active(tag)]:
            del state.flags[tag]

    def _flag_set(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        self._prune_flags(state)
        expiry = effect.payload.get("expiry")
        if expiry is None:
            state.flags[effect.payload["tag"]] = None
            return None
        rounds = _number(expiry)
        if rounds is None or rounds <= 0:
            return Rejection(RejectionKind.INVALID_VALUE, effect, f"Invalid expiry {expiry!r}")
        state.flags[effect.payload["tag"]] = state.round + int(rounds)
        return None

    def _flag_clear(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        self._prune_flags(state)
        state.flags.pop(effect.payload["tag"], None)
        return None

    # Markets --------------------------------------------------------

    def _price_shock(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        city = effect.payload["city"]
        resource = effect.payload["resource"]
        multiplier = _number(effect.payload.get("multiplier"))
        duration = _number(effect.payload.get("duration"))
        if multiplier is None or multiplier <= 0 or duration is None or duration < 1:
            return Rejection(RejectionKind.INVALID_VALUE, effect, "Price shock needs a positive multiplier and duration")
        cities = list(state.markets) if city == "*" else [city]
        targets = [c for c in cities if resource in state.markets.get(c, {})]
        if not targets:
            return Rejection(RejectionKind.REFERENCE_ERROR, effect, f"Unknown market {city}/{resource}")
        for target in targets:
            entry = state.markets[target][resource]
            entry.modifiers.append(
                PriceModifier(
                    multiplier=multiplier,
                    expires_round=state.round + int(duration),
                    source=effect.payload.get("source", ""),
                )
            )
            economy.reprice_entry(entry, state.round, state.merchant_reputation.get(target, 0.0), self._settings)
        return None

    def _reprice(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        economy.reprice(state, self._settings)
        return None

    # Senators -------------------------------------------------------

    def _behaviour_delta(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        senator, problem = self._senator(state, effect)
        if problem:
            return problem
        amount, problem = self._amount(effect)
        if problem:
            return problem
        flag = effect.payload["flag"]
        target = senator.behaviour.get(flag, 0) + int(amount)
        if target < 0:
            senator.behaviour[flag] = 0
            return Rejection(RejectionKind.CLAMPED_TO_ZERO, effect, f"{flag} would be {target}")
        senator.behaviour[flag] = target
        return None

    def _attention_set(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        senator, problem = self._senator(state, effect)
        if problem:
            return problem
        points, problem = self._amount(effect, "points")
        if problem:
            return problem
        if points < 0:
            state.attention[senator.id] = 0
            return Rejection(RejectionKind.CLAMPED_TO_ZERO, effect, f"Attention would be {points:g}")
        state.attention[senator.id] = int(points)
        return None

    def _disposition_change(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        senator, problem = self._senator(state, effect)
        if problem:
            return problem
        if senator.disposition in self._terminal.get(senator.id, set()):
            return Rejection(
                RejectionKind.INVALID_TRANSITION,
                effect,
                f"{senator.id} is settled as {senator.disposition}",
            )
        senator.disposition = effect.payload["disposition"]
        return None

    def _event_status(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        senator, problem = self._senator(state, effect)
        if problem:
            return problem
        event_id = effect.payload["event"]
        try:
            status = EventStatus(effect.payload["status"])
        except ValueError:
            return Rejection(RejectionKind.INVALID_VALUE, effect, f"Unknown status {effect.payload['status']!r}")
        if event_id in senator.disabled_events:
            return Rejection(RejectionKind.INVALID_TRANSITION, effect, f"{event_id} is disabled")
        progress = senator.events.get(event_id) or EventProgress()
        if not can_transition(progress.status, status):
            return Rejection(
                RejectionKind.INVALID_TRANSITION,
                effect,
                f"{event_id}: {progress.status.value} -> {status.value} not allowed",
            )
        progress.status = status
        if status is EventStatus.PRESENTED:
            progress.presented_round = state.round
            senator.triggered.append(event_id)
        elif status is EventStatus.RESOLVED:
            progress.resolved_round = state.round
            progress.times_resolved += 1
            progress.rearmed = False
        elif status is EventStatus.DORMANT and effect.payload.get("rearm"):
            progress.rearmed = True
        senator.events[event_id] = progress
        return None

    def _disable_event(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        senator, problem = self._senator(state, effect)
        if problem:
            return problem
        event_id = effect.payload["event"]
        if event_id not in senator.disabled_events:
            senator.disabled_events.append(event_id)
        return None

    def _arc_advance(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        senator, problem = self._senator(state, effect)
        if problem:
            return problem
        position, problem = self._amount(effect, "position")
        if problem:
            return problem
        if int(position) < senator.arc_cursor:
            return Rejection(
                RejectionKind.INVALID_TRANSITION,
                effect,
                f"Arc cursor for {senator.id} cannot move back to {int(position)}",
            )
        senator.arc_cursor = int(position)
        return None

    # Time -----------------------------------------------------------

    def _schedule(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        nested = effect.payload["effect"]
        delay = _number(effect.payload.get("delay"))
        if not isinstance(nested, Effect) or delay is None or delay < 1:
            return Rejection(RejectionKind.INVALID_VALUE, effect, "Schedule needs an effect and a delay >= 1")
        state.queued.append(QueuedEffect(due_round=state.round + int(delay), effect=nested))
        return None

    def _advance_round(
        self,
        state: GameState,
        effect: Effect,
        applied: List[Effect],
        rejected: List[Rejection],
    ) -> None:
        previous = state.season
        state.round += 1
        state.season = previous.next()
        if state.season.value == "spring":
            state.year += 1
        applied.append(effect)
        due = [item for item in state.queued if item.due_round <= state.round]
        state.queued = [item for item in state.queued if item.due_round > state.round]
        for item in due:
            self._apply_one(state, item.effect, applied, rejected)

    def _record(self, state: GameState, effect: Effect) -> Optional[Rejection]:
        state.history.append(
            HistoryEntry(
                round=state.round,
                kind=str(effect.payload.get("kind", "note")),
                details=dict(effect.payload.get("details", {})),
            )
        )
        return None


def apply_effects(state: GameState, effects: Sequence[Effect], settings: Settings | None = None) -> ApplyResult:
    """Module level shortcut for :meth:`EffectProcessor.apply`."""

    return EffectProcessor(settings).apply(state, effects)


__all__ = ["ApplyResult", "EffectProcessor", "apply_effects"]
