"""Per-round senate processing: attention drift, dispositions and events."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..config import Settings
from ..effects import ApplyResult, EffectProcessor
from ..errors import IneligibleEventError
from ..models import Effect, EventStatus, GameState, Rejection
from ..rng import DeterministicRNG
from .catalog import SenateCatalog, SenateEvent
from .evaluator import EventEvaluator
from .transitions import next_disposition

logger = logging.getLogger(__name__)

GAME_OVER_FLAG = "game_over"


@dataclass
class SenateRoundResult:
    state: GameState
    applied: List[Effect] = field(default_factory=list)
    rejected: List[Rejection] = field(default_factory=list)
    presented: List[Tuple[str, str]] = field(default_factory=list)
    disabled: List[str] = field(default_factory=list)


class SenateEngine:
    """Drives every senator's state machine forward by one round."""

    def __init__(
        self,
        catalog: SenateCatalog,
        processor: EffectProcessor,
        settings: Settings,
    ) -> None:
        self._catalog = catalog
        self._processor = processor
        self._settings = settings
        self._evaluator = EventEvaluator(catalog)

    @property
    def evaluator(self) -> EventEvaluator:
        return self._evaluator

    def in_grace_period(self, state: GameState) -> bool:
        return state.round <= self._settings.grace_period_rounds

    def run_round(self, state: GameState, rng: DeterministicRNG) -> SenateRoundResult:
        result = SenateRoundResult(state=state)
        self._step(result, self.drift_effects(result.state))
        if not self.in_grace_period(result.state):
            self._step(result, self.disposition_effects(result.state))
        self._step(result, self.refresh_effects(result.state, result.disabled))
        presentation, result.presented = self.presentation_effects(result.state, rng)
        self._step(result, presentation)
        return result

    def _step(self, result: SenateRoundResult, effects: List[Effect]) -> None:
        if not effects:
            return
        outcome: ApplyResult = self._processor.apply(result.state, effects)
        result.state = outcome.state
        result.applied.extend(outcome.applied)
        result.rejected.extend(outcome.rejected)

    def drift_effects(self, state: GameState) -> List[Effect]:
        effects: List[Effect] = []
        grace = self.in_grace_period(state)
        for senator_id in self._catalog.roster():
            senator = state.senators.get(senator_id)
            if senator is None or senator.disposition in self._catalog.profile(senator_id).terminal:
                continue
            points = state.attention.get(senator_id, self._catalog.default_attention)
            tier = self._catalog.attention_tier(points)
            # int() truncates toward zero, so halving -1 gives 0.
            drift = int(tier.drift / 2) if grace else tier.drift
            if drift:
                effects.append(Effect.relation_delta(senator_id, drift, f"{tier.label} attention"))
        return effects

    def disposition_effects(self, state: GameState) -> List[Effect]:
        effects: List[Effect] = []
        for senator_id in self._catalog.roster():
            senator = state.senators.get(senator_id)
            profile = self._catalog.profile(senator_id)
            if senator is None or senator.disposition in profile.terminal:
                continue
            rule = next_disposition(profile.transitions, senator, state)
            if rule is None:
                continue
            effects.append(Effect.disposition_change(senator_id, rule.target))
            effects.append(
                Effect.record(
                    "disposition",
                    {"senator": senator_id, "from": rule.source, "to": rule.target},
                    f"{senator.name} is now {rule.target.replace('_', ' ')}",
                )
            )
            if rule.target in profile.lethal:
                logger.info("Senator %s reached lethal disposition %s", senator_id, rule.target)
                effects.append(Effect.flag_set(GAME_OVER_FLAG))
                effects.append(Effect.flag_set(f"fate:{senator_id}:{rule.target}"))
        return effects

    def refresh_effects(self, state: GameState, disabled: Optional[List[str]] = None) -> List[Effect]:
        """Status moves for every event, re-arms and lapsed arc beats."""

        if disabled is None:
            disabled = []
        effects: List[Effect] = []
        for event in self._catalog.events():
            senator = state.senators.get(event.senator)
            if senator is None or event.id in senator.disabled_events:
                continue
            progress = senator.progress(event.id)
            status = progress.status
            if status is EventStatus.RESOLVED:
                if event.rearm_flag and state.flag_active(event.rearm_flag):
                    effects.append(Effect.event_status(senator.id, event.id, EventStatus.DORMANT, "re-armed", rearm=True))
                    effects.append(Effect.flag_clear(event.rearm_flag))
                elif (
                    event.cooldown > 0
                    and progress.resolved_round is not None
                    and state.round - progress.resolved_round >= event.cooldown
                ):
                    effects.append(Effect.event_status(senator.id, event.id, EventStatus.DORMANT, "cooldown over"))
                continue
            try:
                if status is EventStatus.PRESENTED:
                    if self._evaluator.past_window(event, state):
                        effects.append(Effect.event_status(senator.id, event.id, EventStatus.DORMANT, "lapsed"))
                    continue
                eligible = self._evaluator.is_eligible(event, state, senator)
            except IneligibleEventError as exc:
                logger.error("Disabling senate event %s: %s", event.id, exc.reason)
                effects.append(Effect.disable_event(senator.id, event.id, exc.reason))
                disabled.append(event.id)
                continue
            if eligible and status is EventStatus.DORMANT:
                effects.append(Effect.event_status(senator.id, event.id, EventStatus.ELIGIBLE))
            elif not eligible and status is EventStatus.ELIGIBLE:
                effects.append(Effect.event_status(senator.id, event.id, EventStatus.DORMANT))
        effects.extend(self._lapsed_arc_effects(state, disabled))
        return effects

    def _lapsed_arc_effects(self, state: GameState, disabled: List[str]) -> List[Effect]:
        effects: List[Effect] = []
        for senator_id in self._catalog.roster():
            senator = state.senators.get(senator_id)
            arc = self._catalog.profile(senator_id).arc
            if senator is None or senator.arc_cursor >= len(arc):
                continue
            event = self._catalog.event(arc[senator.arc_cursor])
            dead = event.id in senator.disabled_events or event.id in disabled
            if not dead and senator.status_of(event.id) in (EventStatus.DORMANT, EventStatus.ELIGIBLE):
                try:
                    dead = self._evaluator.past_window(event, state)
                except IneligibleEventError:
                    dead = True
            if dead:
                effects.append(Effect.arc_advance(senator_id, senator.arc_cursor + 1, f"{event.id} skipped"))
        return effects

    def _priority(self, event: SenateEvent, insertion: int) -> Tuple[int, float, int, int]:
        arc_position = self._catalog.arc_index(event.senator, event.id)
        return (
            0 if event.urgent else 1,
            float(arc_position) if arc_position is not None else float("inf"),
            self._catalog.roster().index(event.senator),
            insertion,
        )

    def presentation_effects(
        self, state: GameState, rng: DeterministicRNG
    ) -> Tuple[List[Effect], List[Tuple[str, str]]]:
        """Choose which eligible events reach the player this round."""

        candidates = []
        for insertion, event in enumerate(self._catalog.events()):
            senator = state.senators.get(event.senator)
            if senator is not None and senator.status_of(event.id) is EventStatus.ELIGIBLE:
                candidates.append((self._priority(event, insertion), event))
        candidates.sort(key=lambda item: item[0])

        busy = {
            senator.id
            for senator in state.senators.values()
            if any(
                progress.status is EventStatus.PRESENTED and event_id not in senator.disabled_events
                for event_id, progress in senator.events.items()
            )
        }
        considered = set()
        effects: List[Effect] = []
        presented: List[Tuple[str, str]] = []
        for _, event in candidates:
            if len(presented) >= self._settings.max_events_per_round:
                break
            if event.senator in busy or event.senator in considered:
                continue
            considered.add(event.senator)
            points = state.attention.get(event.senator, self._catalog.default_attention)
            chance = self._catalog.attention_tier(points).event_chance
            if rng.random() >= chance:
                continue
            effects.append(Effect.event_status(event.senator, event.id, EventStatus.PRESENTED))
            effects.append(
                Effect.record("presented", {"senator": event.senator, "event": event.id}, event.title)
            )
            presented.append((event.senator, event.id))
        return effects, presented

    def pending(self, state: GameState) -> List[SenateEvent]:
        """Events currently waiting for a player decision."""

        return [
            event
            for event in self._catalog.events()
            if event.senator in state.senators
            and state.senators[event.senator].status_of(event.id) is EventStatus.PRESENTED
            and event.id not in state.senators[event.senator].disabled_events
        ]


__all__ = ["GAME_OVER_FLAG", "SenateRoundResult", "SenateEngine"]
