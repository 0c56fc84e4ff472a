"""High-level simulation service orchestrating rounds and player commands."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .causal import (
    CausalGraph,
    CausalNode,
    Distribution,
    MonteCarloResult,
    bernoulli,
    load_default_graph,
    monte_carlo,
    summarize,
)
from .config import Settings, get_settings
from .diplomacy import (
    calculate_envoy_success_factors,
    envoy_effects,
    envoy_relation_change,
    relation_status,
)
from .economy import (
    EconomyConfig,
    PricingEngine,
    TradeOpportunity,
    TradeQuote,
    merchant_standing,
    price_differentials,
    price_trend,
    project_prices,
    trade_effects,
    trade_opportunities,
    trade_quote,
)
from .effects import ApplyResult, EffectProcessor
from .market_events import EconomicEventDeck
from .models import Effect, EventStatus, GameState, Rejection, Season, SuccessFactors
from .rng import derive_rng
from .senate.catalog import SenateCatalog, SenateEvent
from .senate.engine import GAME_OVER_FLAG, SenateEngine
from .state import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class RoundReport:
    round: int
    season: str
    year: int
    applied: List[Effect] = field(default_factory=list)
    rejected: List[Rejection] = field(default_factory=list)
    presented: List[Tuple[str, str]] = field(default_factory=list)
    economic_events: List[str] = field(default_factory=list)
    disabled_events: List[str] = field(default_factory=list)
    committed: bool = True
    error: Optional[str] = None


@dataclass
class ChoiceReport:
    senator: str
    event_id: str
    choice_index: int
    probability: Optional[float]
    succeeded: Optional[bool]
    applied: List[Effect]
    rejected: List[Rejection]


@dataclass
class ChoicePreview:
    probability: Optional[float]
    success: ApplyResult
    failure: Optional[ApplyResult] = None


@dataclass
class ChoiceForecast:
    probability: float
    estimated_success_rate: float
    iterations: int
    relation_change: Distribution


@dataclass
class EnvoyReport:
    faction: str
    factors: SuccessFactors
    roll: float
    succeeded: bool
    relation_change: int
    applied: List[Effect]
    rejected: List[Rejection]


def new_game(
    settings: Settings,
    catalog: SenateCatalog,
    economy: EconomyConfig,
    seed: int = 0,
) -> GameState:
    """Initial state built from configuration."""

    markets, standing = economy.build_markets(settings)
    resources = dict(settings.starting_resources)
    for resource in economy.resources:
        resources.setdefault(resource, 0.0)
    return GameState(
        seed=seed & 0xFFFFFFFF,
        round=1,
        season=Season.SPRING,
        year=settings.start_year,
        resources=resources,
        reputation=settings.starting_reputation,
        senators=catalog.new_senators(),
        markets=markets,
        merchant_reputation=standing,
        factions=dict(settings.starting_factions),
        attention={senator_id: catalog.default_attention for senator_id in catalog.roster()},
    )


class Simulation:
    """Main entry point: one game, advanced round by round."""

    def __init__(
        self,
        state: Optional[GameState] = None,
        *,
        seed: int = 0,
        settings: Optional[Settings] = None,
        catalog: Optional[SenateCatalog] = None,
        economy: Optional[EconomyConfig] = None,
        store: Optional[SnapshotStore] = None,
        graph: Optional[CausalGraph] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._catalog = catalog or SenateCatalog.load()
        self._economy = economy or EconomyConfig.load()
        self._processor = EffectProcessor(self._settings, self._catalog.terminal_dispositions())
        self._senate = SenateEngine(self._catalog, self._processor, self._settings)
        self._pricing = PricingEngine(self._settings, self._economy)
        self._deck = EconomicEventDeck.from_config(self._economy, self._settings)
        self._store = store
        self._graph = graph
        self._state = state if state is not None else new_game(self._settings, self._catalog, self._economy, seed)

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def catalog(self) -> SenateCatalog:
        return self._catalog

    @property
    def processor(self) -> EffectProcessor:
        return self._processor

    @property
    def game_over(self) -> bool:
        return self._state.flag_active(GAME_OVER_FLAG)

    def _rng(self):
        return derive_rng(self._state.seed, self._state.round, len(self._state.history))

    def _commit(self, state: GameState) -> None:
        self._state = state
        if self._store is not None:
            self._store.save(state)

    # Round advancement ----------------------------------------------

    def advance_round(self) -> RoundReport:
        """Run one full round; on any failure the previous state stays."""

        if self.game_over:
            raise ValueError("The game is over")
        prior = self._state
        try:
            rng = self._rng()
            report = RoundReport(round=prior.round, season=prior.season.value, year=prior.year)
            clock = self._processor.apply(prior, [Effect.advance_round()])
            state = clock.state
            report.applied.extend(clock.applied)
            report.rejected.extend(clock.rejected)

            senate = self._senate.run_round(state, rng)
            state = senate.state
            report.applied.extend(senate.applied)
            report.rejected.extend(senate.rejected)
            report.presented = list(senate.presented)
            report.disabled_events = list(senate.disabled)

            shocks = self._deck.roll(state, rng)
            market = self._processor.apply(state, shocks + self._pricing.round_effects(state))
            state = market.state
            report.applied.extend(market.applied)
            report.rejected.extend(market.rejected)
            report.economic_events = [
                effect.payload["details"]["event"]
                for effect in shocks
                if effect.payload.get("kind") == "economic_event"
            ]
        except Exception as exc:
            logger.exception("Round %d discarded; keeping round %d state", prior.round + 1, prior.round)
            return RoundReport(
                round=prior.round,
                season=prior.season.value,
                year=prior.year,
                committed=False,
                error=str(exc),
            )
        report.round, report.season, report.year = state.round, state.season.value, state.year
        self._commit(state)
        logger.info(
            "Round %d committed: %d effects applied, %d rejected, %d events presented",
            state.round,
            len(report.applied),
            len(report.rejected),
            len(report.presented),
        )
        return report

    # Senate ---------------------------------------------------------

    def pending_events(self) -> List[SenateEvent]:
        return self._senate.pending(self._state)

    def _presented_choice(self, senator_id: str, event_id: str, choice_index: int):
        senator = self._state.senators.get(senator_id)
        if senator is None:
            raise ValueError(f"Unknown senator {senator_id}")
        event = self._catalog.get_event(event_id)
        if event is None or event.senator != senator_id:
            raise ValueError(f"Unknown event {event_id} for {senator_id}")
        if senator.status_of(event_id) is not EventStatus.PRESENTED:
            raise ValueError(f"Event {event_id} is not awaiting a decision")
        if not 0 <= choice_index < len(event.choices):
            raise ValueError(f"Event {event_id} has no choice {choice_index}")
        evaluator = self._senate.evaluator
        if not evaluator.choice_available(event, event.choices[choice_index], self._state, senator):
            raise ValueError(f"Requirements for choice {choice_index} of {event_id} are not met")
        return senator, event

    def available_choices(self, senator_id: str, event_id: str) -> List[int]:
        senator = self._state.senators.get(senator_id)
        event = self._catalog.get_event(event_id)
        if senator is None or event is None or event.senator != senator_id:
            raise ValueError(f"Unknown event {event_id} for {senator_id}")
        return self._senate.evaluator.available_choices(event, self._state, senator)

    def submit_choice(self, senator_id: str, event_id: str, choice_index: int) -> ChoiceReport:
        senator, event = self._presented_choice(senator_id, event_id, choice_index)
        resolution = self._senate.evaluator.resolve_choice(event, choice_index, self._state, senator, self._rng())
        result = self._processor.apply(self._state, resolution.effects)
        self._commit(result.state)
        return ChoiceReport(
            senator=senator_id,
            event_id=event_id,
            choice_index=choice_index,
            probability=resolution.probability,
            succeeded=resolution.succeeded,
            applied=result.applied,
            rejected=result.rejected,
        )

    def preview_choice(self, senator_id: str, event_id: str, choice_index: int) -> ChoicePreview:
        """Dry run of both branches of a choice; nothing is committed."""

        senator, event = self._presented_choice(senator_id, event_id, choice_index)
        evaluator = self._senate.evaluator
        choice = event.choices[choice_index]
        success = self._processor.apply(
            self._state, evaluator.outcome_effects(event, choice_index, senator, succeeded=True)
        )
        if choice.chance is None:
            return ChoicePreview(probability=None, success=success)
        failure = self._processor.apply(
            self._state, evaluator.outcome_effects(event, choice_index, senator, succeeded=False)
        )
        probability = evaluator.choice_probability(choice.chance, self._state, senator)
        return ChoicePreview(probability=probability, success=success, failure=failure)

    def allocate_attention(self, allocation: Mapping[str, int]) -> List[Effect]:
        total = 0
        for senator_id, points in allocation.items():
            if senator_id not in self._state.senators:
                raise ValueError(f"Unknown senator {senator_id}")
            if points < 0:
                raise ValueError(f"Attention for {senator_id} cannot be negative")
            total += points
        if total > self._settings.attention_budget:
            raise ValueError(f"Attention total {total} exceeds budget {self._settings.attention_budget}")
        effects = [Effect.attention_set(senator_id, int(points)) for senator_id, points in allocation.items()]
        result = self._processor.apply(self._state, effects)
        self._commit(result.state)
        return result.applied

    # Diplomacy ------------------------------------------------------

    def _god_bonus(self) -> float:
        return self._settings.god_bonus if self._state.flag_active(self._settings.god_bonus_flag) else 0.0

    def preview_envoy(self, faction: str) -> SuccessFactors:
        if faction not in self._state.factions:
            raise ValueError(f"Unknown faction {faction}")
        return calculate_envoy_success_factors(
            self._state.reputation,
            self._state.factions[faction],
            self._god_bonus(),
            self._settings,
        )

    def send_envoy(self, faction: str) -> EnvoyReport:
        factors = self.preview_envoy(faction)
        if self._state.resources.get("denarii", 0.0) < self._settings.envoy_cost:
            raise ValueError("Not enough denarii for envoy")
        roll, succeeded = bernoulli(factors.total_chance, self._rng())
        reputation = self._state.reputation
        effects = envoy_effects(faction, succeeded, reputation, self._settings)
        result = self._processor.apply(self._state, effects)
        self._commit(result.state)
        return EnvoyReport(
            faction=faction,
            factors=factors,
            roll=roll,
            succeeded=succeeded,
            relation_change=envoy_relation_change(succeeded, reputation, self._settings),
            applied=result.applied,
            rejected=result.rejected,
        )

    # Trade ----------------------------------------------------------

    def quote(self, city: str, resource: str, quantity: float, side: str = "buy") -> TradeQuote:
        return trade_quote(self._state, self._economy, self._settings, city, resource, quantity, side)

    def buy(self, city: str, resource: str, quantity: float) -> TradeQuote:
        quote = self.quote(city, resource, quantity, "buy")
        if self._state.resources.get("denarii", 0.0) < quote.total:
            raise ValueError(f"Not enough denarii: {quote.total:g} needed")
        self._commit(self._processor.apply(self._state, trade_effects(quote, self._settings)).state)
        return quote

    def sell(self, city: str, resource: str, quantity: float) -> TradeQuote:
        quote = self.quote(city, resource, quantity, "sell")
        if self._state.resources.get(resource, 0.0) < quantity:
            raise ValueError(f"Not enough {resource} to sell")
        self._commit(self._processor.apply(self._state, trade_effects(quote, self._settings)).state)
        return quote

    def trade_opportunities(self, min_margin: float = 0.1) -> List[TradeOpportunity]:
        return trade_opportunities(self._state, self._economy, self._settings, min_margin)

    def project_prices(self, rounds_ahead: int) -> Dict[str, Dict[str, List[float]]]:
        return project_prices(self._state, rounds_ahead, self._settings)

    # Forecasts ------------------------------------------------------

    def forecast_world(self, iterations: Optional[int] = None, seed: Optional[int] = None) -> MonteCarloResult:
        """Advisory odds for the default causal graph."""

        if self._graph is None:
            self._graph = load_default_graph(max_delta=self._settings.max_edge_delta)
        return monte_carlo(
            self._graph,
            iterations or self._settings.monte_carlo_iterations,
            seed if seed is not None else self._state.seed ^ self._state.round,
            self._settings.monte_carlo_chunk_size,
        )

    def forecast_choice(
        self, senator_id: str, event_id: str, choice_index: int, iterations: Optional[int] = None
    ) -> ChoiceForecast:
        """Estimated spread of outcomes for a choice. Never applied."""

        preview = self.preview_choice(senator_id, event_id, choice_index)
        probability = 1.0 if preview.probability is None else preview.probability
        iterations = iterations or self._settings.monte_carlo_iterations
        graph = CausalGraph([CausalNode("success", probability)])
        estimate = monte_carlo(graph, iterations, self._state.seed ^ self._state.round, self._settings.monte_carlo_chunk_size)
        successes = estimate.counts["success"]
        current = self._state.senators[senator_id].relation
        on_success = preview.success.state.senators[senator_id].relation - current
        failure_state = preview.failure.state if preview.failure is not None else preview.success.state
        on_failure = failure_state.senators[senator_id].relation - current
        samples = [on_success] * successes + [on_failure] * (iterations - successes)
        return ChoiceForecast(
            probability=probability,
            estimated_success_rate=estimate.frequencies["success"],
            iterations=iterations,
            relation_change=summarize(samples),
        )

    # Output ---------------------------------------------------------

    def projection(self) -> Dict[str, Any]:
        """Read-only view of the state for rendering."""

        state = self._state
        return {
            "round": state.round,
            "season": state.season.value,
            "year": state.year,
            "resources": dict(state.resources),
            "reputation": state.reputation,
            "senators": {
                senator_id: {
                    "name": senator.name,
                    "relation": senator.relation,
                    "disposition": senator.disposition,
                    "attention": state.attention.get(senator_id, self._catalog.default_attention),
                }
                for senator_id, senator in state.senators.items()
            },
            "factions": {
                name: {"relation": value, "status": relation_status(value)} for name, value in state.factions.items()
            },
            "prices": {
                city: {resource: round(entry.current, 2) for resource, entry in table.items()}
                for city, table in state.markets.items()
            },
            "trends": {
                city: {resource: price_trend(entry.current, entry.base) for resource, entry in table.items()}
                for city, table in state.markets.items()
            },
            "merchant_standing": {
                city: merchant_standing(value, self._economy) for city, value in state.merchant_reputation.items()
            },
            "differentials": {
                resource: {"low": diff.low_city, "high": diff.high_city, "spread": round(diff.spread, 2)}
                for resource, diff in price_differentials(state).items()
            },
            "flags": state.active_flags(),
            "pending_events": [event.id for event in self.pending_events()],
            "game_over": self.game_over,
        }

    # Persistence ----------------------------------------------------

    def save(self, label: str = "manual") -> int:
        if self._store is None:
            raise ValueError("No snapshot store configured")
        return self._store.save(self._state, label)

    @classmethod
    def load(cls, store: SnapshotStore, snapshot_id: Optional[int] = None, **kwargs) -> "Simulation":
        settings = kwargs.get("settings") or get_settings()
        state = store.load(snapshot_id, settings) if snapshot_id is not None else store.latest(settings=settings)
        if state is None:
            raise ValueError("No saved snapshot to load")
        return cls(state, store=store, **kwargs)


__all__ = [
    "RoundReport",
    "ChoiceReport",
    "ChoicePreview",
    "ChoiceForecast",
    "EnvoyReport",
    "new_game",
    "Simulation",
]
