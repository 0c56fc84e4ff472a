"""City market pricing, trade quotes and arbitrage detection."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .config import Settings
from .models import Effect, GameState, PriceEntry, PriceModifier, Season

logger = logging.getLogger(__name__)

_DATA_PATH = Path(__file__).parent / "data"


@dataclass
class ResourceSpec:
    name: str
    base_price: float
    category: str = "basic"


@dataclass
class CitySpec:
    id: str
    name: str
    distance: float
    region: str
    tariff: float = 0.0
    port: bool = False
    merchant_reputation: float = 0.0
    specialties: List[str] = field(default_factory=list)
    biases: List[str] = field(default_factory=list)


class EconomyConfig:
    """Resources, trade cities and modifier tables loaded from ``economy.yaml``."""

    def __init__(self, data: Dict[str, Any]) -> None:
        self.resources: Dict[str, ResourceSpec] = {
            name: ResourceSpec(name=name, base_price=float(entry["base_price"]), category=entry.get("category", "basic"))
            for name, entry in data.get("resources", {}).items()
        }
        self.cities: Dict[str, CitySpec] = {}
        for city_id, entry in data.get("cities", {}).items():
            self.cities[city_id] = CitySpec(
                id=city_id,
                name=entry.get("name", city_id),
                distance=float(entry.get("distance", 0)),
                region=entry.get("region", "inland"),
                tariff=float(entry.get("tariff", 0.0)),
                port=bool(entry.get("port", False)),
                merchant_reputation=float(entry.get("merchant_reputation", 0)),
                specialties=list(entry.get("specialties", [])),
                biases=list(entry.get("biases", [])),
            )
        self.regional: Dict[str, Dict[str, float]] = data.get("regional_modifiers", {})
        self.seasonal: Dict[str, Dict[str, float]] = data.get("seasonal_modifiers", {})
        distance = data.get("distance_pricing", {})
        self.per_mile = float(distance.get("per_mile", 0.005))
        self.max_distance_penalty = float(distance.get("max_penalty", 0.4))
        self.port_discount = float(distance.get("port_discount", 0.15))
        defaults = data.get("market_defaults", {})
        self.default_supply = float(defaults.get("supply", 100))
        self.default_demand = float(defaults.get("demand", 100))
        self.specialty_supply = float(defaults.get("specialty_supply", 150))
        self.bias_demand = float(defaults.get("bias_demand", 130))
        tiers = data.get("merchant_standing") or [{"level": "neutral", "min": -100}]
        self.standing_tiers: List[Tuple[float, str]] = sorted(
            (float(tier["min"]), str(tier["level"])) for tier in tiers
        )
        self.events: List[Dict[str, Any]] = list(data.get("events", []))

    @classmethod
    def load(cls, path: Path | None = None) -> "EconomyConfig":
        path = path or _DATA_PATH / "economy.yaml"
        with path.open("r", encoding="utf-8") as fh:
            return cls(yaml.safe_load(fh) or {})

    def distance_modifier(self, city: CitySpec) -> float:
        modifier = 1.0 + min(city.distance * self.per_mile, self.max_distance_penalty)
        if city.port:
            modifier -= self.port_discount
        return max(modifier, 0.5)

    def base_price(self, city_id: str, resource: str) -> float:
        city = self.cities[city_id]
        spec = self.resources[resource]
        regional = self.regional.get(city.region, {}).get(resource, 1.0)
        return round(spec.base_price * regional * self.distance_modifier(city), 2)

    def seasonal_modifier(self, season: Season, resource: str) -> float:
        return float(self.seasonal.get(Season(season).value, {}).get(resource, 1.0))

    def build_markets(self, settings: Settings) -> Tuple[Dict[str, Dict[str, PriceEntry]], Dict[str, float]]:
        """Fresh price tables and merchant standing for a new game."""

        markets: Dict[str, Dict[str, PriceEntry]] = {}
        standing: Dict[str, float] = {}
        for city_id, city in self.cities.items():
            standing[city_id] = city.merchant_reputation
            factor = reputation_factor(city.merchant_reputation, settings)
            table: Dict[str, PriceEntry] = {}
            for resource in self.resources:
                base = self.base_price(city_id, resource)
                supply = self.specialty_supply if resource in city.specialties else self.default_supply
                demand = self.bias_demand if resource in city.biases else self.default_demand
                table[resource] = PriceEntry(base=base, current=base * 1.0 * factor, supply=supply, demand=demand)
            markets[city_id] = table
        return markets, standing


def reputation_factor(merchant_reputation: float, settings: Settings) -> float:
    """Markup applied by a city's merchants; falls as standing rises."""

    low, high = settings.reputation_factor_bounds
    factor = 1.0 - merchant_reputation * settings.reputation_sensitivity
    return min(high, max(low, factor))


def active_modifiers(entry: PriceEntry, round_number: int) -> List[PriceModifier]:
    return [modifier for modifier in entry.modifiers if round_number < modifier.expires_round]


def compute_price(entry: PriceEntry, round_number: int, merchant_reputation: float, settings: Settings) -> float:
    product = 1.0
    for modifier in active_modifiers(entry, round_number):
        product *= modifier.multiplier
    return entry.base * product * reputation_factor(merchant_reputation, settings)


def reprice_entry(entry: PriceEntry, round_number: int, merchant_reputation: float, settings: Settings) -> None:
    entry.modifiers = active_modifiers(entry, round_number)
    entry.current = compute_price(entry, round_number, merchant_reputation, settings)


def reprice_city(state: GameState, city: str, settings: Settings) -> None:
    standing = state.merchant_reputation.get(city, 0.0)
    for entry in state.markets.get(city, {}).values():
        reprice_entry(entry, state.round, standing, settings)


def reprice(state: GameState, settings: Settings) -> None:
    """Recompute every current price in place from base and live modifiers."""

    for city in state.markets:
        reprice_city(state, city, settings)


def project_prices(state: GameState, rounds_ahead: int, settings: Settings) -> Dict[str, Dict[str, List[float]]]:
    """Prices for the next ``rounds_ahead`` rounds assuming no new shocks."""

    projection: Dict[str, Dict[str, List[float]]] = {}
    for city, table in state.markets.items():
        standing = state.merchant_reputation.get(city, 0.0)
        projection[city] = {
            resource: [
                compute_price(entry, state.round + step, standing, settings)
                for step in range(1, rounds_ahead + 1)
            ]
            for resource, entry in table.items()
        }
    return projection


@dataclass
class PriceDifferential:
    resource: str
    low_city: str
    low_price: float
    high_city: str
    high_price: float

    @property
    def spread(self) -> float:
        return self.high_price - self.low_price


def price_differentials(state: GameState) -> Dict[str, PriceDifferential]:
    """Cheapest and dearest market per resource, from current prices."""

    result: Dict[str, PriceDifferential] = {}
    for city, table in state.markets.items():
        for resource, entry in table.items():
            diff = result.get(resource)
            if diff is None:
                result[resource] = PriceDifferential(resource, city, entry.current, city, entry.current)
                continue
            if entry.current < diff.low_price:
                diff.low_city, diff.low_price = city, entry.current
            if entry.current > diff.high_price:
                diff.high_city, diff.high_price = city, entry.current
    return result


def transport_cost(city: CitySpec, quantity: float, settings: Settings) -> float:
    return math.ceil(city.distance * settings.transport_rate) * quantity


@dataclass
class TradeOpportunity:
    resource: str
    buy_city: str
    sell_city: str
    buy_price: float
    sell_price: float
    transport_per_unit: float
    profit_per_unit: float
    margin: float


def trade_opportunities(
    state: GameState,
    economy: EconomyConfig,
    settings: Settings,
    min_margin: float = 0.1,
) -> List[TradeOpportunity]:
    """Arbitrage routes whose margin after costs reaches ``min_margin``."""

    opportunities: List[TradeOpportunity] = []
    for resource in economy.resources:
        quotes = [
            (city_id, state.markets[city_id][resource].current)
            for city_id in economy.cities
            if resource in state.markets.get(city_id, {})
        ]
        for buy_city, buy_current in quotes:
            for sell_city, sell_current in quotes:
                if buy_city == sell_city:
                    continue
                buy_spec = economy.cities[buy_city]
                sell_spec = economy.cities[sell_city]
                buy_price = buy_current * settings.buy_markup * (1 + buy_spec.tariff)
                sell_price = sell_current * settings.sell_cut * (1 - sell_spec.tariff)
                transport = transport_cost(buy_spec, 1, settings) + transport_cost(sell_spec, 1, settings)
                profit = sell_price - buy_price - transport
                if buy_price <= 0:
                    continue
                margin = profit / buy_price
                if margin >= min_margin:
                    opportunities.append(
                        TradeOpportunity(
                            resource=resource,
                            buy_city=buy_city,
                            sell_city=sell_city,
                            buy_price=round(buy_price, 2),
                            sell_price=round(sell_price, 2),
                            transport_per_unit=transport,
                            profit_per_unit=round(profit, 2),
                            margin=round(margin, 4),
                        )
                    )
    opportunities.sort(key=lambda item: item.margin, reverse=True)
    return opportunities


def scarcity_multiplier(supply: float, demand: float, settings: Settings) -> float:
    """Supply/demand pressure on a quote, bounded by the configured range."""

    low, high = settings.scarcity_bounds
    if supply <= 0:
        return high
    multiplier = demand / supply
    fill = min(1.0, supply / (2 * demand)) if demand > 0 else 1.0
    if fill < 0.05:
        multiplier *= 1.5
    elif fill < 0.2:
        multiplier *= 1.2
    elif fill > 0.8:
        multiplier *= 0.8
    return min(high, max(low, multiplier))


@dataclass
class TradeQuote:
    city: str
    resource: str
    quantity: float
    side: str
    unit_price: float
    transport: float
    total: float


def trade_quote(
    state: GameState,
    economy: EconomyConfig,
    settings: Settings,
    city: str,
    resource: str,
    quantity: float,
    side: str,
) -> TradeQuote:
    if side not in ("buy", "sell"):
        raise ValueError(f"Unknown trade side {side}")
    if city not in economy.cities or city not in state.markets:
        raise ValueError(f"Unknown city {city}")
    if resource not in state.markets[city]:
        raise ValueError(f"{city} does not trade {resource}")
    if quantity <= 0:
        raise ValueError("Trade quantity must be positive")
    spec = economy.cities[city]
    entry = state.markets[city][resource]
    unit = (
        entry.current
        * scarcity_multiplier(entry.supply, entry.demand, settings)
        * economy.seasonal_modifier(state.season, resource)
    )
    if side == "buy":
        unit *= settings.buy_markup * (1 + spec.tariff)
    else:
        unit *= settings.sell_cut * (1 - spec.tariff)
    unit = round(unit, 2)
    transport = transport_cost(spec, quantity, settings)
    if side == "buy":
        total = round(unit * quantity + transport, 2)
    else:
        total = round(max(0.0, unit * quantity - transport), 2)
    return TradeQuote(city, resource, quantity, side, unit, transport, total)


def merchant_standing(merchant_reputation: float, economy: EconomyConfig) -> str:
    level = economy.standing_tiers[0][1]
    for minimum, name in economy.standing_tiers:
        if merchant_reputation >= minimum:
            level = name
    return level


def trade_effects(quote: TradeQuote, settings: Settings) -> List[Effect]:
    """Effects that carry out a quoted trade."""

    large = quote.quantity > settings.trade_reputation["large_trade_units"]
    gain = settings.trade_reputation["large_trade"] if large else settings.trade_reputation["per_trade"]
    sign = 1 if quote.side == "buy" else -1
    verb = "Bought" if quote.side == "buy" else "Sold"
    return [
        Effect.resource_delta("denarii", -sign * quote.total),
        Effect.resource_delta(quote.resource, sign * quote.quantity),
        Effect.supply_delta(quote.city, quote.resource, -sign * quote.quantity),
        Effect.merchant_reputation_delta(quote.city, gain),
        Effect.record(
            "trade",
            {
                "city": quote.city,
                "resource": quote.resource,
                "quantity": quote.quantity,
                "side": quote.side,
                "total": quote.total,
            },
            f"{verb} {quote.quantity:g} {quote.resource} at {quote.city}",
        ),
    ]


def price_trend(current: float, base: float) -> str:
    if base <= 0:
        return "stable"
    ratio = current / base
    if ratio < 0.6:
        return "crashing"
    if ratio < 0.85:
        return "falling"
    if ratio <= 1.15:
        return "stable"
    if ratio <= 1.5:
        return "rising"
    return "soaring"


class PricingEngine:
    """Produces the per-round market effects."""

    def __init__(self, settings: Settings, economy: Optional[EconomyConfig] = None) -> None:
        self._settings = settings
        self._economy = economy or EconomyConfig.load()

    @property
    def economy(self) -> EconomyConfig:
        return self._economy

    def round_effects(self, state: GameState) -> List[Effect]:
        effects: List[Effect] = []
        rate = self._settings.supply_recovery
        for city, table in state.markets.items():
            for resource, entry in table.items():
                delta = round((entry.demand - entry.supply) * rate, 2)
                if abs(delta) >= 0.01:
                    effects.append(Effect.supply_delta(city, resource, delta))
        effects.append(Effect.reprice())
        logger.debug("Pricing engine emitted %d supply adjustments", len(effects) - 1)
        return effects


__all__ = [
    "ResourceSpec",
    "CitySpec",
    "EconomyConfig",
    "reputation_factor",
    "active_modifiers",
    "compute_price",
    "reprice_entry",
    "reprice_city",
    "reprice",
    "project_prices",
    "PriceDifferential",
    "price_differentials",
    "transport_cost",
    "TradeOpportunity",
    "trade_opportunities",
    "scarcity_multiplier",
    "TradeQuote",
    "trade_quote",
    "merchant_standing",
    "trade_effects",
    "price_trend",
    "PricingEngine",
]
