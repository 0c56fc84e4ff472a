"""Configuration loading utilities for the simulation core."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml


logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "data" / "settings.yaml"
SETTINGS_ENV_VAR = "IMPERIUM_SETTINGS"


def _bounds(raw: Any, default: Tuple[float, float], name: str) -> Tuple[float, float]:
    if raw is None:
        return default
    low, high = (float(value) for value in raw)
    if low >= high:
        raise ValueError(f"Bounds for {name} must be increasing, got {low} >= {high}")
    return low, high


def _curve(raw: Dict[str, Any] | None, default: Dict[str, float], name: str) -> Dict[str, float]:
    raw = raw or {}
    cap = float(raw.get("cap", default["cap"]))
    scale = float(raw.get("scale", default["scale"]))
    if cap < 0 or scale <= 0:
        raise ValueError(f"Curve {name} needs cap >= 0 and scale > 0")
    return {"cap": cap, "scale": scale}


@dataclass(frozen=True)
class Settings:
    """Typed view over the settings YAML file."""

    relation_bounds: Tuple[float, float]
    reputation_bounds: Tuple[float, float]
    faction_bounds: Tuple[float, float]
    merchant_bounds: Tuple[float, float]
    reputation_curve: Dict[str, float]
    relation_curve: Dict[str, float]
    tier_thresholds: Dict[str, float]
    god_bonus: float
    god_bonus_flag: str
    envoy_cost: int
    envoy_success_base: int
    envoy_success_reputation_step: int
    envoy_failure_penalty: int
    max_events_per_round: int
    grace_period_rounds: int
    attention_budget: int
    reputation_sensitivity: float
    reputation_factor_bounds: Tuple[float, float]
    scarcity_bounds: Tuple[float, float]
    buy_markup: float
    sell_cut: float
    transport_rate: float
    supply_recovery: float
    event_cooldown_rounds: int
    trade_reputation: Dict[str, float]
    monte_carlo_iterations: int
    monte_carlo_chunk_size: int
    max_edge_delta: float
    start_year: int
    starting_reputation: float
    starting_resources: Dict[str, float]
    starting_factions: Dict[str, float]

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Settings":
        bounds = data.get("bounds", {})
        diplomacy = data.get("diplomacy", {})
        tiers = diplomacy.get("tiers", {})
        envoy = diplomacy.get("envoy", {})
        senate = data.get("senate", {})
        economy = data.get("economy", {})
        trade_rep = economy.get("trade_reputation", {})
        forecast = data.get("forecast", {})
        scenario = data.get("scenario", {})

        uncertain = float(tiers.get("uncertain", 0.35))
        likely = float(tiers.get("likely", 0.65))
        if not 0.0 <= uncertain < likely <= 1.0:
            raise ValueError(
                f"Diplomacy tiers must satisfy 0 <= uncertain < likely <= 1, got {uncertain}, {likely}"
            )
        iterations = int(forecast.get("monte_carlo_iterations", 2000))
        if iterations <= 0:
            raise ValueError("monte_carlo_iterations must be positive")

        return Settings(
            relation_bounds=_bounds(bounds.get("relation"), (-100.0, 100.0), "relation"),
            reputation_bounds=_bounds(bounds.get("reputation"), (0.0, 100.0), "reputation"),
            faction_bounds=_bounds(bounds.get("faction_relation"), (0.0, 100.0), "faction_relation"),
            merchant_bounds=_bounds(
                bounds.get("merchant_reputation"), (-100.0, 100.0), "merchant_reputation"
            ),
            reputation_curve=_curve(
                diplomacy.get("reputation_curve"), {"cap": 0.5, "scale": 40.0}, "reputation_curve"
            ),
            relation_curve=_curve(
                diplomacy.get("relation_curve"), {"cap": 0.4, "scale": 50.0}, "relation_curve"
            ),
            tier_thresholds={"uncertain": uncertain, "likely": likely},
            god_bonus=float(diplomacy.get("god_bonus", 0.15)),
            god_bonus_flag=str(diplomacy.get("god_bonus_flag", "divine_favor")),
            envoy_cost=int(envoy.get("cost", 100)),
            envoy_success_base=int(envoy.get("success_base", 8)),
            envoy_success_reputation_step=int(envoy.get("success_reputation_step", 20)),
            envoy_failure_penalty=int(envoy.get("failure_penalty", -5)),
            max_events_per_round=int(senate.get("max_events_per_round", 2)),
            grace_period_rounds=int(senate.get("grace_period_rounds", 4)),
            attention_budget=int(senate.get("attention_budget", 100)),
            reputation_sensitivity=float(economy.get("reputation_sensitivity", 0.002)),
            reputation_factor_bounds=_bounds(
                economy.get("reputation_factor_bounds"), (0.8, 1.2), "reputation_factor_bounds"
            ),
            scarcity_bounds=_bounds(economy.get("scarcity_bounds"), (0.5, 3.0), "scarcity_bounds"),
            buy_markup=float(economy.get("buy_markup", 1.15)),
            sell_cut=float(economy.get("sell_cut", 0.85)),
            transport_rate=float(economy.get("transport_rate", 0.1)),
            supply_recovery=float(economy.get("supply_recovery", 0.1)),
            event_cooldown_rounds=int(economy.get("event_cooldown_rounds", 4)),
            trade_reputation={
                "per_trade": float(trade_rep.get("per_trade", 2)),
                "large_trade": float(trade_rep.get("large_trade", 5)),
                "large_trade_units": float(trade_rep.get("large_trade_units", 20)),
            },
            monte_carlo_iterations=iterations,
            monte_carlo_chunk_size=max(1, int(forecast.get("chunk_size", 1000))),
            max_edge_delta=float(forecast.get("max_edge_delta", 0.5)),
            start_year=int(scenario.get("start_year", 1)),
            starting_reputation=float(scenario.get("reputation", 20)),
            starting_resources={
                name: float(amount) for name, amount in scenario.get("resources", {"denarii": 500}).items()
            },
            starting_factions={
                name: float(value) for name, value in scenario.get("factions", {}).items()
            },
        )


class SettingsLoader:
    """Reads one settings file and keeps the parsed result.

    Without an explicit path the loader honours `$IMPERIUM_SETTINGS` and falls
    back to the packaged defaults.
    """

    def __init__(self, path: Path | None = None) -> None:
        if path is None:
            override = os.getenv(SETTINGS_ENV_VAR)
            path = Path(override) if override else DEFAULT_SETTINGS_PATH
        self._path = Path(path)
        self._settings: Settings | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self, force: bool = False) -> Settings:
        if force or self._settings is None:
            logger.debug("Reading settings from %s", self._path)
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8"))
            self._settings = Settings.from_dict(raw or {})
        return self._settings


def get_settings() -> Settings:
    """Convenience accessor for default settings."""

    return SettingsLoader().load()


__all__ = ["Settings", "SettingsLoader", "get_settings", "DEFAULT_SETTINGS_PATH", "SETTINGS_ENV_VAR"]
