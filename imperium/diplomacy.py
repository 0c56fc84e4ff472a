"""Envoy success scoring and diplomatic outcomes."""
from __future__ import annotations

import math
from typing import Dict, List, Tuple

from .config import Settings, get_settings
from .models import Effect, SuccessFactors, SuccessTier

RISK_ASSESSMENTS: Dict[SuccessTier, str] = {
    SuccessTier.LIKELY: "Our diplomats are confident this mission will succeed. The faction views Rome favorably.",
    SuccessTier.UNCERTAIN: "The outcome is uncertain. Our envoys will do their best, but success is not guaranteed.",
    SuccessTier.UNLIKELY: "This is a risky endeavor. The faction is wary of Rome and our envoys may face hostility.",
}

RELATION_STATUS: List[Tuple[float, str]] = [
    (80, "Allied"),
    (60, "Friendly"),
    (40, "Neutral"),
    (20, "Unfriendly"),
]


def _finite(value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value) or math.isinf(value):
        return 0.0
    return value


def saturating_bonus(value: float, cap: float, scale: float, bounds: Tuple[float, float]) -> float:
    """Increasing, bounded bonus with diminishing returns."""

    low, high = bounds
    clamped = min(high, max(low, _finite(value)))
    return max(-cap, cap * (1.0 - math.exp(-clamped / scale)))


def success_tier(chance: float, settings: Settings | None = None) -> SuccessTier:
    settings = settings or get_settings()
    if chance < settings.tier_thresholds["uncertain"]:
        return SuccessTier.UNLIKELY
    if chance < settings.tier_thresholds["likely"]:
        return SuccessTier.UNCERTAIN
    return SuccessTier.LIKELY


def calculate_envoy_success_factors(
    reputation: float,
    current_relation: float,
    god_bonus: float = 0.0,
    settings: Settings | None = None,
) -> SuccessFactors:
    """Score an envoy mission. Deterministic; the draw happens elsewhere."""

    settings = settings or get_settings()
    reputation_bonus = saturating_bonus(
        reputation,
        settings.reputation_curve["cap"],
        settings.reputation_curve["scale"],
        settings.reputation_bounds,
    )
    relation_bonus = saturating_bonus(
        current_relation,
        settings.relation_curve["cap"],
        settings.relation_curve["scale"],
        settings.faction_bounds,
    )
    god = _finite(god_bonus)
    total = min(1.0, max(0.0, reputation_bonus + relation_bonus + god))
    return SuccessFactors(
        reputation_bonus=reputation_bonus,
        relation_bonus=relation_bonus,
        god_bonus=god,
        total_chance=total,
        tier=success_tier(total, settings),
    )


def risk_assessment(tier: SuccessTier) -> str:
    return RISK_ASSESSMENTS[SuccessTier(tier)]


def relation_status(relation: float) -> str:
    for threshold, label in RELATION_STATUS:
        if relation >= threshold:
            return label
    return "Hostile"


def envoy_relation_change(succeeded: bool, reputation: float, settings: Settings) -> int:
    if succeeded:
        return settings.envoy_success_base + int(_finite(reputation) // settings.envoy_success_reputation_step)
    return settings.envoy_failure_penalty


def envoy_effects(faction: str, succeeded: bool, reputation: float, settings: Settings) -> List[Effect]:
    """Cost and relation outcome of an envoy whose draw has been made."""

    change = envoy_relation_change(succeeded, reputation, settings)
    message = (
        f"Envoy successful! Relations improved by {change}"
        if succeeded
        else f"Envoy failed. Relations decreased by {abs(change)}"
    )
    return [
        Effect.resource_delta("denarii", -settings.envoy_cost, "Envoy expenses"),
        Effect.faction_relation_delta(faction, change, message),
        Effect.record("envoy", {"faction": faction, "succeeded": succeeded, "relation_change": change}, message),
    ]


__all__ = [
    "RISK_ASSESSMENTS",
    "saturating_bonus",
    "success_tier",
    "calculate_envoy_success_factors",
    "risk_assessment",
    "relation_status",
    "envoy_relation_change",
    "envoy_effects",
]
