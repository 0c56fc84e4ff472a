"""Tests for random economic events."""
from __future__ import annotations

import pytest

from imperium.config import get_settings
from imperium.economy import EconomyConfig
from imperium.effects import EffectProcessor
from imperium.market_events import EconomicEvent, EconomicEventDeck
from imperium.models import EffectType, GameState, Season
from imperium.rng import DeterministicRNG


def build_state(round_number: int = 1, season: Season = Season.SPRING) -> GameState:
    settings = get_settings()
    markets, standing = EconomyConfig.load().build_markets(settings)
    return GameState(
        seed=1,
        round=round_number,
        season=season,
        year=1,
        resources={"denarii": 500.0},
        reputation=20.0,
        markets=markets,
        merchant_reputation=standing,
    )


def test_deck_loads_configured_events():
    deck = EconomicEventDeck.from_config(EconomyConfig.load(), get_settings())
    fleet = deck.get("egyptian_grain_fleet_delayed")

    assert len(deck.events) == 11
    assert fleet.season is Season.AUTUMN
    assert fleet.min_round == 4
    assert fleet.price_modifiers == {"grain": 1.5, "livestock": 1.2}
    with pytest.raises(KeyError):
        deck.get("locusts")


def test_event_conditions():
    deck = EconomicEventDeck.from_config(EconomyConfig.load(), get_settings())
    fleet = deck.get("egyptian_grain_fleet_delayed")

    assert not fleet.can_fire(build_state(round_number=8, season=Season.SPRING))
    assert not fleet.can_fire(build_state(round_number=3, season=Season.AUTUMN))
    assert fleet.can_fire(build_state(round_number=8, season=Season.AUTUMN))


def test_triggered_event_shocks_every_city():
    settings = get_settings()
    deck = EconomicEventDeck.from_config(EconomyConfig.load(), settings)
    fleet = deck.get("egyptian_grain_fleet_delayed")
    state = build_state(round_number=8, season=Season.AUTUMN)
    before = {city: table["grain"].current for city, table in state.markets.items()}

    effects = deck.trigger(fleet)
    result = EffectProcessor(settings).apply(state, effects)

    assert [e.effect_type for e in effects[:2]] == [EffectType.PRICE_SHOCK, EffectType.PRICE_SHOCK]
    assert result.rejected == []
    for city, price in before.items():
        assert result.state.markets[city]["grain"].current == pytest.approx(price * 1.5)
    assert result.state.flags[fleet.active_flag] == 10
    assert result.state.flags[fleet.cooldown_flag] == 8 + 2 + settings.event_cooldown_rounds
    assert not fleet.can_fire(result.state)
    assert result.state.history[-1].details["event"] == fleet.id


def test_roll_respects_probability_and_cooldown():
    settings = get_settings()
    sure = EconomicEvent(id="sure", name="Sure", description="", probability=1.0, duration=2, price_modifiers={"grain": 2.0})
    never = EconomicEvent(id="never", name="Never", description="", probability=0.0, duration=2, price_modifiers={"salt": 2.0})
    deck = EconomicEventDeck([sure, never], settings)
    processor = EffectProcessor(settings)

    effects = deck.roll(build_state(), DeterministicRNG(4))
    shocked = {e.payload["resource"] for e in effects if e.effect_type is EffectType.PRICE_SHOCK}
    assert shocked == {"grain"}

    state = processor.apply(build_state(), effects).state
    assert deck.roll(state, DeterministicRNG(4)) == []
