"""Tests for the effect processor."""
from __future__ import annotations

import pytest

from imperium.config import get_settings
from imperium.effects import EffectProcessor, apply_effects
from imperium.models import (
    Effect,
    EffectType,
    EventStatus,
    GameState,
    PriceEntry,
    RejectionKind,
    Season,
    SenatorRecord,
)


def build_state(**overrides) -> GameState:
    state = GameState(
        seed=7,
        round=1,
        season=Season.SPRING,
        year=1,
        resources={"denarii": 100.0, "grain": 10.0},
        reputation=20.0,
        senators={"sulla": SenatorRecord(id="sulla", name="Lucius Sulla", relation=0.0, disposition="evaluating")},
        markets={
            "ostia": {"grain": PriceEntry(base=10.0, current=10.0)},
            "alba": {"grain": PriceEntry(base=8.0, current=8.0)},
        },
        merchant_reputation={"ostia": 0.0, "alba": 0.0},
        factions={"sabines": 30.0},
    )
    for key, value in overrides.items():
        setattr(state, key, value)
    return state


@pytest.fixture
def processor():
    return EffectProcessor(get_settings(), {"sulla": {"coup"}})


def test_apply_leaves_input_untouched(processor):
    state = build_state()
    result = processor.apply(state, [Effect.resource_delta("denarii", -30)])

    assert state.resources["denarii"] == 100.0
    assert result.state.resources["denarii"] == 70.0
    assert result.rejected == []


def test_resource_delta_clamps_at_zero(processor):
    effect = Effect.resource_delta("denarii", -150)
    result = processor.apply(build_state(), [effect])

    assert result.state.resources["denarii"] == 0.0
    assert [r.kind for r in result.rejected] == [RejectionKind.CLAMPED_TO_ZERO]
    # Clamped effects still count as applied.
    assert result.applied == [effect]


def test_unknown_resource_is_a_reference_error(processor):
    result = processor.apply(build_state(), [Effect.resource_delta("marble", 5)])

    assert "marble" not in result.state.resources
    assert result.applied == []
    assert result.rejected[0].kind is RejectionKind.REFERENCE_ERROR


def test_relation_clamps_to_bound(processor):
    result = processor.apply(build_state(), [Effect.relation_delta("sulla", 150)])

    assert result.state.senators["sulla"].relation == 100.0
    assert result.rejected[0].kind is RejectionKind.CLAMPED_TO_BOUND


@pytest.mark.parametrize("amount", [float("nan"), float("inf"), "lots"])
def test_non_finite_amounts_are_rejected(processor, amount):
    result = processor.apply(build_state(), [Effect.reputation_delta(amount)])

    assert result.state.reputation == 20.0
    assert result.rejected[0].kind is RejectionKind.INVALID_VALUE


def test_missing_payload_field_is_a_reference_error(processor):
    broken = Effect(EffectType.RELATION_DELTA, {"amount": 5})
    result = processor.apply(build_state(), [broken])

    assert result.applied == []
    assert result.rejected[0].kind is RejectionKind.REFERENCE_ERROR


def test_faction_relation_uses_faction_bounds(processor):
    result = processor.apply(build_state(), [Effect.faction_relation_delta("sabines", -50)])

    assert result.state.factions["sabines"] == 0.0
    assert result.rejected[0].kind is RejectionKind.CLAMPED_TO_BOUND


def test_flag_expiry_is_relative_to_current_round(processor):
    state = processor.apply(build_state(), [Effect.flag_set("omen", 2)]).state
    assert state.flags["omen"] == 3
    assert state.flag_active("omen")

    state = processor.apply(state, [Effect.advance_round(), Effect.advance_round()]).state
    assert state.round == 3
    assert not state.flag_active("omen")

    state = processor.apply(state, [Effect.flag_set("other")]).state
    assert "omen" not in state.flags
    assert state.flag_active("other")


def test_price_shock_reprices_immediately(processor):
    result = processor.apply(build_state(), [Effect.price_shock("ostia", "grain", 1.5, 2)])

    entry = result.state.markets["ostia"]["grain"]
    assert entry.current == pytest.approx(15.0)
    assert entry.modifiers[0].expires_round == 3
    assert result.state.markets["alba"]["grain"].current == pytest.approx(8.0)


def test_wildcard_price_shock_hits_every_city(processor):
    result = processor.apply(build_state(), [Effect.price_shock("*", "grain", 2.0, 1)])

    assert result.state.price("ostia", "grain") == pytest.approx(20.0)
    assert result.state.price("alba", "grain") == pytest.approx(16.0)


def test_price_shock_expires_on_reprice(processor):
    state = processor.apply(build_state(), [Effect.price_shock("ostia", "grain", 1.5, 1)]).state
    state = processor.apply(state, [Effect.advance_round(), Effect.reprice()]).state

    entry = state.markets["ostia"]["grain"]
    assert entry.modifiers == []
    assert entry.current == pytest.approx(10.0)


def test_event_status_follows_transition_table(processor):
    skip = Effect.event_status("sulla", "sulla_test", EventStatus.PRESENTED)
    result = processor.apply(build_state(), [skip])
    assert result.rejected[0].kind is RejectionKind.INVALID_TRANSITION

    result = processor.apply(
        build_state(),
        [
            Effect.event_status("sulla", "sulla_test", EventStatus.ELIGIBLE),
            Effect.event_status("sulla", "sulla_test", EventStatus.PRESENTED),
            Effect.event_status("sulla", "sulla_test", EventStatus.RESOLVED),
        ],
    )
    senator = result.state.senators["sulla"]
    assert result.rejected == []
    assert senator.status_of("sulla_test") is EventStatus.RESOLVED
    assert senator.triggered == ["sulla_test"]
    assert senator.progress("sulla_test").times_resolved == 1


def test_disabled_event_refuses_status_changes(processor):
    result = processor.apply(
        build_state(),
        [
            Effect.disable_event("sulla", "sulla_test", "broken"),
            Effect.event_status("sulla", "sulla_test", EventStatus.ELIGIBLE),
        ],
    )
    assert result.state.senators["sulla"].disabled_events == ["sulla_test"]
    assert result.rejected[0].kind is RejectionKind.INVALID_TRANSITION


def test_arc_cursor_only_moves_forward(processor):
    state = processor.apply(build_state(), [Effect.arc_advance("sulla", 2)]).state
    result = processor.apply(state, [Effect.arc_advance("sulla", 1)])

    assert result.state.senators["sulla"].arc_cursor == 2
    assert result.rejected[0].kind is RejectionKind.INVALID_TRANSITION


def test_terminal_disposition_is_final(processor):
    state = processor.apply(build_state(), [Effect.disposition_change("sulla", "coup")]).state
    result = processor.apply(state, [Effect.disposition_change("sulla", "evaluating")])

    assert result.state.senators["sulla"].disposition == "coup"
    assert result.rejected[0].kind is RejectionKind.INVALID_TRANSITION


def test_scheduled_effect_applies_when_due(processor):
    delayed = Effect.schedule(Effect.relation_delta("sulla", -5), 2)
    state = processor.apply(build_state(), [delayed]).state
    assert state.queued[0].due_round == 3

    state = processor.apply(state, [Effect.advance_round()]).state
    assert state.senators["sulla"].relation == 0.0

    state = processor.apply(state, [Effect.advance_round()]).state
    assert state.senators["sulla"].relation == -5.0
    assert state.queued == []


def test_winter_rolls_into_spring_of_next_year(processor):
    state = build_state(season=Season.WINTER, year=3)
    state = processor.apply(state, [Effect.advance_round()]).state

    assert state.season is Season.SPRING
    assert state.year == 4
    assert state.round == 2


def test_record_appends_history(processor):
    result = processor.apply(build_state(), [Effect.record("note", {"text": "hello"})])

    assert result.state.history[-1].kind == "note"
    assert result.state.history[-1].details == {"text": "hello"}


def test_application_is_deterministic():
    effects = [
        Effect.resource_delta("grain", -4),
        Effect.relation_delta("sulla", 12),
        Effect.price_shock("*", "grain", 1.2, 3),
        Effect.flag_set("omen", 2),
    ]
    first = apply_effects(build_state(), effects)
    second = apply_effects(build_state(), effects)

    assert first.state == second.state
    assert first.applied == second.applied


def test_empty_effect_list_is_identity(processor):
    state = build_state()
    result = processor.apply(state, [])

    assert result.state == state
    assert result.state is not state


def test_stacked_shocks_compose_then_expire(processor):
    state = processor.apply(
        build_state(),
        [
            Effect.price_shock("ostia", "grain", 1.2, 2),
            Effect.price_shock("ostia", "grain", 1.1, 3),
        ],
    ).state
    assert state.price("ostia", "grain") == pytest.approx(10.0 * 1.32)

    for _ in range(3):
        state = processor.apply(state, [Effect.advance_round(), Effect.reprice()]).state

    assert state.markets["ostia"]["grain"].modifiers == []
    assert state.price("ostia", "grain") == 10.0


@pytest.mark.parametrize(
    "effect",
    [
        Effect(EffectType.RECORD, {"kind": "note", "details": 5}),
        Effect(EffectType.FLAG_SET, {"tag": ["omen"]}),
        Effect(EffectType.RESOURCE_DELTA, {"resource": {"grain": 1}, "amount": 5}),
        Effect(EffectType.RELATION_DELTA, {"senator": ["sulla"], "amount": 5}),
        Effect(EffectType.EVENT_STATUS, {"senator": "sulla", "event": ["sulla_test"], "status": "eligible"}),
        Effect(EffectType.RECORD, None),
    ],
)
def test_malformed_payloads_are_rejected_not_raised(processor, effect):
    state = build_state()
    result = processor.apply(state, [effect, Effect.reputation_delta(5)])

    assert [r.kind for r in result.rejected] == [RejectionKind.INVALID_VALUE]
    assert result.applied[-1].effect_type is EffectType.REPUTATION_DELTA
    assert result.state.reputation == 25.0
    assert result.state.history == []
