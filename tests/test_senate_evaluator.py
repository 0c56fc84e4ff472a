"""Tests for the senate catalog and event evaluation."""
from __future__ import annotations

import pytest

from imperium.config import get_settings
from imperium.economy import EconomyConfig
from imperium.errors import IneligibleEventError
from imperium.models import Effect, EffectType, EventProgress, EventStatus
from imperium.rng import DeterministicRNG
from imperium.senate.catalog import Choice, SenateCatalog, SenateEvent, SenatorProfile
from imperium.senate.evaluator import EventEvaluator, check_conditions
from imperium.service import new_game


@pytest.fixture(scope="module")
def catalog():
    return SenateCatalog.load()


@pytest.fixture
def state(catalog):
    return new_game(get_settings(), catalog, EconomyConfig.load(), seed=5)


def simple_event(event_id: str, senator: str = "sulla", **kwargs) -> SenateEvent:
    return SenateEvent(
        id=event_id,
        senator=senator,
        title=event_id,
        description="",
        choices=[Choice(text="Agree", effects=[Effect.relation_delta(senator, 5)])],
        **kwargs,
    )


def test_default_catalog_shape(catalog):
    assert catalog.roster() == ["sertorius", "sulla", "clodius", "pulcher", "oppius"]
    assert len(catalog.events()) == 16
    assert catalog.profile("sulla").arc == ["sulla_first_audience", "sulla_proscription_list", "sulla_ultimatum"]
    assert catalog.attention_tier(5).label == "neglect"
    assert catalog.attention_tier(40).label == "focused"
    assert catalog.terminal_dispositions()["sulla"] == {"enforcer", "coup"}


def test_event_effects_default_to_event_senator(catalog):
    petition = catalog.event("sertorius_veterans_petition")
    relation = petition.choices[0].effects[0]
    scheduled = petition.choices[1].effects[2]

    assert relation.payload["senator"] == "sertorius"
    assert scheduled.effect_type is EffectType.SCHEDULE
    assert scheduled.payload["effect"].payload["senator"] == "sertorius"


@pytest.mark.parametrize(
    "profiles,events",
    [
        ([SenatorProfile("sulla", "Sulla", 0, "evaluating")], [simple_event("a"), simple_event("a")]),
        ([SenatorProfile("sulla", "Sulla", 0, "evaluating")], [simple_event("a", senator="crassus")]),
        ([SenatorProfile("sulla", "Sulla", 0, "evaluating", arc=["missing"])], [simple_event("a")]),
    ],
)
def test_catalog_rejects_inconsistent_definitions(profiles, events):
    with pytest.raises(ValueError):
        SenateCatalog(profiles, events)


def test_branch_must_target_the_arc():
    event = simple_event("a")
    event.choices[0].branch = "elsewhere"

    with pytest.raises(ValueError):
        SenateCatalog([SenatorProfile("sulla", "Sulla", 0, "evaluating", arc=["a"])], [event])


def test_round_window_and_disposition_gate_eligibility(catalog, state):
    evaluator = EventEvaluator(catalog)
    petition = catalog.event("sertorius_veterans_petition")
    sertorius = state.senators["sertorius"]

    assert not evaluator.is_eligible(petition, state, sertorius)
    state.round = 2
    assert evaluator.is_eligible(petition, state, sertorius)
    sertorius.disposition = "distant"
    assert not evaluator.is_eligible(petition, state, sertorius)


def test_arc_events_wait_for_the_cursor(catalog, state):
    evaluator = EventEvaluator(catalog)
    command = catalog.event("sertorius_border_command")
    sertorius = state.senators["sertorius"]
    state.round = 6

    assert not evaluator.is_eligible(command, state, sertorius)
    sertorius.arc_cursor = 1
    assert evaluator.is_eligible(command, state, sertorius)


def test_conditions_on_relation(catalog, state):
    evaluator = EventEvaluator(catalog)
    riot = catalog.event("clodius_riot")
    clodius = state.senators["clodius"]
    state.round = 6

    assert not evaluator.is_eligible(riot, state, clodius)
    clodius.relation = -30
    assert evaluator.is_eligible(riot, state, clodius)


@pytest.mark.parametrize(
    "conditions",
    [
        {"relation": 5},
        {"relation": {"about": 5}},
        {"weather": {"eq": "rain"}},
        {"senators": {"crassus": {"gt": 0}}},
        {"flags_all": 5},
        {"flags_none": None},
        {"flags_all": "divine_favor"},
        ["relation"],
    ],
)
def test_malformed_conditions_raise(state, conditions):
    with pytest.raises(IneligibleEventError) as excinfo:
        check_conditions(conditions, state, state.senators["sulla"], "broken_event")

    assert excinfo.value.event_id == "broken_event"


def test_flag_conditions(state):
    sulla = state.senators["sulla"]
    state.flags["divine_favor"] = None

    assert check_conditions({"flags_all": ["divine_favor"]}, state, sulla, "e")
    assert not check_conditions({"flags_none": ["divine_favor"]}, state, sulla, "e")


def test_predicate_failure_is_reported():
    def explode(state, senator):
        raise RuntimeError("bad data")

    event = simple_event("fragile", predicate=explode)
    catalog = SenateCatalog([SenatorProfile("sulla", "Sulla", 0, "evaluating")], [event])
    state = new_game(get_settings(), catalog, EconomyConfig.load())

    with pytest.raises(IneligibleEventError):
        EventEvaluator(catalog).is_eligible(event, state, state.senators["sulla"])


def test_choice_requirements(catalog, state):
    evaluator = EventEvaluator(catalog)
    ultimatum = catalog.event("sulla_ultimatum")
    sulla = state.senators["sulla"]

    assert evaluator.available_choices(ultimatum, state, sulla) == [0, 1, 2]
    state.resources["denarii"] = 100
    assert evaluator.available_choices(ultimatum, state, sulla) == [0, 1]


def test_outcome_advances_the_arc_or_branches(catalog, state):
    evaluator = EventEvaluator(catalog)
    audience = catalog.event("sulla_first_audience")
    sulla = state.senators["sulla"]

    def arc_target(effects):
        return next(e.payload["position"] for e in effects if e.effect_type is EffectType.ARC_ADVANCE)

    plain = evaluator.outcome_effects(audience, 0, sulla)
    branched = evaluator.outcome_effects(audience, 2, sulla)

    assert arc_target(plain) == 1
    assert arc_target(branched) == 2
    statuses = [e.payload["status"] for e in plain if e.effect_type is EffectType.EVENT_STATUS]
    assert statuses == [EventStatus.RESOLVED.value]


def test_outcome_effects_are_copies(catalog, state):
    evaluator = EventEvaluator(catalog)
    audience = catalog.event("sulla_first_audience")

    effects = evaluator.outcome_effects(audience, 0, state.senators["sulla"])
    effects[0].payload["amount"] = 999

    assert audience.choices[0].effects[0].payload["amount"] == 10


def test_chance_choice_uses_one_draw(catalog, state):
    evaluator = EventEvaluator(catalog)
    command = catalog.event("sertorius_border_command")
    sertorius = state.senators["sertorius"]

    resolution = evaluator.resolve_choice(command, 0, state, sertorius, DeterministicRNG(1))

    assert resolution.probability == pytest.approx(0.6 + 45 * 0.003)
    assert resolution.succeeded == (resolution.roll < resolution.probability)
    troops = next(
        e.payload["amount"]
        for e in resolution.effects
        if e.effect_type is EffectType.RESOURCE_DELTA and e.payload["resource"] == "troops"
    )
    assert troops == (20 if resolution.succeeded else -30)


def test_plain_choice_has_no_draw(catalog, state):
    evaluator = EventEvaluator(catalog)
    resolution = evaluator.resolve_choice(
        catalog.event("sulla_first_audience"), 1, state, state.senators["sulla"], DeterministicRNG(1)
    )

    assert resolution.probability is None
    assert resolution.succeeded is None


def test_event_loading_normalises_round_window():
    data = {
        "id": "late_offer",
        "senator": "sulla",
        "max_round": "10",
        "choices": [{"text": "Accept"}],
    }

    assert SenateEvent.from_dict(data).max_round == 10
    with pytest.raises(ValueError):
        SenateEvent.from_dict({**data, "max_round": "soon"})
    with pytest.raises(ValueError):
        SenateEvent.from_dict({**data, "conditions": ["relation"]})
    with pytest.raises(ValueError):
        SenateEvent.from_dict({**data, "choices": [{"text": "Accept", "requirements": 5}]})


def test_wrongly_typed_window_is_ineligible_not_a_crash(catalog, state):
    event = simple_event("late_offer", max_round="10")

    with pytest.raises(IneligibleEventError):
        EventEvaluator(catalog).is_eligible(event, state, state.senators["sulla"])


def test_rearmed_arc_event_skips_the_cursor(catalog, state):
    evaluator = EventEvaluator(catalog)
    ultimatum = catalog.event("sulla_ultimatum")
    sulla = state.senators["sulla"]
    state.round = 20
    sulla.arc_cursor = 3

    assert not evaluator.is_eligible(ultimatum, state, sulla)

    sulla.events["sulla_ultimatum"] = EventProgress(status=EventStatus.DORMANT, times_resolved=1, rearmed=True)
    assert evaluator.is_eligible(ultimatum, state, sulla)
    effects = evaluator.outcome_effects(ultimatum, 0, sulla)
    assert not any(e.effect_type is EffectType.ARC_ADVANCE for e in effects)
