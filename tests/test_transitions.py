"""Tests for event and disposition state tables."""
from __future__ import annotations

import pytest

from imperium.models import EventStatus, GameState, Season, SenatorRecord
from imperium.senate.transitions import DispositionRule, can_transition, compare, next_disposition


def build_state(round_number: int = 10, troops: float = 150.0) -> GameState:
    return GameState(
        seed=1,
        round=round_number,
        season=Season.SPRING,
        year=1,
        resources={"troops": troops},
        reputation=20.0,
    )


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (EventStatus.DORMANT, EventStatus.ELIGIBLE, True),
        (EventStatus.DORMANT, EventStatus.PRESENTED, False),
        (EventStatus.ELIGIBLE, EventStatus.PRESENTED, True),
        (EventStatus.PRESENTED, EventStatus.RESOLVED, True),
        (EventStatus.PRESENTED, EventStatus.ELIGIBLE, False),
        (EventStatus.RESOLVED, EventStatus.DORMANT, True),
        (EventStatus.RESOLVED, EventStatus.PRESENTED, False),
    ],
)
def test_event_transition_table(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_compare_rejects_unknown_operator():
    assert compare("lte", 3, 3)
    with pytest.raises(KeyError):
        compare("roughly", 3, 3)


def test_rule_parsing_validates_operators():
    with pytest.raises(ValueError):
        DispositionRule.from_dict({"from": "rival", "to": "coup", "resources": {"troops": {"below": 100}}})


def test_first_matching_rule_wins():
    rules = [
        DispositionRule.from_dict({"from": "rival", "to": "coup", "min_round": 24, "max_relation": -60, "resources": {"troops": {"lt": 100}}}),
        DispositionRule.from_dict({"from": "rival", "to": "circling", "min_relation": -30}),
        DispositionRule.from_dict({"from": "rival", "to": "broken", "behaviour": {"ruthless": 2}}),
    ]
    senator = SenatorRecord(id="sulla", name="Sulla", relation=-70, disposition="rival")

    assert next_disposition(rules, senator, build_state(round_number=24, troops=150)) is None
    assert next_disposition(rules, senator, build_state(round_number=24, troops=80)).target == "coup"

    senator.relation = -10
    assert next_disposition(rules, senator, build_state()).target == "circling"

    senator.relation = -50
    senator.behaviour["ruthless"] = 2
    assert next_disposition(rules, senator, build_state()).target == "broken"
