"""Tests for settings loading and validation."""
from __future__ import annotations

import pytest
import yaml

from imperium.config import Settings, SettingsLoader, get_settings


def test_packaged_settings():
    settings = get_settings()

    assert settings.relation_bounds == (-100.0, 100.0)
    assert settings.faction_bounds == (0.0, 100.0)
    assert settings.tier_thresholds == {"uncertain": 0.35, "likely": 0.65}
    assert settings.envoy_cost == 100
    assert settings.max_events_per_round == 2
    assert settings.starting_resources["denarii"] == 500
    assert settings.starting_factions["sabines"] == 30


def test_empty_mapping_uses_defaults():
    settings = Settings.from_dict({})

    assert settings.reputation_bounds == (0.0, 100.0)
    assert settings.god_bonus_flag == "divine_favor"
    assert settings.monte_carlo_iterations == 2000
    assert settings.starting_resources == {"denarii": 500.0}


@pytest.mark.parametrize(
    "data",
    [
        {"diplomacy": {"tiers": {"uncertain": 0.7, "likely": 0.6}}},
        {"diplomacy": {"tiers": {"uncertain": -0.1, "likely": 0.6}}},
        {"diplomacy": {"reputation_curve": {"cap": 0.5, "scale": 0}}},
        {"bounds": {"relation": [10, -10]}},
        {"forecast": {"monte_carlo_iterations": 0}},
    ],
)
def test_invalid_settings_are_rejected(data):
    with pytest.raises(ValueError):
        Settings.from_dict(data)


def test_loader_caches_until_forced(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump({"senate": {"max_events_per_round": 3}}), encoding="utf-8")
    loader = SettingsLoader(path)

    first = loader.load()
    path.write_text(yaml.safe_dump({"senate": {"max_events_per_round": 1}}), encoding="utf-8")

    assert loader.load() is first
    assert loader.load(force=True).max_events_per_round == 1
    assert first.max_events_per_round == 3


def test_environment_overrides_default_path(tmp_path, monkeypatch):
    path = tmp_path / "campaign.yaml"
    path.write_text(yaml.safe_dump({"diplomacy": {"envoy": {"cost": 250}}}), encoding="utf-8")
    monkeypatch.setenv("IMPERIUM_SETTINGS", str(path))

    loader = SettingsLoader()

    assert loader.path == path
    assert loader.load().envoy_cost == 250
