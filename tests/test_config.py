from __future__ import annotations

import json
import logging

import pytest

from lead_agent.config import (
    AgentSettings,
    ConfigurationError,
    RuleSetHolder,
    build_rule_set,
    load_configuration,
    load_settings,
)
from lead_agent.models import RuleSet

YAML_CONFIG = """
rules:
  keywords: [uniform, blazer]
  excluded_locations: [usa]
  categories: [school uniform]
  min_quantity: 100
  quantity_unit: Piece
  min_order_value: 50000
  contact_delay_minutes: [2, 4]
schedule:
  refresh_interval_seconds: 45
  min_leads: 20
contact:
  max_submit_retries: 2
  message_template: "{greeting} {requirement}{location}"
coordinator:
  timezone: Asia/Kolkata
storage:
  path: state/agent.json
adapters:
  extraction:
    class: lead_agent.adapters.sample.StaticLeadSource
"""


def test_load_yaml_settings(tmp_path) -> None:
    path = tmp_path / "agent.yaml"
    path.write_text(YAML_CONFIG, encoding="utf-8")

    settings = load_settings(path)

    assert settings.rules.keywords == ("uniform", "blazer")
    assert settings.rules.contact_delay_minutes == (2, 4)
    assert settings.schedule.refresh_interval_seconds == 45.0
    assert settings.schedule.min_leads == 20
    assert isinstance(settings.schedule.min_leads, int)
    assert settings.contact.max_submit_retries == 2
    assert settings.contact.message_template == "{greeting} {requirement}{location}"
    assert settings.coordinator.timezone == "Asia/Kolkata"
    assert settings.storage_path == "state/agent.json"
    assert settings.adapters["extraction"]["class"].endswith("StaticLeadSource")


def test_load_json_configuration(tmp_path) -> None:
    path = tmp_path / "agent.json"
    path.write_text(json.dumps({"rules": {"keywords": ["shirt"]}}), encoding="utf-8")

    assert load_configuration(path) == {"rules": {"keywords": ["shirt"]}}


def test_empty_configuration_is_allowed(tmp_path) -> None:
    path = tmp_path / "agent.yml"
    path.write_text("", encoding="utf-8")

    settings = AgentSettings.from_mapping(load_configuration(path))

    assert settings.rules is None
    assert settings.schedule.refresh_interval_seconds == 30.0


def test_missing_file(tmp_path) -> None:
    with pytest.raises(ConfigurationError, match="was not found"):
        load_configuration(tmp_path / "absent.yaml")


def test_unsupported_extension(tmp_path) -> None:
    path = tmp_path / "agent.toml"
    path.write_text("x = 1", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="Unsupported configuration format"):
        load_configuration(path)


def test_top_level_must_be_mapping(tmp_path) -> None:
    path = tmp_path / "agent.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_configuration(path)


def test_rule_set_defaults() -> None:
    rules = build_rule_set({"keywords": ["uniform", " ", "shirt "]})

    assert rules.keywords == ("uniform", "shirt")
    assert rules.contact_delay_minutes == (1, 5, 10)
    assert rules.currency_symbol == "₹"


@pytest.mark.parametrize(
    "config",
    [
        {"keywords": "uniform"},
        {"min_quantity": -1},
        {"min_order_value": "lots"},
        {"contact_delay_minutes": []},
        {"contact_delay_minutes": ["soon"]},
    ],
)
def test_invalid_rules_rejected(config) -> None:
    with pytest.raises(ConfigurationError):
        build_rule_set(config)


def test_unknown_options_are_ignored_with_warning(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="lead_agent.config"):
        settings = AgentSettings.from_mapping({"schedule": {"refresh_every": 5}})

    assert settings.schedule.refresh_interval_seconds == 30.0
    assert "schedule.refresh_every" in caplog.text


def test_section_must_be_mapping() -> None:
    with pytest.raises(ConfigurationError):
        AgentSettings.from_mapping({"contact": ["x"]})


def test_rule_set_holder_versions() -> None:
    holder = RuleSetHolder()
    assert holder.current() is None
    assert holder.version == 0

    holder.replace(RuleSet(keywords=("a",)))
    rules = holder.load({"keywords": ["b"]})

    assert holder.current() is rules
    assert holder.version == 2


def test_rules_round_trip_through_storage_form() -> None:
    rules = build_rule_set({"keywords": ["uniform"], "contact_delay_minutes": [3]})

    assert build_rule_set(rules.to_dict()) == rules
