"""Configuration helpers for the lead qualification agent."""
from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .models import RuleSet

LOGGER = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised when configuration files are missing or malformed."""


_SUPPORTED_EXTENSIONS = {".json", ".yaml", ".yml"}

DEFAULT_MESSAGE_TEMPLATE = (
    "{greeting}\n\n"
    "We would love to support your needs {requirement}{location}. "
    "Please share quantities and timelines so we can offer the best quote.\n\n"
    "Thanks"
)
DEFAULT_GENERIC_MESSAGE = (
    "Hello,\n\n"
    "We would love to support your requirement. Please share quantities and "
    "timelines so we can offer the best quote.\n\n"
    "Thanks"
)


def load_configuration(path: str | Path) -> Dict[str, Any]:
    """Load configuration data from a JSON or YAML file."""

    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(f"Configuration file '{file_path}' was not found")

    if file_path.suffix.lower() not in _SUPPORTED_EXTENSIONS:
        raise ConfigurationError(
            f"Unsupported configuration format '{file_path.suffix}'. Supported extensions: {sorted(_SUPPORTED_EXTENSIONS)}"
        )

    text = file_path.read_text(encoding="utf-8")
    if file_path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        import yaml

        data = yaml.safe_load(text)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file '{file_path}' must contain a mapping at the top level")
    return data


# ---------------------------------------------------------------------------
# Rule sets
# ---------------------------------------------------------------------------

def _string_tuple(config: Mapping[str, Any], key: str) -> Tuple[str, ...]:
    value = config.get(key, [])
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise ConfigurationError(f"Rule field '{key}' must be a list of strings")
    return tuple(str(item).strip() for item in value if str(item).strip())


def _non_negative(config: Mapping[str, Any], key: str, default: float) -> float:
    value = config.get(key, default)
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Field '{key}' must be numeric, got {value!r}") from exc
    if number < 0:
        raise ConfigurationError(f"Field '{key}' must not be negative")
    return number


def build_rule_set(config: Mapping[str, Any]) -> RuleSet:
    """Validate a ``rules`` mapping and freeze it into a :class:`RuleSet`."""

    delays_value = config.get("contact_delay_minutes", (1, 5, 10))
    try:
        delays = tuple(int(item) for item in delays_value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError("Rule field 'contact_delay_minutes' must be a list of integers") from exc
    if not delays or any(delay < 0 for delay in delays):
        raise ConfigurationError("Rule field 'contact_delay_minutes' needs at least one non-negative value")

    return RuleSet(
        keywords=_string_tuple(config, "keywords"),
        excluded_locations=_string_tuple(config, "excluded_locations"),
        categories=_string_tuple(config, "categories"),
        min_quantity=_non_negative(config, "min_quantity", 0),
        quantity_unit=str(config.get("quantity_unit", "") or "").strip(),
        min_order_value=_non_negative(config, "min_order_value", 0),
        contact_delay_minutes=delays,
        currency_symbol=str(config.get("currency_symbol", "₹")),
    )


class RuleSetHolder:
    """Holds the active :class:`RuleSet` and swaps it atomically on reload."""

    def __init__(self, rules: Optional[RuleSet] = None) -> None:
        self._lock = threading.Lock()
        self._rules = rules
        self._version = 0 if rules is None else 1

    def current(self) -> Optional[RuleSet]:
        with self._lock:
            return self._rules

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def replace(self, rules: RuleSet) -> None:
        with self._lock:
            self._rules = rules
            self._version += 1
        LOGGER.info("Rule set updated (version %s, %s keywords)", self._version, len(rules.keywords))

    def load(self, config: Mapping[str, Any]) -> RuleSet:
        rules = build_rule_set(config)
        self.replace(rules)
        return rules


# ---------------------------------------------------------------------------
# Agent settings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScheduleSettings:
    refresh_interval_seconds: float = 30.0
    log_flush_interval_seconds: float = 30.0
    min_leads: int = 50
    top_up_cooldown_seconds: float = 60.0
    scrape_attempts: int = 15
    scrape_retry_seconds: float = 1.0
    poll_interval_seconds: float = 0.25


@dataclass(frozen=True)
class ContactSettings:
    locate_timeout_seconds: float = 8.0
    send_button_timeout_seconds: float = 20.0
    confirmation_timeout_seconds: float = 6.0
    retry_locate_timeout_seconds: float = 5.0
    settle_seconds: float = 1.2
    retry_settle_seconds: float = 1.5
    max_submit_retries: int = 1
    message_template: str = DEFAULT_MESSAGE_TEMPLATE
    generic_message: str = DEFAULT_GENERIC_MESSAGE


@dataclass(frozen=True)
class LogSettings:
    max_summaries: int = 20
    max_lead_logs: int = 20
    max_contact_history: int = 50


@dataclass(frozen=True)
class CoordinatorSettings:
    heartbeat_interval_seconds: float = 60.0
    inactive_threshold_seconds: float = 180.0
    request_timeout_seconds: float = 5.0
    timezone: str = ""


def _section(cls, config: Mapping[str, Any], name: str):
    section = config.get(name) or {}
    if not isinstance(section, Mapping):
        raise ConfigurationError(f"Configuration section '{name}' must be a mapping")
    known = {item.name: item for item in fields(cls)}
    values: Dict[str, Any] = {}
    for key, value in section.items():
        if key not in known:
            LOGGER.warning("Ignoring unknown option '%s.%s'", name, key)
            continue
        default = known[key].default
        if isinstance(default, str):
            values[key] = str(value)
        elif isinstance(default, int) and not isinstance(default, bool):
            values[key] = int(_non_negative(section, key, default))
        else:
            values[key] = _non_negative(section, key, default)
    return cls(**values)


@dataclass(frozen=True)
class AgentSettings:
    """Typed view over the configuration file."""

    rules: Optional[RuleSet] = None
    schedule: ScheduleSettings = field(default_factory=ScheduleSettings)
    contact: ContactSettings = field(default_factory=ContactSettings)
    logs: LogSettings = field(default_factory=LogSettings)
    coordinator: CoordinatorSettings = field(default_factory=CoordinatorSettings)
    storage_path: Optional[str] = None
    adapters: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "AgentSettings":
        rules_config = config.get("rules")
        rules = build_rule_set(rules_config) if rules_config else None
        storage = config.get("storage") or {}
        adapters = config.get("adapters") or {}
        if not isinstance(adapters, Mapping):
            raise ConfigurationError("Configuration section 'adapters' must be a mapping")
        return cls(
            rules=rules,
            schedule=_section(ScheduleSettings, config, "schedule"),
            contact=_section(ContactSettings, config, "contact"),
            logs=_section(LogSettings, config, "logs"),
            coordinator=_section(CoordinatorSettings, config, "coordinator"),
            storage_path=storage.get("path"),
            adapters=dict(adapters),
        )


def load_settings(path: str | Path) -> AgentSettings:
    return AgentSettings.from_mapping(load_configuration(path))


__all__ = [
    "AgentSettings",
    "ConfigurationError",
    "ContactSettings",
    "CoordinatorSettings",
    "LogSettings",
    "RuleSetHolder",
    "ScheduleSettings",
    "build_rule_set",
    "load_configuration",
    "load_settings",
]
