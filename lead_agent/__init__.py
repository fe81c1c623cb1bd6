"""Lead qualification and autonomous contact orchestration."""

from . import models  # noqa: F401
from .config import AgentSettings, ConfigurationError, RuleSetHolder, load_settings  # noqa: F401
from .filtering import evaluate  # noqa: F401
from .models import (  # noqa: F401
    ContactSuccessEntry,
    CycleReport,
    Lead,
    LeadEvaluation,
    MagnitudeValue,
    Quantity,
    RuleSet,
    SuspensionState,
    Verdict,
)
from .parsing import format_value_range, parse_magnitude_value, parse_quantity  # noqa: F401

__all__ = [
    "AgentSettings",
    "ConfigurationError",
    "ContactSuccessEntry",
    "CycleReport",
    "Lead",
    "LeadEvaluation",
    "MagnitudeValue",
    "Quantity",
    "RuleSet",
    "RuleSetHolder",
    "SuspensionState",
    "Verdict",
    "evaluate",
    "format_value_range",
    "load_settings",
    "parse_magnitude_value",
    "parse_quantity",
    "adapters",
    "contact",
    "orchestrator",
]
