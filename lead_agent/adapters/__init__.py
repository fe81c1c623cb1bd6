"""Portal adapters: interfaces, offline implementations and card parsing helpers.

The Playwright adapter lives in :mod:`lead_agent.adapters.playwright_portal`
and is loaded by class path from configuration.
"""

from .base import (  # noqa: F401
    ActionAdapter,
    ActionKind,
    BrowserAdapterConfig,
    ExtractionAdapter,
    NullLauncher,
    SurfaceLauncher,
)
from .cards import capacity_exhausted_in, lead_from_fields, rejection_in  # noqa: F401
from .sample import ContactScript, ScriptedActions, StaticLeadSource  # noqa: F401

__all__ = [
    "ActionAdapter",
    "ActionKind",
    "BrowserAdapterConfig",
    "ContactScript",
    "ExtractionAdapter",
    "NullLauncher",
    "ScriptedActions",
    "StaticLeadSource",
    "SurfaceLauncher",
    "capacity_exhausted_in",
    "lead_from_fields",
    "rejection_in",
]
