"""Interfaces for the portal collaborators the automation core depends on."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Protocol

from ..models import Lead


class ActionKind(str, Enum):
    """Interactive targets the contact flow needs to locate."""

    LEAD_CARD = "lead_card"
    CONTACT_BUTTON = "contact_button"
    MESSAGE_FIELD = "message_field"
    SEND_BUTTON = "send_button"


class ExtractionAdapter(Protocol):
    """Turns the current portal page into :class:`Lead` records."""

    source_url: Optional[str]

    def extract_leads(self) -> List[Lead]:  # pragma: no cover - runtime protocol
        """Return the leads currently visible. May be short while the page loads."""

    def ensure_minimum(self, count: int) -> int:  # pragma: no cover - runtime protocol
        """Try to load at least ``count`` leads and return how many are available."""

    def refresh(self) -> None:  # pragma: no cover - runtime protocol
        """Reload the data source."""


class ActionAdapter(Protocol):
    """Low level interaction primitives. Absence is reported as ``None``/``False``."""

    def locate_action(self, kind: ActionKind, context: Any = None) -> Optional[Any]:  # pragma: no cover
        ...

    def invoke(self, handle: Any) -> None:  # pragma: no cover
        ...

    def get_field_value(self, handle: Any) -> str:  # pragma: no cover
        ...

    def set_field_value(self, handle: Any, text: str) -> None:  # pragma: no cover
        ...

    def poll_for_confirmation(self, timeout_ms: int) -> bool:  # pragma: no cover
        ...

    def detect_rejection(self) -> Optional[str]:  # pragma: no cover
        """Return the rejection text when the remote party refused the contact."""

    def capacity_exhausted(self) -> bool:  # pragma: no cover
        """Return ``True`` when the account can no longer contact leads."""


class SurfaceLauncher(Protocol):
    """Opens or focuses the portal surface the scheduler runs against."""

    def open_surface(self) -> bool:  # pragma: no cover - runtime protocol
        ...


@dataclass
class BrowserAdapterConfig:
    """Runtime configuration shared by browser backed adapters."""

    headless: bool = True
    navigation_timeout: float = 30.0
    user_data_dir: Optional[str] = None


class NullLauncher:
    """Launcher used when the surface is managed outside the agent."""

    def open_surface(self) -> bool:
        return True


__all__ = [
    "ActionAdapter",
    "ActionKind",
    "BrowserAdapterConfig",
    "ExtractionAdapter",
    "NullLauncher",
    "SurfaceLauncher",
]
