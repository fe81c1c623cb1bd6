"""Offline adapters operating on local data and a simulated portal."""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models import Lead
from .base import ActionKind

LOGGER = logging.getLogger(__name__)


class StaticLeadSource:
    """Serves a fixed list of leads, optionally reloaded from a spreadsheet on refresh."""

    def __init__(self, leads: Optional[Iterable[Lead]] = None, *, path: Optional[str] = None) -> None:
        self._path = Path(path) if path else None
        self._leads: List[Lead] = list(leads or [])
        self.refresh_count = 0
        self.top_up_requests: List[int] = []
        self.source_url: Optional[str] = self._path.resolve().as_uri() if self._path else None
        if self._path is not None and not self._leads:
            self._load()

    def _load(self) -> None:
        from ..io import load_leads

        assert self._path is not None
        self._leads = load_leads(self._path)
        LOGGER.info("Loaded %s leads from %s", len(self._leads), self._path)

    def set_leads(self, leads: Iterable[Lead]) -> None:
        self._leads = list(leads)

    def extract_leads(self) -> List[Lead]:
        return [copy.deepcopy(lead) for lead in self._leads]

    def ensure_minimum(self, count: int) -> int:
        self.top_up_requests.append(count)
        return len(self._leads)

    def refresh(self) -> None:
        self.refresh_count += 1
        if self._path is not None:
            self._load()


@dataclass
class ContactScript:
    """Simulated behaviour of one lead card on the portal."""

    present: bool = True
    contact_button: bool = True
    send_button: bool = True
    rejection: Optional[str] = None
    confirm_on_attempt: int = 1
    prefilled_message: str = ""


Handle = Tuple[str, int]


def _as_script(value: ContactScript | Dict[str, Any]) -> ContactScript:
    return value if isinstance(value, ContactScript) else ContactScript(**value)


class ScriptedActions:
    """In-memory stand-in for the portal's interaction surface.

    ``confirm_on_attempt`` controls on which send attempt the confirmation
    appears (``0`` never confirms). ``exhaust_after`` flips
    :meth:`capacity_exhausted` once that many contacts were confirmed.
    """

    def __init__(
        self,
        scripts: Optional[Dict[int, ContactScript | Dict[str, Any]]] = None,
        *,
        default: Optional[ContactScript | Dict[str, Any]] = None,
        exhaust_after: Optional[int] = None,
    ) -> None:
        self._scripts = {int(position): _as_script(script) for position, script in (scripts or {}).items()}
        self._default = _as_script(default) if default is not None else ContactScript()
        self._exhaust_after = exhaust_after
        self._active: Optional[int] = None
        self._fields: Dict[int, str] = {}
        self.send_attempts: Dict[int, int] = {}
        self.confirmed: List[int] = []
        self.invocations: List[Handle] = []

    def script_for(self, position: int) -> ContactScript:
        return self._scripts.get(position, self._default)

    # -- ActionAdapter --------------------------------------------------
    def locate_action(self, kind: ActionKind, context: Any = None) -> Optional[Handle]:
        if kind is ActionKind.LEAD_CARD:
            position = int(context)
            return ("card", position) if self.script_for(position).present else None
        if kind is ActionKind.CONTACT_BUTTON:
            position = context[1] if isinstance(context, tuple) else int(context)
            return ("contact", position) if self.script_for(position).contact_button else None
        if self._active is None:
            return None
        if kind is ActionKind.MESSAGE_FIELD:
            return ("field", self._active)
        if kind is ActionKind.SEND_BUTTON:
            if self._active in self.confirmed:
                return None
            return ("send", self._active) if self.script_for(self._active).send_button else None
        return None

    def invoke(self, handle: Handle) -> None:
        self.invocations.append(handle)
        kind, position = handle
        if kind == "contact":
            self._active = position
            self._fields.setdefault(position, self.script_for(position).prefilled_message)
        elif kind == "send":
            attempts = self.send_attempts.get(position, 0) + 1
            self.send_attempts[position] = attempts
            script = self.script_for(position)
            if script.confirm_on_attempt and attempts >= script.confirm_on_attempt:
                self.confirmed.append(position)

    def get_field_value(self, handle: Handle) -> str:
        return self._fields.get(handle[1], "")

    def set_field_value(self, handle: Handle, text: str) -> None:
        self._fields[handle[1]] = text

    def message_for(self, position: int) -> str:
        return self._fields.get(position, "")

    def poll_for_confirmation(self, timeout_ms: int) -> bool:
        return self._active is not None and self._active in self.confirmed

    def detect_rejection(self) -> Optional[str]:
        if self._active is None:
            return None
        return self.script_for(self._active).rejection

    def capacity_exhausted(self) -> bool:
        return self._exhaust_after is not None and len(self.confirmed) >= self._exhaust_after


__all__ = ["ContactScript", "ScriptedActions", "StaticLeadSource"]
