"""Finite-state value describing whether automation may run."""
from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, List

LOGGER = logging.getLogger(__name__)


class AutomationMode(str, Enum):
    DISABLED = "disabled"
    RUNNING = "running"
    STOPPED = "stopped"
    SUSPENDED = "suspended"


class CyclePhase(str, Enum):
    IDLE = "idle"
    SCRAPING = "scraping"
    FILTERING = "filtering"
    DISPATCHING = "dispatching"
    WAITING = "waiting"
    SUSPENDED = "suspended"


ModeListener = Callable[[AutomationMode, AutomationMode], None]


class AutomationState:
    """Single source of truth for the enabled / stopped / suspended flags.

    Exactly one mode holds at a time, so combinations such as "stopped but
    still dispatching" cannot be expressed.
    """

    def __init__(self, mode: AutomationMode = AutomationMode.DISABLED) -> None:
        self._lock = threading.Lock()
        self._mode = mode
        self._listeners: List[ModeListener] = []

    @property
    def mode(self) -> AutomationMode:
        with self._lock:
            return self._mode

    def should_continue(self) -> bool:
        return self.mode is AutomationMode.RUNNING

    @property
    def stopped(self) -> bool:
        return self.mode is AutomationMode.STOPPED

    @property
    def suspended(self) -> bool:
        return self.mode is AutomationMode.SUSPENDED

    def add_listener(self, listener: ModeListener) -> None:
        self._listeners.append(listener)

    def enable(self) -> bool:
        """Start running. Refused while suspended."""

        return self._transition(AutomationMode.RUNNING, refuse_from={AutomationMode.SUSPENDED})

    def disable(self) -> bool:
        return self._transition(AutomationMode.DISABLED, refuse_from={AutomationMode.SUSPENDED})

    def stop(self) -> bool:
        return self._transition(AutomationMode.STOPPED)

    def suspend(self) -> AutomationMode:
        """Force-disable for a suspension and return the mode that was active."""

        with self._lock:
            previous = self._mode
            self._mode = AutomationMode.SUSPENDED
        if previous is not AutomationMode.SUSPENDED:
            self._notify(previous, AutomationMode.SUSPENDED)
        return previous

    def lift_suspension(self, restore: bool) -> AutomationMode:
        target = AutomationMode.RUNNING if restore else AutomationMode.DISABLED
        with self._lock:
            previous = self._mode
            if previous is AutomationMode.SUSPENDED:
                self._mode = target
        if previous is AutomationMode.SUSPENDED:
            self._notify(previous, target)
            return target
        return previous

    def _transition(self, target: AutomationMode, *, refuse_from=frozenset()) -> bool:
        with self._lock:
            previous = self._mode
            if previous in refuse_from:
                LOGGER.info("Ignoring %s request while %s", target.value, previous.value)
                return False
            self._mode = target
        if previous is not target:
            self._notify(previous, target)
        return True

    def _notify(self, previous: AutomationMode, current: AutomationMode) -> None:
        LOGGER.info("Automation %s -> %s", previous.value, current.value)
        for listener in list(self._listeners):
            try:
                listener(previous, current)
            except Exception:
                LOGGER.exception("Automation state listener failed")


__all__ = ["AutomationMode", "AutomationState", "CyclePhase"]
