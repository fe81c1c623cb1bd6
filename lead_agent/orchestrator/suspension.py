"""Capacity-exhaustion suspension that survives restarts."""
from __future__ import annotations

import logging
import threading
from datetime import datetime, time, timedelta, tzinfo
from typing import Callable, Optional

from ..models import SuspensionState
from ..rate_limit import SYSTEM_CLOCK, Clock
from ..storage import SUSPENSION_KEY, KeyValueStore

LOGGER = logging.getLogger(__name__)

ResumeCallback = Callable[[bool], None]
TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


def next_local_midnight(epoch_seconds: float, tz: Optional[tzinfo] = None) -> int:
    """Return the epoch milliseconds of the midnight following ``epoch_seconds``.

    Without ``tz`` the host's local timezone is used.
    """

    if tz is None:
        now = datetime.fromtimestamp(epoch_seconds).astimezone()
        zone = now.tzinfo
    else:
        now = datetime.fromtimestamp(epoch_seconds, tz=tz)
        zone = tz
    midnight = datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=zone)
    return int(midnight.timestamp() * 1000)


def _load_timezone(name: str) -> Optional[tzinfo]:
    if not name:
        return None
    from zoneinfo import ZoneInfo

    return ZoneInfo(name)


class SuspensionController:
    """Persists a suspension and lifts it at the next local midnight.

    ``on_resume`` receives the ``restore_automation_on_resume`` flag captured
    when the suspension began. It is called from the timer thread, or from
    :meth:`restore` when the deadline already passed while the process was down.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        on_resume: ResumeCallback,
        clock: Clock = SYSTEM_CLOCK,
        timer_factory: TimerFactory = threading.Timer,
        timezone: str | tzinfo | None = None,
    ) -> None:
        self._store = store
        self._on_resume = on_resume
        self._clock = clock
        self._timer_factory = timer_factory
        self._tz = _load_timezone(timezone) if isinstance(timezone, str) else timezone
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None

    @property
    def state(self) -> Optional[SuspensionState]:
        return SuspensionState.from_dict(self._store.get(SUSPENSION_KEY))

    @property
    def active(self) -> bool:
        return self.state is not None

    def suspend(self, restore_automation: bool) -> SuspensionState:
        """Record a suspension until the next local midnight and arm the resume timer."""

        existing = self.state
        if existing is not None:
            LOGGER.debug("Suspension already active until %s", existing.resume_at_epoch_ms)
            self._arm(existing)
            return existing
        state = SuspensionState(
            active=True,
            resume_at_epoch_ms=next_local_midnight(self._clock.time(), self._tz),
            restore_automation_on_resume=restore_automation,
        )
        self._store.set(SUSPENSION_KEY, state.to_dict())
        LOGGER.warning(
            "Automation suspended until %s (restore on resume: %s)",
            datetime.fromtimestamp(state.resume_at_epoch_ms / 1000).isoformat(timespec="minutes"),
            restore_automation,
        )
        self._arm(state)
        return state

    def restore(self) -> Optional[SuspensionState]:
        """Re-establish a persisted suspension after a restart.

        Resumes immediately when the deadline already passed, otherwise
        re-arms the timer for the remaining time.
        """

        state = self.state
        if state is None:
            return None
        if state.resume_at_epoch_ms <= self._clock.now_ms():
            LOGGER.info("Suspension deadline passed while offline; resuming now")
            self.resume()
            return None
        self._arm(state)
        return state

    def resume(self) -> bool:
        state = self.state
        self.disarm()
        if state is None:
            return False
        self._store.delete(SUSPENSION_KEY)
        LOGGER.info("Suspension lifted")
        self._on_resume(state.restore_automation_on_resume)
        return True

    def cancel(self) -> None:
        """Drop the suspension without resuming automation."""

        self.disarm()
        if self.state is not None:
            self._store.delete(SUSPENSION_KEY)
            LOGGER.info("Suspension cleared")

    def seconds_remaining(self) -> Optional[float]:
        state = self.state
        if state is None:
            return None
        return max((state.resume_at_epoch_ms - self._clock.now_ms()) / 1000.0, 0.0)

    def _arm(self, state: SuspensionState) -> None:
        delay = max((state.resume_at_epoch_ms - self._clock.now_ms()) / 1000.0, 0.0)
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = self._timer_factory(delay, self._fire)
            timer.daemon = True
            self._timer = timer
        timer.start()
        LOGGER.debug("Resume timer armed for %.0f seconds", delay)

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        try:
            self.resume()
        except Exception:
            LOGGER.exception("Resuming after suspension failed")

    def disarm(self) -> None:
        """Cancel the resume timer, leaving the persisted suspension in place."""

        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None and timer is not threading.current_thread():
            timer.cancel()


__all__ = ["SuspensionController", "next_local_midnight"]
