"""Clock, refresh pacing and cancellable waits for the automation loop."""
from __future__ import annotations

import threading
import time
from typing import Callable, Optional

ShouldContinue = Callable[[], bool]


class Clock:
    """Wall and monotonic time source. Tests substitute a fake implementation."""

    def monotonic(self) -> float:
        return time.monotonic()

    def time(self) -> float:
        return time.time()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    def now_ms(self) -> int:
        return int(self.time() * 1000)


SYSTEM_CLOCK = Clock()


def cancellable_sleep(
    seconds: float,
    should_continue: ShouldContinue,
    *,
    clock: Clock = SYSTEM_CLOCK,
    poll_interval: float = 0.25,
) -> bool:
    """Sleep for ``seconds`` in ``poll_interval`` slices.

    Returns ``False`` as soon as ``should_continue`` turns false, so a stop
    request takes effect within one polling tick. Returns ``True`` when the
    full duration elapsed.
    """

    deadline = clock.monotonic() + max(seconds, 0.0)
    step = poll_interval if poll_interval > 0 else 0.25
    while True:
        if not should_continue():
            return False
        remaining = deadline - clock.monotonic()
        if remaining <= 0:
            return True
        clock.sleep(min(step, remaining))


class RefreshGate:
    """Enforces a minimum interval between data-source refreshes."""

    def __init__(self, min_gap_seconds: float, *, clock: Clock = SYSTEM_CLOCK) -> None:
        self._min_gap = max(float(min_gap_seconds), 0.0)
        self._clock = clock
        self._lock = threading.Lock()
        self._last_refresh: Optional[float] = None

    @property
    def min_gap_seconds(self) -> float:
        return self._min_gap

    def remaining(self) -> float:
        """Seconds left before another refresh is allowed."""

        with self._lock:
            if self._last_refresh is None:
                return 0.0
            elapsed = self._clock.monotonic() - self._last_refresh
            return max(self._min_gap - elapsed, 0.0)

    def mark_refreshed(self) -> None:
        with self._lock:
            self._last_refresh = self._clock.monotonic()

    def reset(self) -> None:
        with self._lock:
            self._last_refresh = None


class Cooldown:
    """Allows an action at most once per ``seconds``."""

    def __init__(self, seconds: float, *, clock: Clock = SYSTEM_CLOCK) -> None:
        self._seconds = max(float(seconds), 0.0)
        self._clock = clock
        self._last: Optional[float] = None

    def ready(self) -> bool:
        if self._last is None:
            return True
        return self._clock.monotonic() - self._last >= self._seconds

    def trigger(self) -> bool:
        if not self.ready():
            return False
        self._last = self._clock.monotonic()
        return True


__all__ = ["Clock", "Cooldown", "RefreshGate", "SYSTEM_CLOCK", "cancellable_sleep"]
