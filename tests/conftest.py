from __future__ import annotations

import threading
import time
from typing import Callable, List

import pytest

from lead_agent.models import Lead, RuleSet
from lead_agent.parsing import parse_magnitude_value, parse_quantity
from lead_agent.rate_limit import Clock
from lead_agent.storage import MemoryStore


class FakeClock(Clock):
    """Clock whose ``sleep`` advances time instantly."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self._lock = threading.Lock()
        self._wall = start
        self._mono = 0.0
        self.sleeps: List[float] = []

    def monotonic(self) -> float:
        with self._lock:
            return self._mono

    def time(self) -> float:
        with self._lock:
            return self._wall

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._mono += seconds
            self._wall += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def rules() -> RuleSet:
    return RuleSet(
        keywords=("uniform",),
        excluded_locations=("usa", "dubai"),
        categories=("school uniform", "corporate uniform"),
        min_quantity=100,
        quantity_unit="piece",
        min_order_value=50_000,
        contact_delay_minutes=(1, 5, 10),
    )


@pytest.fixture
def make_lead() -> Callable[..., Lead]:
    def factory(position: int = 0, **overrides) -> Lead:
        quantity = overrides.pop("quantity", "500 Piece")
        value = overrides.pop("value", "₹1 lakh")
        fields = {
            "lead_id": f"lead-{position}",
            "company_name": f"Company {position}",
            "enquiry_title": "School uniform shirts",
            "requirement": "Need school uniform shirts for the new term",
            "location": "Pune, Maharashtra",
            "category": "School Uniform",
            "source_position": position,
        }
        fields.update(overrides)
        return Lead(
            quantity=parse_quantity(quantity),
            probable_value=parse_magnitude_value(value),
            **fields,
        )

    return factory


class FakeTimer:
    """``threading.Timer`` stand-in that only fires when told to."""

    def __init__(self, delay, function) -> None:
        self.delay = delay
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.function()


class TimerFactory:
    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def __call__(self, delay, function) -> FakeTimer:
        timer = FakeTimer(delay, function)
        self.timers.append(timer)
        return timer


@pytest.fixture
def timers() -> TimerFactory:
    return TimerFactory()


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    def waiter(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()

    return waiter
