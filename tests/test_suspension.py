from __future__ import annotations

from datetime import timezone

import pytest

from lead_agent.orchestrator.suspension import SuspensionController, next_local_midnight
from lead_agent.storage import SUSPENSION_KEY

zoneinfo = pytest.importorskip("zoneinfo")


def _zone(name: str):
    try:
        return zoneinfo.ZoneInfo(name)
    except zoneinfo.ZoneInfoNotFoundError:
        pytest.skip(f"timezone data for {name} is not installed")


NOV_15_UTC_MIDNIGHT_MS = 1_700_006_400_000


@pytest.fixture
def resumed():
    return []


@pytest.fixture
def controller(store, clock, timers, resumed) -> SuspensionController:
    return SuspensionController(
        store, on_resume=resumed.append, clock=clock, timer_factory=timers, timezone=timezone.utc
    )


def test_next_midnight_in_utc() -> None:
    assert next_local_midnight(1_700_000_000, timezone.utc) == NOV_15_UTC_MIDNIGHT_MS


def test_next_midnight_follows_named_timezone() -> None:
    # 03:43 local time in Kolkata rolls over to the following local midnight.
    resume_at = next_local_midnight(1_700_000_000, _zone("Asia/Kolkata"))

    assert resume_at == 1_700_073_000_000


def test_suspend_persists_and_arms_timer(controller, store, timers) -> None:
    state = controller.suspend(restore_automation=True)

    assert store.get(SUSPENSION_KEY) == {
        "active": True,
        "resume_at_epoch_ms": NOV_15_UTC_MIDNIGHT_MS,
        "restore_automation_on_resume": True,
    }
    assert state.resume_at_epoch_ms == NOV_15_UTC_MIDNIGHT_MS
    (timer,) = timers.timers
    assert timer.started and timer.daemon
    assert timer.delay == pytest.approx(6400)
    assert controller.seconds_remaining() == pytest.approx(6400)


def test_repeated_suspend_keeps_original_deadline(controller, clock, timers) -> None:
    first = controller.suspend(restore_automation=True)
    clock.advance(600)

    second = controller.suspend(restore_automation=False)

    assert second == first
    assert timers.timers[0].cancelled
    assert timers.timers[1].delay == pytest.approx(5800)


def test_timer_fire_resumes_with_captured_flag(controller, store, timers, resumed) -> None:
    controller.suspend(restore_automation=False)

    timers.timers[0].fire()

    assert resumed == [False]
    assert store.get(SUSPENSION_KEY) is None
    assert not controller.active


def test_restart_before_deadline_rearms(store, clock, timers, resumed) -> None:
    SuspensionController(store, on_resume=resumed.append, clock=clock, timer_factory=timers, timezone="UTC").suspend(True)
    clock.advance(3600)

    restarted = SuspensionController(store, on_resume=resumed.append, clock=clock, timer_factory=timers, timezone="UTC")
    state = restarted.restore()

    assert state is not None
    assert resumed == []
    assert timers.timers[-1].delay == pytest.approx(2800)


def test_restart_after_deadline_resumes_immediately(store, clock, timers, resumed) -> None:
    SuspensionController(store, on_resume=resumed.append, clock=clock, timer_factory=timers, timezone="UTC").suspend(True)
    clock.advance(7200)

    restarted = SuspensionController(store, on_resume=resumed.append, clock=clock, timer_factory=timers, timezone="UTC")

    assert restarted.restore() is None
    assert resumed == [True]
    assert store.get(SUSPENSION_KEY) is None


def test_restore_without_suspension_is_noop(controller, timers) -> None:
    assert controller.restore() is None
    assert timers.timers == []


def test_cancel_clears_without_resuming(controller, store, timers, resumed) -> None:
    controller.suspend(restore_automation=True)

    controller.cancel()

    assert timers.timers[0].cancelled
    assert store.get(SUSPENSION_KEY) is None
    assert resumed == []
    assert controller.seconds_remaining() is None
