"""Process-level coordination: commands, worker lifecycle, suspension and heartbeat."""
from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..adapters.base import NullLauncher, SurfaceLauncher
from ..config import ConfigurationError, CoordinatorSettings, RuleSetHolder, build_rule_set
from ..messaging import Command, Endpoint, EventBus, EventType, Message, Response
from ..rate_limit import SYSTEM_CLOCK, Clock
from ..storage import RULES_KEY, STATISTICS_KEY, KeyValueStore
from .scheduler import CycleScheduler, EventSink
from .suspension import SuspensionController, TimerFactory

LOGGER = logging.getLogger(__name__)

SchedulerFactory = Callable[[EventSink], CycleScheduler]


class AgentWorker:
    """Owns a :class:`CycleScheduler` and serves coordinator commands for it."""

    def __init__(self, scheduler: CycleScheduler) -> None:
        self.scheduler = scheduler
        self.endpoint = Endpoint("worker", self.handle)

    def start(self) -> None:
        self.endpoint.start()
        self.scheduler.start()

    def close(self) -> None:
        self.scheduler.hard_stop()
        self.scheduler.shutdown()
        self.endpoint.close()

    def handle(self, message: Message) -> Response:
        scheduler = self.scheduler
        kind = message.kind
        if kind is Command.ENABLE_AUTO_CONTACT:
            if not scheduler.enable():
                return Response.fail("Automation is suspended")
            return Response.ok(mode=scheduler.state.mode.value)
        if kind is Command.DISABLE_AUTO_CONTACT:
            if not scheduler.disable():
                return Response.fail("Automation is suspended")
            return Response.ok(mode=scheduler.state.mode.value)
        if kind is Command.STOP_AGENT:
            scheduler.hard_stop()
            return Response.ok(mode=scheduler.state.mode.value)
        if kind is Command.RUN_CYCLE:
            if not scheduler.state.should_continue():
                return Response.fail("Auto-contact disabled or stopped", mode=scheduler.state.mode.value)
            self._run_in_background("manual")
            return Response.ok()
        if kind is Command.PROCESS_LEADS_FOR_LOGS:
            if not scheduler.state.should_continue():
                return Response.fail("Auto-contact disabled or stopped", mode=scheduler.state.mode.value)
            self._run_in_background("heartbeat")
            return Response.ok(processing=True)
        if kind is Command.GET_STATUS:
            return Response.ok(**scheduler.status())
        if kind is Command.RESET_STATISTICS:
            scheduler.reset_statistics()
            return Response.ok()
        return Response.fail(f"Unsupported command {kind.value}")

    def _run_in_background(self, trigger: str) -> None:
        thread = threading.Thread(
            target=self._safe_cycle, args=(trigger,), name=f"lead-agent-{trigger}", daemon=True
        )
        thread.start()

    def _safe_cycle(self, trigger: str) -> None:
        try:
            self.scheduler.run_cycle(trigger)
        except Exception:
            LOGGER.exception("%s cycle failed", trigger.capitalize())


@dataclass
class SessionStatistics:
    total_contacted: int = 0
    last_qualified: int = 0
    last_contact_at: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SessionStatistics":
        if not isinstance(data, Mapping):
            return cls()
        return cls(
            total_contacted=int(data.get("total_contacted", 0) or 0),
            last_qualified=int(data.get("last_qualified", 0) or 0),
            last_contact_at=data.get("last_contact_at"),
        )


class Coordinator:
    """Routes commands to the scheduler worker and events to observers.

    Commands arrive through :meth:`request` (or by posting to
    :attr:`endpoint`); events from the worker and from the suspension timer are
    posted to the same endpoint so that all state changes happen on one thread.
    Observers subscribe to :attr:`events`.
    """

    def __init__(
        self,
        store: KeyValueStore,
        rules: RuleSetHolder,
        scheduler_factory: SchedulerFactory,
        *,
        launcher: Optional[SurfaceLauncher] = None,
        settings: Optional[CoordinatorSettings] = None,
        clock: Clock = SYSTEM_CLOCK,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self._store = store
        self._rules = rules
        self._scheduler_factory = scheduler_factory
        self._launcher = launcher or NullLauncher()
        self._settings = settings or CoordinatorSettings()
        self._clock = clock
        self.endpoint = Endpoint("coordinator", self.handle)
        self.events = EventBus()
        self.suspension = SuspensionController(
            store,
            on_resume=self._post_resume,
            clock=clock,
            timer_factory=timer_factory,
            timezone=self._settings.timezone,
        )
        self.statistics = SessionStatistics.from_dict(store.get(STATISTICS_KEY))
        self.diagnostics: List[str] = []
        self.latest_cycle: Optional[Dict[str, Any]] = None

        self._worker: Optional[AgentWorker] = None
        self._session_started: Optional[float] = None
        self._last_peer_seen: Optional[float] = None
        self._peer_inactive = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._heartbeat_stop = threading.Event()
        self._heartbeat_thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    @property
    def worker(self) -> Optional[AgentWorker]:
        return self._worker

    def start(self, *, heartbeat: bool = True) -> None:
        self.endpoint.start()
        self._sync_rules()
        self._unsubscribe = self._store.subscribe(self._on_store_change)
        self.suspension.restore()
        if heartbeat and self._heartbeat_thread is None:
            self._heartbeat_stop.clear()
            self._heartbeat_thread = threading.Thread(
                target=self._heartbeat_loop, name="lead-agent-heartbeat", daemon=True
            )
            self._heartbeat_thread.start()

    def close(self) -> None:
        self._heartbeat_stop.set()
        if self._heartbeat_thread is not None:
            self._heartbeat_thread.join(5.0)
            self._heartbeat_thread = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.suspension.disarm()
        if self._worker is not None:
            self._worker.close()
            self._worker = None
        self.endpoint.close()

    def request(self, command: Command, payload: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> Response:
        message = Message(command, dict(payload or {}))
        return self.endpoint.request(message, timeout or self._settings.request_timeout_seconds)

    # ------------------------------------------------------------------
    def handle(self, message: Message) -> Response:
        if message.is_event:
            self._handle_event(message)
            return Response.ok()

        kind = message.kind
        if kind is Command.START_AGENT:
            return self._start_agent()
        if kind is Command.STOP_AGENT:
            return self._stop_agent()
        if kind is Command.UPDATE_RULES:
            return self._update_rules(message.payload.get("rules", message.payload))
        if kind is Command.GET_STATUS:
            return Response.ok(**self.status())
        if kind is Command.RESET_STATISTICS:
            self.statistics = SessionStatistics()
            self._store.set(STATISTICS_KEY, asdict(self.statistics))
            if self._worker is not None:
                self._forward(Command.RESET_STATISTICS)
            return Response.ok()
        if kind is Command.ENABLE_AUTO_CONTACT and self._worker is None:
            return self._start_agent()
        if kind is Command.ENABLE_AUTO_CONTACT and self.suspension.active:
            return self._suspended_response()
        if self._worker is None:
            return Response.fail("Agent is not running")
        return self._forward(kind, message.payload)

    def status(self) -> Dict[str, Any]:
        worker_status: Optional[Dict[str, Any]] = None
        if self._worker is not None:
            response = self._forward(Command.GET_STATUS)
            worker_status = response.data if response.success else None
        suspension = self.suspension.state
        session_seconds = None
        if self._session_started is not None:
            session_seconds = max(self._clock.time() - self._session_started, 0.0)
        return {
            "agent_active": self._worker is not None and not self._peer_inactive,
            "mode": worker_status["mode"] if worker_status else "idle",
            "worker": worker_status,
            "statistics": asdict(self.statistics),
            "session_duration_seconds": session_seconds,
            "suspension": suspension.to_dict() if suspension else None,
            "rules_version": self._rules.version,
            "latest_cycle": self.latest_cycle,
            "peer_inactive": self._peer_inactive,
        }

    def heartbeat(self) -> Optional[Response]:
        """Ask the worker to process the current leads; flag it inactive if it stays silent."""

        if self._worker is None:
            return None
        response = self._worker.endpoint.request(
            Message(Command.PROCESS_LEADS_FOR_LOGS), self._settings.request_timeout_seconds
        )
        now = self._clock.monotonic()
        if response.delivered:
            self._last_peer_seen = now
            if self._peer_inactive:
                LOGGER.info("Worker responding again")
            self._peer_inactive = False
            return response

        if self._last_peer_seen is None:
            self._last_peer_seen = now
        silent_for = now - self._last_peer_seen
        if silent_for > self._settings.inactive_threshold_seconds and not self._peer_inactive:
            self._peer_inactive = True
            note = f"{datetime.now().isoformat(timespec='seconds')} worker silent for {silent_for:.0f}s"
            self.diagnostics.append(note)
            LOGGER.warning("Worker inactive: %s", note)
            self.events.publish(Message(EventType.PEER_INACTIVE, {"silent_seconds": silent_for}))
        return response

    # ------------------------------------------------------------------
    def _start_agent(self) -> Response:
        if self.suspension.active:
            return self._suspended_response()
        if self._worker is None:
            if not self._launcher.open_surface():
                LOGGER.error("Could not open the portal surface")
                self.events.publish(Message(EventType.SCRAPING_ERROR, {"error": "Could not open the portal"}))
                return Response.fail("Could not open the portal")
            scheduler = self._scheduler_factory(self._emit_from_worker)
            worker = AgentWorker(scheduler)
            worker.start()
            self._worker = worker
            self._session_started = self._clock.time()
            self._last_peer_seen = self._clock.monotonic()
            self._peer_inactive = False
            LOGGER.info("Agent started")
            self.events.publish(Message(EventType.AGENT_READY, {"started_at": self._session_started}))
        return self._forward(Command.ENABLE_AUTO_CONTACT)

    def _stop_agent(self) -> Response:
        self.suspension.cancel()
        if self._worker is None:
            return Response.ok(mode="stopped")
        return self._forward(Command.STOP_AGENT)

    def _update_rules(self, config: Any) -> Response:
        if not isinstance(config, Mapping):
            return Response.fail("Rules must be a mapping")
        try:
            rules = build_rule_set(config)
        except ConfigurationError as exc:
            LOGGER.warning("Rejected rule update: %s", exc)
            return Response.fail(str(exc))
        self._store.set(RULES_KEY, rules.to_dict())
        return Response.ok(version=self._rules.version)

    def _suspended_response(self) -> Response:
        state = self.suspension.state
        resume_at = state.resume_at_epoch_ms if state else None
        return Response.fail("Automation is suspended until the next local midnight", resume_at_epoch_ms=resume_at)

    def _forward(self, command: Command, payload: Optional[Dict[str, Any]] = None) -> Response:
        assert self._worker is not None
        return self._worker.endpoint.request(
            Message(command, dict(payload or {})), self._settings.request_timeout_seconds
        )

    # ------------------------------------------------------------------
    def _emit_from_worker(self, event: EventType, payload: Dict[str, Any]) -> None:
        self.endpoint.post(Message(event, payload))

    def _post_resume(self, restore: bool) -> None:
        self.endpoint.post(Message(EventType.RESUMED, {"restore": restore}))

    def _handle_event(self, message: Message) -> None:
        kind = message.kind
        payload = message.payload
        if kind is EventType.CAPACITY_EXHAUSTED:
            restore = payload.get("previous_mode") == "running"
            state = self.suspension.suspend(restore)
            self.events.publish(Message(EventType.SUSPENDED, state.to_dict()))
            return
        if kind is EventType.RESUMED:
            self._resume(bool(payload.get("restore")))
            return
        if kind is EventType.CYCLE_SUMMARY_UPDATED:
            self.latest_cycle = payload
            self.statistics.last_qualified = int(payload.get("qualified", 0))
            self._store.set(STATISTICS_KEY, asdict(self.statistics))
        elif kind is EventType.LEAD_CONTACTED:
            if payload.get("first_contact"):
                self.statistics.total_contacted += 1
            self.statistics.last_contact_at = self._clock.time()
            self._store.set(STATISTICS_KEY, asdict(self.statistics))
        self.events.publish(message)

    def _resume(self, restore: bool) -> None:
        worker = self._worker
        if worker is not None:
            worker.scheduler.state.lift_suspension(restore)
            worker.scheduler.clear_suspended_phase()
            if restore:
                worker.scheduler.request_cycle()
        elif restore:
            response = self._start_agent()
            if not response.success:
                LOGGER.warning("Could not restart the agent after suspension: %s", response.error)
        LOGGER.info("Automation resumed (restored: %s)", restore)
        self.events.publish(Message(EventType.RESUMED, {"restore": restore}))

    def _sync_rules(self) -> None:
        stored = self._store.get(RULES_KEY)
        if isinstance(stored, Mapping):
            try:
                self._rules.load(stored)
                return
            except ConfigurationError as exc:
                LOGGER.warning("Stored rules are invalid, keeping configured rules: %s", exc)
        current = self._rules.current()
        if current is not None:
            self._store.set(RULES_KEY, current.to_dict())

    def _on_store_change(self, changes: Dict[str, Any]) -> None:
        if RULES_KEY not in changes or not isinstance(changes[RULES_KEY], Mapping):
            return
        try:
            self._rules.load(changes[RULES_KEY])
        except ConfigurationError as exc:
            LOGGER.warning("Ignoring invalid stored rules: %s", exc)

    def _heartbeat_loop(self) -> None:
        while not self._heartbeat_stop.wait(self._settings.heartbeat_interval_seconds):
            try:
                self.heartbeat()
            except Exception:
                LOGGER.exception("Heartbeat failed")


__all__ = ["AgentWorker", "Coordinator", "SessionStatistics"]
