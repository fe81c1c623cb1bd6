"""Cycle scheduler: scrape -> filter -> log -> dispatch -> wait -> refresh."""
from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..adapters.base import ExtractionAdapter
from ..config import RuleSetHolder, ScheduleSettings
from ..contact.flow import ContactFlowExecutor
from ..filtering import evaluate
from ..logstore import LogStore
from ..messaging import EventType
from ..models import CycleReport, Lead, LeadEvaluation
from ..rate_limit import SYSTEM_CLOCK, Clock, Cooldown, RefreshGate, cancellable_sleep
from ..registry import LeadRegistry
from .state import AutomationMode, AutomationState, CyclePhase

LOGGER = logging.getLogger(__name__)

EventSink = Callable[[EventType, Dict[str, Any]], None]


def _ignore_event(event: EventType, payload: Dict[str, Any]) -> None:
    LOGGER.debug("Event %s dropped (no sink)", event.value)


@dataclass
class SchedulerStatistics:
    cycles: int = 0
    total_contacted: int = 0
    last_qualified: int = 0
    last_cycle_at: Optional[float] = None
    last_contact_at: Optional[float] = None
    last_trigger: Optional[str] = None
    contacted_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycles": self.cycles,
            "total_contacted": self.total_contacted,
            "last_qualified": self.last_qualified,
            "last_cycle_at": self.last_cycle_at,
            "last_contact_at": self.last_contact_at,
            "last_trigger": self.last_trigger,
        }


class CycleScheduler:
    """Runs qualification cycles against one extraction adapter.

    Cycles never overlap: a trigger arriving while a cycle is in flight is
    dropped. Qualified leads are dispatched one at a time, and after every
    confirmed contact the scheduler waits the verdict's suggested delay before
    the next one. Every wait polls :meth:`AutomationState.should_continue`.
    """

    def __init__(
        self,
        extractor: ExtractionAdapter,
        executor: ContactFlowExecutor,
        registry: LeadRegistry,
        rules: RuleSetHolder,
        log_store: LogStore,
        state: AutomationState,
        *,
        settings: Optional[ScheduleSettings] = None,
        clock: Clock = SYSTEM_CLOCK,
        capacity_probe: Optional[Callable[[], bool]] = None,
        emit: Optional[EventSink] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._extractor = extractor
        self._executor = executor
        self._registry = registry
        self._rules = rules
        self._log_store = log_store
        self.state = state
        self._settings = settings or ScheduleSettings()
        self._clock = clock
        self._capacity_probe = capacity_probe
        self._emit = emit or _ignore_event
        self._rng = rng or random.Random()

        self._cycle_guard = threading.Lock()
        self._phase = CyclePhase.IDLE
        self._refresh_gate = RefreshGate(self._settings.refresh_interval_seconds, clock=clock)
        self._top_up = Cooldown(self._settings.top_up_cooldown_seconds, clock=clock)
        self._last_cycle_started: Optional[float] = None
        self.statistics = SchedulerStatistics()

        self._wake = threading.Event()
        self._shutdown = threading.Event()
        self._threads: List[threading.Thread] = []

    # ------------------------------------------------------------------
    @property
    def phase(self) -> CyclePhase:
        return self._phase

    @property
    def refresh_gate(self) -> RefreshGate:
        return self._refresh_gate

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_guard.locked()

    def enable(self) -> bool:
        enabled = self.state.enable()
        if enabled:
            self.request_cycle()
        return enabled

    def disable(self) -> bool:
        return self.state.disable()

    def hard_stop(self) -> None:
        """Stop automation and cancel pending waits. In-flight flows abort at their next check."""

        self.state.stop()
        self._wake.set()
        LOGGER.info("Scheduler stopped")

    def request_cycle(self) -> None:
        self._wake.set()

    # ------------------------------------------------------------------
    def run_cycle(self, trigger: str = "cycle") -> Optional[CycleReport]:
        """Run one full cycle while automation is running.

        Returns ``None`` when another cycle is already running, and an empty
        report when automation is disabled, stopped or suspended.
        """

        if not self._cycle_guard.acquire(blocking=False):
            LOGGER.debug("Cycle already in progress; ignoring %s trigger", trigger)
            return None
        try:
            return self._run_cycle(trigger)
        finally:
            if self._phase is not CyclePhase.SUSPENDED:
                self._phase = CyclePhase.IDLE
            self._cycle_guard.release()

    def preview(self) -> List[LeadEvaluation]:
        """Evaluate the current page without logging or contacting anyone."""

        rules = self._rules.current()
        return [LeadEvaluation(lead, evaluate(lead, rules, rng=self._rng)) for lead in self._extract()]

    def wait_for_next_refresh(self) -> bool:
        """Wait out the refresh gap, then refresh the data source.

        Returns ``False`` when the wait was cut short by a stop, a disable or
        an immediate-cycle request; the source is not refreshed in that case.
        """

        self._phase = CyclePhase.WAITING
        remaining = self._refresh_gate.remaining()
        completed = cancellable_sleep(
            remaining,
            lambda: self.state.should_continue() and not self._wake.is_set() and not self._shutdown.is_set(),
            clock=self._clock,
            poll_interval=self._settings.poll_interval_seconds,
        )
        if not completed:
            self._phase = CyclePhase.IDLE
            return False
        self._refresh()
        self._phase = CyclePhase.IDLE
        return True

    def step(self, trigger: str = "cycle") -> Optional[CycleReport]:
        report = self.run_cycle(trigger)
        if self.state.should_continue():
            self.wait_for_next_refresh()
        return report

    # ------------------------------------------------------------------
    def start(self) -> None:
        """Start the cycle loop and the periodic log-flush tick on daemon threads."""

        if self._threads:
            return
        self._shutdown.clear()
        self._refresh_gate.mark_refreshed()
        for name, target in (("lead-agent-cycles", self._loop), ("lead-agent-tick", self._tick_loop)):
            thread = threading.Thread(target=target, name=name, daemon=True)
            thread.start()
            self._threads.append(thread)

    def shutdown(self, timeout: Optional[float] = 5.0) -> None:
        self._shutdown.set()
        self._wake.set()
        for thread in self._threads:
            if thread is not threading.current_thread():
                thread.join(timeout)
        self._threads.clear()

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def status(self) -> Dict[str, Any]:
        return {
            "mode": self.state.mode.value,
            "phase": self._phase.value,
            "cycle_in_progress": self.cycle_in_progress,
            "contact_in_progress": self._executor.busy,
            "processed": self._registry.processed_count,
            "skipped": self._registry.skipped_count,
            "refresh_in_seconds": round(self._refresh_gate.remaining(), 1),
            "statistics": self.statistics.to_dict(),
        }

    def reset_statistics(self) -> None:
        """Clear counters and forget processed leads. The skip list is kept."""

        self.statistics = SchedulerStatistics()
        self._registry.clear_processed()

    def _loop(self) -> None:
        idle_poll = self._settings.poll_interval_seconds or 0.25
        while not self._shutdown.is_set():
            if not self.state.should_continue():
                self._wake.wait(idle_poll)
                self._wake.clear()
                continue
            self._wake.clear()
            try:
                self.run_cycle("cycle")
            except Exception:
                LOGGER.exception("Cycle failed")
            if self.state.should_continue() and not self._wake.is_set():
                try:
                    self.wait_for_next_refresh()
                except Exception:
                    LOGGER.exception("Refreshing the data source failed")

    def _tick_loop(self) -> None:
        interval = self._settings.log_flush_interval_seconds
        while not self._shutdown.wait(interval):
            if not self.state.should_continue():
                continue
            started = self._last_cycle_started
            if started is not None and self._clock.monotonic() - started < max(interval - 5.0, 0.0):
                continue
            try:
                self.run_cycle("tick")
            except Exception:
                LOGGER.exception("Periodic cycle failed")

    # ------------------------------------------------------------------
    def _run_cycle(self, trigger: str) -> CycleReport:
        report = CycleReport(trigger=trigger)
        if not self.state.should_continue():
            LOGGER.debug("Automation is %s; skipping %s cycle", self.state.mode.value, trigger)
            return report
        self._last_cycle_started = self._clock.monotonic()
        self.statistics.last_trigger = trigger

        if self._check_capacity(report):
            return report

        self._phase = CyclePhase.SCRAPING
        leads = self._scrape()
        report.total_leads = len(leads)
        if not leads:
            return report

        self._phase = CyclePhase.FILTERING
        self._filter(leads, report)
        self.statistics.cycles += 1
        self.statistics.last_qualified = len(report.qualified)
        self.statistics.last_cycle_at = self._clock.time()
        self._emit(
            EventType.CYCLE_SUMMARY_UPDATED,
            {
                **report.summary(),
                "qualified_leads": [lead.as_row() for lead in report.qualified],
                "source_url": getattr(self._extractor, "source_url", None),
            },
        )

        if report.qualified and self.state.should_continue():
            self._phase = CyclePhase.DISPATCHING
            self._dispatch(report)
        return report

    def _scrape(self) -> List[Lead]:
        attempts = max(1, int(self._settings.scrape_attempts))
        min_leads = int(self._settings.min_leads)
        last_error: Optional[str] = None
        for attempt in range(1, attempts + 1):
            try:
                leads = self._extractor.extract_leads()
                if min_leads and len(leads) < min_leads and self._top_up.trigger():
                    available = self._extractor.ensure_minimum(min_leads)
                    LOGGER.info("Requested %s leads, %s available", min_leads, available)
                    leads = self._extractor.extract_leads()
            except Exception as exc:
                LOGGER.warning("Lead extraction failed (attempt %s/%s): %s", attempt, attempts, exc)
                last_error = str(exc)
                leads = []
            if leads:
                return leads
            if attempt < attempts and not cancellable_sleep(
                self._settings.scrape_retry_seconds,
                lambda: self.state.should_continue() and not self._shutdown.is_set(),
                clock=self._clock,
                poll_interval=self._settings.poll_interval_seconds,
            ):
                return []

        LOGGER.warning("No leads found after %s attempts", attempts)
        self._emit(
            EventType.SCRAPING_ERROR,
            {"error": last_error or "No leads found on the page", "attempts": attempts},
        )
        return []

    def _extract(self) -> List[Lead]:
        try:
            return self._extractor.extract_leads()
        except Exception:
            LOGGER.exception("Lead extraction failed")
            return []

    def _filter(self, leads: List[Lead], report: CycleReport) -> None:
        rules = self._rules.current()
        for lead in leads:
            if self._registry.has(lead.lead_id):
                report.skipped_known += 1
                continue
            verdict = evaluate(lead, rules, rng=self._rng)
            if verdict.transient:
                report.deferred.append(lead)
                continue
            report.evaluations.append(LeadEvaluation(lead, verdict))
            if verdict.passed:
                report.qualified.append(lead)

        if report.deferred:
            LOGGER.info("%s leads deferred until the rule set is available", len(report.deferred))
        if rules is None:
            return
        report.logged = self._log_store.record_cycle(
            report.total_leads,
            report.qualified,
            report.evaluations,
            source_url=getattr(self._extractor, "source_url", None),
        )
        LOGGER.info(
            "Cycle %s: %s leads, %s qualified, %s already handled",
            report.trigger,
            report.total_leads,
            len(report.qualified),
            report.skipped_known,
        )

    def _dispatch(self, report: CycleReport) -> None:
        delays = {evaluation.lead.lead_id: evaluation.verdict.suggested_delay_minutes for evaluation in report.evaluations}
        for lead in report.qualified:
            if not self.state.should_continue():
                LOGGER.info("Dispatch halted; automation is %s", self.state.mode.value)
                return
            if self._registry.has(lead.lead_id):
                continue
            if self._check_capacity(report):
                return

            outcome = self._executor.execute(lead)
            if outcome.aborted:
                return
            if not outcome.confirmed:
                report.failures[lead.lead_id] = outcome.failure.value if outcome.failure else "unknown"
                continue

            report.contacted.append(lead.lead_id)
            if outcome.first_contact:
                self.statistics.total_contacted += 1
                self.statistics.contacted_ids.append(lead.lead_id)
            self.statistics.last_contact_at = self._clock.time()
            self._emit(
                EventType.LEAD_CONTACTED,
                {
                    "lead_id": lead.lead_id,
                    "lead": lead.as_row(),
                    "first_contact": outcome.first_contact,
                    "entry": outcome.entry.to_dict() if outcome.entry else None,
                },
            )

            if self._check_capacity(report):
                return
            delay_minutes = delays.get(lead.lead_id, 0)
            if delay_minutes > 0:
                LOGGER.info("Waiting %s minute(s) before the next contact", delay_minutes)
                if not cancellable_sleep(
                    delay_minutes * 60,
                    self.state.should_continue,
                    clock=self._clock,
                    poll_interval=self._settings.poll_interval_seconds,
                ):
                    return

    def _check_capacity(self, report: CycleReport) -> bool:
        """Suspend automation when the account has no contact capacity left."""

        if self._capacity_probe is None:
            return False
        try:
            exhausted = self._capacity_probe()
        except Exception:
            LOGGER.exception("Capacity check failed")
            return False
        if not exhausted:
            return False
        previous = self.state.suspend()
        self._phase = CyclePhase.SUSPENDED
        report.suspended = True
        if previous is not AutomationMode.SUSPENDED:
            LOGGER.warning("Contact capacity exhausted; suspending automation")
            self._emit(EventType.CAPACITY_EXHAUSTED, {"previous_mode": previous.value})
        return True

    def _refresh(self) -> None:
        try:
            self._extractor.refresh()
        finally:
            self._refresh_gate.mark_refreshed()
        LOGGER.debug("Data source refreshed")

    def clear_suspended_phase(self) -> None:
        if self._phase is CyclePhase.SUSPENDED:
            self._phase = CyclePhase.IDLE


__all__ = ["CycleScheduler", "SchedulerStatistics"]
