"""Multi-step outreach state machine for a single lead.

One flow runs at a time across the whole process: every executor shares
:data:`CONTACT_LOCK` unless it is given its own lock, because the portal's
interaction surface can only host one in-flight contact form.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional

from ..adapters.base import ActionAdapter, ActionKind
from ..config import ContactSettings
from ..logstore import ContactHistory
from ..models import ContactSuccessEntry, Lead
from ..rate_limit import SYSTEM_CLOCK, Clock, cancellable_sleep
from ..registry import LeadRegistry

LOGGER = logging.getLogger(__name__)

CONTACT_LOCK = threading.Lock()


class FlowState(str, Enum):
    LOCATING = "locating"
    INITIATING = "initiating"
    COMPOSING = "composing"
    SUBMITTING = "submitting"
    CONFIRM_PENDING = "confirm_pending"
    RETRYING_SUBMIT = "retrying_submit"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    ABORTED = "aborted"


class ContactFailure(str, Enum):
    LEAD_NOT_FOUND = "lead_not_found"
    ACTION_TARGET_NOT_FOUND = "action_target_not_found"
    REJECTED_BY_REMOTE = "rejected_by_remote"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    ABORTED = "aborted"

    @property
    def is_transient(self) -> bool:
        return self in {
            ContactFailure.LEAD_NOT_FOUND,
            ContactFailure.ACTION_TARGET_NOT_FOUND,
            ContactFailure.CONFIRMATION_TIMEOUT,
        }


@dataclass
class ContactOutcome:
    lead_id: str
    failure: Optional[ContactFailure] = None
    detail: str = ""
    states: List[FlowState] = field(default_factory=list)
    submit_attempts: int = 0
    entry: Optional[ContactSuccessEntry] = None
    first_contact: bool = False

    @property
    def confirmed(self) -> bool:
        return self.failure is None

    @property
    def aborted(self) -> bool:
        return self.failure is ContactFailure.ABORTED


class FlowAborted(Exception):
    """Raised internally when the abort flag is observed."""


TransitionListener = Callable[[Lead, FlowState], None]


def compose_message(lead: Optional[Lead], settings: ContactSettings) -> str:
    """Build the outgoing message from the lead's company, title and location."""

    if lead is None or not any(_known(value) for value in (lead.company_name, lead.enquiry_title, lead.location)):
        return settings.generic_message
    greeting = f"Hello {lead.company_name}," if _known(lead.company_name) else "Hello,"
    requirement = f'regarding "{lead.enquiry_title}"' if _known(lead.enquiry_title) else "regarding your requirement"
    location = f" in {lead.location}" if _known(lead.location) else ""
    return settings.message_template.format(greeting=greeting, requirement=requirement, location=location)


def _known(value: Optional[str]) -> bool:
    return bool(value and value.strip() and value.strip() != "N/A")


class ContactFlowExecutor:
    """Drives ``Locating -> Initiating -> Composing -> Submitting -> ConfirmPending``.

    A confirmation timeout leads to at most ``max_submit_retries`` further
    submit attempts. The ``should_continue`` callable is consulted at every
    transition and on every polling tick; once it returns ``False`` the flow
    ends with :attr:`ContactFailure.ABORTED` and no further side effects.
    """

    def __init__(
        self,
        actions: ActionAdapter,
        registry: LeadRegistry,
        history: ContactHistory,
        *,
        should_continue: Callable[[], bool],
        settings: Optional[ContactSettings] = None,
        clock: Clock = SYSTEM_CLOCK,
        poll_interval: float = 0.25,
        lock: Optional[threading.Lock] = None,
        on_transition: Optional[TransitionListener] = None,
    ) -> None:
        self._actions = actions
        self._registry = registry
        self._history = history
        self._should_continue = should_continue
        self._settings = settings or ContactSettings()
        self._clock = clock
        self._poll_interval = poll_interval
        self._lock = lock or CONTACT_LOCK
        self._on_transition = on_transition

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def execute(self, lead: Lead) -> ContactOutcome:
        """Run the full flow for ``lead`` once the global contact lock is free."""

        outcome = ContactOutcome(lead_id=lead.lead_id)
        if not self._acquire():
            LOGGER.info("Contact flow for %s aborted while waiting for the contact lock", lead.lead_id)
            self._finish(lead, outcome, FlowState.ABORTED, ContactFailure.ABORTED, "Auto-contact disabled.")
            return outcome
        try:
            self._run(lead, outcome)
        except FlowAborted:
            LOGGER.info("Contact flow for %s aborted (automation disabled or stopped)", lead.lead_id)
            self._finish(lead, outcome, FlowState.ABORTED, ContactFailure.ABORTED, "Auto-contact disabled.")
        except Exception as exc:
            if not self._should_continue():
                self._finish(lead, outcome, FlowState.ABORTED, ContactFailure.ABORTED, "Auto-contact disabled.")
            else:
                LOGGER.exception("Contact flow for %s failed unexpectedly", lead.lead_id)
                self._finish(
                    lead, outcome, FlowState.FAILED, ContactFailure.ACTION_TARGET_NOT_FOUND, f"Adapter error: {exc}"
                )
        finally:
            self._lock.release()
        return outcome

    def _acquire(self) -> bool:
        timeout = max(self._poll_interval, 0.01)
        while self._should_continue():
            if self._lock.acquire(timeout=timeout):
                return True
        return False

    # ------------------------------------------------------------------
    def _run(self, lead: Lead, outcome: ContactOutcome) -> None:
        settings = self._settings

        self._enter(lead, outcome, FlowState.LOCATING)
        card = self._actions.locate_action(ActionKind.LEAD_CARD, lead.source_position)
        if card is None:
            self._finish(
                lead,
                outcome,
                FlowState.FAILED,
                ContactFailure.LEAD_NOT_FOUND,
                f"Lead card at position {lead.source_position} not found.",
            )
            return

        contact_button = self._wait_for(ActionKind.CONTACT_BUTTON, card, settings.locate_timeout_seconds)
        if contact_button is None:
            self._finish(
                lead, outcome, FlowState.FAILED, ContactFailure.ACTION_TARGET_NOT_FOUND, "Contact button not found."
            )
            return

        self._enter(lead, outcome, FlowState.INITIATING)
        self._actions.invoke(contact_button)
        LOGGER.info("Opened contact form for %s", lead.display_name())
        rejection = self._actions.detect_rejection()
        if rejection:
            self._registry.mark_skipped(lead.lead_id)
            self._finish(lead, outcome, FlowState.FAILED, ContactFailure.REJECTED_BY_REMOTE, rejection)
            return

        self._enter(lead, outcome, FlowState.COMPOSING)
        message = compose_message(lead, settings)
        send_button = self._wait_for(
            ActionKind.SEND_BUTTON,
            None,
            settings.send_button_timeout_seconds,
            before_poll=lambda: self._fill_message(message),
        )
        if send_button is None:
            rejection = self._actions.detect_rejection()
            if rejection:
                self._registry.mark_skipped(lead.lead_id)
                self._finish(lead, outcome, FlowState.FAILED, ContactFailure.REJECTED_BY_REMOTE, rejection)
            else:
                self._finish(
                    lead, outcome, FlowState.FAILED, ContactFailure.ACTION_TARGET_NOT_FOUND, "Send button not found."
                )
            return
        if not self._fill_message(message):
            LOGGER.warning("No message field found for %s; sending with the portal default", lead.lead_id)

        confirmed = False
        for attempt in range(settings.max_submit_retries + 1):
            if attempt == 0:
                self._enter(lead, outcome, FlowState.SUBMITTING)
                settle = settings.settle_seconds
            else:
                self._enter(lead, outcome, FlowState.RETRYING_SUBMIT)
                LOGGER.warning("Send confirmation not detected for %s; retrying submit", lead.lead_id)
                send_button = self._wait_for(ActionKind.SEND_BUTTON, None, settings.retry_locate_timeout_seconds)
                if send_button is None:
                    LOGGER.warning("Send button disappeared before retry for %s", lead.lead_id)
                    break
                settle = settings.retry_settle_seconds

            self._actions.invoke(send_button)
            outcome.submit_attempts += 1
            self._sleep(settle)
            self._enter(lead, outcome, FlowState.CONFIRM_PENDING)
            if self._await_confirmation(settings.confirmation_timeout_seconds):
                confirmed = True
                break

        self._check_continue()
        if not confirmed:
            self._finish(
                lead,
                outcome,
                FlowState.FAILED,
                ContactFailure.CONFIRMATION_TIMEOUT,
                "Send confirmation not detected.",
            )
            return

        outcome.entry = self._history.record_success(lead)
        outcome.first_contact = self._registry.mark_processed(lead.lead_id)
        self._finish(lead, outcome, FlowState.CONFIRMED, None, "Contact confirmed.")

    # ------------------------------------------------------------------
    def _enter(self, lead: Lead, outcome: ContactOutcome, state: FlowState) -> None:
        self._check_continue()
        self._record(lead, outcome, state)

    def _finish(
        self,
        lead: Lead,
        outcome: ContactOutcome,
        state: FlowState,
        failure: Optional[ContactFailure],
        detail: str,
    ) -> None:
        outcome.failure = failure
        outcome.detail = detail
        self._record(lead, outcome, state)
        if failure is not None and failure is not ContactFailure.ABORTED:
            LOGGER.warning("Contact flow for %s failed: %s (%s)", lead.lead_id, failure.value, detail)

    def _record(self, lead: Lead, outcome: ContactOutcome, state: FlowState) -> None:
        outcome.states.append(state)
        LOGGER.debug("Lead %s -> %s", lead.lead_id, state.value)
        if self._on_transition is not None:
            self._on_transition(lead, state)

    def _check_continue(self) -> None:
        if not self._should_continue():
            raise FlowAborted()

    def _sleep(self, seconds: float) -> None:
        if not cancellable_sleep(
            seconds, self._should_continue, clock=self._clock, poll_interval=self._poll_interval
        ):
            raise FlowAborted()

    def _wait_for(
        self,
        kind: ActionKind,
        context: Any,
        timeout: float,
        *,
        before_poll: Optional[Callable[[], Any]] = None,
    ) -> Optional[Any]:
        deadline = self._clock.monotonic() + max(timeout, 0.0)
        while True:
            self._check_continue()
            if before_poll is not None:
                before_poll()
            handle = self._actions.locate_action(kind, context)
            if handle is not None:
                return handle
            if self._clock.monotonic() >= deadline:
                return None
            self._sleep(self._poll_interval)

    def _await_confirmation(self, timeout: float) -> bool:
        deadline = self._clock.monotonic() + max(timeout, 0.0)
        slice_ms = max(int(self._poll_interval * 1000), 1)
        while True:
            self._check_continue()
            if self._actions.poll_for_confirmation(slice_ms):
                return True
            if self._clock.monotonic() >= deadline:
                return False
            self._sleep(self._poll_interval)

    def _fill_message(self, message: str) -> bool:
        """Write ``message`` into the visible message field unless it already has content."""

        field_handle = self._actions.locate_action(ActionKind.MESSAGE_FIELD, None)
        if field_handle is None:
            return False
        current = self._actions.get_field_value(field_handle) or ""
        if not current.strip():
            self._actions.set_field_value(field_handle, message)
        return True


__all__ = [
    "CONTACT_LOCK",
    "ContactFailure",
    "ContactFlowExecutor",
    "ContactOutcome",
    "FlowState",
    "compose_message",
]
