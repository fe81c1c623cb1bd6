"""Change-aware cycle logging and contact success history."""
from __future__ import annotations

import hashlib
import json
import logging
import threading
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from .models import ContactSuccessEntry, Lead, LeadEvaluation
from .parsing import format_amount, format_value_range
from .rate_limit import SYSTEM_CLOCK, Clock
from .storage import (
    CONTACT_SUCCESS_KEY,
    LAST_SIGNATURE_KEY,
    LEAD_LOGS_KEY,
    SUMMARIES_KEY,
    KeyValueStore,
)

LOGGER = logging.getLogger(__name__)

LOG_PREFIX = "[Lead Agent]"


def cycle_signature(
    total_leads: int,
    qualified: Sequence[Lead],
    evaluations: Sequence[LeadEvaluation],
) -> str:
    """Deterministic digest of a cycle's meaningful outputs."""

    payload = {
        "total": total_leads,
        "qualified_count": len(qualified),
        "qualified": [
            {"id": lead.lead_id, "c": lead.company_name, "e": lead.enquiry_title, "loc": lead.location}
            for lead in qualified
        ],
        "evaluations": [
            {"id": item.lead.lead_id, "passed": item.verdict.passed, "reason": item.verdict.reason}
            for item in evaluations
        ],
    }
    encoded = json.dumps(payload, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def _as_list(value: object) -> List[str]:
    return [str(item) for item in value] if isinstance(value, list) else []


class LogStore:
    """Appends cycle summaries only when the cycle signature changes.

    Two rings are kept in the store: summary blocks and per-lead detail blocks,
    each capped to its own retention count with the oldest entries dropped.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        max_summaries: int = 20,
        max_lead_logs: int = 20,
        clock: Clock = SYSTEM_CLOCK,
        currency_symbol: str = "₹",
    ) -> None:
        self._store = store
        self._max_summaries = max(1, max_summaries)
        self._max_lead_logs = max(1, max_lead_logs)
        self._clock = clock
        self._currency = currency_symbol
        self._lock = threading.Lock()

    def record_cycle(
        self,
        total_leads: int,
        qualified: Sequence[Lead],
        evaluations: Sequence[LeadEvaluation],
        *,
        source_url: Optional[str] = None,
    ) -> bool:
        """Write the cycle to the log rings. Returns ``False`` when nothing changed."""

        signature = cycle_signature(total_leads, qualified, evaluations)
        with self._lock:
            if self._store.get(LAST_SIGNATURE_KEY) == signature:
                LOGGER.debug("No change in filtering summary; skipping log write")
                return False

            now = datetime.fromtimestamp(self._clock.time(), tz=timezone.utc)
            summary = self._format_summary(now, total_leads, qualified, source_url)
            details = self._format_details(now, evaluations, source_url)

            summaries = (_as_list(self._store.get(SUMMARIES_KEY, [])) + [summary])[-self._max_summaries:]
            lead_logs = (_as_list(self._store.get(LEAD_LOGS_KEY, [])) + [details])[-self._max_lead_logs:]
            self._store.set_many(
                {
                    SUMMARIES_KEY: summaries,
                    LEAD_LOGS_KEY: lead_logs,
                    LAST_SIGNATURE_KEY: signature,
                }
            )
        LOGGER.info("Filtering summary saved (%s leads, %s qualified)", total_leads, len(qualified))
        return True

    def summaries(self) -> List[str]:
        return _as_list(self._store.get(SUMMARIES_KEY, []))

    def lead_logs(self) -> List[str]:
        return _as_list(self._store.get(LEAD_LOGS_KEY, []))

    def clear(self) -> None:
        with self._lock:
            self._store.set_many({SUMMARIES_KEY: [], LEAD_LOGS_KEY: [], LAST_SIGNATURE_KEY: None})

    # ------------------------------------------------------------------
    def _format_summary(
        self,
        now: datetime,
        total_leads: int,
        qualified: Sequence[Lead],
        source_url: Optional[str],
    ) -> str:
        stamp = now.isoformat()
        lines = [
            f"========== FILTERING SUMMARY - {now:%Y-%m-%d %H:%M:%S} UTC ==========",
            f"[{stamp}] {LOG_PREFIX} Total leads: {total_leads}",
            f"[{stamp}] {LOG_PREFIX} Filtered (qualified) leads: {len(qualified)}",
            f"[{stamp}] {LOG_PREFIX} Rejected leads: {total_leads - len(qualified)}",
        ]
        if qualified:
            lines.append(f"[{stamp}] {LOG_PREFIX} Filtered leads list:")
            for index, lead in enumerate(qualified, start=1):
                lines.append(
                    f"[{stamp}] {LOG_PREFIX}   {index}. Company: {lead.company_name}, "
                    f"Enquiry: {lead.enquiry_title}, Location: {lead.location}"
                )
        else:
            lines.append(f"[{stamp}] {LOG_PREFIX} Filtered leads list: (none)")
        if source_url:
            lines.append(f"[{stamp}] {LOG_PREFIX} URL: {source_url}")
        lines.append("========== END SUMMARY ==========")
        return "\n".join(lines)

    def _format_details(
        self,
        now: datetime,
        evaluations: Sequence[LeadEvaluation],
        source_url: Optional[str],
    ) -> str:
        stamp = now.isoformat()
        lines = [f"========== LEAD DETAILS - {now:%Y-%m-%d %H:%M:%S} UTC =========="]
        if not evaluations:
            lines.append(f"[{stamp}] {LOG_PREFIX} No leads evaluated in this cycle.")
        for index, item in enumerate(evaluations, start=1):
            lead = item.lead
            status = "PASS" if item.verdict.passed else "REJECT"
            quantity = lead.quantity
            quantity_text = format_amount(quantity.value) if quantity.value is not None else "N/A"
            value = lead.probable_value
            currency = self._currency
            order_value = (
                f"{currency}{format_amount(value.minimum or 0)} - {currency}{format_amount(value.maximum or 0)}"
                if value.known
                else "N/A"
            )
            lines.extend(
                [
                    f"[{stamp}] {LOG_PREFIX} {index}. [{status}] {lead.company_name} - "
                    f"{lead.enquiry_title or 'No enquiry title'}",
                    f"    Reason: {item.verdict.reason}",
                    f"    Location: {lead.location or 'N/A'}",
                    f"    Quantity: {quantity_text} ({quantity.raw or 'N/A'})",
                    f"    Category: {lead.category or 'N/A'}",
                    f"    Order Value: {order_value}",
                ]
            )
        if source_url:
            lines.append(f"[{stamp}] {LOG_PREFIX} URL: {source_url}")
        lines.append("========== END LEAD DETAILS ==========")
        return "\n".join(lines)


class ContactHistory:
    """Capped history of confirmed contacts, one entry per lead id."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        max_entries: int = 50,
        clock: Clock = SYSTEM_CLOCK,
        currency_symbol: str = "₹",
    ) -> None:
        self._store = store
        self._max_entries = max(1, max_entries)
        self._clock = clock
        self._currency = currency_symbol
        self._lock = threading.Lock()

    def record_success(self, lead: Lead) -> ContactSuccessEntry:
        entry = ContactSuccessEntry(
            lead_id=lead.lead_id,
            contacted_at=datetime.fromtimestamp(self._clock.time(), tz=timezone.utc).isoformat(),
            company_name=lead.company_name or None,
            enquiry_title=lead.enquiry_title or lead.requirement or None,
            location=lead.location or None,
            probable_value=format_value_range(lead.probable_value, self._currency),
        )
        with self._lock:
            existing = [item for item in self._load() if item.lead_id != entry.lead_id]
            updated = (existing + [entry])[-self._max_entries:]
            self._store.set(CONTACT_SUCCESS_KEY, [item.to_dict() for item in updated])
        return entry

    def entries(self) -> List[ContactSuccessEntry]:
        with self._lock:
            return self._load()

    def _load(self) -> List[ContactSuccessEntry]:
        raw = self._store.get(CONTACT_SUCCESS_KEY, [])
        if not isinstance(raw, list):
            return []
        return [ContactSuccessEntry.from_dict(item) for item in raw if isinstance(item, dict)]


def render_blocks(blocks: Iterable[str]) -> str:
    return "\n\n".join(blocks)


__all__ = ["ContactHistory", "LogStore", "cycle_signature", "render_blocks"]
