"""Dedup and skip bookkeeping for leads already handled."""
from __future__ import annotations

import logging
import threading
from typing import Set

from .storage import SKIPPED_LEADS_KEY, KeyValueStore

LOGGER = logging.getLogger(__name__)


class LeadRegistry:
    """Tracks processed leads (volatile) and permanently skipped leads (durable).

    Processed ids live for the lifetime of the process; losing them on restart
    only means a lead may be contacted again. Skipped ids are written to the
    store on every change and reloaded on construction.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._processed: Set[str] = set()
        stored = store.get(SKIPPED_LEADS_KEY, []) or []
        self._skipped: Set[str] = {str(item) for item in stored}
        if self._skipped:
            LOGGER.debug("Loaded %s permanently skipped leads", len(self._skipped))

    def has(self, lead_id: str) -> bool:
        with self._lock:
            return lead_id in self._processed or lead_id in self._skipped

    def is_processed(self, lead_id: str) -> bool:
        with self._lock:
            return lead_id in self._processed

    def is_skipped(self, lead_id: str) -> bool:
        with self._lock:
            return lead_id in self._skipped

    def mark_processed(self, lead_id: str) -> bool:
        """Record ``lead_id`` as contacted. Returns ``False`` if it already was."""

        with self._lock:
            if lead_id in self._processed:
                return False
            self._processed.add(lead_id)
            return True

    def mark_skipped(self, lead_id: str) -> bool:
        """Persist ``lead_id`` as permanently unusable. Returns ``False`` if already skipped."""

        with self._lock:
            if lead_id in self._skipped:
                return False
            self._skipped.add(lead_id)
            snapshot = sorted(self._skipped)
        self._store.set(SKIPPED_LEADS_KEY, snapshot)
        LOGGER.info("Lead %s added to the skip list", lead_id)
        return True

    def clear_processed(self) -> None:
        with self._lock:
            self._processed.clear()

    @property
    def processed_count(self) -> int:
        with self._lock:
            return len(self._processed)

    @property
    def skipped_count(self) -> int:
        with self._lock:
            return len(self._skipped)


__all__ = ["LeadRegistry"]
