"""Durable key/value storage for rules, registries, suspension state and logs."""
from __future__ import annotations

import contextlib
import copy
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Protocol

LOGGER = logging.getLogger(__name__)

RULES_KEY = "rules"
SKIPPED_LEADS_KEY = "skipped_leads"
SUSPENSION_KEY = "suspension"
SUMMARIES_KEY = "summaries"
LEAD_LOGS_KEY = "lead_logs"
LAST_SIGNATURE_KEY = "last_signature"
CONTACT_SUCCESS_KEY = "contact_successes"
STATISTICS_KEY = "statistics"

ChangeListener = Callable[[Dict[str, Any]], None]


class StorageError(RuntimeError):
    """Raised when persisted state cannot be read."""


class KeyValueStore(Protocol):
    """Interface for the persistent store shared by all components."""

    def get(self, key: str, default: Any = None) -> Any:  # pragma: no cover - protocol
        ...

    def set(self, key: str, value: Any) -> None:  # pragma: no cover - protocol
        ...

    def set_many(self, values: Mapping[str, Any]) -> None:  # pragma: no cover - protocol
        ...

    def delete(self, key: str) -> None:  # pragma: no cover - protocol
        ...

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:  # pragma: no cover - protocol
        ...


class MemoryStore:
    """In-process store; values are deep-copied on the way in and out."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._lock = threading.RLock()
        self._data: Dict[str, Any] = copy.deepcopy(dict(initial or {}))
        self._listeners: List[ChangeListener] = []

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._data:
                return default
            return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def set_many(self, values: Mapping[str, Any]) -> None:
        changes = copy.deepcopy(dict(values))
        with self._lock:
            data = {**self._data, **changes}
            self._persist(data)
            self._data = data
        self._notify(changes)

    def delete(self, key: str) -> None:
        with self._lock:
            if key not in self._data:
                return
            data = {name: value for name, value in self._data.items() if name != key}
            self._persist(data)
            self._data = data
        self._notify({key: None})

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._data)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _persist(self, data: Dict[str, Any]) -> None:
        """Hook for durable subclasses; called with the lock held before ``data`` becomes current."""

    def _notify(self, changes: Dict[str, Any]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(copy.deepcopy(changes))
            except Exception:
                LOGGER.exception("Storage change listener %r failed", listener)


class JsonFileStore(MemoryStore):
    """Store backed by a single JSON document written atomically."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as exc:
            raise StorageError(f"State file '{self.path}' could not be read: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"State file '{self.path}' does not contain a JSON object")
        return data

    def _persist(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)
            raise


__all__ = [
    "CONTACT_SUCCESS_KEY",
    "JsonFileStore",
    "KeyValueStore",
    "LAST_SIGNATURE_KEY",
    "LEAD_LOGS_KEY",
    "MemoryStore",
    "RULES_KEY",
    "SKIPPED_LEADS_KEY",
    "STATISTICS_KEY",
    "SUMMARIES_KEY",
    "SUSPENSION_KEY",
    "StorageError",
]
