"""Message passing between the coordinator, the scheduler worker and observers.

Each participant owns an :class:`Endpoint`: a mailbox drained by its own
thread. Peers either ``post`` fire-and-forget messages or ``request`` a
:class:`Response` with a timeout. Talking to a peer that is gone is logged
and reported as an undelivered response, never raised.
"""
from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

LOGGER = logging.getLogger(__name__)


class Command(str, Enum):
    START_AGENT = "start-agent"
    ENABLE_AUTO_CONTACT = "enable-auto-contact"
    DISABLE_AUTO_CONTACT = "disable-auto-contact"
    STOP_AGENT = "stop-agent"
    RUN_CYCLE = "run-cycle"
    UPDATE_RULES = "update-rules"
    GET_STATUS = "get-status"
    PROCESS_LEADS_FOR_LOGS = "process-leads-for-logs"
    RESET_STATISTICS = "reset-statistics"


class EventType(str, Enum):
    AGENT_READY = "agent-ready"
    CYCLE_SUMMARY_UPDATED = "cycle-summary-updated"
    LEAD_CONTACTED = "lead-contacted"
    SCRAPING_ERROR = "scraping-error"
    CAPACITY_EXHAUSTED = "capacity-exhausted"
    SUSPENDED = "suspended"
    RESUMED = "resumed"
    PEER_INACTIVE = "peer-inactive"


Kind = Union[Command, EventType]


@dataclass(frozen=True)
class Message:
    kind: Kind
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_event(self) -> bool:
        return isinstance(self.kind, EventType)


@dataclass
class Response:
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    delivered: bool = True

    @classmethod
    def ok(cls, **data: Any) -> "Response":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, **data: Any) -> "Response":
        return cls(success=False, data=data, error=error)

    @classmethod
    def undelivered(cls, error: str) -> "Response":
        return cls(success=False, error=error, delivered=False)


Handler = Callable[[Message], Optional[Response]]
_Envelope = Tuple[Optional[Message], Optional["queue.Queue[Response]"]]


class Endpoint:
    """Named mailbox whose handler runs on a dedicated thread."""

    def __init__(self, name: str, handler: Handler) -> None:
        self.name = name
        self._handler = handler
        self._queue: "queue.Queue[_Envelope]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._running = threading.Event()

    @property
    def running(self) -> bool:
        return self._running.is_set()

    def start(self) -> None:
        if self.running:
            return
        self._running.set()
        self._thread = threading.Thread(target=self._serve, name=f"{self.name}-endpoint", daemon=True)
        self._thread.start()

    def close(self, timeout: Optional[float] = 5.0) -> None:
        if not self.running:
            return
        self._running.clear()
        self._queue.put((None, None))
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None

    def post(self, message: Message) -> bool:
        if not self.running:
            LOGGER.warning("Dropping %s for %s: endpoint is not running", message.kind.value, self.name)
            return False
        self._queue.put((message, None))
        return True

    def request(self, message: Message, timeout: float = 5.0) -> Response:
        if not self.running:
            LOGGER.warning("Cannot deliver %s to %s: endpoint is not running", message.kind.value, self.name)
            return Response.undelivered(f"{self.name} is not running")
        if self._thread is threading.current_thread():
            return self._dispatch(message)
        reply: "queue.Queue[Response]" = queue.Queue(maxsize=1)
        self._queue.put((message, reply))
        try:
            return reply.get(timeout=timeout)
        except queue.Empty:
            LOGGER.warning("%s did not answer %s within %.1fs", self.name, message.kind.value, timeout)
            return Response.undelivered(f"{self.name} did not respond")

    def _serve(self) -> None:
        while True:
            message, reply = self._queue.get()
            if message is None:
                break
            response = self._dispatch(message)
            if reply is not None:
                reply.put(response)

    def _dispatch(self, message: Message) -> Response:
        try:
            return self._handler(message) or Response.ok()
        except Exception as exc:
            LOGGER.exception("%s failed to handle %s", self.name, message.kind.value)
            return Response.fail(str(exc))


def send_safe(endpoint: Optional[Endpoint], message: Message) -> bool:
    """Post to a possibly absent peer."""

    if endpoint is None:
        LOGGER.debug("No receiver for %s", message.kind.value)
        return False
    return endpoint.post(message)


Listener = Callable[[Message], None]


class EventBus:
    """Fan-out of events to observers such as the user-facing panel."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, message: Message) -> None:
        with self._lock:
            listeners = list(self._listeners)
        if not listeners:
            LOGGER.debug("No observers for %s", message.kind.value)
        for listener in listeners:
            try:
                listener(message)
            except Exception:
                LOGGER.exception("Observer failed while handling %s", message.kind.value)


__all__ = ["Command", "Endpoint", "EventBus", "EventType", "Message", "Response", "send_safe"]
