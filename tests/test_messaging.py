from __future__ import annotations

import threading

from lead_agent.messaging import Command, Endpoint, EventBus, EventType, Message, Response, send_safe


def _echo(message: Message) -> Response:
    return Response.ok(kind=message.kind.value, **message.payload)


def test_request_returns_handler_response() -> None:
    endpoint = Endpoint("echo", _echo)
    endpoint.start()
    try:
        response = endpoint.request(Message(Command.GET_STATUS, {"x": 1}))
    finally:
        endpoint.close()

    assert response.success
    assert response.delivered
    assert response.data == {"kind": "get-status", "x": 1}


def test_closed_endpoint_reports_undelivered() -> None:
    endpoint = Endpoint("echo", _echo)

    response = endpoint.request(Message(Command.GET_STATUS))

    assert not response.success
    assert not response.delivered
    assert not endpoint.post(Message(EventType.AGENT_READY))


def test_handler_error_becomes_failure() -> None:
    def broken(message: Message) -> Response:
        raise ValueError("bad payload")

    endpoint = Endpoint("broken", broken)
    endpoint.start()
    try:
        response = endpoint.request(Message(Command.UPDATE_RULES))
    finally:
        endpoint.close()

    assert response.delivered
    assert not response.success
    assert response.error == "bad payload"


def test_slow_handler_times_out() -> None:
    release = threading.Event()

    def slow(message: Message) -> Response:
        release.wait(5)
        return Response.ok()

    endpoint = Endpoint("slow", slow)
    endpoint.start()
    try:
        response = endpoint.request(Message(Command.GET_STATUS), timeout=0.05)
    finally:
        release.set()
        endpoint.close()

    assert not response.delivered


def test_posted_messages_are_handled_in_order() -> None:
    seen = []
    done = threading.Event()

    def record(message: Message) -> None:
        seen.append(message.payload["n"])
        if len(seen) == 3:
            done.set()

    endpoint = Endpoint("ordered", record)
    endpoint.start()
    try:
        for n in range(3):
            assert endpoint.post(Message(EventType.LEAD_CONTACTED, {"n": n}))
        assert done.wait(5)
    finally:
        endpoint.close()

    assert seen == [0, 1, 2]


def test_request_from_handler_thread_runs_inline() -> None:
    endpoints = {}

    def reentrant(message: Message) -> Response:
        if message.kind is Command.RUN_CYCLE:
            return endpoints["self"].request(Message(Command.GET_STATUS))
        return Response.ok(nested=True)

    endpoint = endpoints["self"] = Endpoint("reentrant", reentrant)
    endpoint.start()
    try:
        response = endpoint.request(Message(Command.RUN_CYCLE), timeout=1)
    finally:
        endpoint.close()

    assert response.data == {"nested": True}


def test_send_safe_without_receiver() -> None:
    assert not send_safe(None, Message(EventType.RESUMED))


def test_event_bus_isolates_failing_observers() -> None:
    bus = EventBus()
    received = []

    def broken(message: Message) -> None:
        raise RuntimeError("observer crashed")

    bus.subscribe(broken)
    unsubscribe = bus.subscribe(received.append)
    bus.publish(Message(EventType.SUSPENDED))
    unsubscribe()
    bus.publish(Message(EventType.RESUMED))

    assert [message.kind for message in received] == [EventType.SUSPENDED]


def test_message_distinguishes_events_from_commands() -> None:
    assert Message(EventType.PEER_INACTIVE).is_event
    assert not Message(Command.STOP_AGENT).is_event
