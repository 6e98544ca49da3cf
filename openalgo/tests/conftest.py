"""
Shared fixtures: an in-memory broker standing in for the OpenAlgo
WebSocket server, and a stream factory wired to it.
"""

import queue
import threading
import time
from typing import Any, Callable, List, Optional

import orjson
import pytest
from websocket import WebSocketConnectionClosedException, WebSocketTimeoutException

from openalgo.api.websocket import MarketDataStream
from openalgo.metrics import StreamMetrics
from openalgo.utils.backoff import ExponentialBackoff

AUTH_OK = {"type": "auth", "status": "success", "message": "Authentication successful"}
AUTH_REJECTED = {"type": "auth", "status": "error", "message": "Invalid API key"}

_CLOSED = object()


class FakeTransport:
    """One client connection as seen by the fake broker."""

    def __init__(self, server: "FakeServer", auth_reply: Optional[dict]):
        self.server = server
        self.auth_reply = auth_reply
        self.sent: List[dict] = []
        self.timeout: Optional[float] = None
        self.closed = False
        self._inbox: queue.Queue = queue.Queue()

    def send(self, payload: str) -> None:
        if self.closed:
            raise WebSocketConnectionClosedException("socket is already closed")
        frame = orjson.loads(payload)
        self.sent.append(frame)
        if frame.get("action") == "authenticate" and self.auth_reply is not None:
            self.inject(self.auth_reply)

    def recv(self) -> str:
        try:
            item = self._inbox.get(timeout=self.timeout)
        except queue.Empty:
            raise WebSocketTimeoutException("recv timed out")
        if item is _CLOSED:
            self._inbox.put(_CLOSED)
            raise WebSocketConnectionClosedException("Connection to remote host was lost")
        return item

    def settimeout(self, timeout: Optional[float]) -> None:
        self.timeout = timeout

    def inject(self, frame: Any) -> None:
        """Queue a frame for the client (dict is JSON-encoded, str sent as is)."""
        text = frame if isinstance(frame, str) else orjson.dumps(frame).decode("utf-8")
        self._inbox.put(text)

    def drop(self) -> None:
        """Simulate the server vanishing."""
        self.closed = True
        self._inbox.put(_CLOSED)

    def abort(self) -> None:
        self.drop()

    def close(self) -> None:
        self.drop()

    def frames(self, action: Optional[str] = None) -> List[dict]:
        return [f for f in self.sent if action is None or f.get("action") == action]


class FakeServer:
    """
    Scripted broker.

    Attributes:
        auth_script: Auth replies for successive connections (None = silence);
            default_auth_reply once exhausted
        connect_errors: Exceptions raised by successive connection attempts
        gate: When set to an Event, connection attempts block until it is set
    """

    def __init__(self):
        self.default_auth_reply: Optional[dict] = AUTH_OK
        self.auth_script: List[Optional[dict]] = []
        self.connect_errors: List[Exception] = []
        self.gate: Optional[threading.Event] = None
        self.transports: List[FakeTransport] = []
        self.attempts = 0
        self.waiting_at_gate = threading.Event()

    def factory(self, url: str, timeout: float) -> FakeTransport:
        self.attempts += 1
        gate = self.gate
        if gate is not None:
            self.waiting_at_gate.set()
            gate.wait(timeout=5.0)
            self.waiting_at_gate.clear()

        if self.connect_errors:
            raise self.connect_errors.pop(0)

        reply = self.auth_script.pop(0) if self.auth_script else self.default_auth_reply
        transport = FakeTransport(self, reply)
        self.transports.append(transport)
        return transport

    @property
    def current(self) -> FakeTransport:
        return self.transports[-1]

    def push(self, frame: Any) -> None:
        self.current.inject(frame)

    def drop(self) -> None:
        self.current.drop()


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll until predicate() is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def next_event(stream: MarketDataStream, kind: type, timeout: float = 2.0):
    """Pull events until one of the given type arrives."""
    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise AssertionError(f"No {kind.__name__} event within {timeout}s")
        event = stream.get_event(timeout=remaining)
        if isinstance(event, kind):
            return event


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def make_stream(server):
    """Factory for streams connected to the fake server; all closed on teardown."""
    streams = []

    def _make(**kwargs) -> MarketDataStream:
        options = {
            "api_key": "test-key",
            "ws_url": "ws://fake:8765",
            "auth_timeout": 0.5,
            "backoff": ExponentialBackoff(initial_delay=0.01, max_delay=0.05, jitter=0.0),
            "transport_factory": server.factory,
            "metrics": StreamMetrics(enabled=False),
        }
        options.update(kwargs)
        stream = MarketDataStream(**options)
        streams.append(stream)
        return stream

    yield _make

    for stream in streams:
        stream.close()
