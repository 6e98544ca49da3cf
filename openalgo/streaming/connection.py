"""
WebSocket connection manager.

Owns the socket and the connection state machine:

    DISCONNECTED -> CONNECTING -> AUTHENTICATING -> STREAMING
    STREAMING -> RECONNECTING -> STREAMING
    any -> DISCONNECTED (explicit disconnect, or auth rejected)

Threads:
- Command worker: the single serialization point. Runs the handshake,
  the reconnection loop and every subscription command, in order. Owns
  the subscription registry and the state.
- Reader: one per live transport. Receives, decodes and filters frames
  into the event channel; reports transport loss back to the worker.

While the worker is reconnecting, caller commands wait in its queue and
are applied after the registry snapshot has been resubscribed.
"""

import logging
import queue
import socket
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, FrozenSet, Iterable, List, Optional

import websocket
from websocket import WebSocketConnectionClosedException, WebSocketException, WebSocketTimeoutException

from ..exceptions import (
    AuthenticationError,
    CancelledError,
    DecodeError,
    StreamStateError,
    WebSocketConnectionError,
)
from ..metrics import StreamMetrics, get_metrics
from ..utils.backoff import ExponentialBackoff
from .channel import EventChannel
from .codec import MessageCodec
from .registry import SubscriptionRegistry, ordered
from .types import (
    Acknowledgement,
    ConnectionState,
    ConnectionStatus,
    DepthUpdate,
    InstrumentKey,
    LtpUpdate,
    QuoteUpdate,
    StreamError,
    StreamErrorKind,
    StreamEvent,
    Subscription,
)

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (WebSocketException, OSError)

# Transitions surfaced to the consumer as ConnectionStatus events
PUBLIC_STATES = (
    ConnectionState.STREAMING,
    ConnectionState.RECONNECTING,
    ConnectionState.DISCONNECTED,
)

_STOP = object()


def create_transport(url: str, timeout: float) -> websocket.WebSocket:
    """Open a blocking websocket-client connection."""
    return websocket.create_connection(url, timeout=timeout, enable_multithread=True)


class _Command:
    """Unit of work for the command worker."""

    __slots__ = ("fn", "future", "name")

    def __init__(self, fn: Callable[[], Any], future: Future, name: str):
        self.fn = fn
        self.future = future
        self.name = name


class _TransportLost:
    """Posted by a reader whose transport failed."""

    __slots__ = ("generation", "error")

    def __init__(self, generation: int, error: Exception):
        self.generation = generation
        self.error = error


class ConnectionManager:
    """
    Connection state machine for the market data WebSocket.

    Thread-safe public surface: connect(), submit(), disconnect(), close(),
    state, snapshot(), stats(). Everything else runs on the command worker.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        channel: EventChannel,
        registry: Optional[SubscriptionRegistry] = None,
        codec: Optional[MessageCodec] = None,
        backoff: Optional[ExponentialBackoff] = None,
        connect_timeout: float = 10.0,
        auth_timeout: float = 10.0,
        subscribe_batch_size: int = 100,
        transport_factory: Optional[Callable[[str, float], Any]] = None,
        metrics: Optional[StreamMetrics] = None,
        join_timeout: float = 5.0
    ):
        """
        Initialize connection manager.

        Args:
            url: WebSocket URL
            api_key: API key sent in the authentication frame
            channel: Event channel the read loop delivers into
            registry: Subscription registry (owned by this manager)
            codec: Wire codec
            backoff: Reconnect delay policy
            connect_timeout: Transport open timeout (seconds)
            auth_timeout: Wait for the authentication ack (seconds)
            subscribe_batch_size: Max instruments per subscribe frame
            transport_factory: (url, timeout) -> transport; websocket-client by default
            metrics: Metrics collector
            join_timeout: Max wait for threads on disconnect (seconds)
        """
        if subscribe_batch_size < 1:
            raise ValueError("subscribe_batch_size must be >= 1")

        self.url = url
        self.api_key = api_key
        self.connect_timeout = connect_timeout
        self.auth_timeout = auth_timeout
        self.subscribe_batch_size = subscribe_batch_size
        self.join_timeout = join_timeout

        self.channel = channel
        self.registry = registry if registry is not None else SubscriptionRegistry()
        self.codec = codec or MessageCodec()
        self.backoff = backoff or ExponentialBackoff()
        self.metrics = metrics if metrics is not None else get_metrics()
        self._transport_factory = transport_factory or create_transport

        # Connection state (worker-owned). Each worker gets its own closing
        # event; a worker that outlives disconnect() keeps its set event.
        self._state = ConnectionState.DISCONNECTED
        self._closing = threading.Event()
        self._local = threading.local()
        self._connect_pending = False
        self._inflight: Optional[_Command] = None
        self._torn_down = False

        # Transport (reader generation guards against stale loss reports)
        self._transport: Optional[Any] = None
        self._transport_lock = threading.Lock()
        self._generation = 0

        # Threads
        self._lifecycle_lock = threading.RLock()
        self._commands: Optional[queue.Queue] = None
        self._worker: Optional[threading.Thread] = None
        self._reader: Optional[threading.Thread] = None

        # Immutable copy of the registry for the reader and for callers
        self._active: FrozenSet[Subscription] = frozenset()

        # Monitoring
        self._connected_since: Optional[float] = None
        self._frames_received = 0
        self._filtered_events = 0
        self._total_reconnections = 0

        logger.info(f"WebSocket connection manager initialized: {url}")

    # ========== Public API ==========

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_streaming(self) -> bool:
        return self._state is ConnectionState.STREAMING

    def connect(self) -> ConnectionState:
        """
        Open the transport, authenticate and resubscribe the registry.

        Blocks until the handshake finishes (bounded by connect_timeout
        plus auth_timeout).

        Returns:
            ConnectionState.STREAMING

        Raises:
            AuthenticationError: Auth rejected or ack timed out (not retried)
            WebSocketConnectionError: Transport could not be opened
            CancelledError: disconnect() was called during the handshake
            StreamStateError: Already connected or closed
        """
        with self._lifecycle_lock:
            self._check_open()
            if self._connect_pending or self._state is not ConnectionState.DISCONNECTED:
                raise StreamStateError(
                    f"Cannot connect while {self._state.value}", state=self._state.value
                )
            self._connect_pending = True
            try:
                future = self._enqueue(self._connect_initial, "connect")
            except BaseException:
                self._connect_pending = False
                raise

        return future.result()

    def submit(self, fn: Callable[[], Any], name: str = "command") -> Future:
        """
        Run fn on the command worker, after everything queued before it.

        Returns:
            Future resolved with fn's result, its exception, or CancelledError
        """
        with self._lifecycle_lock:
            self._check_open()
            return self._enqueue(fn, name)

    def send(self, frame: str) -> bool:
        """
        Write a frame if STREAMING. Worker-only.

        A failed write is not an error for the caller: the registry already
        holds the change and the reader will trigger a reconnect.

        Returns:
            True if the frame was written
        """
        if self._state is not ConnectionState.STREAMING:
            return False

        with self._transport_lock:
            transport = self._transport
        if transport is None:
            return False

        try:
            transport.send(frame)
            logger.debug(f"Sent frame: {frame}")
            return True
        except TRANSPORT_ERRORS as e:
            logger.warning(f"Failed to send frame, will resync on reconnect: {e}")
            return False

    def send_batched(self, encode: Callable[[List[InstrumentKey]], str],
                     instruments: Iterable[InstrumentKey]) -> bool:
        """Write frames of at most subscribe_batch_size instruments. Worker-only."""
        sent = False
        for batch in self._batches(list(instruments)):
            if not self.send(encode(batch)):
                return sent
            sent = True
        return sent

    def publish_active(self) -> None:
        """Refresh the immutable registry copy used by the reader. Worker-only."""
        self._active = self.registry.frozen()
        self.metrics.set_active_subscriptions(len(self._active))

    def snapshot(self) -> List[Subscription]:
        """Ordered copy of the active subscriptions, safe from any thread."""
        return ordered(self._active)

    def disconnect(self) -> None:
        """
        Stop streaming and release the socket.

        Cancels the reader and the command worker. Commands still queued and
        an in-flight connect() resolve with CancelledError. The registry is
        kept; a later connect() resubscribes it.
        """
        with self._lifecycle_lock:
            worker = self._worker
            commands = self._commands

            self._closing.set()
            self._abort_transport()
            self.channel.wake()

            if commands is not None:
                commands.put(_STOP)
            self._worker = None
            self._commands = None

            current = threading.current_thread()
            if worker is not None and worker is not current:
                worker.join(timeout=self.join_timeout)
                if worker.is_alive():
                    # Still blocked (e.g. opening the socket); it can no longer
                    # touch the manager, so finish its cleanup here.
                    logger.warning("Command worker did not stop within timeout")
                    inflight = self._inflight
                    self._inflight = None
                    if inflight is not None:
                        self._cancel(inflight)
                    self._connect_pending = False
                    self._release_transport()
                    self._set_state(ConnectionState.DISCONNECTED)

            reader = self._reader
            if reader is not None and reader is not current:
                reader.join(timeout=self.join_timeout)
                if reader.is_alive():
                    logger.warning("Reader thread did not stop within timeout")
            self._reader = None

        logger.info("WebSocket disconnected")

    def close(self) -> None:
        """Disconnect, clear the registry and close the event channel."""
        self.disconnect()
        with self._lifecycle_lock:
            if self._torn_down:
                return
            self._torn_down = True
            self.registry.clear()
            self.publish_active()
            self.channel.close()
        logger.info("WebSocket stream closed")

    def stats(self) -> dict:
        """
        Get connection statistics for monitoring.

        Returns:
            dict: state, uptime, subscriptions, frame counters, reconnections
        """
        uptime_seconds = None
        if self._connected_since and self._state is ConnectionState.STREAMING:
            uptime_seconds = int(time.time() - self._connected_since)

        return {
            "state": self._state.value,
            "uptime_seconds": uptime_seconds,
            "active_subscriptions": len(self._active),
            "total_frames_received": self._frames_received,
            "filtered_events": self._filtered_events,
            "dropped_events": self.channel.dropped,
            "buffered_events": self.channel.qsize(),
            "total_reconnections": self._total_reconnections,
        }

    # ========== Worker ==========

    def _check_open(self) -> None:
        if self._torn_down:
            raise StreamStateError("Stream is closed", state=self._state.value)

    def _enqueue(self, fn: Callable[[], Any], name: str) -> Future:
        """Queue a command, starting the worker if needed. Lifecycle lock held."""
        if self._worker is None or not self._worker.is_alive():
            self._closing = threading.Event()
            self._commands = queue.Queue()
            self._worker = threading.Thread(
                target=self._run_worker,
                args=(self._commands, self._closing),
                daemon=True,
                name="openalgo-ws-commands"
            )
            self._worker.start()

        future: Future = Future()
        self._commands.put(_Command(fn, future, name))
        return future

    def _run_worker(self, commands: queue.Queue, closing: threading.Event) -> None:
        """Command worker loop."""
        self._local.closing = closing
        self._local.commands = commands
        logger.debug("Command worker started")
        try:
            while True:
                item = commands.get()
                if item is _STOP:
                    break
                if closing.is_set():
                    self._cancel(item)
                elif isinstance(item, _TransportLost):
                    self._handle_transport_lost(item)
                else:
                    self._execute(item)
        finally:
            while True:
                try:
                    item = commands.get_nowait()
                except queue.Empty:
                    break
                if item is not _STOP:
                    self._cancel(item)

            # A superseded worker leaves the manager to its successor
            if self._is_current():
                self._release_transport()
                self._connect_pending = False
                self._set_state(ConnectionState.DISCONNECTED)
            logger.debug("Command worker stopped")

    def _execute(self, command: _Command) -> None:
        if not command.future.set_running_or_notify_cancel():
            return
        self._inflight = command
        try:
            result = command.fn()
        except Exception as e:
            if not command.future.done():
                command.future.set_exception(e)
        else:
            if not command.future.done():
                command.future.set_result(result)
        finally:
            if self._inflight is command:
                self._inflight = None
            if self._is_current():
                self.publish_active()

    def _token(self) -> threading.Event:
        """Closing event of the calling worker or reader thread."""
        return getattr(self._local, "closing", None) or self._closing

    def _is_current(self) -> bool:
        return self._token() is self._closing

    @staticmethod
    def _cancel(item: Any) -> None:
        if isinstance(item, _Command) and not item.future.done():
            item.future.set_exception(CancelledError(f"{item.name} cancelled by disconnect"))

    # ========== Handshake ==========

    def _connect_initial(self) -> ConnectionState:
        """Initial connect command: no retries."""
        closing = self._token()
        try:
            self._open_session(reconnecting=False)
        except CancelledError:
            raise
        except AuthenticationError:
            if closing.is_set():
                raise CancelledError("connect cancelled by disconnect")
            self._set_state(ConnectionState.DISCONNECTED)
            raise
        except TRANSPORT_ERRORS as e:
            if closing.is_set():
                raise CancelledError("connect cancelled by disconnect") from e
            self._set_state(ConnectionState.DISCONNECTED)
            raise WebSocketConnectionError(f"Failed to connect to {self.url}: {e}") from e
        finally:
            if self._is_current():
                self._connect_pending = False
        return ConnectionState.STREAMING

    def _open_session(self, reconnecting: bool) -> None:
        """Connect, authenticate, resubscribe, then start the reader."""
        closing = self._token()
        if closing.is_set():
            raise CancelledError("connect cancelled by disconnect")
        if not reconnecting:
            self._set_state(ConnectionState.CONNECTING)

        logger.info(f"Connecting to {self.url}...")
        transport = self._transport_factory(self.url, self.connect_timeout)

        with self._transport_lock:
            cancelled = closing.is_set()
            if not cancelled:
                self._transport = transport
        if cancelled:
            self._close_transport(transport)
            raise CancelledError("connect cancelled by disconnect")

        try:
            if not reconnecting:
                self._set_state(ConnectionState.AUTHENTICATING)
            self._authenticate(transport)
            self._resubscribe()
            self._start_streaming(transport)

        except TRANSPORT_ERRORS as e:
            self._release_transport(transport)
            if closing.is_set():
                raise CancelledError("connect cancelled by disconnect") from e
            raise
        except BaseException:
            self._release_transport(transport)
            raise

    def _authenticate(self, transport: Any) -> None:
        """Send the auth frame and wait for the ack."""
        transport.send(self.codec.encode_auth(self.api_key))

        deadline = time.monotonic() + self.auth_timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise AuthenticationError(
                    f"No authentication ack within {self.auth_timeout}s",
                    {"reason": "timeout"}
                )

            transport.settimeout(remaining)
            try:
                raw = transport.recv()
            except (WebSocketTimeoutException, socket.timeout) as e:
                raise AuthenticationError(
                    f"No authentication ack within {self.auth_timeout}s",
                    {"reason": "timeout"}
                ) from e

            if not raw:
                raise WebSocketConnectionClosedException("Connection closed during authentication")

            try:
                frame = self.codec.decode(raw)
            except DecodeError as e:
                logger.warning(f"Ignoring undecodable frame during authentication: {e}")
                continue

            if isinstance(frame, Acknowledgement) and frame.action == "auth":
                if frame.ok:
                    break
                raise AuthenticationError(
                    f"Authentication rejected: {frame.message or frame.status}",
                    {"reason": "rejected"}
                )

            if isinstance(frame, StreamError) and frame.kind is StreamErrorKind.SERVER:
                raise AuthenticationError(
                    f"Authentication rejected: {frame.message}",
                    {"reason": "rejected"}
                )

            logger.debug(f"Ignoring frame before authentication ack: {frame}")

        transport.settimeout(None)
        logger.info("WebSocket authenticated")

    def _resubscribe(self) -> None:
        """Send subscribe frames for the whole registry snapshot."""
        groups = self.registry.grouped()
        if not groups:
            return

        total = sum(len(instruments) for _, instruments in groups)
        logger.info(f"Resubscribing to {total} subscriptions...")

        with self._transport_lock:
            transport = self._transport

        for mode, instruments in groups:
            for batch in self._batches(instruments):
                transport.send(self.codec.encode_subscribe(mode, batch))
                logger.debug(f"Resubscribed {mode.value}: {len(batch)} instruments")

    def _start_streaming(self, transport: Any) -> None:
        closing = self._token()
        with self._transport_lock:
            if closing.is_set():
                raise CancelledError("connect cancelled by disconnect")
            self._generation += 1
            generation = self._generation

        self.publish_active()
        self._connected_since = time.time()
        # Status precedes any event read from the new transport
        self._set_state(ConnectionState.STREAMING)

        self._reader = threading.Thread(
            target=self._read_loop,
            args=(transport, generation, closing, self._local.commands),
            daemon=True,
            name=f"openalgo-ws-reader-{generation}"
        )
        self._reader.start()

    # ========== Reconnection ==========

    def _handle_transport_lost(self, lost: _TransportLost) -> None:
        """Reconnect with backoff until success, fatal auth rejection or disconnect."""
        if lost.generation != self._generation or self._state is not ConnectionState.STREAMING:
            logger.debug(f"Ignoring stale transport loss (generation {lost.generation})")
            return

        logger.warning(f"WebSocket connection lost: {lost.error}")
        self._release_transport()
        self._set_state(ConnectionState.RECONNECTING)

        closing = self._token()
        attempt = 0
        while not closing.is_set():
            delay = self.backoff.delay(attempt)
            attempt += 1
            logger.warning(f"Reconnecting in {delay:.2f}s (attempt {attempt})...")

            if closing.wait(delay):
                return

            try:
                self._open_session(reconnecting=True)
            except CancelledError:
                return
            except AuthenticationError as e:
                if e.details.get("reason") == "timeout":
                    logger.warning(f"Reconnect attempt {attempt} failed: {e}")
                    continue
                logger.error(f"Re-authentication rejected, giving up: {e}")
                self._emit(StreamError(StreamErrorKind.AUTH, e.message))
                self._set_state(ConnectionState.DISCONNECTED)
                return
            except TRANSPORT_ERRORS as e:
                logger.warning(f"Reconnect attempt {attempt} failed: {type(e).__name__}: {e}")
                continue

            self._total_reconnections += 1
            self.metrics.track_reconnect()
            logger.info(f"Reconnected after {attempt} attempt(s)")
            return

    # ========== Reader ==========

    def _read_loop(self, transport: Any, generation: int,
                   closing: threading.Event, commands: queue.Queue) -> None:
        """Receive frames until the transport fails or the stream stops."""
        self._local.closing = closing
        logger.debug(f"Reader {generation} started")

        while not closing.is_set():
            try:
                raw = transport.recv()
                if not raw:
                    raise WebSocketConnectionClosedException("Connection closed by server")
            except TRANSPORT_ERRORS as e:
                if not closing.is_set():
                    logger.warning(f"WebSocket read failed: {type(e).__name__}: {e}")
                    # Posted to the worker that started this reader
                    commands.put(_TransportLost(generation, e))
                break

            self._frames_received += 1
            event = self._to_event(raw)
            if event is None:
                continue

            dropped = self.channel.dropped
            if not self.channel.put(event, cancel=closing):
                break
            self.metrics.track_dropped("overflow", self.channel.dropped - dropped)
            self.metrics.set_channel_depth(self.channel.qsize())

        logger.debug(f"Reader {generation} stopped")

    def _to_event(self, raw: Any) -> Optional[StreamEvent]:
        """Decode a frame into a deliverable event, or None to skip it."""
        try:
            frame = self.codec.decode(raw)
        except DecodeError as e:
            self.metrics.track_decode_error()
            logger.warning(f"Failed to decode frame: {e}")
            return StreamError(StreamErrorKind.PROTOCOL, e.message)
        except Exception as e:
            # Decoder bugs must not end the reader
            self.metrics.track_decode_error()
            logger.exception(f"Unexpected error decoding frame: {e}")
            return StreamError(StreamErrorKind.PROTOCOL, f"Undecodable frame: {type(e).__name__}: {e}")

        if isinstance(frame, Acknowledgement):
            if frame.ok:
                logger.debug(f"Server ack: {frame.action} {frame.message}")
                return None
            return StreamError(
                StreamErrorKind.SERVER,
                f"{frame.action} failed: {frame.message or frame.status}"
            )

        if isinstance(frame, (LtpUpdate, QuoteUpdate, DepthUpdate)):
            if Subscription(frame.instrument, frame.mode) not in self._active:
                self._filtered_events += 1
                self.metrics.track_dropped("unsubscribed")
                logger.debug(f"Dropping {frame.mode.value} event for unsubscribed {frame.instrument}")
                return None

        self.metrics.track_frame(type(frame).__name__)
        return frame

    # ========== Helpers ==========

    def _set_state(self, state: ConnectionState) -> None:
        previous = self._state
        if previous is state:
            return

        self._state = state
        self.metrics.set_state(state.value)
        logger.info(f"WebSocket state: {previous.value} -> {state.value}")

        if state in PUBLIC_STATES:
            self._emit(ConnectionStatus(state))

    def _emit(self, event: StreamEvent) -> None:
        if not self.channel.put(event, cancel=self._token()):
            logger.debug(f"Event not delivered (channel closed or stopping): {event}")

    def _batches(self, instruments: List[InstrumentKey]) -> List[List[InstrumentKey]]:
        size = self.subscribe_batch_size
        return [instruments[i:i + size] for i in range(0, len(instruments), size)]

    def _abort_transport(self) -> None:
        """Wake any thread blocked on the transport. Safe from any thread."""
        with self._transport_lock:
            transport = self._transport
        if transport is None:
            return
        try:
            transport.abort()
        except TRANSPORT_ERRORS as e:
            logger.debug(f"Error aborting WebSocket: {e}")

    def _release_transport(self, transport: Optional[Any] = None) -> None:
        """
        Detach and close a transport; invalidates its reader.

        Args:
            transport: Transport to release (default: the current one). It is
                only detached if it is still the current transport.
        """
        with self._transport_lock:
            if transport is None or transport is self._transport:
                transport = self._transport
                self._transport = None
                self._generation += 1

        if transport is not None:
            self._close_transport(transport)

    @staticmethod
    def _close_transport(transport: Any) -> None:
        try:
            transport.abort()
        except TRANSPORT_ERRORS as e:
            logger.debug(f"Error aborting WebSocket: {e}")
        try:
            transport.close()
        except TRANSPORT_ERRORS as e:
            logger.debug(f"Error closing WebSocket: {e}")

    def __repr__(self) -> str:
        return f"ConnectionManager(url={self.url}, state={self._state.value})"
