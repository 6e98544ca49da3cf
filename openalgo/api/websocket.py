"""
Market data stream client.

Live LTP, quote and depth ticks over the OpenAlgo WebSocket with
automatic reconnection and resubscription. Events are pulled from a
bounded channel in arrival order.

Usage:
    >>> from openalgo import MarketDataStream
    >>>
    >>> with MarketDataStream(api_key="...") as stream:
    ...     stream.connect()
    ...     stream.subscribe_ltp([("NSE", "RELIANCE"), ("NSE", "TCS")])
    ...     for event in stream:
    ...         print(event)
"""

from concurrent.futures import Future
from typing import Any, Iterable, Iterator, List, Optional
import logging

from ..config import OpenAlgoSettings
from ..metrics import StreamMetrics, get_metrics
from ..streaming.channel import EventChannel, OverflowPolicy
from ..streaming.codec import InstrumentLike, MessageCodec
from ..streaming.connection import ConnectionManager
from ..streaming.dispatcher import CommandDispatcher
from ..streaming.registry import SubscriptionRegistry
from ..streaming.types import ConnectionState, StreamEvent, Subscription, SubscriptionMode
from ..utils.backoff import ExponentialBackoff

logger = logging.getLogger(__name__)


class MarketDataStream:
    """
    OpenAlgo market data WebSocket client.

    Provides:
    - Subscriptions per mode (LTP, QUOTE, DEPTH), idempotent
    - Automatic reconnection with exponential backoff
    - Resubscription of every active subscription after reconnect
    - Ordered event delivery with bounded buffering

    Thread-safe: commands may be issued from any thread while another
    thread consumes events.
    """

    def __init__(
        self,
        api_key: str,
        ws_url: str = "ws://127.0.0.1:8765",
        connect_timeout: float = 10.0,
        auth_timeout: float = 10.0,
        backoff: Optional[ExponentialBackoff] = None,
        subscribe_batch_size: int = 100,
        channel_size: int = 10000,
        overflow_policy: OverflowPolicy = OverflowPolicy.BLOCK,
        transport_factory=None,
        metrics: Optional[StreamMetrics] = None
    ):
        """
        Initialize market data stream.

        Args:
            api_key: OpenAlgo API key
            ws_url: WebSocket URL
            connect_timeout: Transport open timeout (seconds)
            auth_timeout: Authentication ack timeout (seconds)
            backoff: Reconnect delay policy
            subscribe_batch_size: Max instruments per subscribe frame
            channel_size: Max buffered events
            overflow_policy: BLOCK (default) or DROP_OLDEST
            transport_factory: (url, timeout) -> transport, for tests
            metrics: Metrics collector
        """
        self.ws_url = ws_url
        self.registry = SubscriptionRegistry()
        self.codec = MessageCodec()
        self.channel = EventChannel(maxsize=channel_size, overflow=overflow_policy)
        self.manager = ConnectionManager(
            url=ws_url,
            api_key=api_key,
            channel=self.channel,
            registry=self.registry,
            codec=self.codec,
            backoff=backoff,
            connect_timeout=connect_timeout,
            auth_timeout=auth_timeout,
            subscribe_batch_size=subscribe_batch_size,
            transport_factory=transport_factory,
            metrics=metrics
        )
        self.dispatcher = CommandDispatcher(self.manager, self.codec)

    @classmethod
    def from_settings(cls, settings: Optional[OpenAlgoSettings] = None,
                      **overrides: Any) -> "MarketDataStream":
        """
        Build a stream from OpenAlgoSettings (environment by default).

        Args:
            settings: Settings instance
            **overrides: Constructor arguments that take precedence
        """
        settings = settings or OpenAlgoSettings()
        kwargs = {
            "api_key": settings.api_key,
            "ws_url": settings.ws_url,
            "connect_timeout": settings.ws_connect_timeout,
            "auth_timeout": settings.ws_auth_timeout,
            "backoff": ExponentialBackoff(
                initial_delay=settings.ws_reconnect_initial_delay,
                max_delay=settings.ws_reconnect_max_delay,
                multiplier=settings.ws_reconnect_multiplier,
                jitter=settings.ws_reconnect_jitter
            ),
            "subscribe_batch_size": settings.ws_subscribe_batch_size,
            "channel_size": settings.event_channel_size,
            "overflow_policy": OverflowPolicy(settings.event_overflow_policy),
        }
        if "metrics" not in overrides:
            kwargs["metrics"] = get_metrics(
                enabled=settings.enable_metrics,
                port=settings.metrics_port
            )
        kwargs.update(overrides)
        return cls(**kwargs)

    # ========== Connection ==========

    def connect(self) -> "MarketDataStream":
        """
        Connect, authenticate and resubscribe existing subscriptions.

        Returns:
            self for chaining

        Raises:
            AuthenticationError: API key rejected or auth timed out
            WebSocketConnectionError: Server unreachable
            StreamStateError: Already connected or closed
        """
        self.manager.connect()
        return self

    def disconnect(self) -> None:
        """Stop streaming. Subscriptions are kept for the next connect()."""
        self.dispatcher.disconnect()

    def close(self) -> None:
        """Disconnect, drop all subscriptions and end event iteration."""
        self.manager.close()

    @property
    def state(self) -> ConnectionState:
        return self.manager.state

    @property
    def is_streaming(self) -> bool:
        return self.manager.is_streaming

    # ========== Subscriptions ==========

    def subscribe(self, mode: Any, instruments: Iterable[InstrumentLike]) -> Future:
        """
        Subscribe instruments under a mode.

        Args:
            mode: SubscriptionMode, "LTP"/"QUOTE"/"DEPTH" or 1/2/3
            instruments: InstrumentKey, (exchange, symbol) or
                {"exchange": ..., "symbol": ...} items

        Returns:
            Future[CommandReceipt]

        Raises:
            EncodeError: Empty or malformed instruments, unknown mode
        """
        return self.dispatcher.subscribe(mode, instruments)

    def unsubscribe(self, mode: Any, instruments: Iterable[InstrumentLike]) -> Future:
        """Unsubscribe instruments from a mode. Returns Future[CommandReceipt]."""
        return self.dispatcher.unsubscribe(mode, instruments)

    def subscribe_ltp(self, instruments: Iterable[InstrumentLike]) -> Future:
        return self.subscribe(SubscriptionMode.LTP, instruments)

    def subscribe_quote(self, instruments: Iterable[InstrumentLike]) -> Future:
        return self.subscribe(SubscriptionMode.QUOTE, instruments)

    def subscribe_depth(self, instruments: Iterable[InstrumentLike]) -> Future:
        return self.subscribe(SubscriptionMode.DEPTH, instruments)

    def unsubscribe_ltp(self, instruments: Iterable[InstrumentLike]) -> Future:
        return self.unsubscribe(SubscriptionMode.LTP, instruments)

    def unsubscribe_quote(self, instruments: Iterable[InstrumentLike]) -> Future:
        return self.unsubscribe(SubscriptionMode.QUOTE, instruments)

    def unsubscribe_depth(self, instruments: Iterable[InstrumentLike]) -> Future:
        return self.unsubscribe(SubscriptionMode.DEPTH, instruments)

    def subscriptions(self) -> List[Subscription]:
        """Copy of the active subscriptions (mode order, exchange, symbol)."""
        return self.manager.snapshot()

    # ========== Events ==========

    def get_event(self, timeout: Optional[float] = None) -> Optional[StreamEvent]:
        """
        Next event in arrival order.

        Args:
            timeout: Seconds to wait (None waits forever)

        Returns:
            Event, or None once the stream is closed and drained

        Raises:
            queue.Empty: If the timeout expires first
        """
        return self.channel.get(timeout=timeout)

    def __iter__(self) -> Iterator[StreamEvent]:
        """Iterate events until close()."""
        return iter(self.channel)

    def stats(self) -> dict:
        """Connection and delivery statistics."""
        return self.manager.stats()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self) -> str:
        return f"MarketDataStream(url={self.ws_url}, state={self.state.value})"
