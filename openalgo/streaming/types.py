"""
Value types for the market data stream.

Instruments, subscription modes, connection states and the tagged union
of events delivered through the event channel.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple, Union


class SubscriptionMode(str, Enum):
    """Market data granularity."""
    LTP = "LTP"
    QUOTE = "QUOTE"
    DEPTH = "DEPTH"

    @property
    def code(self) -> int:
        """Numeric mode used by the server on market data frames."""
        return _MODE_CODES[self]

    @classmethod
    def parse(cls, value) -> "SubscriptionMode":
        """
        Resolve a mode from an enum, name or numeric code.

        Raises:
            ValueError: If the value names no mode
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid subscription mode: {value!r}")
        if isinstance(value, int):
            for mode, code in _MODE_CODES.items():
                if code == value:
                    return mode
        if isinstance(value, str):
            name = value.strip().upper()
            if name.isdigit():
                return cls.parse(int(name))
            if name in cls.__members__:
                return cls[name]
        raise ValueError(f"Invalid subscription mode: {value!r}")


_MODE_CODES = {
    SubscriptionMode.LTP: 1,
    SubscriptionMode.QUOTE: 2,
    SubscriptionMode.DEPTH: 3,
}

# Deterministic ordering for snapshots and resubscription
MODE_ORDER = (SubscriptionMode.LTP, SubscriptionMode.QUOTE, SubscriptionMode.DEPTH)


class ConnectionState(str, Enum):
    """Connection manager state."""
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    AUTHENTICATING = "AUTHENTICATING"
    STREAMING = "STREAMING"
    RECONNECTING = "RECONNECTING"


class StreamErrorKind(str, Enum):
    """Category of a non-fatal stream error event."""
    UNKNOWN = "UNKNOWN"      # Unrecognized frame discriminator
    PROTOCOL = "PROTOCOL"    # Malformed frame
    SERVER = "SERVER"        # Error frame sent by the server
    AUTH = "AUTH"            # Re-authentication rejected after reconnect


@dataclass(frozen=True)
class InstrumentKey:
    """Tradable symbol identified by exchange and symbol."""
    exchange: str
    symbol: str

    def __str__(self) -> str:
        return f"{self.exchange}:{self.symbol}"


@dataclass(frozen=True)
class Subscription:
    """One live feed: an instrument under a mode."""
    instrument: InstrumentKey
    mode: SubscriptionMode


@dataclass(frozen=True)
class OHLC:
    """Session open/high/low/close; any field may be missing."""
    open: Optional[Decimal] = None
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    close: Optional[Decimal] = None


@dataclass(frozen=True)
class DepthLevel:
    """One order book price level."""
    price: Optional[Decimal]
    quantity: Optional[int]
    orders: Optional[int] = None


@dataclass(frozen=True)
class LtpUpdate:
    """Last traded price tick."""
    instrument: InstrumentKey
    ltp: Optional[Decimal]
    timestamp: Optional[int] = None

    mode = SubscriptionMode.LTP


@dataclass(frozen=True)
class QuoteUpdate:
    """Quote tick with OHLC, volume and top of book."""
    instrument: InstrumentKey
    ohlc: OHLC
    volume: Optional[int]
    bid: Optional[Decimal]
    ask: Optional[Decimal]
    timestamp: Optional[int] = None
    ltp: Optional[Decimal] = None
    oi: Optional[int] = None

    mode = SubscriptionMode.QUOTE


@dataclass(frozen=True)
class DepthUpdate:
    """Order book depth tick."""
    instrument: InstrumentKey
    bids: Tuple[DepthLevel, ...]
    asks: Tuple[DepthLevel, ...]
    timestamp: Optional[int] = None
    ltp: Optional[Decimal] = None
    ohlc: OHLC = field(default_factory=OHLC)
    volume: Optional[int] = None
    oi: Optional[int] = None

    mode = SubscriptionMode.DEPTH


@dataclass(frozen=True)
class ConnectionStatus:
    """Connection state transition notice."""
    state: ConnectionState


@dataclass(frozen=True)
class StreamError:
    """Non-fatal error surfaced in-band; the stream keeps running."""
    kind: StreamErrorKind
    message: str


@dataclass(frozen=True)
class Acknowledgement:
    """
    Control frame from the server (auth or subscription ack).

    Consumed by the connection manager; never delivered to callers.
    """
    action: str
    status: str
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status.lower() == "success"


MarketEvent = Union[LtpUpdate, QuoteUpdate, DepthUpdate]
StreamEvent = Union[LtpUpdate, QuoteUpdate, DepthUpdate, ConnectionStatus, StreamError]


@dataclass(frozen=True)
class CommandReceipt:
    """
    Outcome of a subscribe/unsubscribe command once applied.

    Attributes:
        action: "subscribe" or "unsubscribe"
        mode: Subscription mode of the command
        applied: Instruments that actually changed the registry
        sent: Whether a wire frame was written for them
    """
    action: str
    mode: SubscriptionMode
    applied: Tuple[InstrumentKey, ...]
    sent: bool
