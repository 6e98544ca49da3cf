"""Market data streaming: registry, codec, event channel, connection manager."""

from .channel import EventChannel, OverflowPolicy
from .codec import MessageCodec, make_instrument, normalize_instruments
from .connection import ConnectionManager
from .dispatcher import CommandDispatcher
from .registry import SubscriptionRegistry
from .types import (
    Acknowledgement,
    CommandReceipt,
    ConnectionState,
    ConnectionStatus,
    DepthLevel,
    DepthUpdate,
    InstrumentKey,
    LtpUpdate,
    MarketEvent,
    OHLC,
    QuoteUpdate,
    StreamError,
    StreamErrorKind,
    StreamEvent,
    Subscription,
    SubscriptionMode,
)

__all__ = [
    "EventChannel",
    "OverflowPolicy",
    "MessageCodec",
    "make_instrument",
    "normalize_instruments",
    "ConnectionManager",
    "CommandDispatcher",
    "SubscriptionRegistry",
    "Acknowledgement",
    "CommandReceipt",
    "ConnectionState",
    "ConnectionStatus",
    "DepthLevel",
    "DepthUpdate",
    "InstrumentKey",
    "LtpUpdate",
    "MarketEvent",
    "OHLC",
    "QuoteUpdate",
    "StreamError",
    "StreamErrorKind",
    "StreamEvent",
    "Subscription",
    "SubscriptionMode",
]
