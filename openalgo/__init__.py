"""
OpenAlgo Client Library

Thread-safe Python client for the OpenAlgo trading platform: REST market
data snapshots and a self-healing WebSocket market data stream.
"""

from .client import OpenAlgoClient
from .config import OpenAlgoSettings, get_settings
from .api.data import DataAPI
from .api.websocket import MarketDataStream
from .models import QuoteSnapshot, DepthSnapshot, DepthLevelModel
from .streaming import (
    CommandReceipt,
    ConnectionState,
    ConnectionStatus,
    DepthLevel,
    DepthUpdate,
    InstrumentKey,
    LtpUpdate,
    OHLC,
    OverflowPolicy,
    QuoteUpdate,
    StreamError,
    StreamErrorKind,
    Subscription,
    SubscriptionMode,
)
from .exceptions import (
    OpenAlgoError,
    APIError,
    AuthenticationError,
    ValidationError,
    TimeoutError,
    CancelledError,
    WebSocketError,
    WebSocketConnectionError,
    StreamStateError,
    ProtocolError,
    DecodeError,
    EncodeError,
)
from .logging_config import setup_logging, get_logger

__version__ = "0.1.0"

__all__ = [
    # Clients
    "OpenAlgoClient",
    "DataAPI",
    "MarketDataStream",
    # Config
    "OpenAlgoSettings",
    "get_settings",
    # REST models
    "QuoteSnapshot",
    "DepthSnapshot",
    "DepthLevelModel",
    # Streaming types
    "CommandReceipt",
    "ConnectionState",
    "ConnectionStatus",
    "DepthLevel",
    "DepthUpdate",
    "InstrumentKey",
    "LtpUpdate",
    "OHLC",
    "OverflowPolicy",
    "QuoteUpdate",
    "StreamError",
    "StreamErrorKind",
    "Subscription",
    "SubscriptionMode",
    # Exceptions
    "OpenAlgoError",
    "APIError",
    "AuthenticationError",
    "ValidationError",
    "TimeoutError",
    "CancelledError",
    "WebSocketError",
    "WebSocketConnectionError",
    "StreamStateError",
    "ProtocolError",
    "DecodeError",
    "EncodeError",
    # Logging
    "setup_logging",
    "get_logger",
]
