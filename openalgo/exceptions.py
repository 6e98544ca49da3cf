"""
Custom exceptions for the OpenAlgo client.

Provides typed exceptions for REST calls and the market data stream.
"""

from typing import Optional, Any


class OpenAlgoError(Exception):
    """Base exception for all OpenAlgo errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class APIError(OpenAlgoError):
    """API request failed."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 response: Optional[dict] = None):
        super().__init__(message, {"status_code": status_code, "response": response})
        self.status_code = status_code
        self.response = response


class AuthenticationError(OpenAlgoError):
    """Authentication rejected or timed out."""
    pass


class ValidationError(OpenAlgoError):
    """Input validation failed."""
    pass


class TimeoutError(OpenAlgoError):
    """Request timed out."""
    pass


class CancelledError(OpenAlgoError):
    """Operation aborted by an explicit disconnect or teardown."""
    pass


# WebSocket exceptions
class WebSocketError(OpenAlgoError):
    """WebSocket stream error."""
    pass


class WebSocketConnectionError(WebSocketError):
    """Failed to open the WebSocket transport."""
    pass


class StreamStateError(WebSocketError):
    """Operation not allowed in the current connection state."""

    def __init__(self, message: str, state: Optional[str] = None):
        super().__init__(message, {"state": state})
        self.state = state


class ProtocolError(WebSocketError):
    """Wire protocol violation."""
    pass


class DecodeError(ProtocolError):
    """Inbound frame could not be decoded."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message, {"raw": raw})
        self.raw = raw


class EncodeError(ValidationError):
    """Outbound command input is empty or malformed."""
    pass
