"""
Main OpenAlgo client.

Unified entry point: REST market data snapshots plus factory for the
market data stream. Thread-safe.
"""

from typing import Iterable, List, Optional, Tuple
import logging
import threading

from .config import OpenAlgoSettings, get_settings
from .api.data import DataAPI
from .api.websocket import MarketDataStream
from .exceptions import ValidationError
from .logging_config import setup_logging
from .models import DepthSnapshot, QuoteSnapshot

logger = logging.getLogger(__name__)


class OpenAlgoClient:
    """
    OpenAlgo client.

    Usage:
        >>> client = OpenAlgoClient(api_key="...", host="http://127.0.0.1:5000")
        >>> quote = client.quotes("RELIANCE", "NSE")
        >>> with client.websocket() as stream:
        ...     stream.connect()
        ...     stream.subscribe_quote([("NSE", "RELIANCE")])
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        host: Optional[str] = None,
        version: Optional[str] = None,
        ws_url: Optional[str] = None,
        settings: Optional[OpenAlgoSettings] = None,
        configure_logging: bool = False
    ):
        """
        Initialize OpenAlgo client.

        Explicit arguments override settings (which load from OPENALGO_* env).

        Args:
            api_key: OpenAlgo API key
            host: Server URL (e.g. http://127.0.0.1:5000)
            version: REST API version (e.g. v1)
            ws_url: WebSocket URL (e.g. ws://127.0.0.1:8765)
            settings: Base settings
            configure_logging: Apply setup_logging() at settings.log_level

        Raises:
            ValidationError: If no API key is available
        """
        base = settings or get_settings()
        overrides = {
            key: value for key, value in (
                ("api_key", api_key),
                ("host", host),
                ("api_version", version),
                ("ws_url", ws_url),
            ) if value is not None
        }
        self.settings = base.model_copy(update=overrides) if overrides else base

        if not self.settings.api_key:
            raise ValidationError("API key is required (argument or OPENALGO_API_KEY)")

        if configure_logging:
            setup_logging(level=self.settings.log_level)

        self.data = DataAPI(self.settings.api_key, self.settings)

        self._streams: List[MarketDataStream] = []
        self._streams_lock = threading.Lock()

        logger.info(f"OpenAlgo client initialized: {self.settings.host}")

    @property
    def api_key(self) -> str:
        return self.settings.api_key

    # ========== REST shortcuts ==========

    def quotes(self, symbol: str, exchange: str) -> QuoteSnapshot:
        """Quote for one symbol."""
        return self.data.quotes(symbol, exchange)

    def multi_quotes(self, symbols: Iterable[Tuple[str, str]]) -> List[QuoteSnapshot]:
        """Quotes for (symbol, exchange) pairs."""
        return self.data.multi_quotes(symbols)

    def depth(self, symbol: str, exchange: str) -> DepthSnapshot:
        """Market depth for one symbol."""
        return self.data.depth(symbol, exchange)

    # ========== Streaming ==========

    def websocket(self, **overrides) -> MarketDataStream:
        """
        Create a new market data stream bound to this client's settings.

        The stream is not connected; call connect() on it. Streams created
        here are closed by close().
        """
        stream = MarketDataStream.from_settings(self.settings, **overrides)
        with self._streams_lock:
            self._streams.append(stream)
        return stream

    def close(self) -> None:
        """Close all streams and the HTTP session."""
        with self._streams_lock:
            streams, self._streams = self._streams, []

        for stream in streams:
            stream.close()
        self.data.close()
        logger.info("OpenAlgo client closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self) -> str:
        return f"OpenAlgoClient(host={self.settings.host}, ws_url={self.settings.ws_url})"
