"""
Prometheus metrics for the market data stream.

Tracks frame throughput, decode failures, reconnects and channel pressure.
"""

from typing import Optional
import logging

from prometheus_client import Counter, Gauge, start_http_server

logger = logging.getLogger(__name__)

STATE_VALUES = {
    "DISCONNECTED": 0,
    "CONNECTING": 1,
    "AUTHENTICATING": 2,
    "STREAMING": 3,
    "RECONNECTING": 4,
}


class StreamMetrics:
    """
    Prometheus metrics collector.

    Tracks:
    - Frames received per decoded kind
    - Decode errors
    - Reconnections
    - Events dropped (overflow or filtered)
    - Connection state, channel depth, active subscriptions
    """

    def __init__(self, enabled: bool = True, port: Optional[int] = None):
        """
        Initialize metrics.

        Args:
            enabled: Enable metrics collection
            port: Start the metrics HTTP server on this port (None: don't)
        """
        self.enabled = enabled

        if not self.enabled:
            return

        self.frames_received = Counter(
            'openalgo_ws_frames_received_total',
            'Total WebSocket frames received',
            ['kind']
        )

        self.decode_errors = Counter(
            'openalgo_ws_decode_errors_total',
            'Frames that failed to decode'
        )

        self.reconnects = Counter(
            'openalgo_ws_reconnects_total',
            'Successful reconnections'
        )

        self.dropped_events = Counter(
            'openalgo_ws_dropped_events_total',
            'Events not delivered to the consumer',
            ['reason']
        )

        self.connection_state = Gauge(
            'openalgo_ws_connection_state',
            'Connection state (0=DISCONNECTED, 1=CONNECTING, 2=AUTHENTICATING, '
            '3=STREAMING, 4=RECONNECTING)'
        )

        self.channel_depth = Gauge(
            'openalgo_ws_channel_depth',
            'Events buffered in the event channel'
        )

        self.active_subscriptions = Gauge(
            'openalgo_ws_active_subscriptions',
            'Subscriptions held in the registry'
        )

        if port:
            try:
                start_http_server(port)
                logger.info(f"Metrics server started on port {port}")
            except OSError as e:
                logger.error(f"Failed to start metrics server: {e}")

    def track_frame(self, kind: str) -> None:
        """Record a decoded frame."""
        if self.enabled:
            self.frames_received.labels(kind=kind).inc()

    def track_decode_error(self) -> None:
        if self.enabled:
            self.decode_errors.inc()

    def track_reconnect(self) -> None:
        if self.enabled:
            self.reconnects.inc()

    def track_dropped(self, reason: str, count: int = 1) -> None:
        """Record undelivered events."""
        if self.enabled and count > 0:
            self.dropped_events.labels(reason=reason).inc(count)

    def set_state(self, state: str) -> None:
        """Set connection state gauge."""
        if self.enabled:
            self.connection_state.set(STATE_VALUES.get(state, 0))

    def set_channel_depth(self, depth: int) -> None:
        if self.enabled:
            self.channel_depth.set(depth)

    def set_active_subscriptions(self, count: int) -> None:
        if self.enabled:
            self.active_subscriptions.set(count)


# Global metrics instance
_metrics: Optional[StreamMetrics] = None


def get_metrics(enabled: bool = True, port: Optional[int] = None) -> StreamMetrics:
    """Get or create metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = StreamMetrics(enabled=enabled, port=port)
    return _metrics
