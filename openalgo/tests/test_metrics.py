"""
Tests for stream metrics.
"""

from unittest.mock import patch

from openalgo.metrics import StreamMetrics


class TestStreamMetrics:
    """Prometheus collector wrapper."""

    def test_disabled_is_noop(self):
        """A disabled collector registers nothing and ignores every call."""
        metrics = StreamMetrics(enabled=False)

        metrics.track_frame("LtpUpdate")
        metrics.track_decode_error()
        metrics.track_reconnect()
        metrics.track_dropped("overflow", 3)
        metrics.set_state("STREAMING")
        metrics.set_channel_depth(10)
        metrics.set_active_subscriptions(2)

        assert not hasattr(metrics, "frames_received")

    @patch("openalgo.metrics.start_http_server")
    @patch("openalgo.metrics.Gauge")
    @patch("openalgo.metrics.Counter")
    def test_enabled_records(self, mock_counter, mock_gauge, mock_server):
        metrics = StreamMetrics(enabled=True, port=9200)

        metrics.track_frame("QuoteUpdate")
        metrics.set_state("RECONNECTING")

        mock_server.assert_called_once_with(9200)
        metrics.frames_received.labels.assert_called_with(kind="QuoteUpdate")
        metrics.connection_state.set.assert_called_with(4)

    @patch("openalgo.metrics.start_http_server")
    @patch("openalgo.metrics.Gauge")
    @patch("openalgo.metrics.Counter")
    def test_no_server_without_port(self, mock_counter, mock_gauge, mock_server):
        StreamMetrics(enabled=True)
        mock_server.assert_not_called()
