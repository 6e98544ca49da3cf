"""
Tests for settings, logging configuration and credential redaction.
"""

import logging
from io import StringIO

import orjson
import pytest
from pydantic import ValidationError as PydanticValidationError

from openalgo.api.websocket import MarketDataStream
from openalgo.config import OpenAlgoSettings
from openalgo.logging_config import DEFAULT_LOGGING_CONFIG, build_logging_config, get_logger
from openalgo.metrics import StreamMetrics
from openalgo.streaming.channel import OverflowPolicy
from openalgo.utils.structured_logging import CredentialRedactionFilter, StructuredFormatter

API_KEY = "3f9a" * 16  # 64 hex chars, the shape of an OpenAlgo key


class TestSettings:
    """OpenAlgoSettings loading and validation."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("OPENALGO_API_KEY", raising=False)
        settings = OpenAlgoSettings(_env_file=None)

        assert settings.host == "http://127.0.0.1:5000"
        assert settings.api_version == "v1"
        assert settings.ws_url == "ws://127.0.0.1:8765"
        assert settings.ws_subscribe_batch_size == 100
        assert settings.event_overflow_policy == "block"
        assert settings.metrics_port is None

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("OPENALGO_API_KEY", API_KEY)
        monkeypatch.setenv("OPENALGO_WS_URL", "ws://feed:9000/")
        monkeypatch.setenv("OPENALGO_EVENT_OVERFLOW_POLICY", "drop_oldest")

        settings = OpenAlgoSettings(_env_file=None)

        assert settings.api_key == API_KEY
        assert settings.ws_url == "ws://feed:9000"
        assert settings.event_overflow_policy == "drop_oldest"

    def test_repr_hides_api_key(self):
        settings = OpenAlgoSettings(api_key=API_KEY, _env_file=None)
        assert API_KEY not in repr(settings)
        assert API_KEY not in str(settings)

    @pytest.mark.parametrize("field,value", [
        ("event_overflow_policy", "drop_newest"),
        ("ws_subscribe_batch_size", 0),
        ("ws_reconnect_jitter", 2),
        ("log_level", "LOUD"),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(PydanticValidationError):
            OpenAlgoSettings(**{field: value}, _env_file=None)

    def test_max_delay_below_initial_delay_rejected(self):
        """Reconnect bounds are checked together at load time."""
        with pytest.raises(PydanticValidationError, match="ws_reconnect_max_delay"):
            OpenAlgoSettings(ws_reconnect_initial_delay=10.0, ws_reconnect_max_delay=5.0,
                             _env_file=None)

    def test_stream_from_settings(self):
        settings = OpenAlgoSettings(
            api_key=API_KEY,
            ws_auth_timeout=3.0,
            ws_reconnect_initial_delay=0.5,
            ws_reconnect_max_delay=8.0,
            event_channel_size=50,
            event_overflow_policy="drop_oldest",
            _env_file=None,
        )

        stream = MarketDataStream.from_settings(settings, metrics=StreamMetrics(enabled=False))

        assert stream.manager.auth_timeout == 3.0
        assert stream.manager.backoff.initial_delay == 0.5
        assert stream.manager.backoff.max_delay == 8.0
        assert stream.channel.maxsize == 50
        assert stream.channel.overflow is OverflowPolicy.DROP_OLDEST
        stream.close()


class TestLoggingConfig:
    """dictConfig construction."""

    def test_build_does_not_mutate_defaults(self):
        config = build_logging_config(level="debug", log_file="/tmp/feed.log", json_format=True)

        assert config["loggers"]["openalgo"]["level"] == "DEBUG"
        assert config["handlers"]["error_file"]["filename"] == "/tmp/feed_errors.log"
        assert config["handlers"]["console"]["formatter"] == "json"
        assert DEFAULT_LOGGING_CONFIG["loggers"]["openalgo"]["level"] == "INFO"
        assert DEFAULT_LOGGING_CONFIG["handlers"]["console"]["formatter"] == "standard"

    def test_every_handler_redacts(self):
        config = build_logging_config()
        for handler in config["handlers"].values():
            assert "redact_credentials" in handler["filters"]

    def test_get_logger_namespaced(self):
        assert get_logger("feed").name == "openalgo.feed"
        assert get_logger("openalgo.streaming").name == "openalgo.streaming"


class TestCredentialRedaction:
    """API keys never reach a log sink."""

    @pytest.fixture
    def capture(self):
        logger = logging.getLogger("test_openalgo_redaction")
        logger.setLevel(logging.DEBUG)
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler.addFilter(CredentialRedactionFilter())
        logger.addHandler(handler)
        yield logger, stream
        logger.removeHandler(handler)

    def test_auth_frame_redacted(self, capture):
        logger, stream = capture
        logger.info(f'Sending {{"action":"authenticate","api_key":"{API_KEY}"}}')

        output = stream.getvalue()
        assert API_KEY not in output
        assert "[REDACTED]" in output
        assert '"action":"authenticate"' in output

    def test_rest_body_redacted(self, capture):
        logger, stream = capture
        logger.debug("body apikey=%s symbol=%s", "my-secret-key", "RELIANCE")

        output = stream.getvalue()
        assert "my-secret-key" not in output
        assert "RELIANCE" in output

    def test_bare_hex_token_redacted(self, capture):
        logger, stream = capture
        logger.warning(f"Unexpected token {API_KEY} in response")

        assert API_KEY not in stream.getvalue()

    def test_plain_messages_untouched(self, capture):
        logger, stream = capture
        logger.info("WebSocket state: STREAMING -> RECONNECTING")

        assert stream.getvalue().strip() == "WebSocket state: STREAMING -> RECONNECTING"


class TestStructuredFormatter:
    def test_json_output(self):
        record = logging.LogRecord("openalgo.streaming", logging.WARNING, __file__, 1,
                                   "Reconnecting in %.2fs", (1.5,), None)
        payload = orjson.loads(StructuredFormatter().format(record))

        assert payload["level"] == "WARNING"
        assert payload["logger"] == "openalgo.streaming"
        assert payload["message"] == "Reconnecting in 1.50s"
        assert payload["timestamp"].endswith("Z")
