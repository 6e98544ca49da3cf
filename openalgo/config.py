"""
Configuration management for the OpenAlgo client.

Loads settings from environment variables with validation.
"""

from typing import Literal, Optional
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OpenAlgoSettings(BaseSettings):
    """
    OpenAlgo client settings.

    Loads from environment variables with OPENALGO_ prefix.
    """
    model_config = SettingsConfigDict(
        env_prefix="OPENALGO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Credentials
    api_key: str = Field(default="", description="OpenAlgo API key")

    # REST API
    host: str = Field(default="http://127.0.0.1:5000", description="OpenAlgo server URL")
    api_version: str = Field(default="v1", description="REST API version")
    request_timeout: float = Field(default=30.0, ge=1.0, description="Request timeout (seconds)")
    connect_timeout: float = Field(default=10.0, ge=1.0, description="HTTP connect timeout (seconds)")

    # WebSocket market data
    ws_url: str = Field(default="ws://127.0.0.1:8765", description="WebSocket URL")
    ws_connect_timeout: float = Field(default=10.0, gt=0, description="WS open timeout (seconds)")
    ws_auth_timeout: float = Field(default=10.0, gt=0, description="WS auth ack timeout (seconds)")
    ws_reconnect_initial_delay: float = Field(default=1.0, ge=0, description="First reconnect delay")
    ws_reconnect_max_delay: float = Field(default=60.0, ge=0, description="Max reconnect delay")
    ws_reconnect_multiplier: float = Field(default=2.0, ge=1.0, description="Backoff multiplier")
    ws_reconnect_jitter: float = Field(default=0.25, ge=0, le=1.0,
                                       description="Backoff jitter (fraction of delay)")
    ws_subscribe_batch_size: int = Field(default=100, ge=1,
                                         description="Max instruments per subscribe frame")

    # Event delivery
    event_channel_size: int = Field(default=10000, ge=1, description="Buffered events")
    event_overflow_policy: Literal["block", "drop_oldest"] = Field(
        default="block",
        description="Full channel: block the reader or drop the oldest event"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Metrics
    enable_metrics: bool = Field(default=True, description="Enable Prometheus metrics")
    metrics_port: Optional[int] = Field(default=None, ge=1024, le=65535,
                                        description="Metrics server port (None: no server)")

    @field_validator("host", "ws_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @model_validator(mode="after")
    def check_reconnect_bounds(self) -> "OpenAlgoSettings":
        if self.ws_reconnect_max_delay < self.ws_reconnect_initial_delay:
            raise ValueError(
                f"ws_reconnect_max_delay ({self.ws_reconnect_max_delay}) must be >= "
                f"ws_reconnect_initial_delay ({self.ws_reconnect_initial_delay})"
            )
        return self

    def __repr__(self) -> str:
        """Safe repr without sensitive data."""
        return (
            f"OpenAlgoSettings("
            f"host={self.host}, "
            f"ws_url={self.ws_url}, "
            f"api_key={'***' if self.api_key else '<unset>'}"
            ")"
        )

    __str__ = __repr__


def get_settings() -> OpenAlgoSettings:
    """
    Get OpenAlgo settings.

    Returns:
        Validated settings instance
    """
    return OpenAlgoSettings()
