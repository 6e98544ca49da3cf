"""
Structured JSON logging and credential redaction.

The OpenAlgo API key travels in every REST body and in the WebSocket auth
frame, so every handler we configure strips it from records.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict

import orjson


class CredentialRedactionFilter(logging.Filter):
    """
    Filter that redacts credentials from log messages.

    - api_key / apikey / X-API-KEY / secret / password / token fields keep
      their name and lose their value
    - Long hex tokens (OpenAlgo keys are 64 hex chars) are truncated

    Usage:
        >>> handler = logging.StreamHandler()
        >>> handler.addFilter(CredentialRedactionFilter())
        >>> logger.addHandler(handler)
    """

    # Capture the prefix (api_key=) to keep it, not the value
    KEY_FIELD_PATTERN = re.compile(
        r'((?:x-api-key|api[_-]?key|secret|password|token)["\']?\s*[:=]\s*["\']?)'
        r'[^\s"\',}]{4,}',
        re.IGNORECASE
    )
    HEX_TOKEN_PATTERN = re.compile(r'\b[0-9a-fA-F]{32,}\b')

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Redact credentials from log record.

        Returns:
            Always True (the record is sanitized, never dropped)
        """
        # Merge args first: "apikey=%s" only matches once formatted
        if record.args:
            try:
                record.msg = self.redact(record.getMessage())
                record.args = None
            except (TypeError, ValueError):
                record.msg = self.redact(f"{record.msg} {record.args}")
                record.args = None
        elif record.msg:
            record.msg = self.redact(str(record.msg))

        if record.exc_text:
            record.exc_text = self.redact(record.exc_text)

        return True

    def redact(self, text: str) -> str:
        """Redact all credential patterns from text."""
        if not text:
            return text

        text = self.KEY_FIELD_PATTERN.sub(r'\1[REDACTED]', text)
        text = self.HEX_TOKEN_PATTERN.sub(lambda m: m.group(0)[:4] + '...[REDACTED]', text)
        return text


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs one JSON object per line for log aggregators.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
                                 .isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        return orjson.dumps(log_data, default=str).decode("utf-8")


def configure_structured_logging(
    level: str = "INFO",
    enable_json: bool = True,
    enable_credential_redaction: bool = True
) -> None:
    """
    Configure structured logging on the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        enable_json: Use JSON formatter (True for production)
        enable_credential_redaction: Add credential redaction filter
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler()

    if enable_credential_redaction:
        handler.addFilter(CredentialRedactionFilter())

    if enable_json:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
