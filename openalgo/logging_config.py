"""
Logging configuration for the OpenAlgo client.

Console plus rotating file handlers, optional JSON output. Every handler
carries the credential redaction filter so API keys never reach a log sink.
"""

import copy
import logging
import logging.config
from typing import Optional


DEFAULT_LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "redact_credentials": {
            "()": "openalgo.utils.structured_logging.CredentialRedactionFilter"
        }
    },
    "formatters": {
        "standard": {
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S"
        },
        "detailed": {
            "format": (
                "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d "
                "- %(message)s (%(threadName)s)"
            ),
            "datefmt": "%Y-%m-%d %H:%M:%S"
        },
        "json": {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "format": "%(asctime)s %(name)s %(levelname)s %(threadName)s %(message)s"
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": "INFO",
            "formatter": "standard",
            "filters": ["redact_credentials"],
            "stream": "ext://sys.stdout"
        },
        "file": {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "DEBUG",
            "formatter": "detailed",
            "filters": ["redact_credentials"],
            "filename": "openalgo_client.log",
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
            "delay": True
        },
        "error_file": {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "ERROR",
            "formatter": "detailed",
            "filters": ["redact_credentials"],
            "filename": "openalgo_errors.log",
            "maxBytes": 10485760,
            "backupCount": 5,
            "delay": True
        }
    },
    "loggers": {
        "openalgo": {
            "level": "INFO",
            "handlers": ["console", "file", "error_file"],
            "propagate": False
        }
    },
    "root": {
        "level": "WARNING",
        "handlers": ["console"]
    }
}


def build_logging_config(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    json_format: bool = False
) -> dict:
    """
    Build a dictConfig for the given options without applying it.

    Args:
        level: Log level for the openalgo logger (DEBUG, INFO, WARNING, ERROR)
        log_file: Log file path; errors go to <name>_errors.log beside it
        json_format: Use JSON formatting on console and file

    Returns:
        Logging config dict
    """
    config = copy.deepcopy(DEFAULT_LOGGING_CONFIG)

    if level:
        config["loggers"]["openalgo"]["level"] = level.upper()
        config["handlers"]["console"]["level"] = level.upper()

    if log_file:
        config["handlers"]["file"]["filename"] = log_file
        if log_file.endswith(".log"):
            error_file = log_file[:-len(".log")] + "_errors.log"
        else:
            error_file = log_file + "_errors"
        config["handlers"]["error_file"]["filename"] = error_file

    if json_format:
        config["handlers"]["console"]["formatter"] = "json"
        config["handlers"]["file"]["formatter"] = "json"

    return config


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    json_format: bool = False
) -> None:
    """
    Setup logging configuration.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
        json_format: Use JSON formatting
    """
    logging.config.dictConfig(build_logging_config(level, log_file, json_format))


def get_logger(name: str) -> logging.Logger:
    """
    Get logger instance under the openalgo namespace.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    if name == "openalgo" or name.startswith("openalgo."):
        return logging.getLogger(name)
    return logging.getLogger(f"openalgo.{name}")
