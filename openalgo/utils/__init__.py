"""Utility modules for the OpenAlgo client."""

from .backoff import ExponentialBackoff
from .numeric import to_decimal, to_int
from .structured_logging import (
    CredentialRedactionFilter,
    StructuredFormatter,
    configure_structured_logging,
)

__all__ = [
    "ExponentialBackoff",
    "to_decimal",
    "to_int",
    "CredentialRedactionFilter",
    "StructuredFormatter",
    "configure_structured_logging",
]
