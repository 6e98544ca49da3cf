"""
Numeric conversion helpers for feed payloads.

Upstream frames omit fields per mode (e.g. oi outside F&O), so every
conversion falls back to a default instead of raising.
"""

from typing import Any, Optional
from decimal import Decimal, InvalidOperation
import logging

logger = logging.getLogger(__name__)


def to_decimal(value: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """
    Safely convert any value to Decimal.

    Args:
        value: Value to convert (str, int, float, Decimal, None)
        default: Default value if conversion fails (default: None)

    Returns:
        Decimal or default if conversion fails

    Examples:
        >>> to_decimal("2500.55")
        Decimal('2500.55')
        >>> to_decimal(2500.55)
        Decimal('2500.55')
        >>> to_decimal(None) is None
        True
    """
    if value is None or isinstance(value, bool):
        return default

    try:
        if isinstance(value, Decimal):
            return value
        elif isinstance(value, str):
            if not value.strip():
                return default
            dec = Decimal(value.strip())
            return dec if dec.is_finite() else default
        elif isinstance(value, (int, float)):
            # Convert via string to avoid float precision loss
            dec = Decimal(str(value))
            if not dec.is_finite():
                return default
            return dec
        else:
            logger.debug(f"Cannot convert {type(value)} to Decimal: {value}")
            return default
    except (ValueError, InvalidOperation) as e:
        logger.debug(f"Failed to convert {value} to Decimal: {e}")
        return default


def to_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """
    Safely convert a count (volume, quantity, timestamp) to int.

    Floats with a fractional part are rejected rather than truncated.

    Examples:
        >>> to_int("1500")
        1500
        >>> to_int(12.0)
        12
        >>> to_int("n/a") is None
        True
    """
    if value is None or isinstance(value, bool):
        return default

    if isinstance(value, int):
        return value

    dec = to_decimal(value)
    if dec is None or dec != dec.to_integral_value():
        return default
    return int(dec)
