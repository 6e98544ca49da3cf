"""
Tests for reconnect backoff and numeric converters.
"""

from decimal import Decimal

import pytest

from openalgo.utils.backoff import ExponentialBackoff
from openalgo.utils.numeric import to_decimal, to_int


class TestExponentialBackoff:
    """Delay schedule."""

    def test_grows_and_caps_without_jitter(self):
        backoff = ExponentialBackoff(initial_delay=1.0, max_delay=10.0, multiplier=2.0, jitter=0.0)
        assert [backoff.delay(n) for n in range(6)] == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]

    def test_jitter_within_bounds(self):
        backoff = ExponentialBackoff(initial_delay=4.0, max_delay=60.0, jitter=0.25)
        for _ in range(50):
            assert 3.0 <= backoff.delay(0) <= 5.0

    def test_jitter_never_exceeds_max(self):
        backoff = ExponentialBackoff(initial_delay=1.0, max_delay=5.0, jitter=0.5,
                                     rng=lambda low, high: high)
        assert backoff.delay(10) == 5.0

    def test_huge_attempt_does_not_overflow(self):
        backoff = ExponentialBackoff(initial_delay=1.0, max_delay=60.0, jitter=0.0)
        assert backoff.delay(10 ** 6) == 60.0

    @pytest.mark.parametrize("kwargs", [
        {"initial_delay": -1},
        {"initial_delay": 5, "max_delay": 1},
        {"multiplier": 0.5},
        {"jitter": 1.5},
    ])
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ValueError):
            ExponentialBackoff(**kwargs)


class TestNumeric:
    """Tolerant converters used by the codec and models."""

    def test_to_decimal_float_via_string(self):
        assert to_decimal(0.1) == Decimal("0.1")
        assert to_decimal("2500.55") == Decimal("2500.55")

    @pytest.mark.parametrize("value", [None, True, "", "abc", float("nan"), "inf", [1]])
    def test_to_decimal_default(self, value):
        assert to_decimal(value) is None

    def test_to_int(self):
        assert to_int("1500") == 1500
        assert to_int(12.0) == 12
        assert to_int(12.5) is None
        assert to_int(None, default=0) == 0
