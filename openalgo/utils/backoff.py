"""
Exponential backoff with jitter for WebSocket reconnection.

Retries are unlimited; the caller stops them by disconnecting.
"""

import random
from typing import Callable, Optional


class ExponentialBackoff:
    """
    Capped exponential backoff.

    delay(attempt) = min(initial_delay * multiplier ** attempt, max_delay),
    then spread by +/- jitter (fraction of the delay).
    """

    def __init__(
        self,
        initial_delay: float = 1.0,
        max_delay: float = 60.0,
        multiplier: float = 2.0,
        jitter: float = 0.25,
        rng: Optional[Callable[[float, float], float]] = None
    ):
        """
        Initialize backoff.

        Args:
            initial_delay: Delay before the first reconnect attempt (seconds)
            max_delay: Upper bound on any single delay (seconds)
            multiplier: Growth factor per attempt
            jitter: Random spread as a fraction of the delay (0 disables)
            rng: Uniform random source, random.uniform by default
        """
        if initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")
        if max_delay < initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if not 0.0 <= jitter <= 1.0:
            raise ValueError("jitter must be between 0 and 1")

        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter = jitter
        self._rng = rng or random.uniform

    def delay(self, attempt: int) -> float:
        """Delay in seconds before reconnect attempt number `attempt` (0-based)."""
        # Cap the exponent so huge attempt counts cannot overflow
        exponent = min(max(attempt, 0), 64)
        try:
            delay = self.initial_delay * (self.multiplier ** exponent)
        except OverflowError:
            delay = self.max_delay
        delay = min(delay, self.max_delay)

        if self.jitter:
            jitter_amount = delay * self.jitter
            delay += self._rng(-jitter_amount, jitter_amount)

        return min(max(0.0, delay), self.max_delay)

    def __repr__(self) -> str:
        return (
            f"ExponentialBackoff(initial_delay={self.initial_delay}, "
            f"max_delay={self.max_delay}, multiplier={self.multiplier}, "
            f"jitter={self.jitter})"
        )
