"""
Reconnection delay policy.

Exponential backoff with a cap and jitter:

    delay = min(minimum * factor**attempt, maximum)
    total = delay + uniform(0, delay * jitter)
"""

import random
from typing import Optional


class ExponentialBackoff:
    """
    Stateful exponential backoff.

    Example:
        >>> backoff = ExponentialBackoff(minimum=1.0, maximum=60.0)
        >>> backoff.next_delay()  # ~1.0
        >>> backoff.next_delay()  # ~2.0
        >>> backoff.reset()
    """

    def __init__(
        self,
        minimum: float,
        maximum: float,
        factor: float = 2.0,
        jitter: float = 0.1,
        rng: Optional[random.Random] = None,
    ):
        if minimum <= 0 or maximum < minimum:
            raise ValueError("backoff requires 0 < minimum <= maximum")
        self.minimum = minimum
        self.maximum = maximum
        self.factor = factor
        self.jitter = jitter
        self._rng = rng or random.Random()
        self._attempts = 0

    @property
    def attempts(self) -> int:
        """Delays handed out since the last reset."""
        return self._attempts

    def next_delay(self) -> float:
        """Return the next delay in seconds and advance the attempt counter."""
        # exponent capped so unbounded retry loops cannot overflow
        delay = min(self.minimum * (self.factor ** min(self._attempts, 64)), self.maximum)
        self._attempts += 1
        return delay + self._rng.uniform(0, delay * self.jitter)

    def reset(self) -> None:
        """Restart from the minimum delay."""
        self._attempts = 0

    def __repr__(self) -> str:
        return (
            f"ExponentialBackoff(minimum={self.minimum}, maximum={self.maximum}, "
            f"attempts={self._attempts})"
        )
