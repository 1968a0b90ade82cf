"""
Delay policies: idle polling backoff and per-task retry delay.
"""

import random
from datetime import datetime, timedelta


class IdleBackoff:
    """
    Exponential sleep interval for a worker that finds no work.

    Each empty poll sleeps for the current interval and then doubles it,
    capped at ``maximum`` and never below ``floor``. A non-empty batch resets
    the interval to ``base``.
    """

    def __init__(self, base: float = 1.0, maximum: float = 60.0, floor: float = 1.0):
        if base <= 0:
            raise ValueError("base interval must be positive")
        self.base = base
        self.maximum = maximum
        self.floor = floor
        self.current = base

    def next_delay(self) -> float:
        """Return the delay to sleep now and advance the interval."""
        delay = self.current
        self.current = max(self.floor, min(self.maximum, self.current * 2))
        return delay

    def reset(self) -> None:
        self.current = self.base


class RetryPolicy:
    """Delay before a failed task becomes eligible again."""

    def __init__(self, base: float = 0.0, maximum: float = 3600.0, jitter: float = 0.0):
        self.base = base
        self.maximum = maximum
        self.jitter = jitter

    def delay_for(self, attempts: int) -> float:
        """Seconds to wait after the given attempt number failed."""
        if self.base <= 0:
            return 0.0

        # Exponential backoff: base * 2^(attempt - 1)
        delay = min(self.maximum, self.base * (2 ** max(0, attempts - 1)))

        if self.jitter:
            delay += delay * self.jitter * (2 * random.random() - 1)

        return max(0.0, delay)

    def retry_at(self, attempts: int, now: datetime) -> datetime | None:
        """Not-before time for the next attempt, or None to retry on the next poll."""
        delay = self.delay_for(attempts)
        if delay <= 0:
            return None
        return now + timedelta(seconds=delay)
