"""Exponential backoff with jitter for reconnection attempts."""

from __future__ import annotations

import random


class ExponentialBackoff:
    """Produces growing delays, in seconds, between reconnection attempts.

    Each call to :meth:`next_delay` returns the current delay plus a random
    jitter of up to ``jitter`` times that delay. The base delay is then
    multiplied by ``multiplier`` and capped at ``max_delay``.
    """

    def __init__(
        self,
        initial: float,
        max_delay: float,
        multiplier: float = 2.0,
        jitter: float = 0.0,
    ) -> None:
        if initial < 0 or max_delay < 0:
            raise ValueError("delays must not be negative")
        if not 0.0 <= jitter <= 1.0:
            raise ValueError("jitter must be between 0.0 and 1.0")
        self.current = float(initial)
        self.max_delay = float(max_delay)
        self.multiplier = float(multiplier)
        self.jitter = float(jitter)

    def next_delay(self) -> float:
        """Return the next delay in seconds and advance the backoff."""
        delay = self.current
        self.current = min(self.current * self.multiplier, self.max_delay)
        return delay + delay * self.jitter * random.random()

    def reset(self, initial: float) -> None:
        """Start again from the given initial delay."""
        if initial < 0:
            raise ValueError("delays must not be negative")
        self.current = float(initial)