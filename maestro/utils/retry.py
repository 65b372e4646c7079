from __future__ import annotations

import random

from pydantic import BaseModel


class RetryPolicy(BaseModel):
    """Exponential backoff settings. Delays are in seconds."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 10.0
    jitter: float = 0.5

    def delay_for(self, attempt: int) -> float:
        return compute_backoff(
            attempt,
            initial=self.initial_delay,
            multiplier=self.multiplier,
            max_delay=self.max_delay,
            jitter=self.jitter,
        )


def compute_backoff(
    attempt: int,
    initial: float = 1.0,
    multiplier: float = 2.0,
    max_delay: float = 10.0,
    jitter: float = 0.5,
) -> float:
    """Compute exponential backoff with jitter for a 1-based ``attempt``."""
    delay = min(initial * multiplier ** (attempt - 1), max_delay)
    return delay + (random.uniform(0, jitter) if jitter > 0 else 0.0)
