"""
Backoff Utilities for Job Retries.

This module provides the exponential backoff used by the admission queue when
a job attempt fails and the entry is re-queued.

Backoff Strategy
----------------
Delay increases exponentially: `base_delay * (exponential_base ^ n)` where n
is the zero-based index of the failed attempt.

    Attempt 1 fails: 2.0s  (+ jitter)
    Attempt 2 fails: 4.0s  (+ jitter)
    Attempt 3 fails: 8.0s  (+ jitter)
    ... capped at max_delay

Jitter (random 0-25% variation) is off by default for job retries so retry
times are predictable; enable it when many jobs fail together.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

from jobforge.core.exceptions import ConfigValidationError


@dataclass(frozen=True)
class BackoffPolicy:
    """Retry policy applied by the admission queue."""

    max_attempts: int = 3
    base_delay: float = 2.0  # seconds
    max_delay: float = 300.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigValidationError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ConfigValidationError("Backoff delays must be non-negative")
        if self.exponential_base < 1.0:
            raise ConfigValidationError("exponential_base must be >= 1.0")

    def delay_for(self, failed_attempt: int) -> float:
        """Seconds to wait before the attempt following `failed_attempt` (1-based)."""
        return calculate_delay(
            max(0, failed_attempt - 1),
            self.base_delay,
            self.max_delay,
            self.exponential_base,
            self.jitter,
        )


def calculate_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float,
    jitter: bool,
) -> float:
    """Calculate delay for next retry attempt."""
    delay = base_delay * (exponential_base**attempt)

    delay = min(delay, max_delay)

    if jitter:
        jitter_amount = delay * 0.25 * random.random()
        delay += jitter_amount

    return delay
