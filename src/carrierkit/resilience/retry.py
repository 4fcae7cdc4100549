"""Retry decisions with capped exponential backoff.

:class:`RetryPolicy` only decides; the sleeping and re-attempting is done
by :class:`~carrierkit.client.Transport`. Attempt numbers start at 1 for
the first attempt that failed, so ``delay_for(1)`` is the wait before the
second network call.
"""

from __future__ import annotations

import random
from typing import Optional

from carrierkit.models import ErrorCategory, StructuredError, TransportConfig


class RetryPolicy:
    """Exponential backoff with a ceiling and optional jitter.

    Args:
        max_retries: Attempt count at which retrying stops.
        initial_delay: Delay in seconds after the first failed attempt.
        max_delay: Upper bound on any delay.
        backoff_multiplier: Growth factor between consecutive delays.
        jitter: Fraction of the delay to randomise (``0.25`` spreads each
            delay over 75-125%). ``0`` keeps delays deterministic.
        rng: Injectable :class:`random.Random` for reproducible jitter.
    """

    def __init__(
        self,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        backoff_multiplier: float = 2.0,
        jitter: float = 0.0,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_multiplier = backoff_multiplier
        self.jitter = jitter
        self._rng = rng or random.Random()

    @classmethod
    def from_config(cls, config: TransportConfig) -> RetryPolicy:
        return cls(
            max_retries=config.max_retries,
            initial_delay=config.retry_initial_delay,
            max_delay=config.retry_max_delay,
            backoff_multiplier=config.retry_backoff_multiplier,
            jitter=config.retry_jitter,
        )

    def should_retry(self, error: StructuredError, attempt: int) -> bool:
        """Return ``True`` if another attempt should follow failed attempt *attempt*."""
        if attempt >= self.max_retries:
            return False
        return error.retryable or error.category == ErrorCategory.NETWORK

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt *attempt* (1-based)."""
        delay = self.initial_delay * self.backoff_multiplier ** (attempt - 1)
        if self.jitter:
            delay *= 1 - self.jitter + 2 * self.jitter * self._rng.random()
        return min(delay, self.max_delay)
