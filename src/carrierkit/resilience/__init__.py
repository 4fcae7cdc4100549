"""Resilience primitives used by the transport.

:class:`RateLimiter` bounds the outbound rate, :class:`CircuitBreaker`
fails fast while the carrier is unhealthy, and :class:`RetryPolicy`
decides whether and when a failed call is attempted again. Each owns its
own state; none depends on the others.
"""

from carrierkit.resilience.circuit_breaker import CircuitBreaker
from carrierkit.resilience.rate_limiter import RateLimiter
from carrierkit.resilience.retry import RetryPolicy

__all__ = ["CircuitBreaker", "RateLimiter", "RetryPolicy"]
