"""Circuit breaker for a single downstream dependency.

State machine::

    CLOSED --(failure_threshold consecutive failures)--> OPEN
    OPEN --(recovery_timeout elapsed, next call)--> HALF_OPEN
    HALF_OPEN --(success_threshold consecutive successes)--> CLOSED
    HALF_OPEN --(any failure)--> OPEN

A single failed probe re-opens the circuit; only a run of consecutive
successes proves recovery.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from carrierkit.exceptions import CircuitOpenError
from carrierkit.models import CircuitState

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitBreaker:
    """Fail fast when the wrapped dependency is deemed unhealthy.

    State and counters are only touched under an :class:`asyncio.Lock`; the
    wrapped operation itself runs outside the lock. While half-open, one
    probe call is admitted at a time and concurrent callers are rejected
    until it settles.

    Args:
        failure_threshold: Consecutive failures that open the circuit.
        recovery_timeout: Seconds the circuit stays open before a probe.
        success_threshold: Consecutive half-open successes that close it.
        name: Label used in log lines and rejection messages.
        clock: Monotonic time source, injectable for tests.
        is_failure: Predicate deciding whether an exception raised by the
            operation counts against the dependency. Exceptions it rejects
            are re-raised but recorded as successes. Defaults to counting
            every exception.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        success_threshold: int = 2,
        name: str = "carrier",
        clock: Optional[Callable[[], float]] = None,
        is_failure: Optional[Callable[[Exception], bool]] = None,
    ) -> None:
        if failure_threshold < 1 or success_threshold < 1:
            raise ValueError("Circuit breaker thresholds must be at least 1")
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._success_threshold = success_threshold
        self._name = name
        self._clock = clock or time.monotonic
        self._is_failure = is_failure or (lambda exc: True)
        self._lock = asyncio.Lock()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time = 0.0
        self._probe_in_flight = False
        self._generation = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run *operation* through the breaker.

        Outcomes of calls admitted before the last state change are
        discarded, so a slow call started while CLOSED cannot count toward
        HALF_OPEN recovery or extend an OPEN period.

        Raises:
            CircuitOpenError: If the circuit rejects the call. *operation*
                is not invoked in that case.
            Exception: Whatever *operation* raised; the failure is recorded
                before it propagates.
        """
        is_probe, generation = await self._admit()
        try:
            result = await operation()
        except asyncio.CancelledError:
            if is_probe:
                async with self._lock:
                    self._probe_in_flight = False
            raise
        except Exception as exc:
            if self._is_failure(exc):
                await self._on_failure(is_probe, generation)
            else:
                await self._on_success(is_probe, generation)
            raise
        await self._on_success(is_probe, generation)
        return result

    async def reset(self) -> None:
        """Force the breaker back to CLOSED with cleared counters."""
        async with self._lock:
            self._transition(CircuitState.CLOSED)
            self._generation += 1
            self._failure_count = 0
            self._success_count = 0
            self._probe_in_flight = False

    # ------------------------------------------------------------------ #
    # State transitions
    # ------------------------------------------------------------------ #

    async def _admit(self) -> tuple[bool, int]:
        """Decide whether a call may run.

        Returns:
            Whether the call is a half-open probe, and the state generation
            it was admitted in.
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                elapsed = self._clock() - self._last_failure_time
                if elapsed <= self._recovery_timeout:
                    raise CircuitOpenError(
                        f"Circuit '{self._name}' is open",
                        retry_after=self._recovery_timeout - elapsed,
                    )
                self._transition(CircuitState.HALF_OPEN)

            if self._state == CircuitState.HALF_OPEN:
                if self._probe_in_flight:
                    raise CircuitOpenError(
                        f"Circuit '{self._name}' is half-open and already probing"
                    )
                self._probe_in_flight = True
                return True, self._generation
            return False, self._generation

    async def _on_success(self, is_probe: bool, generation: int) -> None:
        async with self._lock:
            if is_probe:
                self._probe_in_flight = False
            if generation != self._generation:
                return
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self._success_threshold:
                    self._transition(CircuitState.CLOSED)
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    async def _on_failure(self, is_probe: bool, generation: int) -> None:
        async with self._lock:
            if is_probe:
                self._probe_in_flight = False
            if generation != self._generation:
                return
            self._last_failure_time = self._clock()
            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
            elif self._state == CircuitState.CLOSED:
                self._failure_count += 1
                if self._failure_count >= self._failure_threshold:
                    self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        level = logging.DEBUG if new_state == CircuitState.HALF_OPEN else logging.INFO
        logger.log(level, "Circuit '%s' %s -> %s", self._name, self._state.value, new_state.value)
        self._state = new_state
        self._generation += 1
        self._failure_count = 0
        self._success_count = 0
