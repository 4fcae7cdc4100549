"""Exception hierarchy for carrierkit.

All exceptions inherit from :class:`CarrierKitError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`carrierkit.exit_codes`.
The CLI entry point in :func:`carrierkit.app.main` catches
``CarrierKitError`` and exits with the appropriate code.

The transport never raises bare exceptions at its callers: every failed
call surfaces as a :class:`TransportError` wrapping an immutable
:class:`~carrierkit.models.StructuredError`.

Subclass hierarchy::

    CarrierKitError (exit 1)
    +-- InvalidUsageError      (exit 2)
    +-- ConfigError            (exit 7)
    +-- TransportError         (exit derived from the error category)
    +-- CircuitOpenError       (exit 6)
    +-- RequestCancelledError  (exit 6)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from carrierkit.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_BUSINESS_ERROR,
    EXIT_CONFIG_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NETWORK_ERROR,
    EXIT_VALIDATION_ERROR,
)

if TYPE_CHECKING:
    from carrierkit.models import StructuredError


class CarrierKitError(Exception):
    """Base exception for all carrierkit errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(CarrierKitError):
    """Raised for invalid CLI arguments or malformed ``key=value`` parameters."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(CarrierKitError):
    """Raised for configuration problems (invalid JSON, bad values, unresolvable credentials)."""

    exit_code = EXIT_CONFIG_ERROR


_CATEGORY_EXIT_CODES = {
    "authentication": EXIT_AUTH_FAILURE,
    "validation": EXIT_VALIDATION_ERROR,
    "business_logic": EXIT_BUSINESS_ERROR,
    "network": EXIT_NETWORK_ERROR,
    "configuration": EXIT_CONFIG_ERROR,
}


class TransportError(CarrierKitError):
    """A failed transport call, carrying the classified :class:`StructuredError`.

    Interceptors may also raise it directly (for example when a response
    fails shape validation); the classifier then passes the carried error
    through unchanged instead of reclassifying it.

    Attributes:
        error: The immutable structured error describing the failure.
    """

    def __init__(self, error: StructuredError):
        super().__init__(
            f"[{error.code}] {error.message}",
            exit_code=_CATEGORY_EXIT_CODES.get(error.category.value, EXIT_GENERIC_FAILURE),
        )
        self.error = error


class CircuitOpenError(CarrierKitError):
    """Raised by :class:`~carrierkit.resilience.CircuitBreaker` when it rejects a call.

    Attributes:
        retry_after: Seconds until the breaker will admit a probe call.
    """

    exit_code = EXIT_NETWORK_ERROR

    def __init__(self, message: str, retry_after: float = 0.0):
        super().__init__(message)
        self.retry_after = retry_after


class RequestCancelledError(CarrierKitError):
    """Raised when an envelope's cancellation event fires during a network call."""

    exit_code = EXIT_NETWORK_ERROR
