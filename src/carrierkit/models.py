"""Canonical Pydantic models shared across all carrierkit modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into three groups:

**Configuration** -- :class:`TransportConfig`, serialised as JSON in the
user's config directory and frozen once a transport is built.

**Call data** -- :class:`Envelope` (what the caller wants to send) and
:class:`TransportResponse` (what came back), plus :class:`CacheEntry` for
the caching interceptor.

**Error taxonomy** -- :class:`ErrorCategory`, :class:`ErrorSeverity`, and the
immutable :class:`StructuredError` value, together with
:class:`CircuitState` for the circuit breaker.

All value models are frozen; interceptors that "modify" an envelope,
response, or error return a copy via ``model_copy(update=...)``.
"""

from __future__ import annotations

import asyncio
import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Enums ---


class ErrorCategory(str, enum.Enum):
    """Broad class of a failure, used for retry and reporting decisions."""

    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    BUSINESS_LOGIC = "business_logic"
    NETWORK = "network"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


class ErrorSeverity(str, enum.Enum):
    """How bad a failure is for the caller."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class CircuitState(str, enum.Enum):
    """States of :class:`~carrierkit.resilience.CircuitBreaker`.

    Legal transitions are ``closed -> open``, ``open -> half_open``,
    ``half_open -> closed`` and ``half_open -> open``.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


# --- Configuration ---


def _default_headers() -> dict[str, str]:
    return {"Content-Type": "application/json", "Accept": "application/json"}


class TransportConfig(BaseModel):
    """Immutable configuration for a :class:`~carrierkit.client.Transport`.

    Durations are in seconds. ``requests_per_second=None`` disables the
    rate limiter entirely.

    Example::

        TransportConfig(
            base_url="https://api.novaposhta.ua/v2.0/json/",
            timeout=10,
            max_retries=3,
            requests_per_second=5,
        )
    """

    model_config = ConfigDict(frozen=True)

    base_url: str = Field(
        default="https://api.novaposhta.ua/v2.0/json/",
        description="Endpoint every request is POSTed to",
    )
    timeout: float = Field(default=30.0, description="Per-call timeout in seconds")
    max_retries: int = Field(default=3, description="Max attempts per external call")
    retry_initial_delay: float = Field(
        default=1.0, description="Delay before the first retry, in seconds"
    )
    retry_max_delay: float = Field(default=30.0, description="Upper bound on any retry delay")
    retry_backoff_multiplier: float = Field(default=2.0, description="Backoff growth factor")
    retry_jitter: float = Field(
        default=0.0, description="Fractional jitter around each delay (0 disables)"
    )
    requests_per_second: Optional[int] = Field(
        default=10, description="Sliding-window request limit; None disables"
    )
    headers: dict[str, str] = Field(default_factory=_default_headers)
    enable_logging: bool = Field(
        default=False, description="Install a LoggingInterceptor at the head of the pipeline"
    )
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    circuit_failure_threshold: int = Field(
        default=5, description="Consecutive failed calls before the circuit opens"
    )
    circuit_recovery_timeout: float = Field(
        default=60.0, description="Seconds the circuit stays open before probing"
    )
    circuit_success_threshold: int = Field(
        default=2, description="Consecutive half-open successes needed to close"
    )


# --- Call data ---


class Envelope(BaseModel):
    """Carrier-agnostic description of one outbound call.

    ``target`` identifies the call for caching, logging and error context:
    the explicit ``route`` when one is set, otherwise
    ``"<model_name>.<called_method>"``.
    """

    model_config = ConfigDict(
        frozen=True, arbitrary_types_allowed=True, protected_namespaces=()
    )

    model_name: str = ""
    called_method: str = ""
    route: Optional[str] = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    api_key: Optional[str] = None
    cancel_event: Optional[asyncio.Event] = Field(default=None, exclude=True)
    request_id: str = Field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def target(self) -> str:
        if self.route:
            return self.route
        return f"{self.model_name}.{self.called_method}"

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


class TransportResponse(BaseModel):
    """A successful (2xx) response returned to the caller.

    ``payload`` is the decoded JSON body. ``from_cache`` is set when the
    caching interceptor served the response without network I/O.
    """

    model_config = ConfigDict(frozen=True)

    status_code: int
    payload: Any = None
    headers: dict[str, str] = Field(default_factory=dict)
    from_cache: bool = False

    @property
    def is_success(self) -> bool:
        """2xx status and no explicit ``success: false`` in the payload."""
        if not 200 <= self.status_code < 300:
            return False
        if isinstance(self.payload, dict) and self.payload.get("success") is False:
            return False
        return True


class CacheEntry(BaseModel):
    """A cached response with its storage time and time-to-live (seconds)."""

    value: TransportResponse
    stored_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now > self.stored_at + self.ttl


# --- Errors ---


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StructuredError(BaseModel):
    """Immutable, classified description of a failed call.

    Produced by :class:`~carrierkit.errors.ErrorClassifier`, transformed by
    error interceptors (which must return a new value), and finally carried
    to the caller inside :class:`~carrierkit.exceptions.TransportError`.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    category: ErrorCategory = ErrorCategory.UNKNOWN
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    retryable: bool = False
    context: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)

    def with_changes(self, **updates: Any) -> StructuredError:
        """Return a copy with *updates* applied."""
        return self.model_copy(update=updates)

    def with_context(self, **extra: Any) -> StructuredError:
        """Return a copy whose context is merged with *extra* (new keys win)."""
        return self.model_copy(update={"context": {**self.context, **extra}})
