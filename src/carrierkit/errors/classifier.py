"""Turn raw failures into :class:`~carrierkit.models.StructuredError` values.

Rules, in priority order:

0. A :class:`~carrierkit.exceptions.TransportError` already carries a
   structured error (raised by an interceptor); it is passed through with
   the request context merged in.
1. Cancellation or timeout -> ``REQUEST_TIMEOUT``, network/medium, retryable.
2. Connectivity failure (DNS, refused, reset) -> ``NETWORK_ERROR``,
   network/high, retryable.
3. Non-2xx HTTP status -> ``HTTP_ERROR``, network, high for 5xx else
   medium; retryable for 5xx and 429 only.
4. Anything else -> ``UNKNOWN_ERROR``, unknown/medium, not retryable.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx

from carrierkit.errors.catalog import get_error_info
from carrierkit.exceptions import RequestCancelledError, TransportError
from carrierkit.models import Envelope, ErrorCategory, ErrorSeverity, StructuredError

REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
NETWORK_ERROR = "NETWORK_ERROR"
HTTP_ERROR = "HTTP_ERROR"
UNKNOWN_ERROR = "UNKNOWN_ERROR"
CIRCUIT_OPEN = "CIRCUIT_OPEN"
INVALID_RESPONSE = "INVALID_RESPONSE"
API_ERROR = "API_ERROR"

_TIMEOUT_ERRORS = (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)
_CONNECTIVITY_ERRORS = (httpx.TransportError, ConnectionError)


def envelope_context(envelope: Optional[Envelope]) -> dict[str, Any]:
    """Identifiers of the originating request, attached to every error."""
    if envelope is None:
        return {}
    return {
        "target": envelope.target,
        "model_name": envelope.model_name,
        "called_method": envelope.called_method,
        "request_id": envelope.request_id,
    }


class ErrorClassifier:
    """Classify exceptions raised while performing a call."""

    def classify(self, exc: BaseException, envelope: Optional[Envelope] = None) -> StructuredError:
        context = envelope_context(envelope)

        if isinstance(exc, TransportError):
            return exc.error.with_context(**{**context, **exc.error.context})

        if isinstance(exc, RequestCancelledError):
            return StructuredError(
                code=REQUEST_TIMEOUT,
                message=str(exc) or "Request was cancelled",
                category=ErrorCategory.NETWORK,
                severity=ErrorSeverity.MEDIUM,
                retryable=True,
                context={**context, "cancelled": True},
            )

        if isinstance(exc, _TIMEOUT_ERRORS):
            return StructuredError(
                code=REQUEST_TIMEOUT,
                message=f"Request timed out: {exc}" if str(exc) else "Request timed out",
                category=ErrorCategory.NETWORK,
                severity=ErrorSeverity.MEDIUM,
                retryable=True,
                context=context,
            )

        if isinstance(exc, _CONNECTIVITY_ERRORS):
            return StructuredError(
                code=NETWORK_ERROR,
                message=f"Network error: {exc}",
                category=ErrorCategory.NETWORK,
                severity=ErrorSeverity.HIGH,
                retryable=True,
                context=context,
            )

        if isinstance(exc, httpx.HTTPStatusError):
            status = exc.response.status_code
            return StructuredError(
                code=HTTP_ERROR,
                message=f"HTTP {status}: {exc.response.reason_phrase}",
                category=ErrorCategory.NETWORK,
                severity=ErrorSeverity.HIGH if status >= 500 else ErrorSeverity.MEDIUM,
                retryable=status >= 500 or status == 429,
                context={**context, "status_code": status},
            )

        return StructuredError(
            code=UNKNOWN_ERROR,
            message=str(exc) or type(exc).__name__,
            category=ErrorCategory.UNKNOWN,
            severity=ErrorSeverity.MEDIUM,
            retryable=False,
            context={**context, "exception_type": type(exc).__name__},
        )

    def from_api_errors(
        self,
        messages: list[str],
        codes: list[str],
        envelope: Optional[Envelope] = None,
    ) -> StructuredError:
        """Build an error from a ``success: false`` carrier response.

        The first error code known to the catalog decides the category,
        severity and retryability; otherwise the failure is treated as a
        non-retryable business-logic error.
        """
        context = {
            **envelope_context(envelope),
            "api_errors": list(messages),
            "api_error_codes": list(codes),
        }
        message = "; ".join(messages) or "Carrier API reported failure"
        for code in codes:
            info = get_error_info(str(code))
            if info is not None:
                return StructuredError(
                    code=str(code),
                    message=message,
                    category=info.category,
                    severity=info.severity,
                    retryable=info.retryable,
                    context=context,
                )
        return StructuredError(
            code=str(codes[0]) if codes else API_ERROR,
            message=message,
            category=ErrorCategory.BUSINESS_LOGIC,
            severity=ErrorSeverity.MEDIUM,
            retryable=False,
            context=context,
        )
