"""Reference interceptors shipped with carrierkit.

Request side:
    :class:`RequestIdInterceptor`, :class:`ApiKeyInterceptor`,
    :class:`UserAgentInterceptor`, :class:`RateLimitingInterceptor`.

Response side:
    :class:`ResponseValidationInterceptor`.

Error side:
    :class:`ErrorTranslationInterceptor`, :class:`RetryMarkingInterceptor`.

All three:
    :class:`LoggingInterceptor`, :class:`MetricsInterceptor`.

Every hook returns a new value rather than mutating its input.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol, Union

from carrierkit import __version__
from carrierkit.errors.catalog import CarrierErrorCode, Language, get_error_info
from carrierkit.errors.classifier import (
    CIRCUIT_OPEN,
    INVALID_RESPONSE,
    ErrorClassifier,
    envelope_context,
)
from carrierkit.exceptions import TransportError
from carrierkit.interceptors.pipeline import Continue, Interceptor, RequestOutcome
from carrierkit.models import (
    Envelope,
    ErrorCategory,
    ErrorSeverity,
    StructuredError,
    TransportResponse,
)


def _with_header(envelope: Envelope, name: str, value: str) -> Envelope:
    return envelope.model_copy(update={"headers": {**envelope.headers, name: value}})


class RequestIdInterceptor(Interceptor):
    """Send the envelope's ``request_id`` as a tracing header."""

    name = "request-id"

    def __init__(self, header: str = "X-Request-ID", prefix: str = "") -> None:
        self._header = header
        self._prefix = prefix

    async def on_request(self, envelope: Envelope) -> Union[Envelope, RequestOutcome]:
        if self._header in envelope.headers:
            return Continue(envelope)
        return Continue(_with_header(envelope, self._header, f"{self._prefix}{envelope.request_id}"))


class ApiKeyInterceptor(Interceptor):
    """Inject the carrier API key into the request body or a header.

    Args:
        api_key: The credential, typically from
            :func:`~carrierkit.config.resolve_credential`.
        location: ``"body"`` sets ``Envelope.api_key`` (sent as ``apiKey``
            in the JSON body); ``"header"`` sets *header*.
        header: Header name used when ``location="header"``.
        override: Replace a key the caller already set on the envelope.
    """

    name = "api-key"

    def __init__(
        self,
        api_key: str,
        location: str = "body",
        header: str = "X-API-Key",
        override: bool = False,
    ) -> None:
        if location not in ("body", "header"):
            raise ValueError(f"Unsupported API key location: {location}")
        self._api_key = api_key
        self._location = location
        self._header = header
        self._override = override

    async def on_request(self, envelope: Envelope) -> Union[Envelope, RequestOutcome]:
        if self._location == "header":
            if self._header in envelope.headers and not self._override:
                return Continue(envelope)
            return Continue(_with_header(envelope, self._header, self._api_key))

        if envelope.api_key and not self._override:
            return Continue(envelope)
        return Continue(envelope.model_copy(update={"api_key": self._api_key}))


class UserAgentInterceptor(Interceptor):
    """Identify the client to the carrier via ``User-Agent``."""

    name = "user-agent"

    def __init__(
        self,
        user_agent: str = f"carrierkit/{__version__}",
        client_name: Optional[str] = None,
        client_version: Optional[str] = None,
    ) -> None:
        if client_name:
            user_agent = f"{user_agent} ({client_name}/{client_version or 'unknown'})"
        self._user_agent = user_agent

    async def on_request(self, envelope: Envelope) -> Union[Envelope, RequestOutcome]:
        return Continue(_with_header(envelope, "User-Agent", self._user_agent))


class RateLimitingInterceptor(Interceptor):
    """Keep at least *min_interval* seconds between consecutive requests.

    A simpler spacing rule than :class:`~carrierkit.resilience.RateLimiter`,
    for carriers that document a minimum gap rather than a per-second quota.
    """

    name = "rate-limit"

    def __init__(
        self,
        min_interval: float = 0.1,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._min_interval = min_interval
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._last_request: Optional[float] = None
        self._lock = asyncio.Lock()

    async def on_request(self, envelope: Envelope) -> Union[Envelope, RequestOutcome]:
        async with self._lock:
            if self._last_request is not None:
                wait = self._min_interval - (self._clock() - self._last_request)
                if wait > 0:
                    await self._sleep(wait)
            self._last_request = self._clock()
        return Continue(envelope)


class ResponseValidationInterceptor(Interceptor):
    """Reject malformed carrier envelopes and surface ``success: false`` as errors.

    A well-formed payload is an object with a boolean ``success`` and list
    ``errors`` and ``warnings`` fields. Malformed payloads raise a
    non-retryable validation error. Failed calls raise an error built from
    the carrier's ``errors`` and ``errorCodes`` via the error catalog, so
    e.g. "service unavailable" stays retryable.
    """

    name = "response-validation"

    def __init__(self, classifier: Optional[ErrorClassifier] = None) -> None:
        self._classifier = classifier or ErrorClassifier()

    async def on_response(
        self, response: TransportResponse, envelope: Envelope
    ) -> TransportResponse:
        payload = response.payload
        problem = self._shape_problem(payload)
        if problem is not None:
            raise TransportError(
                StructuredError(
                    code=INVALID_RESPONSE,
                    message=f"Invalid response format: {problem}",
                    category=ErrorCategory.VALIDATION,
                    severity=ErrorSeverity.HIGH,
                    retryable=False,
                    context=envelope_context(envelope),
                )
            )

        if not payload["success"]:
            codes = [str(code) for code in payload.get("errorCodes") or []]
            raise TransportError(
                self._classifier.from_api_errors(
                    [str(message) for message in payload["errors"]], codes, envelope
                )
            )
        return response

    @staticmethod
    def _shape_problem(payload: Any) -> Optional[str]:
        if not isinstance(payload, dict):
            return "not an object"
        if not isinstance(payload.get("success"), bool):
            return "missing or invalid success field"
        if not isinstance(payload.get("errors"), list):
            return "errors must be an array"
        if not isinstance(payload.get("warnings"), list):
            return "warnings must be an array"
        return None


class ErrorTranslationInterceptor(Interceptor):
    """Replace messages of known error codes with catalog text in *language*.

    The message being replaced is kept in ``context["original_message"]``.
    """

    name = "error-translation"

    def __init__(self, language: Union[Language, str] = Language.EN) -> None:
        self._language = Language(language)

    async def on_error(self, error: StructuredError, envelope: Envelope) -> StructuredError:
        info = get_error_info(error.code)
        if info is None:
            return error
        translated = info.message(self._language)
        if translated == error.message:
            return error
        return error.with_changes(
            message=translated,
            context={**error.context, "original_message": error.message},
        )


class RetryMarkingInterceptor(Interceptor):
    """Override the classifier's retryability for specific error codes.

    Codes in *retryable_codes* and all network-category errors become
    retryable; codes in *non_retryable_codes* (by default ``CIRCUIT_OPEN``)
    are forced non-retryable and win over both.
    """

    name = "retry-marking"

    def __init__(
        self,
        retryable_codes: Iterable[str] = (CarrierErrorCode.SERVICE_UNAVAILABLE.value,),
        non_retryable_codes: Iterable[str] = (CIRCUIT_OPEN,),
    ) -> None:
        self._retryable = frozenset(retryable_codes)
        self._non_retryable = frozenset(non_retryable_codes)

    async def on_error(self, error: StructuredError, envelope: Envelope) -> StructuredError:
        if error.code in self._non_retryable:
            return error.with_changes(retryable=False) if error.retryable else error
        if error.code in self._retryable or error.category == ErrorCategory.NETWORK:
            return error if error.retryable else error.with_changes(retryable=True)
        return error


class LoggingInterceptor(Interceptor):
    """Emit one structured log record per request, response and error.

    The structured fields travel in ``extra={"carrier": {...}}`` so JSON log
    formatters can pick them up; the message itself stays human-readable.
    """

    name = "logging"

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger("carrierkit.requests")

    async def on_request(self, envelope: Envelope) -> Union[Envelope, RequestOutcome]:
        self._logger.info(
            "Request %s",
            envelope.target,
            extra={
                "carrier": {
                    "event": "request",
                    "request_id": envelope.request_id,
                    "model": envelope.model_name,
                    "method": envelope.called_method,
                    "properties": envelope.parameters,
                }
            },
        )
        return Continue(envelope)

    async def on_response(
        self, response: TransportResponse, envelope: Envelope
    ) -> TransportResponse:
        payload = response.payload if isinstance(response.payload, dict) else {}
        data = payload.get("data")
        self._logger.log(
            logging.INFO if response.is_success else logging.ERROR,
            "Response %s -> %d",
            envelope.target,
            response.status_code,
            extra={
                "carrier": {
                    "event": "response",
                    "request_id": envelope.request_id,
                    "status_code": response.status_code,
                    "success": response.is_success,
                    "data_count": len(data) if isinstance(data, list) else int(data is not None),
                    "errors": payload.get("errors", []),
                    "warnings": payload.get("warnings", []),
                    "from_cache": response.from_cache,
                }
            },
        )
        return response

    async def on_error(self, error: StructuredError, envelope: Envelope) -> StructuredError:
        self._logger.error(
            "Error %s [%s] %s",
            envelope.target,
            error.code,
            error.message,
            extra={
                "carrier": {
                    "event": "error",
                    "request_id": envelope.request_id,
                    "code": error.code,
                    "category": error.category.value,
                    "severity": error.severity.value,
                    "retryable": error.retryable,
                    "context": error.context,
                }
            },
        )
        return error


class MetricsCollector(Protocol):
    def record_request(self, target: str) -> None: ...

    def record_response(self, target: str, duration: float, success: bool) -> None: ...

    def record_error(self, target: str, error: StructuredError) -> None: ...


class MetricsInterceptor(Interceptor):
    """Feed request counts, latencies and errors into a :class:`MetricsCollector`.

    Register it after :class:`~carrierkit.interceptors.cache.CachingInterceptor`
    so cache hits, which skip the response stage, are never counted as
    started requests.
    """

    name = "metrics"

    def __init__(
        self,
        collector: MetricsCollector,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._collector = collector
        self._clock = clock or time.monotonic
        self._started: dict[str, float] = {}

    async def on_request(self, envelope: Envelope) -> Union[Envelope, RequestOutcome]:
        self._started[envelope.request_id] = self._clock()
        self._collector.record_request(envelope.target)
        return Continue(envelope)

    async def on_response(
        self, response: TransportResponse, envelope: Envelope
    ) -> TransportResponse:
        started = self._started.pop(envelope.request_id, None)
        duration = self._clock() - started if started is not None else 0.0
        self._collector.record_response(envelope.target, duration, response.is_success)
        return response

    async def on_error(self, error: StructuredError, envelope: Envelope) -> StructuredError:
        self._started.pop(envelope.request_id, None)
        self._collector.record_error(envelope.target, error)
        return error
