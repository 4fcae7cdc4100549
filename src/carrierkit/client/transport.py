"""Asynchronous carrier transport -- rate limiting, interceptors, circuit breaking and retry.

This module provides :class:`Transport`, the single entry point through
which every carrier call flows. It wraps :class:`httpx.AsyncClient` and
runs each call through, in order:

1. the sliding-window :class:`~carrierkit.resilience.RateLimiter`;
2. the request stages of the
   :class:`~carrierkit.interceptors.InterceptorPipeline` (a
   :class:`~carrierkit.interceptors.Resolved` outcome, e.g. a cache hit,
   returns immediately);
3. the :class:`~carrierkit.resilience.CircuitBreaker`, wrapping
4. the retry loop: POST, response stages, or classify + error stages +
   :class:`~carrierkit.resilience.RetryPolicy` decision.

Every failure reaches the caller as a
:class:`~carrierkit.exceptions.TransportError`.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from carrierkit.errors.classifier import (
    CIRCUIT_OPEN,
    UNKNOWN_ERROR,
    ErrorClassifier,
    envelope_context,
)
from carrierkit.exceptions import CircuitOpenError, RequestCancelledError, TransportError
from carrierkit.interceptors.builtin import LoggingInterceptor
from carrierkit.interceptors.pipeline import InterceptorPipeline, Resolved
from carrierkit.models import (
    Envelope,
    ErrorCategory,
    ErrorSeverity,
    StructuredError,
    TransportConfig,
    TransportResponse,
)
from carrierkit.resilience import CircuitBreaker, RateLimiter, RetryPolicy

logger = logging.getLogger(__name__)

BodyBuilder = Callable[[Envelope], dict[str, Any]]

_DEPENDENCY_CATEGORIES = (ErrorCategory.NETWORK, ErrorCategory.UNKNOWN)


def build_carrier_body(envelope: Envelope) -> dict[str, Any]:
    """Build the ``{apiKey, modelName, calledMethod, methodProperties}`` body.

    ``apiKey`` is omitted when the envelope carries none (for example when
    the key travels in a header instead).
    """
    body: dict[str, Any] = {
        "modelName": envelope.model_name,
        "calledMethod": envelope.called_method,
        "methodProperties": envelope.parameters,
    }
    if envelope.api_key:
        body = {"apiKey": envelope.api_key, **body}
    return body


def is_dependency_failure(exc: Exception) -> bool:
    """Whether *exc* says the carrier itself is unhealthy.

    Business, validation and authentication errors prove the carrier
    answered, so they do not count against the circuit breaker.
    """
    if isinstance(exc, TransportError):
        return exc.error.category in _DEPENDENCY_CATEGORIES
    return True


class Transport:
    """Resilient asynchronous transport for POST-JSON carrier APIs.

    Components not passed explicitly are built from *config*. Must be used
    as an async context manager, or closed with :meth:`aclose`.

    Args:
        config: Transport settings. Defaults to :class:`TransportConfig()`.
        pipeline: Interceptor pipeline shared by all calls.
        rate_limiter: Overrides the limiter built from
            ``config.requests_per_second``.
        circuit_breaker: Overrides the breaker built from the
            ``circuit_*`` settings.
        retry_policy: Overrides the policy built from the ``retry_*``
            settings.
        classifier: Error classifier.
        http_transport: Custom :mod:`httpx` transport, e.g.
            :class:`httpx.MockTransport` in tests.
        body_builder: Turns an envelope into the JSON request body.
        sleep: Async sleep used between retries, injectable for tests.

    Example::

        async with Transport(TransportConfig(timeout=10)) as transport:
            response = await transport.call(
                "AddressGeneral", "getCities", {"FindByString": "Kyiv"}
            )
    """

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        *,
        pipeline: Optional[InterceptorPipeline] = None,
        rate_limiter: Optional[RateLimiter] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        retry_policy: Optional[RetryPolicy] = None,
        classifier: Optional[ErrorClassifier] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        body_builder: Optional[BodyBuilder] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._config = config or TransportConfig()
        self._pipeline = pipeline if pipeline is not None else InterceptorPipeline()
        if self._config.enable_logging and not self._pipeline.uses(LoggingInterceptor):
            self._pipeline.prepend(LoggingInterceptor())

        if rate_limiter is None and self._config.requests_per_second:
            rate_limiter = RateLimiter(self._config.requests_per_second)
        self._rate_limiter = rate_limiter
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=self._config.circuit_failure_threshold,
            recovery_timeout=self._config.circuit_recovery_timeout,
            success_threshold=self._config.circuit_success_threshold,
            is_failure=is_dependency_failure,
        )
        self._retry_policy = retry_policy or RetryPolicy.from_config(self._config)
        self._classifier = classifier or ErrorClassifier()
        self._http_transport = http_transport
        self._body_builder = body_builder or build_carrier_body
        self._sleep = sleep or asyncio.sleep
        self._client: Optional[httpx.AsyncClient] = None
        self._closers: list[Callable[[], Any]] = []

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> Transport:
        self._open()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client and every resource handed over with :meth:`on_close`.

        Safe to call more than once.
        """
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        closers, self._closers = self._closers, []
        for close in closers:
            result = close()
            if inspect.isawaitable(result):
                await result

    def on_close(self, callback: Callable[[], Any]) -> None:
        """Register *callback* (sync or async) to run once on :meth:`aclose`."""
        self._closers.append(callback)

    def _open(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._config.timeout,
                verify=self._config.verify_ssl,
                transport=self._http_transport,
            )
        return self._client

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def config(self) -> TransportConfig:
        return self._config

    @property
    def pipeline(self) -> InterceptorPipeline:
        return self._pipeline

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def request(self, envelope: Envelope) -> TransportResponse:
        """Send *envelope* to the carrier and return the processed response.

        Args:
            envelope: The call to perform.

        Returns:
            The response after all response stages ran, or the response a
            request stage resolved the call with.

        Raises:
            TransportError: On any failure, carrying the classified
                :class:`~carrierkit.models.StructuredError`. An open circuit
                surfaces as non-retryable ``CIRCUIT_OPEN`` without any
                network I/O.
        """
        if self._rate_limiter is not None:
            await self._rate_limiter.acquire()

        try:
            outcome = await self._pipeline.run_request(envelope)
        except Exception as exc:
            error = self._classifier.classify(exc, envelope)
            raise TransportError(await self._pipeline.run_error(error, envelope)) from exc
        if isinstance(outcome, Resolved):
            return outcome.response
        prepared = outcome.envelope

        try:
            return await self._circuit_breaker.execute(lambda: self._attempt_loop(prepared))
        except CircuitOpenError as exc:
            error = StructuredError(
                code=CIRCUIT_OPEN,
                message=str(exc),
                category=ErrorCategory.NETWORK,
                severity=ErrorSeverity.HIGH,
                retryable=False,
                context={**envelope_context(prepared), "retry_after": exc.retry_after},
            )
            raise TransportError(await self._pipeline.run_error(error, prepared)) from exc

    async def call(
        self,
        model_name: str,
        called_method: str,
        parameters: Optional[dict[str, Any]] = None,
        **kwargs: Any,
    ) -> TransportResponse:
        """Build an :class:`Envelope` and :meth:`request` it.

        Args:
            model_name: Carrier model, e.g. ``"AddressGeneral"``.
            called_method: Method on the model, e.g. ``"getCities"``.
            parameters: ``methodProperties`` of the call.
            **kwargs: Other :class:`Envelope` fields (``headers``,
                ``api_key``, ``route``, ``cancel_event``).
        """
        envelope = Envelope(
            model_name=model_name,
            called_method=called_method,
            parameters=parameters or {},
            **kwargs,
        )
        return await self.request(envelope)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _attempt_loop(self, envelope: Envelope) -> TransportResponse:
        attempt = 1
        while True:
            try:
                response = await self._send(envelope)
                return await self._pipeline.run_response(response, envelope)
            except Exception as exc:
                error = self._classifier.classify(exc, envelope)
                error = await self._pipeline.run_error(error, envelope)
                if envelope.cancelled or not self._retry_policy.should_retry(error, attempt):
                    if error.retryable and not envelope.cancelled:
                        logger.warning(
                            "Giving up on %s after %d attempt(s): [%s] %s",
                            envelope.target,
                            attempt,
                            error.code,
                            error.message,
                        )
                    raise TransportError(error) from exc

                delay = self._retry_policy.delay_for(attempt)
                logger.debug(
                    "Attempt %d for %s failed with %s, retrying in %.2fs",
                    attempt,
                    envelope.target,
                    error.code,
                    delay,
                )
                await self._sleep(delay)
                attempt += 1

    async def _send(self, envelope: Envelope) -> TransportResponse:
        """POST one attempt; raise for timeouts, cancellation and non-2xx."""
        client = self._open()
        if envelope.cancelled:
            raise RequestCancelledError("Request was cancelled before it was sent")

        post = asyncio.wait_for(
            client.post(
                self._url_for(envelope),
                json=self._body_builder(envelope),
                headers={**self._config.headers, **envelope.headers},
            ),
            timeout=self._config.timeout,
        )
        if envelope.cancel_event is None:
            http_response = await post
        else:
            http_response = await self._race_cancel(post, envelope.cancel_event)

        http_response.raise_for_status()
        try:
            payload = http_response.json()
        except ValueError as exc:
            raise TransportError(
                StructuredError(
                    code=UNKNOWN_ERROR,
                    message=f"Response body is not valid JSON: {exc}",
                    category=ErrorCategory.UNKNOWN,
                    severity=ErrorSeverity.HIGH,
                    retryable=False,
                    context={
                        **envelope_context(envelope),
                        "status_code": http_response.status_code,
                        "content_type": http_response.headers.get("content-type", ""),
                    },
                )
            ) from exc

        return TransportResponse(
            status_code=http_response.status_code,
            payload=payload,
            headers=dict(http_response.headers),
        )

    @staticmethod
    async def _race_cancel(
        post: Awaitable[httpx.Response], cancel_event: asyncio.Event
    ) -> httpx.Response:
        send_task = asyncio.ensure_future(post)
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {send_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (send_task, cancel_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(send_task, cancel_task, return_exceptions=True)

        if send_task in done:
            return send_task.result()
        raise RequestCancelledError("Request was cancelled")

    def _url_for(self, envelope: Envelope) -> str:
        if not envelope.route:
            return self._config.base_url
        return f"{self._config.base_url.rstrip('/')}/{envelope.route.lstrip('/')}"
