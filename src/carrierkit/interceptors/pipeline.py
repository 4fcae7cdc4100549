"""Interceptor definitions, tagged request outcomes, and the pipeline runner.

This module provides the three pieces the transport threads every call
through:

* :class:`Continue` / :class:`Resolved` -- the tagged result of the request
  stage. ``Resolved`` short-circuits the call with a ready-made response
  (this is how the cache serves hits without network I/O).
* :class:`Interceptor` -- optional base class bundling request, response
  and error hooks; default implementations pass values through unchanged.
* :class:`InterceptorPipeline` -- three ordered lists of stages run in
  registration order, each stage receiving the output of the previous one.

Stages may be plain callables or coroutine functions; their results are
awaited when needed.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from carrierkit.models import Envelope, StructuredError, TransportResponse


@dataclass(frozen=True)
class Continue:
    """Proceed with the (possibly rewritten) envelope."""

    envelope: Envelope


@dataclass(frozen=True)
class Resolved:
    """Stop the pipeline and return *response* to the caller as-is."""

    response: TransportResponse


RequestOutcome = Union[Continue, Resolved]

RequestStage = Callable[[Envelope], Union[Envelope, RequestOutcome, Awaitable[Any]]]
ResponseStage = Callable[[TransportResponse, Envelope], Any]
ErrorStage = Callable[[StructuredError, Envelope], Any]


class Interceptor:
    """Base class for interceptors that hook one or more pipeline stages.

    Subclasses override only the hooks they need;
    :meth:`InterceptorPipeline.use` registers exactly the overridden ones.

    Example::

        class TagInterceptor(Interceptor):
            async def on_request(self, envelope):
                return envelope.model_copy(
                    update={"headers": {**envelope.headers, "X-Tag": "1"}}
                )
    """

    name: str = "interceptor"

    async def on_request(self, envelope: Envelope) -> Union[Envelope, RequestOutcome]:
        return Continue(envelope)

    async def on_response(
        self, response: TransportResponse, envelope: Envelope
    ) -> TransportResponse:
        return response

    async def on_error(self, error: StructuredError, envelope: Envelope) -> StructuredError:
        return error


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _overrides(interceptor: Interceptor, hook: str) -> bool:
    return getattr(type(interceptor), hook) is not getattr(Interceptor, hook)


class InterceptorPipeline:
    """Ordered request, response, and error stages around the network call.

    The pipeline holds no per-call state, so a single instance is shared by
    all concurrent calls of a transport.
    """

    def __init__(self) -> None:
        self._request_stages: list[RequestStage] = []
        self._response_stages: list[ResponseStage] = []
        self._error_stages: list[ErrorStage] = []

    def add_request(self, stage: RequestStage) -> InterceptorPipeline:
        self._request_stages.append(stage)
        return self

    def add_response(self, stage: ResponseStage) -> InterceptorPipeline:
        self._response_stages.append(stage)
        return self

    def add_error(self, stage: ErrorStage) -> InterceptorPipeline:
        self._error_stages.append(stage)
        return self

    def use(self, interceptor: Interceptor) -> InterceptorPipeline:
        """Register every hook *interceptor* overrides, at the end of each list."""
        if _overrides(interceptor, "on_request"):
            self._request_stages.append(interceptor.on_request)
        if _overrides(interceptor, "on_response"):
            self._response_stages.append(interceptor.on_response)
        if _overrides(interceptor, "on_error"):
            self._error_stages.append(interceptor.on_error)
        return self

    def prepend(self, interceptor: Interceptor) -> InterceptorPipeline:
        """Register *interceptor*'s hooks ahead of all existing stages."""
        if _overrides(interceptor, "on_request"):
            self._request_stages.insert(0, interceptor.on_request)
        if _overrides(interceptor, "on_response"):
            self._response_stages.insert(0, interceptor.on_response)
        if _overrides(interceptor, "on_error"):
            self._error_stages.insert(0, interceptor.on_error)
        return self

    def uses(self, interceptor_type: type[Interceptor]) -> bool:
        """Whether any registered stage is a hook of an *interceptor_type* instance."""
        stages = [*self._request_stages, *self._response_stages, *self._error_stages]
        return any(
            isinstance(getattr(stage, "__self__", None), interceptor_type) for stage in stages
        )

    async def run_request(self, envelope: Envelope) -> RequestOutcome:
        """Run request stages; the first :class:`Resolved` ends the chain."""
        current = envelope
        for stage in self._request_stages:
            result = await _maybe_await(stage(current))
            if isinstance(result, Resolved):
                return result
            if isinstance(result, Continue):
                current = result.envelope
            elif isinstance(result, Envelope):
                current = result
            else:
                raise TypeError(
                    f"Request interceptor {stage!r} returned {type(result).__name__}, "
                    "expected Envelope, Continue or Resolved"
                )
        return Continue(current)

    async def run_response(
        self, response: TransportResponse, envelope: Envelope
    ) -> TransportResponse:
        for stage in self._response_stages:
            response = await _maybe_await(stage(response, envelope))
        return response

    async def run_error(self, error: StructuredError, envelope: Envelope) -> StructuredError:
        for stage in self._error_stages:
            error = await _maybe_await(stage(error, envelope))
        return error
