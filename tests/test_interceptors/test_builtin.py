"""Tests for the built-in interceptors."""

from __future__ import annotations

import logging

import pytest

from carrierkit.errors import CarrierErrorCode, Language
from carrierkit.errors.classifier import CIRCUIT_OPEN, INVALID_RESPONSE
from carrierkit.exceptions import TransportError
from carrierkit.interceptors import (
    ApiKeyInterceptor,
    ErrorTranslationInterceptor,
    LoggingInterceptor,
    MetricsInterceptor,
    RateLimitingInterceptor,
    RequestIdInterceptor,
    ResponseValidationInterceptor,
    RetryMarkingInterceptor,
    UserAgentInterceptor,
)
from carrierkit.models import Envelope, ErrorCategory, StructuredError, TransportResponse


def _make_envelope(**overrides) -> Envelope:
    data = {"model_name": "InternetDocument", "called_method": "getDocumentList"}
    data.update(overrides)
    return Envelope(**data)


def _make_error(code: str = "X", **overrides) -> StructuredError:
    data = {"code": code, "message": "original", "category": ErrorCategory.BUSINESS_LOGIC}
    data.update(overrides)
    return StructuredError(**data)


# ------------------------------------------------------------------ #
# Request-side interceptors
# ------------------------------------------------------------------ #


class TestRequestId:
    @pytest.mark.asyncio
    async def test_adds_header_from_request_id(self) -> None:
        envelope = _make_envelope()
        outcome = await RequestIdInterceptor(prefix="np_").on_request(envelope)
        assert outcome.envelope.headers["X-Request-ID"] == f"np_{envelope.request_id}"

    @pytest.mark.asyncio
    async def test_keeps_caller_supplied_id(self) -> None:
        envelope = _make_envelope(headers={"X-Request-ID": "mine"})
        outcome = await RequestIdInterceptor().on_request(envelope)
        assert outcome.envelope.headers["X-Request-ID"] == "mine"


class TestApiKey:
    @pytest.mark.asyncio
    async def test_body_location_sets_envelope_key(self) -> None:
        outcome = await ApiKeyInterceptor("secret").on_request(_make_envelope())
        assert outcome.envelope.api_key == "secret"

    @pytest.mark.asyncio
    async def test_caller_key_kept_without_override(self) -> None:
        outcome = await ApiKeyInterceptor("secret").on_request(_make_envelope(api_key="own"))
        assert outcome.envelope.api_key == "own"

    @pytest.mark.asyncio
    async def test_override_replaces_caller_key(self) -> None:
        interceptor = ApiKeyInterceptor("secret", override=True)
        outcome = await interceptor.on_request(_make_envelope(api_key="own"))
        assert outcome.envelope.api_key == "secret"

    @pytest.mark.asyncio
    async def test_header_location(self) -> None:
        interceptor = ApiKeyInterceptor("secret", location="header", header="Authorization")
        outcome = await interceptor.on_request(_make_envelope())
        assert outcome.envelope.headers["Authorization"] == "secret"
        assert outcome.envelope.api_key is None

    def test_unknown_location_rejected(self) -> None:
        with pytest.raises(ValueError):
            ApiKeyInterceptor("secret", location="query")


class TestUserAgent:
    @pytest.mark.asyncio
    async def test_client_name_appended(self) -> None:
        interceptor = UserAgentInterceptor("carrierkit/1.0", client_name="shop", client_version="2")
        outcome = await interceptor.on_request(_make_envelope())
        assert outcome.envelope.headers["User-Agent"] == "carrierkit/1.0 (shop/2)"


class TestRateLimiting:
    @pytest.mark.asyncio
    async def test_spaces_consecutive_requests(self, clock) -> None:
        interceptor = RateLimitingInterceptor(min_interval=0.5, clock=clock, sleep=clock.sleep)
        await interceptor.on_request(_make_envelope())
        clock.advance(0.25)
        await interceptor.on_request(_make_envelope())
        assert clock.sleeps == [0.25]

    @pytest.mark.asyncio
    async def test_no_wait_after_interval(self, clock) -> None:
        interceptor = RateLimitingInterceptor(min_interval=0.5, clock=clock, sleep=clock.sleep)
        await interceptor.on_request(_make_envelope())
        clock.advance(1.0)
        await interceptor.on_request(_make_envelope())
        assert clock.sleeps == []


# ------------------------------------------------------------------ #
# Response validation
# ------------------------------------------------------------------ #


class TestResponseValidation:
    @pytest.mark.asyncio
    async def test_valid_success_passes(self, payload) -> None:
        response = TransportResponse(status_code=200, payload=payload(data=[{"Ref": "1"}]))
        result = await ResponseValidationInterceptor().on_response(response, _make_envelope())
        assert result is response

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            ["not", "an", "object"],
            {"data": []},
            {"success": "yes", "errors": [], "warnings": []},
            {"success": True, "errors": "none", "warnings": []},
            {"success": True, "errors": []},
        ],
    )
    async def test_malformed_payload_is_validation_error(self, body) -> None:
        response = TransportResponse(status_code=200, payload=body)
        with pytest.raises(TransportError) as exc_info:
            await ResponseValidationInterceptor().on_response(response, _make_envelope())
        error = exc_info.value.error
        assert error.code == INVALID_RESPONSE
        assert error.category == ErrorCategory.VALIDATION
        assert error.retryable is False

    @pytest.mark.asyncio
    async def test_failed_call_raises_classified_api_error(self, payload) -> None:
        body = payload(
            success=False,
            errors=["API key is empty"],
            error_codes=[CarrierErrorCode.API_KEY_EMPTY.value],
        )
        response = TransportResponse(status_code=200, payload=body)
        with pytest.raises(TransportError) as exc_info:
            await ResponseValidationInterceptor().on_response(response, _make_envelope())
        assert exc_info.value.error.category == ErrorCategory.AUTHENTICATION
        assert exc_info.value.error.context["api_errors"] == ["API key is empty"]


# ------------------------------------------------------------------ #
# Error-side interceptors
# ------------------------------------------------------------------ #


class TestErrorTranslation:
    @pytest.mark.asyncio
    async def test_known_code_translated(self) -> None:
        interceptor = ErrorTranslationInterceptor(Language.UA)
        error = _make_error(CarrierErrorCode.DOCUMENT_NOT_FOUND.value)
        result = await interceptor.on_error(error, _make_envelope())
        assert result.message == "Документ не знайдено"
        assert result.context["original_message"] == "original"

    @pytest.mark.asyncio
    async def test_unknown_code_untouched(self) -> None:
        error = _make_error("nope")
        result = await ErrorTranslationInterceptor("ru").on_error(error, _make_envelope())
        assert result is error


class TestRetryMarking:
    @pytest.mark.asyncio
    async def test_service_unavailable_marked_retryable(self) -> None:
        error = _make_error(CarrierErrorCode.SERVICE_UNAVAILABLE.value, retryable=False)
        result = await RetryMarkingInterceptor().on_error(error, _make_envelope())
        assert result.retryable is True

    @pytest.mark.asyncio
    async def test_network_category_marked_retryable(self) -> None:
        error = _make_error(category=ErrorCategory.NETWORK, retryable=False)
        result = await RetryMarkingInterceptor().on_error(error, _make_envelope())
        assert result.retryable is True

    @pytest.mark.asyncio
    async def test_non_retryable_codes_win(self) -> None:
        interceptor = RetryMarkingInterceptor(non_retryable_codes=["HTTP_ERROR"])
        error = _make_error("HTTP_ERROR", category=ErrorCategory.NETWORK, retryable=True)
        result = await interceptor.on_error(error, _make_envelope())
        assert result.retryable is False

    @pytest.mark.asyncio
    async def test_circuit_open_stays_non_retryable(self) -> None:
        error = _make_error(CIRCUIT_OPEN, category=ErrorCategory.NETWORK, retryable=False)
        result = await RetryMarkingInterceptor().on_error(error, _make_envelope())
        assert result.retryable is False

    @pytest.mark.asyncio
    async def test_business_error_untouched(self) -> None:
        error = _make_error()
        assert await RetryMarkingInterceptor().on_error(error, _make_envelope()) is error


# ------------------------------------------------------------------ #
# Observability
# ------------------------------------------------------------------ #


class TestLogging:
    @pytest.mark.asyncio
    async def test_records_carry_structured_payload(self, caplog, payload) -> None:
        interceptor = LoggingInterceptor()
        envelope = _make_envelope(parameters={"Page": "1"})
        with caplog.at_level(logging.INFO, logger="carrierkit.requests"):
            await interceptor.on_request(envelope)
            await interceptor.on_response(
                TransportResponse(status_code=200, payload=payload(data=[1, 2])), envelope
            )
            await interceptor.on_error(_make_error(), envelope)

        events = [record.carrier["event"] for record in caplog.records]
        assert events == ["request", "response", "error"]
        assert caplog.records[0].carrier["properties"] == {"Page": "1"}
        assert caplog.records[1].carrier["data_count"] == 2
        assert caplog.records[2].levelno == logging.ERROR


class _Collector:
    def __init__(self) -> None:
        self.requests: list[str] = []
        self.responses: list[tuple[str, float, bool]] = []
        self.errors: list[tuple[str, str]] = []

    def record_request(self, target: str) -> None:
        self.requests.append(target)

    def record_response(self, target: str, duration: float, success: bool) -> None:
        self.responses.append((target, duration, success))

    def record_error(self, target: str, error: StructuredError) -> None:
        self.errors.append((target, error.code))


class TestMetrics:
    @pytest.mark.asyncio
    async def test_duration_measured_per_request(self, clock, payload) -> None:
        collector = _Collector()
        interceptor = MetricsInterceptor(collector, clock=clock)
        envelope = _make_envelope()

        await interceptor.on_request(envelope)
        clock.advance(0.5)
        await interceptor.on_response(
            TransportResponse(status_code=200, payload=payload()), envelope
        )

        assert collector.requests == ["InternetDocument.getDocumentList"]
        assert collector.responses == [("InternetDocument.getDocumentList", 0.5, True)]

    @pytest.mark.asyncio
    async def test_errors_recorded(self, clock) -> None:
        collector = _Collector()
        interceptor = MetricsInterceptor(collector, clock=clock)
        envelope = _make_envelope()
        await interceptor.on_request(envelope)
        await interceptor.on_error(_make_error("E1"), envelope)
        assert collector.errors == [("InternetDocument.getDocumentList", "E1")]
