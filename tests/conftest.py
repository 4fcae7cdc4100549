"""Shared test fixtures for carrierkit.

Provides a fake clock with a matching async sleep (so rate limiting,
backoff and breaker recovery can be tested without real waiting),
isolated config environments, output-state reset, a CLI runner, and
helpers to build carrier payloads and ``httpx.MockTransport`` handlers.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from carrierkit.models import TransportConfig
from carrierkit.output import reset_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches sys.stdout/sys.stderr at creation time, which
    go stale once CliRunner restores the real streams.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Time fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced monotonic clock.

    ``sleep`` is an async drop-in for :func:`asyncio.sleep` that advances
    the clock instead of waiting and records every requested delay.
    """

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Carrier payloads and mock network
# ---------------------------------------------------------------------------


def carrier_payload(
    data: Any = None,
    success: bool = True,
    errors: list[str] | None = None,
    error_codes: list[str] | None = None,
) -> dict[str, Any]:
    """A well-formed carrier response body."""
    return {
        "success": success,
        "data": data if data is not None else [],
        "errors": errors or [],
        "warnings": [],
        "info": [],
        "messageCodes": [],
        "errorCodes": error_codes or [],
        "warningCodes": [],
        "infoCodes": [],
    }


class RecordingHandler:
    """``httpx.MockTransport`` handler replaying a scripted list of outcomes.

    Each outcome is an ``httpx.Response``, an exception instance to raise,
    or a callable ``(request) -> Response``. The last outcome repeats once
    the script runs out. Every request is recorded in :attr:`requests`.
    """

    def __init__(self, *outcomes: Any) -> None:
        self._outcomes = list(outcomes) or [httpx.Response(200, json=carrier_payload())]
        self.requests: list[httpx.Request] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self._outcomes) - 1)
        outcome = self._outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, httpx.Response):
            # fresh copy per request; responses are bound to one request
            return httpx.Response(
                outcome.status_code, headers=outcome.headers, content=outcome.content
            )
        return outcome(request)


@pytest.fixture
def make_handler() -> Callable[..., RecordingHandler]:
    return RecordingHandler


@pytest.fixture
def fast_config() -> TransportConfig:
    """Config with no rate limit so tests only see the components under test."""
    return TransportConfig(
        base_url="https://carrier.test/v2.0/json/",
        timeout=5,
        max_retries=3,
        requests_per_second=None,
    )


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG directories at subdirectories of tmp_path, clears every
    CARRIERKIT_* variable and the default API key variable, and changes
    the working directory to tmp_path.
    """
    monkeypatch.setattr("carrierkit.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "CARRIERKIT_BASE_URL",
        "CARRIERKIT_TIMEOUT",
        "CARRIERKIT_MAX_RETRIES",
        "CARRIERKIT_RPS",
        "CARRIERKIT_LOGGING",
        "NOVA_POSHTA_API_KEY",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()


@pytest.fixture
def payload() -> Callable[..., dict[str, Any]]:
    """Factory for well-formed carrier response bodies."""
    return carrier_payload
