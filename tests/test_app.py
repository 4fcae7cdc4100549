"""CLI tests for the carrierkit Typer app: version, config, call and the main() entry point."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

import carrierkit.client
from carrierkit import __version__
from carrierkit.app import app, main
from carrierkit.commands.call import parse_params, parse_target
from carrierkit.errors import CarrierErrorCode
from carrierkit.exceptions import InvalidUsageError, TransportError
from carrierkit.models import ErrorCategory, StructuredError


@pytest.fixture()
def mock_carrier(monkeypatch, make_handler):
    """Route every transport the CLI builds through a recording mock handler."""
    real_factory = carrierkit.client.create_default_transport

    def install(*outcomes):
        handler = make_handler(*outcomes)

        def factory(config=None, **kwargs):
            return real_factory(config, http_transport=httpx.MockTransport(handler), **kwargs)

        monkeypatch.setattr("carrierkit.client.create_default_transport", factory)
        return handler

    return install


# ------------------------------------------------------------------ #
# Argument parsing helpers
# ------------------------------------------------------------------ #


class TestParsing:
    def test_parse_target(self) -> None:
        assert parse_target("AddressGeneral.getCities") == ("AddressGeneral", "getCities")

    @pytest.mark.parametrize("target", ["AddressGeneral", ".getCities", "AddressGeneral."])
    def test_parse_target_rejects(self, target) -> None:
        with pytest.raises(InvalidUsageError):
            parse_target(target)

    def test_parse_params_keeps_equals_in_value(self) -> None:
        assert parse_params(["FindByString=Kyiv", "Note=a=b"]) == {
            "FindByString": "Kyiv",
            "Note": "a=b",
        }

    def test_parse_params_rejects_missing_equals(self) -> None:
        with pytest.raises(InvalidUsageError):
            parse_params(["Limit"])


# ------------------------------------------------------------------ #
# Root and config commands
# ------------------------------------------------------------------ #


class TestRoot:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"carrierkit {__version__}" in result.output


class TestConfigCommands:
    def test_path(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "path"])
        assert result.exit_code == 0
        assert str(isolated_config / "config" / "carrierkit" / "config.json") in result.output

    def test_show_json(self, cli_runner, isolated_config: Path, monkeypatch) -> None:
        monkeypatch.setenv("CARRIERKIT_TIMEOUT", "12")
        result = cli_runner.invoke(app, ["--json", "-q", "config", "show"])
        assert result.exit_code == 0
        shown = json.loads(result.output)
        assert shown["timeout"] == 12.0
        assert shown["base_url"] == "https://api.novaposhta.ua/v2.0/json/"

    def test_show_plain_table(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--plain", "-q", "config", "show"])
        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert lines[0] == "Setting\tValue"
        assert "max_retries\t3" in lines

    def test_show_reports_bad_env(self, cli_runner, isolated_config: Path, monkeypatch) -> None:
        monkeypatch.setenv("CARRIERKIT_RPS", "fast")
        result = cli_runner.invoke(app, ["config", "show"])
        assert result.exit_code == 7
        assert "CARRIERKIT_RPS" in result.output

    def test_set_persists(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "max_retries", "5"])
        assert result.exit_code == 0
        saved = json.loads(
            (isolated_config / "config" / "carrierkit" / "config.json").read_text(encoding="utf-8")
        )
        assert saved["max_retries"] == 5

    def test_set_unknown_key(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "colour", "blue"])
        assert result.exit_code == 2
        assert "Unknown config key" in result.output

    def test_set_rejects_wrong_type(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "timeout", "soon"])
        assert result.exit_code == 2

    def test_set_rejects_invalid_value(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "timeout", "0"])
        assert result.exit_code == 7
        assert not (isolated_config / "config" / "carrierkit" / "config.json").exists()


# ------------------------------------------------------------------ #
# call
# ------------------------------------------------------------------ #


class TestCallCommand:
    def test_bad_target_is_usage_error(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["call", "getCities"])
        assert result.exit_code == 2
        assert "MODEL.METHOD" in result.output

    def test_success_prints_data_rows(
        self, cli_runner, isolated_config: Path, monkeypatch, mock_carrier, payload
    ) -> None:
        monkeypatch.setenv("NOVA_POSHTA_API_KEY", "secret")
        handler = mock_carrier(
            httpx.Response(200, json=payload(data=[{"Ref": "r1", "Description": "Kyiv"}]))
        )

        result = cli_runner.invoke(
            app,
            ["--plain", "call", "AddressGeneral.getCities", "-P", "FindByString=Kyiv", "--no-cache"],
        )

        assert result.exit_code == 0, result.output
        assert "r1\tKyiv" in result.output
        body = json.loads(handler.requests[0].content)
        assert body["apiKey"] == "secret"
        assert body["modelName"] == "AddressGeneral"
        assert body["calledMethod"] == "getCities"
        assert body["methodProperties"] == {"FindByString": "Kyiv"}

    def test_api_key_from_file(
        self, cli_runner, isolated_config: Path, tmp_path: Path, mock_carrier, payload
    ) -> None:
        key_file = tmp_path / "np.key"
        key_file.write_text("from-file\n", encoding="utf-8")
        handler = mock_carrier(httpx.Response(200, json=payload()))

        result = cli_runner.invoke(
            app,
            ["call", "CommonGeneral.getCargoTypes", "--api-key-source", f"file:{key_file}", "--no-cache"],
        )

        assert result.exit_code == 0, result.output
        assert json.loads(handler.requests[0].content)["apiKey"] == "from-file"

    def test_missing_explicit_key_source(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(
            app, ["call", "CommonGeneral.getCargoTypes", "--api-key-source", "env:NOPE_KEY"]
        )
        assert result.exit_code == 7
        assert "NOPE_KEY" in result.output

    def test_business_error_exit_code(
        self, cli_runner, isolated_config: Path, mock_carrier, payload
    ) -> None:
        handler = mock_carrier(
            httpx.Response(
                200,
                json=payload(
                    success=False,
                    errors=["Document not found"],
                    error_codes=[CarrierErrorCode.DOCUMENT_NOT_FOUND.value],
                ),
            )
        )

        result = cli_runner.invoke(
            app, ["call", "TrackingDocument.getStatusDocuments", "--no-cache", "-l", "ua"]
        )

        assert result.exit_code == 5
        assert "Документ не знайдено" in result.output
        assert handler.calls == 1

    def test_base_url_override(
        self, cli_runner, isolated_config: Path, mock_carrier, payload
    ) -> None:
        handler = mock_carrier(httpx.Response(200, json=payload()))
        result = cli_runner.invoke(
            app,
            ["call", "AddressGeneral.getAreas", "--base-url", "https://sandbox.test/json/", "--no-cache"],
        )
        assert result.exit_code == 0, result.output
        assert str(handler.requests[0].url) == "https://sandbox.test/json/"


# ------------------------------------------------------------------ #
# main() entry point
# ------------------------------------------------------------------ #


class TestMain:
    @pytest.fixture(autouse=True)
    def _no_signal_handlers(self, monkeypatch) -> None:
        monkeypatch.setattr("carrierkit.app._setup_signal_handlers", lambda: None)

    def test_transport_error_exit_code(self, monkeypatch, capfd) -> None:
        error = StructuredError(
            code="AUTH", message="bad key", category=ErrorCategory.AUTHENTICATION
        )

        def fail() -> None:
            raise TransportError(error)

        monkeypatch.setattr("carrierkit.app.app", fail)
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 3
        assert "[AUTH] bad key" in capfd.readouterr().err

    def test_unexpected_error_writes_crash_log(
        self, isolated_config: Path, monkeypatch, capfd
    ) -> None:
        def fail() -> None:
            raise RuntimeError("kaboom")

        monkeypatch.setattr("carrierkit.app.app", fail)
        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1
        logs = list((isolated_config / "data" / "carrierkit").glob("crash-*.log"))
        assert len(logs) == 1
        assert "RuntimeError: kaboom" in logs[0].read_text()
        assert "Debug log" in capfd.readouterr().err
