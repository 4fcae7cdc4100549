"""Typer application and CLI entry point for carrierkit.

The CLI is a thin shell over :class:`~carrierkit.client.Transport`:
``carrierkit call`` sends one request through the standard interceptor
stack and prints the payload, and ``carrierkit config`` inspects the
resolved configuration.

:func:`main` is the console-script entry point declared in
``pyproject.toml``. Unhandled exceptions are written to a crash log under
the data directory.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer

from carrierkit import __version__
from carrierkit.exit_codes import EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="carrierkit",
    help="Resilient client for shipping-carrier APIs.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"carrierkit {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    """Route library log records to stderr through rich when ``--verbose`` is set."""
    if not verbose:
        return
    from rich.console import Console
    from rich.logging import RichHandler

    handler = RichHandler(console=Console(stderr=True), show_path=False)
    root = logging.getLogger("carrierkit")
    root.setLevel(logging.DEBUG)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(handler)


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback: install the global OutputManager and logging from CLI flags."""
    from carrierkit.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    _configure_logging(verbose)


from carrierkit.commands.call import call_command  # noqa: E402
from carrierkit.commands.config import config_app  # noqa: E402

app.command("call")(call_command)
app.add_typer(config_app, name="config", help="Configuration management.")


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback to ``<data_dir>/crash-<timestamp>.log``.

    Returns:
        Path of the written log file.
    """
    from carrierkit.config import get_data_dir

    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = get_data_dir() / f"crash-{timestamp}.log"
    log_path.write_text(f"{type(exc).__name__}: {exc}\n\n{traceback.format_exc()}")
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``carrierkit`` console script.

    :class:`~carrierkit.exceptions.CarrierKitError` exits with the error's
    ``exit_code``; anything else writes a crash log and exits with a
    generic failure.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from carrierkit.exceptions import CarrierKitError, TransportError
        from carrierkit.output import get_output

        output = get_output()
        if isinstance(exc, TransportError):
            output.structured_error(exc.error)
            sys.exit(exc.exit_code)
        if isinstance(exc, CarrierKitError):
            output.error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        output.error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
