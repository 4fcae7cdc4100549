"""Output formatting for the carrierkit CLI with strict stdout/stderr discipline.

* **stdout** -- carrier payloads only (JSON, rows, tables), safe to pipe.
* **stderr** -- diagnostics: status lines, warnings, structured errors.
* **TTY detection** -- Rich formatting on an interactive terminal, plain
  text when piped. ``NO_COLOR``, ``TERM=dumb`` and ``--no-color`` disable
  colour.

:class:`OutputManager` is created once in :func:`~carrierkit.app.main_callback`
and installed with :func:`set_output`; library code fetches it through
:func:`get_output`.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from carrierkit.models import StructuredError, TransportResponse


class OutputFormat(str, Enum):
    """Supported output formats. ``AUTO`` picks ``RICH`` on a colour TTY, else ``PLAIN``."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Route CLI output to the right stream in the right format.

    Args:
        format: Desired output format. ``AUTO`` resolves based on TTY
            detection.
        no_color: Disable all colour and Rich markup.
        quiet: Suppress informational messages on stderr.
        verbose: Show debug messages on stderr.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose

        if format == OutputFormat.AUTO:
            self._format = (
                OutputFormat.RICH if _is_tty() and not self._no_color else OutputFormat.PLAIN
            )
        else:
            self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=(self._format == OutputFormat.RICH),
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    # ------------------------------------------------------------------ #
    # Data output (stdout)
    # ------------------------------------------------------------------ #

    def format_response(self, data: Any) -> None:
        """Render a decoded payload to stdout in the active format."""
        if self._format == OutputFormat.JSON:
            self.print_data(_dumps(data))
        elif self._format == OutputFormat.PLAIN:
            self._print_plain(data)
        else:
            syntax = Syntax(_dumps(data), "json", theme="monokai", word_wrap=True)
            self._stdout.print(syntax)

    def print_transport_response(self, response: TransportResponse) -> None:
        """Print a carrier response: status to stderr, payload to stdout.

        In plain mode only the payload's ``data`` rows are printed, which is
        what shell pipelines usually want.
        """
        source = " (cached)" if response.from_cache else ""
        self.info(f"HTTP {response.status_code}{source}")

        payload = response.payload
        if isinstance(payload, dict):
            for message in payload.get("warnings") or []:
                self.warning(str(message))
            if self._format == OutputFormat.PLAIN and "data" in payload:
                self._print_plain(payload["data"])
                return
        self.format_response(payload)

    def print_data(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Print tabular data to stdout in the active format.

        JSON mode emits an array of objects keyed by *headers*; plain mode
        emits tab-separated lines.
        """
        if self._format == OutputFormat.JSON:
            self.print_data(_dumps([dict(zip(headers, row)) for row in rows]))
        elif self._format == OutputFormat.PLAIN:
            for line in [headers, *rows]:
                self.print_data("\t".join(line))
        else:
            table = Table(title=title, show_header=True, header_style="bold cyan")
            for header in headers:
                table.add_column(header)
            for row in rows:
                table.add_row(*row)
            self._stdout.print(table)

    # ------------------------------------------------------------------ #
    # Diagnostics (stderr)
    # ------------------------------------------------------------------ #

    def info(self, message: str) -> None:
        """Informational message. Suppressed by ``--quiet``."""
        if not self._quiet:
            self._diagnostic(message, "")

    def success(self, message: str) -> None:
        if not self._quiet:
            self._diagnostic(message, "green")

    def warning(self, message: str) -> None:
        """Warning. Never suppressed."""
        self._diagnostic(message, "yellow", prefix="Warning:")

    def error(self, message: str) -> None:
        """Error. Never suppressed."""
        self._diagnostic(message, "bold red", prefix="Error:")

    def debug(self, message: str) -> None:
        """Debug message, only with ``--verbose``."""
        if self._verbose:
            self._diagnostic(message, "dim", prefix="[debug]")

    def structured_error(self, error: StructuredError) -> None:
        """Report a classified transport failure on stderr.

        The one-line summary is always printed; the category, severity,
        retryability and context follow with ``--verbose``.
        """
        self.error(f"[{error.code}] {error.message}")
        if not self._verbose:
            return
        self.debug(
            f"category={error.category.value} severity={error.severity.value} "
            f"retryable={error.retryable}"
        )
        for key, value in error.context.items():
            self.debug(f"{key}: {value}")

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _diagnostic(self, message: str, style: str, prefix: str = "") -> None:
        if self._no_color or not style:
            text = f"{prefix} {message}" if prefix else message
            print(text, file=sys.stderr, flush=True)
            return
        label = f"[{style}]{escape(prefix)}[/{style}] " if prefix else ""
        body = escape(message) if prefix else f"[{style}]{escape(message)}[/{style}]"
        self._stderr.print(f"{label}{body}", highlight=False, markup=True)

    def _print_plain(self, data: Any) -> None:
        if isinstance(data, dict):
            for key, value in data.items():
                self.print_data(f"{key}\t{value}")
        elif isinstance(data, list):
            for item in data:
                if isinstance(item, dict):
                    self.print_data("\t".join(str(v) for v in item.values()))
                else:
                    self.print_data(str(item))
        else:
            self.print_data(str(data))


def _dumps(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """``NO_COLOR`` set (any value) or ``TERM=dumb``."""
    return os.environ.get("NO_COLOR") is not None or os.environ.get("TERM") == "dumb"


# ------------------------------------------------------------------ #
# Global output instance (set during app startup)
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the global :class:`OutputManager`, creating a default one lazily."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Drop the global :class:`OutputManager` (used between tests)."""
    global _output
    _output = None
