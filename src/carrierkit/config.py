"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for carrierkit:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.carrierkit/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Transport config** -- A :class:`~carrierkit.models.TransportConfig`
  assembled by :func:`load_transport_config` from explicit overrides,
  ``CARRIERKIT_*`` environment variables, a project-local
  ``carrierkit.json`` and the user's ``config.json``.
* **Validation** -- :func:`validate_transport_config` rejects settings the
  transport cannot honour.
* **Credential resolution** -- :func:`resolve_credential` reads the carrier
  API key from env vars, files, or an interactive prompt.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`).
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import ValidationError

from carrierkit.exceptions import ConfigError
from carrierkit.models import TransportConfig

_APP_NAME = "carrierkit"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "carrierkit.json"

DEFAULT_API_KEY_SOURCE = "env:NOVA_POSHTA_API_KEY"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _xdg_dir(env_var: str, default_segments: tuple[str, ...], fallback: str) -> Path:
    """Resolve ``$<env_var>/carrierkit`` (XDG) or ``~/.carrierkit/<fallback>``."""
    if _is_xdg_platform():
        env_value = os.environ.get(env_var, "")
        base = Path(env_value) if env_value else Path.home().joinpath(*default_segments)
        path = base / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
        if fallback:
            path = path / fallback
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/carrierkit/`` (default
    ``~/.config/carrierkit/``). On macOS/Windows: ``~/.carrierkit/``.
    """
    return _xdg_dir("XDG_CONFIG_HOME", (".config",), "")


def get_cache_dir() -> Path:
    """Return the response cache directory, creating it if necessary.

    Cached carrier responses can be safely deleted at any time.
    """
    return _xdg_dir("XDG_CACHE_HOME", (".cache",), "cache")


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary."""
    return _xdg_dir("XDG_DATA_HOME", (".local", "share"), "logs")


def config_file_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write *data* to *path* via a temp file in the same directory and ``os.replace``.

    On any failure the temp file is removed and the original file is left
    untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    handle = None
    tmp_path: Optional[str] = None
    try:
        handle = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = handle.name
        handle.write(data)
        handle.flush()
        os.fsync(handle.fileno())
        handle.close()
        handle = None
        os.replace(tmp_path, path)
    except BaseException:
        if handle is not None:
            handle.close()
        if tmp_path is not None and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


# --- Layers ---


def _read_json_file(path: Path, label: str) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid {label} at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid {label} at {path}: expected a JSON object")
    return data


def load_user_config() -> dict[str, Any]:
    """Raw settings from the user's ``config.json`` (empty if absent)."""
    return _read_json_file(config_file_path(), "user config")


def load_project_config() -> dict[str, Any]:
    """Raw settings from ``./carrierkit.json`` (empty if absent)."""
    return _read_json_file(Path.cwd() / _PROJECT_CONFIG_FILENAME, "project config")


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_rps(value: str) -> Optional[int]:
    if value.strip().lower() in ("", "0", "none", "off"):
        return None
    return int(value)


_ENV_FIELDS: dict[str, tuple[str, Callable[[str], Any]]] = {
    "CARRIERKIT_BASE_URL": ("base_url", str),
    "CARRIERKIT_TIMEOUT": ("timeout", float),
    "CARRIERKIT_MAX_RETRIES": ("max_retries", int),
    "CARRIERKIT_RPS": ("requests_per_second", _parse_rps),
    "CARRIERKIT_LOGGING": ("enable_logging", _parse_bool),
}


def load_env_config() -> dict[str, Any]:
    """Settings taken from ``CARRIERKIT_*`` environment variables.

    Raises:
        ConfigError: If a variable is set to a value of the wrong type.
    """
    settings: dict[str, Any] = {}
    for var, (field, parse) in _ENV_FIELDS.items():
        raw = os.environ.get(var)
        if raw is None:
            continue
        try:
            settings[field] = parse(raw)
        except ValueError as exc:
            raise ConfigError(f"Invalid value for {var}: {exc}") from exc
    return settings


# --- Transport config ---


def load_transport_config(overrides: Optional[dict[str, Any]] = None) -> TransportConfig:
    """Resolve the effective transport configuration.

    Precedence (high to low):
        1. *overrides* (e.g. CLI flags); ``None`` values are ignored
        2. Environment variables (``CARRIERKIT_BASE_URL``, ``CARRIERKIT_TIMEOUT``,
           ``CARRIERKIT_MAX_RETRIES``, ``CARRIERKIT_RPS``, ``CARRIERKIT_LOGGING``)
        3. Project config (``./carrierkit.json``)
        4. User config (``~/.config/carrierkit/config.json``)
        5. Defaults

    Returns:
        A validated, frozen :class:`TransportConfig`.

    Raises:
        ConfigError: If any layer is malformed or the merged result is
            invalid.
    """
    merged: dict[str, Any] = {}
    merged.update(load_user_config())
    merged.update(load_project_config())
    merged.update(load_env_config())
    merged.update({k: v for k, v in (overrides or {}).items() if v is not None})

    try:
        config = TransportConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid transport configuration: {exc}") from exc
    validate_transport_config(config)
    return config


def save_transport_config(config: TransportConfig) -> Path:
    """Persist *config* atomically as the user's ``config.json``.

    Returns:
        The path written.
    """
    path = config_file_path()
    _atomic_write(path, json.dumps(config.model_dump(mode="json"), indent=2) + "\n")
    return path


def validate_transport_config(config: TransportConfig) -> None:
    """Reject settings the transport cannot honour.

    Raises:
        ConfigError: Listing every problem found.
    """
    problems: list[str] = []
    if not config.base_url:
        problems.append("base_url must not be empty")
    if config.timeout < 1:
        problems.append("timeout must be at least 1 second")
    if config.max_retries < 0:
        problems.append("max_retries must not be negative")
    if config.retry_initial_delay < 0:
        problems.append("retry_initial_delay must not be negative")
    if config.retry_max_delay < config.retry_initial_delay:
        problems.append("retry_max_delay must not be below retry_initial_delay")
    if config.retry_backoff_multiplier < 1:
        problems.append("retry_backoff_multiplier must be at least 1")
    if not 0 <= config.retry_jitter < 1:
        problems.append("retry_jitter must be in [0, 1)")
    if config.requests_per_second is not None and config.requests_per_second < 1:
        problems.append("requests_per_second must be at least 1 (or unset)")
    if config.circuit_failure_threshold < 1:
        problems.append("circuit_failure_threshold must be at least 1")
    if config.circuit_success_threshold < 1:
        problems.append("circuit_success_threshold must be at least 1")
    if config.circuit_recovery_timeout < 0:
        problems.append("circuit_recovery_timeout must not be negative")
    if problems:
        raise ConfigError("Invalid transport configuration: " + "; ".join(problems))


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts interactively (requires a TTY)

    Raises:
        ConfigError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if not value:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigError(
                "Cannot prompt for credentials: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("Carrier API key: ")

    raise ConfigError(f"Unknown credential source format: {source}")
