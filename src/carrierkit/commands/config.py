"""Config commands -- inspect the resolved transport configuration.

``carrierkit config show`` prints the effective
:class:`~carrierkit.models.TransportConfig` after all precedence layers,
``carrierkit config path`` prints where the user file lives, and
``carrierkit config set`` updates one field of the user file.
"""

from __future__ import annotations

import json

import typer

from carrierkit.exceptions import ConfigError
from carrierkit.output import OutputFormat, get_output

config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration.

    Example::

        carrierkit config show
        carrierkit --json config show
    """
    from carrierkit.config import config_file_path, load_transport_config

    output = get_output()
    try:
        config = load_transport_config()
    except ConfigError as exc:
        output.error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    output.info(f"Config file: {config_file_path()}")
    values = config.model_dump(mode="json")
    if output.format == OutputFormat.JSON:
        output.format_response(values)
        return
    rows = [
        [key, json.dumps(value) if isinstance(value, dict) else str(value)]
        for key, value in values.items()
    ]
    output.print_table(["Setting", "Value"], rows, title="Transport configuration")


@config_app.command("path")
def config_path() -> None:
    """Print the path of the user configuration file."""
    from carrierkit.config import config_file_path

    get_output().print_data(str(config_file_path()))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="TransportConfig field, e.g. 'timeout'."),
    value: str = typer.Argument(help="New value; parsed to the field's type."),
) -> None:
    """Set one field in the user configuration file.

    Example::

        carrierkit config set timeout 10
        carrierkit config set requests_per_second 5
    """
    from pydantic import ValidationError

    from carrierkit.config import (
        load_user_config,
        save_transport_config,
        validate_transport_config,
    )
    from carrierkit.models import TransportConfig

    output = get_output()
    if key not in TransportConfig.model_fields or key == "headers":
        output.error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    try:
        data = {**load_user_config(), key: value}
        config = TransportConfig.model_validate(data)
        validate_transport_config(config)
    except ValidationError as exc:
        output.error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None
    except ConfigError as exc:
        output.error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    save_transport_config(config)
    output.success(f"Set {key} = {getattr(config, key)}")
