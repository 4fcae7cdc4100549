"""``carrierkit call`` -- send one carrier request from the command line.

Example::

    carrierkit call AddressGeneral.getCities -P FindByString=Kyiv -P Limit=5
    carrierkit --json call CommonGeneral.getCargoTypes --no-cache
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import typer

from carrierkit.exceptions import CarrierKitError, InvalidUsageError, TransportError
from carrierkit.models import TransportResponse
from carrierkit.output import get_output


def parse_target(target: str) -> tuple[str, str]:
    """Split ``MODEL.METHOD`` into its two parts.

    Raises:
        InvalidUsageError: If either part is missing.
    """
    model_name, sep, called_method = target.partition(".")
    if not sep or not model_name or not called_method:
        raise InvalidUsageError(f"Expected MODEL.METHOD, got: {target!r}")
    return model_name, called_method


def parse_params(pairs: list[str]) -> dict[str, Any]:
    """Turn ``key=value`` strings into ``methodProperties``.

    Raises:
        InvalidUsageError: If a pair has no ``=`` or an empty key.
    """
    params: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise InvalidUsageError(f"Expected key=value, got: {pair!r}")
        params[key] = value
    return params


async def _send(
    model_name: str,
    called_method: str,
    params: dict[str, Any],
    *,
    api_key: Optional[str],
    base_url: Optional[str],
    use_cache: bool,
    language: str,
) -> TransportResponse:
    from carrierkit.client import create_default_transport
    from carrierkit.config import get_cache_dir, load_transport_config

    config = load_transport_config({"base_url": base_url})
    transport = create_default_transport(
        config,
        api_key=api_key,
        cache_dir=get_cache_dir() if use_cache else None,
        use_cache=use_cache,
        language=language,
    )
    async with transport:
        return await transport.call(model_name, called_method, params)


def _resolve_api_key(source: Optional[str]) -> Optional[str]:
    """Resolve an explicit ``--api-key-source``, else try the default quietly."""
    from carrierkit.config import DEFAULT_API_KEY_SOURCE, resolve_credential

    if source is not None:
        return resolve_credential(source)
    try:
        return resolve_credential(DEFAULT_API_KEY_SOURCE)
    except CarrierKitError as exc:
        get_output().debug(f"No API key: {exc}")
        return None


def call_command(
    target: str = typer.Argument(help="Carrier call as MODEL.METHOD, e.g. AddressGeneral.getCities."),
    param: list[str] = typer.Option(
        [], "--param", "-P", help="Method property as key=value (repeatable)."
    ),
    api_key_source: Optional[str] = typer.Option(
        None,
        "--api-key-source",
        help="Credential source: env:VAR, file:/path or prompt. "
        "Defaults to env:NOVA_POSHTA_API_KEY when set.",
    ),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Override the endpoint."),
    no_cache: bool = typer.Option(False, "--no-cache", help="Bypass the response cache."),
    language: str = typer.Option(
        "en", "--language", "-l", help="Language of error messages: en, ua or ru."
    ),
) -> None:
    """Send one request to the carrier and print the response payload."""
    output = get_output()
    try:
        model_name, called_method = parse_target(target)
        params = parse_params(param)
        api_key = _resolve_api_key(api_key_source)
        response = asyncio.run(
            _send(
                model_name,
                called_method,
                params,
                api_key=api_key,
                base_url=base_url,
                use_cache=not no_cache,
                language=language,
            )
        )
    except TransportError as exc:
        output.structured_error(exc.error)
        raise typer.Exit(code=exc.exit_code) from None
    except CarrierKitError as exc:
        output.error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    output.print_transport_response(response)
