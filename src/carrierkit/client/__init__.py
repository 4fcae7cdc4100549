"""Carrier transport.

Provides :class:`Transport`, the resilient asynchronous client every
carrier call goes through, and :func:`create_default_transport`, which
wires it with the standard interceptor stack (request id, user agent, API
key, response validation, caching, retry marking, error translation).

Example::

    from carrierkit.client import create_default_transport

    async with create_default_transport(api_key=key) as transport:
        resp = await transport.call("AddressGeneral", "getCities")
"""

from carrierkit.client.factory import build_default_pipeline, create_default_transport
from carrierkit.client.transport import Transport, build_carrier_body, is_dependency_failure

__all__ = [
    "Transport",
    "build_carrier_body",
    "build_default_pipeline",
    "create_default_transport",
    "is_dependency_failure",
]
