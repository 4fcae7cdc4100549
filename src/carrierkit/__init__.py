"""carrierkit -- resilient asynchronous transport for shipping-carrier APIs.

Every call to a POST-JSON carrier API (Nova Poshta style
``{modelName, calledMethod, methodProperties}`` requests) flows through a
single :class:`~carrierkit.client.Transport` that applies sliding-window
rate limiting, an interceptor pipeline, a circuit breaker and retry with
exponential backoff, and reports every failure as a classified
:class:`~carrierkit.models.StructuredError`.

Typical use::

    from carrierkit.client import create_default_transport

    async with create_default_transport(api_key=key) as transport:
        response = await transport.call("AddressGeneral", "getCities")

Modules:
    client: The transport and its default wiring.
    resilience: Rate limiter, circuit breaker and retry policy.
    interceptors: Pipeline, cache and the built-in interceptors.
    errors: Error classifier and carrier error-code catalog.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and credential resolution.
    app: Typer CLI entry point.
"""

__version__ = "0.1.0"
