"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a failure class surfaced by the ``carrierkit`` CLI.
:class:`~carrierkit.exceptions.TransportError` picks its code from the
:class:`~carrierkit.models.ErrorCategory` of the structured error it
carries, so shell wrappers can tell an auth problem from a flaky network
without parsing stderr.

Example::

    $ carrierkit call Address.getCities -P FindByString=Kyiv
    $ echo $?
    6   # EXIT_NETWORK_ERROR -- retries exhausted or circuit open
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""The carrier rejected the credentials."""

EXIT_VALIDATION_ERROR = 4
"""The carrier rejected the request payload, or the response was malformed."""

EXIT_BUSINESS_ERROR = 5
"""The carrier answered ``success: false`` for a business rule."""

EXIT_NETWORK_ERROR = 6
"""A network-level failure (timeout, refused connection, HTTP error, open circuit)."""

EXIT_CONFIG_ERROR = 7
"""Configuration is missing or invalid."""
