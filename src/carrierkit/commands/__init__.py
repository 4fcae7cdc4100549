"""Built-in CLI sub-commands for carrierkit.

* :mod:`~carrierkit.commands.call` -- send one carrier request.
* :mod:`~carrierkit.commands.config` -- inspect and update configuration.
"""
