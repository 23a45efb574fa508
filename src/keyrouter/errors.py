"""Exceptions raised by KeyRouter.

Routing itself never raises: malformed requests and catalogs degrade.
These cover the management surface (quota edits) and configuration files.
"""


class KeyRouterError(Exception):
    """Base class for KeyRouter errors."""


class QuotaValidationError(KeyRouterError, ValueError):
    """A quota management argument could not be parsed."""

    def __init__(self, field: str, value: object, detail: str = ""):
        self.field = field
        self.value = value
        message = f"Invalid {field} value: {value!r}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class HostConfigError(KeyRouterError):
    """The host configuration file exists but cannot be read."""


class PluginConfigError(KeyRouterError):
    """The KeyRouter settings file is invalid."""
