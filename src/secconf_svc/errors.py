"""Exceptions raised while building and publishing security configuration."""

from __future__ import annotations


class SecconfError(Exception):
    """Base class for all secconf errors."""


class ConfigurationError(SecconfError):
    """The dynamic security configuration could not be turned into a snapshot.

    Raised for unknown aliases, conflicting domain orders and malformed
    per-domain settings. Nothing is published when this is raised.
    """


class UnknownAliasError(ConfigurationError):
    """An alias is not present in the alias registry."""

    def __init__(self, alias: str, direction: str | None = None) -> None:
        self.alias = alias
        self.direction = direction
        if direction:
            super().__init__(f"Unknown {direction} alias: {alias!r}")
        else:
            super().__init__(f"Unknown alias: {alias!r}")
