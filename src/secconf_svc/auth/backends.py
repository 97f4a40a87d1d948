"""Backend registry - implementation ids to constructors.

The alias registry turns configuration aliases into implementation ids; this
registry turns implementation ids into live objects. Built-in backends are
registered by ``default_backend_registry``; backends that talk to external
systems (LDAP, SAML) are registered by whoever ships them.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from ..errors import ConfigurationError
from . import aliases
from .http import (
    HTTPBasicAuthenticator,
    HTTPClientCertAuthenticator,
    HTTPExtendedProxyAuthenticator,
    HTTPProxyAuthenticator,
)
from .internal import InternalAuthenticationBackend, NoOpAuthenticationBackend, NoOpAuthorizationBackend
from .jwt import HTTPJwtAuthenticator, HTTPJwtKeyByOpenIdConnectAuthenticator
from .kerberos import HTTPSpnegoAuthenticator
from .limiting import AddressBasedRateLimiter, UserNameBasedRateLimiter

logger = logging.getLogger(__name__)

BackendFactory = Callable[..., Any]


class BackendRegistry:
    """Registry of backend constructors keyed by implementation id."""

    def __init__(self) -> None:
        self._factories: dict[str, BackendFactory] = {}

    def register(self, implementation_id: str, factory: BackendFactory) -> None:
        """Register (or replace) the constructor for *implementation_id*."""
        if implementation_id in self._factories:
            logger.info(f"Replacing backend factory for {implementation_id}")
        self._factories[implementation_id] = factory

    def has(self, implementation_id: str) -> bool:
        return implementation_id in self._factories

    def all_ids(self) -> list[str]:
        return sorted(self._factories)

    def create(self, implementation_id: str, *args: Any, **kwargs: Any) -> Any:
        """
        Construct the backend registered under *implementation_id*.

        Raises:
            ConfigurationError: nothing is registered, or the factory rejected
                its settings.
        """
        factory = self._factories.get(implementation_id)
        if factory is None:
            raise ConfigurationError(f"No implementation available for {implementation_id}")
        try:
            return factory(*args, **kwargs)
        except ConfigurationError:
            raise
        except (TypeError, ValueError, KeyError) as e:
            raise ConfigurationError(f"Invalid settings for {implementation_id}: {e}") from e


def default_backend_registry() -> BackendRegistry:
    """Create a registry with every backend that ships with this package."""
    registry = BackendRegistry()
    registry.register(aliases.INTERNAL_AUTHENTICATION, InternalAuthenticationBackend.from_settings)
    registry.register(aliases.NOOP_AUTHENTICATION, NoOpAuthenticationBackend.from_settings)
    registry.register(aliases.NOOP_AUTHORIZATION, NoOpAuthorizationBackend.from_settings)
    registry.register(aliases.HTTP_BASIC, HTTPBasicAuthenticator.from_settings)
    registry.register(aliases.HTTP_PROXY, HTTPProxyAuthenticator.from_settings)
    registry.register(aliases.HTTP_EXTENDED_PROXY, HTTPExtendedProxyAuthenticator.from_settings)
    registry.register(aliases.HTTP_CLIENT_CERT, HTTPClientCertAuthenticator.from_settings)
    registry.register(aliases.HTTP_SPNEGO, HTTPSpnegoAuthenticator.from_settings)
    registry.register(aliases.HTTP_JWT, HTTPJwtAuthenticator.from_settings)
    registry.register(aliases.HTTP_JWT_OIDC, HTTPJwtKeyByOpenIdConnectAuthenticator.from_settings)
    registry.register(aliases.ADDRESS_RATE_LIMITER, AddressBasedRateLimiter)
    registry.register(aliases.USERNAME_RATE_LIMITER, UserNameBasedRateLimiter)
    return registry
