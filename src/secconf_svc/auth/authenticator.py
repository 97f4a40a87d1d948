"""Capability contracts for authenticators, credential backends and authorizers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping

from starlette.requests import Request

from ..errors import ConfigurationError


class AuthMethod(str, Enum):
    """Authentication method used."""
    BASIC = "basic"
    PROXY = "proxy"
    EXTENDED_PROXY = "extended-proxy"
    CLIENT_CERT = "clientcert"
    KERBEROS = "kerberos"
    JWT = "jwt"
    OPENID = "openid"
    SAML = "saml"
    TRANSPORT = "transport"
    ANONYMOUS = "anonymous"


ANONYMOUS_PRINCIPAL = "opendistro_security_anonymous"
ANONYMOUS_BACKEND_ROLE = "opendistro_security_anonymous_backendrole"


@dataclass(frozen=True, slots=True)
class AuthCredentials:
    """
    Credentials extracted from a request by an HTTP authenticator.

    ``complete`` is set by authenticators that validate the credentials
    themselves (JWT, Kerberos, proxy); the paired credential backend then
    only has to confirm the principal.
    """
    username: str
    password: str | None = field(default=None, repr=False)
    backend_roles: frozenset[str] = frozenset()
    attributes: dict[str, Any] = field(default_factory=dict)
    complete: bool = False


@dataclass(frozen=True, slots=True)
class AuthResult:
    """Result of an authentication attempt."""
    success: bool
    principal: str | None = None
    method: AuthMethod = AuthMethod.ANONYMOUS
    domain: str | None = None
    backend_roles: frozenset[str] = frozenset()
    roles: frozenset[str] = frozenset()
    attributes: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    blocked: bool = False
    challenges: tuple[tuple[str, str], ...] = ()

    @classmethod
    def authenticated(
        cls,
        principal: str,
        method: AuthMethod = AuthMethod.BASIC,
        backend_roles: frozenset[str] | set[str] | list[str] | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> AuthResult:
        """Create a successful authentication result."""
        return cls(
            success=True,
            principal=principal,
            method=method,
            backend_roles=frozenset(backend_roles or ()),
            attributes=attributes or {},
        )

    @classmethod
    def failed(cls, error: str, principal: str | None = None) -> AuthResult:
        """Create a failed authentication result."""
        return cls(success=False, principal=principal, error=error)

    @classmethod
    def anonymous(cls) -> AuthResult:
        """Create an anonymous authentication result."""
        return cls(
            success=True,
            principal=ANONYMOUS_PRINCIPAL,
            method=AuthMethod.ANONYMOUS,
            backend_roles=frozenset({ANONYMOUS_BACKEND_ROLE}),
        )

    @property
    def is_anonymous(self) -> bool:
        return self.success and self.method is AuthMethod.ANONYMOUS

    @property
    def effective_roles(self) -> frozenset[str]:
        """Backend roles from authentication plus roles from authorization."""
        return self.backend_roles | self.roles

    def evolve(self, **changes: Any) -> AuthResult:
        return replace(self, **changes)


class HTTPAuthenticator(ABC):
    """Extracts credentials from an HTTP request."""

    @property
    @abstractmethod
    def method(self) -> AuthMethod:
        """Return the authentication method this authenticator handles."""
        ...

    @abstractmethod
    async def extract_credentials(self, request: Request) -> AuthCredentials | None:
        """
        Pull credentials out of the request.

        Returns:
            AuthCredentials if the request carries credentials this
            authenticator understands, None if it does not apply (abstain).
        """
        ...

    def get_challenge_header(self) -> tuple[str, str] | None:
        """
        Return the WWW-Authenticate challenge header for this method.

        Returns:
            Tuple of (header_name, header_value), or None if no challenge.
        """
        return None


class AuthenticationBackend(ABC):
    """Verifies credentials and produces an authenticated principal."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name used to key per-backend failure listeners."""
        ...

    @abstractmethod
    async def authenticate(self, credentials: AuthCredentials) -> AuthResult | None:
        """
        Verify *credentials*.

        Returns:
            A successful or failed AuthResult, or None when the backend does
            not know the principal at all and the next domain should be tried.
        """
        ...


class AuthorizationBackend(ABC):
    """Looks up additional backend roles for an authenticated principal."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def fetch_roles(self, result: AuthResult) -> set[str]:
        """Return the roles this backend grants *result*'s principal."""
        ...


class CredentialsRejected(Exception):
    """Raised by an HTTP authenticator that found credentials and rejects them."""


def optional_str_setting(settings: Mapping[str, Any], key: str) -> str | None:
    """Read an optional string setting; ``None`` and a missing key mean unset."""
    value = settings.get(key)
    if value is not None and not isinstance(value, str):
        raise ConfigurationError(f"'{key}' must be a string, got {value!r}")
    return value or None


def bool_setting(settings: Mapping[str, Any], key: str, default: bool) -> bool:
    value = settings.get(key, default)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigurationError(f"'{key}' must be true or false, got {value!r}")
    return value
