"""Alias registry - maps short configuration aliases to backend implementations.

Configuration refers to backends by short type names (``basic``, ``intern``,
``ldap``, ``ip``). The type name plus a direction suffix forms the alias
(``basic_h``, ``intern_c``, ``ldap_z``, ``ip_authFailureListener``), which is
the stable external surface of the configuration format.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from ..errors import UnknownAliasError


class AliasDirection(str, Enum):
    """Which capability an alias resolves to."""
    AUTHENTICATOR_HTTP = "authenticator-http"
    AUTHENTICATOR_CREDENTIAL = "authenticator-credential"
    AUTHORIZATION = "authorization"
    FAILURE_LISTENER = "failure-listener"

    @property
    def suffix(self) -> str:
        return _SUFFIXES[self]


_SUFFIXES = {
    AliasDirection.AUTHENTICATOR_HTTP: "_h",
    AliasDirection.AUTHENTICATOR_CREDENTIAL: "_c",
    AliasDirection.AUTHORIZATION: "_z",
    AliasDirection.FAILURE_LISTENER: "_authFailureListener",
}


# Implementation identifiers. These are the keys of the backend registry.
INTERNAL_AUTHENTICATION = "internal.InternalAuthenticationBackend"
NOOP_AUTHENTICATION = "internal.NoOpAuthenticationBackend"
NOOP_AUTHORIZATION = "internal.NoOpAuthorizationBackend"
LDAP_AUTHENTICATION = "ldap.LDAPAuthenticationBackend"
LDAP_AUTHORIZATION = "ldap.LDAPAuthorizationBackend"
LDAP2_AUTHENTICATION = "ldap2.LDAPAuthenticationBackend2"
LDAP2_AUTHORIZATION = "ldap2.LDAPAuthorizationBackend2"
HTTP_BASIC = "http.HTTPBasicAuthenticator"
HTTP_PROXY = "http.HTTPProxyAuthenticator"
HTTP_EXTENDED_PROXY = "http.HTTPExtendedProxyAuthenticator"
HTTP_CLIENT_CERT = "http.HTTPClientCertAuthenticator"
HTTP_SPNEGO = "kerberos.HTTPSpnegoAuthenticator"
HTTP_JWT = "jwt.HTTPJwtAuthenticator"
HTTP_JWT_OIDC = "jwt.HTTPJwtKeyByOpenIdConnectAuthenticator"
HTTP_SAML = "saml.HTTPSamlAuthenticator"
ADDRESS_RATE_LIMITER = "limiting.AddressBasedRateLimiter"
USERNAME_RATE_LIMITER = "limiting.UserNameBasedRateLimiter"


@dataclass(frozen=True, slots=True)
class AliasBinding:
    """One alias -> implementation entry."""
    alias: str
    direction: AliasDirection
    implementation_id: str


BUILTIN_BINDINGS: tuple[AliasBinding, ...] = (
    AliasBinding("intern_c", AliasDirection.AUTHENTICATOR_CREDENTIAL, INTERNAL_AUTHENTICATION),
    AliasBinding("internal_c", AliasDirection.AUTHENTICATOR_CREDENTIAL, INTERNAL_AUTHENTICATION),
    AliasBinding("noop_c", AliasDirection.AUTHENTICATOR_CREDENTIAL, NOOP_AUTHENTICATION),
    AliasBinding("ldap_c", AliasDirection.AUTHENTICATOR_CREDENTIAL, LDAP_AUTHENTICATION),
    AliasBinding("ldap2_c", AliasDirection.AUTHENTICATOR_CREDENTIAL, LDAP2_AUTHENTICATION),
    AliasBinding("intern_z", AliasDirection.AUTHORIZATION, NOOP_AUTHORIZATION),
    AliasBinding("internal_z", AliasDirection.AUTHORIZATION, NOOP_AUTHORIZATION),
    AliasBinding("noop_z", AliasDirection.AUTHORIZATION, NOOP_AUTHORIZATION),
    AliasBinding("ldap_z", AliasDirection.AUTHORIZATION, LDAP_AUTHORIZATION),
    AliasBinding("ldap2_z", AliasDirection.AUTHORIZATION, LDAP2_AUTHORIZATION),
    AliasBinding("basic_h", AliasDirection.AUTHENTICATOR_HTTP, HTTP_BASIC),
    AliasBinding("proxy_h", AliasDirection.AUTHENTICATOR_HTTP, HTTP_PROXY),
    AliasBinding("extended-proxy_h", AliasDirection.AUTHENTICATOR_HTTP, HTTP_EXTENDED_PROXY),
    AliasBinding("clientcert_h", AliasDirection.AUTHENTICATOR_HTTP, HTTP_CLIENT_CERT),
    AliasBinding("kerberos_h", AliasDirection.AUTHENTICATOR_HTTP, HTTP_SPNEGO),
    AliasBinding("jwt_h", AliasDirection.AUTHENTICATOR_HTTP, HTTP_JWT),
    AliasBinding("openid_h", AliasDirection.AUTHENTICATOR_HTTP, HTTP_JWT_OIDC),
    AliasBinding("saml_h", AliasDirection.AUTHENTICATOR_HTTP, HTTP_SAML),
    AliasBinding("ip_authFailureListener", AliasDirection.FAILURE_LISTENER, ADDRESS_RATE_LIMITER),
    AliasBinding("username_authFailureListener", AliasDirection.FAILURE_LISTENER, USERNAME_RATE_LIMITER),
)


class AliasRegistry:
    """
    Immutable alias table.

    Built once at startup and handed to the snapshot builder. Lookups are
    pure and never touch the network or the filesystem.
    """

    def __init__(self, bindings: Iterable[AliasBinding]) -> None:
        tables: dict[AliasDirection, dict[str, str]] = {d: {} for d in AliasDirection}
        for binding in bindings:
            table = tables[binding.direction]
            existing = table.get(binding.alias)
            if existing is not None and existing != binding.implementation_id:
                raise ValueError(
                    f"Alias {binding.alias!r} bound twice for {binding.direction.value}"
                )
            table[binding.alias] = binding.implementation_id
        self._tables: Mapping[AliasDirection, Mapping[str, str]] = MappingProxyType(
            {d: MappingProxyType(t) for d, t in tables.items()}
        )

    def resolve(self, alias: str, direction: AliasDirection | None = None) -> str:
        """Return the implementation id for *alias*.

        With no direction every table is searched; aliases carry their
        direction suffix so the search is unambiguous for built-ins.
        """
        if direction is not None:
            try:
                return self._tables[direction][alias]
            except KeyError:
                raise UnknownAliasError(alias, direction.value) from None

        for table in self._tables.values():
            if alias in table:
                return table[alias]
        raise UnknownAliasError(alias)

    def resolve_type(self, type_name: str, direction: AliasDirection) -> str:
        """Resolve a short configuration type such as ``basic`` or ``ldap``."""
        return self.resolve(self.alias_for(type_name, direction), direction)

    @staticmethod
    def alias_for(type_name: str, direction: AliasDirection) -> str:
        if type_name.endswith(direction.suffix):
            return type_name
        return f"{type_name}{direction.suffix}"

    def direction_of(self, alias: str) -> AliasDirection:
        """Return the direction an alias is registered under."""
        for direction, table in self._tables.items():
            if alias in table:
                return direction
        raise UnknownAliasError(alias)

    def aliases(self, direction: AliasDirection | None = None) -> list[str]:
        if direction is not None:
            return sorted(self._tables[direction])
        return sorted(a for table in self._tables.values() for a in table)

    def __contains__(self, alias: object) -> bool:
        return any(alias in table for table in self._tables.values())

    def __iter__(self) -> Iterator[AliasBinding]:
        for direction, table in self._tables.items():
            for alias, implementation_id in table.items():
                yield AliasBinding(alias, direction, implementation_id)


def build_default_alias_registry(
    extra: Iterable[AliasBinding] = (),
) -> AliasRegistry:
    """Create the registry with the built-in aliases plus any *extra* bindings."""
    return AliasRegistry([*BUILTIN_BINDINGS, *extra])
