"""Header based HTTP authenticators: basic, proxy, extended proxy, client cert."""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from starlette.requests import Request

from ..errors import ConfigurationError
from .authenticator import AuthCredentials, AuthMethod, HTTPAuthenticator, optional_str_setting

logger = logging.getLogger(__name__)

DEFAULT_REALM = "OpenSearch Security"


def xff_done(request: Request) -> bool:
    """True when the chain resolved the caller through a trusted proxy."""
    return bool(getattr(request.state, "xff_done", False))


def _split(value: str | None, separator: str) -> frozenset[str]:
    if not value:
        return frozenset()
    return frozenset(part.strip() for part in value.split(separator) if part.strip())


def _require_str(settings: Mapping[str, Any], key: str, default: str) -> str:
    value = settings.get(key, default)
    if not isinstance(value, str) or not value:
        raise ConfigurationError(f"'{key}' must be a non-empty string, got {value!r}")
    return value


@dataclass
class HTTPBasicAuthenticator(HTTPAuthenticator):
    """
    HTTP Basic authenticator.

    Only extracts ``username:password``; the paired credential backend
    verifies them.
    """
    challenge: bool = True
    realm: str = DEFAULT_REALM

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any], challenge: bool = True) -> HTTPBasicAuthenticator:
        return cls(challenge=challenge, realm=_require_str(settings, "realm", DEFAULT_REALM))

    @property
    def method(self) -> AuthMethod:
        return AuthMethod.BASIC

    async def extract_credentials(self, request: Request) -> AuthCredentials | None:
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.lower().startswith("basic "):
            return None

        try:
            decoded = base64.b64decode(auth_header[6:].strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            logger.debug(f"Invalid Basic authorization header: {e}")
            return None

        username, sep, password = decoded.partition(":")
        if not sep or not username:
            logger.debug("Basic authorization header without username or password")
            return None

        return AuthCredentials(username=username, password=password)

    def get_challenge_header(self) -> tuple[str, str] | None:
        if not self.challenge:
            return None
        return ("WWW-Authenticate", f'Basic realm="{self.realm}"')


@dataclass
class HTTPProxyAuthenticator(HTTPAuthenticator):
    """Trusts user and roles headers set by an authenticating reverse proxy."""
    user_header: str = "x-proxy-user"
    roles_header: str = "x-proxy-roles"
    roles_separator: str = ","

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any], challenge: bool = False) -> HTTPProxyAuthenticator:
        return cls(
            user_header=_require_str(settings, "user_header", "x-proxy-user"),
            roles_header=_require_str(settings, "roles_header", "x-proxy-roles"),
            roles_separator=_require_str(settings, "roles_separator", ","),
        )

    @property
    def method(self) -> AuthMethod:
        return AuthMethod.PROXY

    async def extract_credentials(self, request: Request) -> AuthCredentials | None:
        if not xff_done(request):
            logger.debug("Proxy headers ignored: request did not pass a trusted proxy")
            return None

        user = request.headers.get(self.user_header)
        if not user:
            return None

        return AuthCredentials(
            username=user,
            backend_roles=_split(request.headers.get(self.roles_header), self.roles_separator),
            complete=True,
        )


@dataclass
class HTTPExtendedProxyAuthenticator(HTTPProxyAuthenticator):
    """Proxy authenticator that also maps prefixed headers to user attributes."""
    attr_header_prefix: str | None = None

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any], challenge: bool = False) -> HTTPExtendedProxyAuthenticator:
        base = HTTPProxyAuthenticator.from_settings(settings)
        prefix = settings.get("attr_header_prefix")
        if prefix is not None and not isinstance(prefix, str):
            raise ConfigurationError(f"'attr_header_prefix' must be a string, got {prefix!r}")
        return cls(
            user_header=base.user_header,
            roles_header=base.roles_header,
            roles_separator=base.roles_separator,
            attr_header_prefix=prefix.lower() if prefix else None,
        )

    @property
    def method(self) -> AuthMethod:
        return AuthMethod.EXTENDED_PROXY

    async def extract_credentials(self, request: Request) -> AuthCredentials | None:
        credentials = await super().extract_credentials(request)
        if credentials is None or not self.attr_header_prefix:
            return credentials

        attributes = {
            f"attr.proxy.{name[len(self.attr_header_prefix):]}": value
            for name, value in request.headers.items()
            if name.startswith(self.attr_header_prefix)
        }
        return AuthCredentials(
            username=credentials.username,
            backend_roles=credentials.backend_roles,
            attributes=attributes,
            complete=True,
        )


@dataclass
class HTTPClientCertAuthenticator(HTTPAuthenticator):
    """
    Client certificate authenticator.

    The TLS terminator forwards the verified subject DN in ``dn_header``;
    the principal is the DN itself or one of its attributes.
    """
    dn_header: str = "x-ssl-client-dn"
    username_attribute: str | None = None
    roles_attribute: str | None = None

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any], challenge: bool = False) -> HTTPClientCertAuthenticator:
        return cls(
            dn_header=_require_str(settings, "dn_header", "x-ssl-client-dn"),
            username_attribute=optional_str_setting(settings, "username_attribute"),
            roles_attribute=optional_str_setting(settings, "roles_attribute"),
        )

    @property
    def method(self) -> AuthMethod:
        return AuthMethod.CLIENT_CERT

    async def extract_credentials(self, request: Request) -> AuthCredentials | None:
        dn = request.headers.get(self.dn_header)
        if not dn:
            return None

        rdns = _parse_dn(dn)
        username = dn
        if self.username_attribute:
            values = rdns.get(self.username_attribute.lower())
            if not values:
                logger.debug(f"Client DN {dn!r} has no {self.username_attribute} attribute")
                return None
            username = values[0]

        roles: frozenset[str] = frozenset()
        if self.roles_attribute:
            roles = frozenset(rdns.get(self.roles_attribute.lower(), ()))

        return AuthCredentials(username=username, backend_roles=roles, complete=True)


def _parse_dn(dn: str) -> dict[str, list[str]]:
    """Split ``CN=a,OU=b,OU=c`` into ``{"cn": ["a"], "ou": ["b", "c"]}``."""
    parsed: dict[str, list[str]] = {}
    for rdn in dn.split(","):
        key, sep, value = rdn.partition("=")
        if sep:
            parsed.setdefault(key.strip().lower(), []).append(value.strip())
    return parsed
