"""Resolved configuration - one immutable generation of the security config."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from ..errors import ConfigurationError
from .authenticator import AuthenticationBackend, AuthorizationBackend, HTTPAuthenticator
from .blocking import ClientBlockRegistry
from .limiting import FailureListener


def _str_setting(data: Mapping[str, Any], key: str, default: str | None, where: str) -> str | None:
    """Missing and null fall back to *default*; anything but a string is rejected."""
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ConfigurationError(f"{where}.{key} must be a string, got {value!r}")
    return value


@dataclass(frozen=True, slots=True)
class AuthDomain:
    """One configured authenticator/backend pairing, evaluated by order."""
    name: str
    order: int
    http_authenticator: HTTPAuthenticator
    backend: AuthenticationBackend
    backend_id: str = ""
    authorizer: AuthorizationBackend | None = None
    enabled: bool = True
    transport_enabled: bool = True
    challenge: bool = True
    description: str = ""

    @property
    def backend_name(self) -> str:
        return self.backend.name


class SignInOption(str, Enum):
    """Login methods offered by the dashboards login page."""
    BASIC = "BASIC"
    SAML = "SAML"
    OPENID = "OPENID"
    ANONYMOUS = "ANONYMOUS"


@dataclass(frozen=True, slots=True)
class DashboardsSettings:
    """Passthrough settings for the dashboards application."""
    multitenancy_enabled: bool = True
    private_tenant_enabled: bool = True
    default_tenant: str = ""
    server_username: str = "kibanaserver"
    opendistro_role: str | None = None
    index: str = ".kibana"
    sign_in_options: tuple[SignInOption, ...] = (SignInOption.BASIC,)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DashboardsSettings:
        options: list[SignInOption] = []
        for raw in data.get("sign_in_options", ["BASIC"]) or []:
            try:
                options.append(SignInOption(str(raw).upper()))
            except ValueError:
                raise ConfigurationError(f"Unknown dashboards sign-in option {raw!r}") from None

        for key in ("multitenancy_enabled", "private_tenant_enabled"):
            if key in data and not isinstance(data[key], bool):
                raise ConfigurationError(f"kibana.{key} must be a boolean")

        return cls(
            multitenancy_enabled=data.get("multitenancy_enabled", True),
            private_tenant_enabled=data.get("private_tenant_enabled", True),
            default_tenant=_str_setting(data, "default_tenant", "", "kibana"),
            server_username=_str_setting(data, "server_username", "kibanaserver", "kibana"),
            opendistro_role=_str_setting(data, "opendistro_role", None, "kibana"),
            index=_str_setting(data, "index", ".kibana", "kibana"),
            sign_in_options=tuple(options),
        )


@dataclass(frozen=True, slots=True)
class OnBehalfOfSettings:
    """Settings for issuing short-lived delegated credentials."""
    enabled: bool = False
    signing_key: str | None = field(default=None, repr=False)
    encryption_key: str | None = field(default=None, repr=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OnBehalfOfSettings:
        enabled = data.get("enabled", False)
        if not isinstance(enabled, bool):
            raise ConfigurationError("on_behalf_of.enabled must be a boolean")
        settings = cls(
            enabled=enabled,
            signing_key=_str_setting(data, "signing_key", None, "on_behalf_of"),
            encryption_key=_str_setting(data, "encryption_key", None, "on_behalf_of"),
        )
        if settings.enabled and not settings.signing_key:
            raise ConfigurationError("on_behalf_of is enabled but no signing_key is set")
        return settings

    def as_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "signing_key": self.signing_key,
            "encryption_key": self.encryption_key,
        }


def frozen_multimap(data: Mapping[str, list[Any]]) -> Mapping[str, tuple[Any, ...]]:
    return MappingProxyType({k: tuple(v) for k, v in data.items()})


@dataclass(frozen=True, slots=True)
class ConfigSnapshot:
    """
    One published generation of the dynamic security configuration.

    Read it once per request and take every value from that reference;
    the holder swaps whole snapshots, never individual fields.
    """
    generation: int = 0
    rest_auth_domains: tuple[AuthDomain, ...] = ()
    transport_auth_domains: tuple[AuthDomain, ...] = ()
    rest_authorizers: tuple[AuthorizationBackend, ...] = ()
    transport_authorizers: tuple[AuthorizationBackend, ...] = ()
    anonymous_auth_enabled: bool = False
    xff_enabled: bool = False
    internal_proxies: str = ""
    remote_ip_header: str = "X-Forwarded-For"
    rest_auth_disabled: bool = False
    inter_transport_auth_disabled: bool = False
    respect_request_indices_enabled: bool = False
    dnfof_enabled: bool = False
    dnfof_for_empty_results_enabled: bool = False
    multi_rolespan_enabled: bool = True
    filtered_alias_mode: str = "warn"
    hosts_resolver_mode: str = "ip-only"
    dashboards: DashboardsSettings = field(default_factory=DashboardsSettings)
    on_behalf_of: OnBehalfOfSettings = field(default_factory=OnBehalfOfSettings)
    ip_auth_failure_listeners: tuple[FailureListener, ...] = ()
    auth_backend_failure_listeners: Mapping[str, tuple[FailureListener, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    ip_client_block_registries: tuple[ClientBlockRegistry, ...] = ()
    auth_backend_client_block_registries: Mapping[str, tuple[ClientBlockRegistry, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def sign_in_options(self) -> tuple[SignInOption, ...]:
        return self.dashboards.sign_in_options

    def failure_listeners_for(self, backend_id: str) -> tuple[FailureListener, ...]:
        return self.auth_backend_failure_listeners.get(backend_id, ())

    def block_registries_for(self, backend_id: str) -> tuple[ClientBlockRegistry, ...]:
        return self.auth_backend_client_block_registries.get(backend_id, ())

    def describe(self) -> dict[str, Any]:
        """Secret-free summary for the management API."""
        return {
            "generation": self.generation,
            "rest_auth_domains": [
                {
                    "name": d.name,
                    "order": d.order,
                    "method": d.http_authenticator.method.value,
                    "backend": d.backend_name,
                    "transport_enabled": d.transport_enabled,
                }
                for d in self.rest_auth_domains
            ],
            "transport_auth_domains": [d.name for d in self.transport_auth_domains],
            "rest_authorizers": [a.name for a in self.rest_authorizers],
            "anonymous_auth_enabled": self.anonymous_auth_enabled,
            "xff_enabled": self.xff_enabled,
            "remote_ip_header": self.remote_ip_header,
            "rest_auth_disabled": self.rest_auth_disabled,
            "inter_transport_auth_disabled": self.inter_transport_auth_disabled,
            "multi_rolespan_enabled": self.multi_rolespan_enabled,
            "dashboards": {
                "multitenancy_enabled": self.dashboards.multitenancy_enabled,
                "private_tenant_enabled": self.dashboards.private_tenant_enabled,
                "default_tenant": self.dashboards.default_tenant,
                "server_username": self.dashboards.server_username,
                "opendistro_role": self.dashboards.opendistro_role,
                "index": self.dashboards.index,
                "sign_in_options": [o.value for o in self.sign_in_options],
            },
            "on_behalf_of_enabled": self.on_behalf_of.enabled,
            "ip_auth_failure_listeners": [l.name for l in self.ip_auth_failure_listeners],
            "auth_backend_failure_listeners": {
                backend: [l.name for l in listeners]
                for backend, listeners in self.auth_backend_failure_listeners.items()
            },
        }
