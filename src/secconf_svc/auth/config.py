"""Dynamic security configuration payload.

Plain dataclasses mirroring the ``config.dynamic`` section of the security
configuration file. Nothing here is resolved yet; the snapshot builder turns
these into live backends.

```yaml
config:
  dynamic:
    http:
      anonymous_auth_enabled: false
      xff:
        enabled: true
        internalProxies: '192\\.168\\.0\\.10|192\\.168\\.0\\.11'
        remoteIpHeader: 'x-forwarded-for'
    authc:
      basic_internal_auth_domain:
        http_enabled: true
        transport_enabled: true
        order: 1
        http_authenticator:
          type: basic
          challenge: true
        authentication_backend:
          type: intern
    auth_failure_listeners:
      ip_rate_limiting:
        type: ip
        allowed_tries: 10
```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from ..errors import ConfigurationError
from .aliases import AliasDirection, AliasRegistry

DEFAULT_INTERNAL_PROXIES = (
    r"10\.\d{1,3}\.\d{1,3}\.\d{1,3}|192\.168\.\d{1,3}\.\d{1,3}|169\.254\.\d{1,3}\.\d{1,3}"
    r"|127\.\d{1,3}\.\d{1,3}\.\d{1,3}|172\.1[6-9]\.\d{1,3}\.\d{1,3}|172\.2[0-9]\.\d{1,3}\.\d{1,3}"
    r"|172\.3[0-1]\.\d{1,3}\.\d{1,3}|::1|0:0:0:0:0:0:0:1"
)


def _get(data: Mapping[str, Any], key: str, kind: type | tuple[type, ...], default: Any, where: str) -> Any:
    """Read *key* from *data*, failing with ConfigurationError on a wrong type."""
    value = data.get(key, default)
    if value is None:
        return default
    if kind is int and isinstance(value, bool):
        raise ConfigurationError(f"{where}.{key} must be an integer, got {value!r}")
    if not isinstance(value, kind):
        expected = kind.__name__ if isinstance(kind, type) else "/".join(k.__name__ for k in kind)
        raise ConfigurationError(f"{where}.{key} must be {expected}, got {value!r}")
    return value


def _section(data: Mapping[str, Any], key: str, where: str) -> dict[str, Any]:
    return dict(_get(data, key, dict, {}, where))


@dataclass
class DomainSpec:
    """
    One authentication domain as the chain builder consumes it.

    ``alias`` is either an HTTP authenticator alias (``basic_h``) paired with
    ``backend_alias``, or a credential backend alias (``ldap_c``) for which
    HTTP Basic extraction is used.
    """
    alias: str
    settings: dict[str, Any] = field(default_factory=dict)
    order: int = 0
    enabled: bool = True
    name: str | None = None
    transport_enabled: bool = True
    challenge: bool = True
    backend_alias: str | None = None
    backend_settings: dict[str, Any] = field(default_factory=dict)
    authorizer_alias: str | None = None
    authorizer_settings: dict[str, Any] = field(default_factory=dict)
    description: str = ""

    @property
    def domain_name(self) -> str:
        return self.name or f"{self.alias}@{self.order}"


@dataclass
class AuthzDomainConfig:
    """One entry of the ``authz`` section."""
    name: str
    type: str = "noop"
    settings: dict[str, Any] = field(default_factory=dict)
    http_enabled: bool = True
    transport_enabled: bool = True
    description: str = ""


@dataclass
class FailureListenerConfig:
    """One entry of the ``auth_failure_listeners`` section."""
    name: str
    type: str
    authentication_backend: str | None = None
    settings: dict[str, Any] = field(default_factory=dict)


@dataclass
class XffConfig:
    """X-Forwarded-For handling."""
    enabled: bool = False
    internal_proxies: str = DEFAULT_INTERNAL_PROXIES
    remote_ip_header: str = "X-Forwarded-For"


@dataclass
class DynamicConfig:
    """The whole ``config.dynamic`` section."""
    anonymous_auth_enabled: bool = False
    xff: XffConfig = field(default_factory=XffConfig)
    domains: list[DomainSpec] = field(default_factory=list)
    authz: list[AuthzDomainConfig] = field(default_factory=list)
    failure_listeners: list[FailureListenerConfig] = field(default_factory=list)
    disable_rest_auth: bool = False
    disable_intertransport_auth: bool = False
    respect_request_indices_options: bool = False
    do_not_fail_on_forbidden: bool = False
    do_not_fail_on_forbidden_empty: bool = False
    multi_rolespan_enabled: bool = True
    hosts_resolver_mode: str = "ip-only"
    filtered_alias_mode: str = "warn"
    dashboards: dict[str, Any] = field(default_factory=dict)
    on_behalf_of: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> DynamicConfig:
        """Create config from dictionary.

        Accepts the full document (``{"config": {"dynamic": ...}}``) or the
        ``dynamic`` section on its own.
        """
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ConfigurationError("security configuration must be a mapping")
        if "config" in data:
            data = _section(data, "config", "root")
        if "dynamic" in data:
            data = _section(data, "dynamic", "config")

        http = _section(data, "http", "dynamic")
        xff_data = _section(http, "xff", "http")

        return cls(
            anonymous_auth_enabled=_get(http, "anonymous_auth_enabled", bool, False, "http"),
            xff=XffConfig(
                enabled=_get(xff_data, "enabled", bool, False, "xff"),
                internal_proxies=_get(xff_data, "internalProxies", str, DEFAULT_INTERNAL_PROXIES, "xff"),
                remote_ip_header=_get(xff_data, "remoteIpHeader", str, "X-Forwarded-For", "xff"),
            ),
            domains=[
                _parse_authc_domain(name, entry)
                for name, entry in _section(data, "authc", "dynamic").items()
            ],
            authz=[
                _parse_authz_domain(name, entry)
                for name, entry in _section(data, "authz", "dynamic").items()
            ],
            failure_listeners=[
                _parse_failure_listener(name, entry)
                for name, entry in _section(data, "auth_failure_listeners", "dynamic").items()
            ],
            disable_rest_auth=_get(data, "disable_rest_auth", bool, False, "dynamic"),
            disable_intertransport_auth=_get(data, "disable_intertransport_auth", bool, False, "dynamic"),
            respect_request_indices_options=_get(data, "respect_request_indices_options", bool, False, "dynamic"),
            do_not_fail_on_forbidden=_get(data, "do_not_fail_on_forbidden", bool, False, "dynamic"),
            do_not_fail_on_forbidden_empty=_get(data, "do_not_fail_on_forbidden_empty", bool, False, "dynamic"),
            multi_rolespan_enabled=_get(data, "multi_rolespan_enabled", bool, True, "dynamic"),
            hosts_resolver_mode=_get(data, "hosts_resolver_mode", str, "ip-only", "dynamic"),
            filtered_alias_mode=_get(data, "filtered_alias_mode", str, "warn", "dynamic"),
            dashboards=_section(data, "kibana", "dynamic"),
            on_behalf_of=_section(data, "on_behalf_of", "dynamic"),
        )


def _parse_authc_domain(name: str, entry: Any) -> DomainSpec:
    where = f"authc.{name}"
    if not isinstance(entry, Mapping):
        raise ConfigurationError(f"{where} must be a mapping")

    http_auth = _section(entry, "http_authenticator", where)
    backend = _section(entry, "authentication_backend", where)
    authorizer = _section(entry, "authorization_backend", where)

    return DomainSpec(
        name=name,
        alias=AliasRegistry.alias_for(
            _get(http_auth, "type", str, "basic", f"{where}.http_authenticator"),
            AliasDirection.AUTHENTICATOR_HTTP,
        ),
        settings=_section(http_auth, "config", f"{where}.http_authenticator"),
        challenge=_get(http_auth, "challenge", bool, True, f"{where}.http_authenticator"),
        order=_get(entry, "order", int, 0, where),
        enabled=_get(entry, "http_enabled", bool, True, where),
        transport_enabled=_get(entry, "transport_enabled", bool, True, where),
        backend_alias=AliasRegistry.alias_for(
            _get(backend, "type", str, "intern", f"{where}.authentication_backend"),
            AliasDirection.AUTHENTICATOR_CREDENTIAL,
        ),
        backend_settings=_section(backend, "config", f"{where}.authentication_backend"),
        authorizer_alias=_get(authorizer, "type", str, None, f"{where}.authorization_backend"),
        authorizer_settings=_section(authorizer, "config", f"{where}.authorization_backend"),
        description=_get(entry, "description", str, "", where),
    )


def _parse_authz_domain(name: str, entry: Any) -> AuthzDomainConfig:
    where = f"authz.{name}"
    if not isinstance(entry, Mapping):
        raise ConfigurationError(f"{where} must be a mapping")
    backend = _section(entry, "authorization_backend", where)
    return AuthzDomainConfig(
        name=name,
        type=_get(backend, "type", str, "noop", f"{where}.authorization_backend"),
        settings=_section(backend, "config", f"{where}.authorization_backend"),
        http_enabled=_get(entry, "http_enabled", bool, True, where),
        transport_enabled=_get(entry, "transport_enabled", bool, True, where),
        description=_get(entry, "description", str, "", where),
    )


def _parse_failure_listener(name: str, entry: Any) -> FailureListenerConfig:
    where = f"auth_failure_listeners.{name}"
    if not isinstance(entry, Mapping):
        raise ConfigurationError(f"{where} must be a mapping")
    settings = dict(entry)
    listener_type = settings.pop("type", None)
    if not isinstance(listener_type, str) or not listener_type:
        raise ConfigurationError(f"{where}.type is required")
    backend = settings.pop("authentication_backend", None)
    if backend is not None and not isinstance(backend, str):
        raise ConfigurationError(f"{where}.authentication_backend must be a string")
    return FailureListenerConfig(
        name=name,
        type=listener_type,
        authentication_backend=backend,
        settings=settings,
    )
