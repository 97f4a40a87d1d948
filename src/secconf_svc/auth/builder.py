"""Snapshot builder - turns a DynamicConfig into a ConfigSnapshot.

Building never mutates anything that is already published. Failure
listeners that survive a reload are handed back together with their new
limits; the holder applies those only once the whole snapshot was built.
"""

from __future__ import annotations

import logging
import re
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from ..errors import ConfigurationError
from .aliases import AliasDirection, AliasRegistry
from .authenticator import AuthenticationBackend, AuthorizationBackend, HTTPAuthenticator
from .backends import BackendRegistry
from .blocking import Clock, KeyKind
from .config import AuthzDomainConfig, DomainSpec, DynamicConfig, FailureListenerConfig
from .http import HTTPBasicAuthenticator
from .limiting import RateLimiter, RateLimitSettings
from .snapshot import (
    AuthDomain,
    ConfigSnapshot,
    DashboardsSettings,
    OnBehalfOfSettings,
    frozen_multimap,
)

logger = logging.getLogger(__name__)

ListenerIdentity = tuple[str, str, str | None]  # (name, implementation id, backend id)


@dataclass
class BuildResult:
    """Everything the holder needs to publish one generation."""
    snapshot: ConfigSnapshot
    listeners: dict[ListenerIdentity, RateLimiter] = field(default_factory=dict)
    pending_settings: list[tuple[RateLimiter, RateLimitSettings]] = field(default_factory=list)


class SnapshotBuilder:
    """
    Builds snapshots from raw configuration.

    Args:
        aliases: alias table, built once at startup
        backends: constructor registry for implementation ids
        clock: time source handed to new failure listeners
    """

    def __init__(
        self,
        aliases: AliasRegistry,
        backends: BackendRegistry,
        clock: Clock = time.monotonic,
    ) -> None:
        self.aliases = aliases
        self.backends = backends
        self.clock = clock

    def build(
        self,
        config: DynamicConfig,
        generation: int,
        existing_listeners: Mapping[ListenerIdentity, RateLimiter] | None = None,
    ) -> BuildResult:
        """Resolve *config* into a snapshot.

        Raises:
            ConfigurationError: on unknown aliases, conflicting orders or
                malformed settings. Nothing is published in that case.
        """
        domains = self.build_chain(config.domains)
        rest_domains = tuple(d for d in domains if d.enabled)
        transport_domains = tuple(d for d in domains if d.transport_enabled)

        rest_authorizers, transport_authorizers = self.build_authorizers(config.authz)

        listeners: dict[ListenerIdentity, RateLimiter] = {}
        pending: list[tuple[RateLimiter, RateLimitSettings]] = []
        ip_listeners, backend_listeners = self._build_listeners(
            config.failure_listeners, existing_listeners or {}, listeners, pending
        )

        try:
            re.compile(config.xff.internal_proxies)
        except re.error as e:
            raise ConfigurationError(f"xff.internalProxies is not a valid regex: {e}") from e

        backend_registries = {
            backend: [listener.registry for listener in members]
            for backend, members in backend_listeners.items()
        }

        snapshot = ConfigSnapshot(
            generation=generation,
            rest_auth_domains=rest_domains,
            transport_auth_domains=transport_domains,
            rest_authorizers=rest_authorizers,
            transport_authorizers=transport_authorizers,
            anonymous_auth_enabled=config.anonymous_auth_enabled,
            xff_enabled=config.xff.enabled,
            internal_proxies=config.xff.internal_proxies,
            remote_ip_header=config.xff.remote_ip_header,
            rest_auth_disabled=config.disable_rest_auth,
            inter_transport_auth_disabled=config.disable_intertransport_auth,
            respect_request_indices_enabled=config.respect_request_indices_options,
            dnfof_enabled=config.do_not_fail_on_forbidden,
            dnfof_for_empty_results_enabled=config.do_not_fail_on_forbidden_empty,
            multi_rolespan_enabled=config.multi_rolespan_enabled,
            filtered_alias_mode=config.filtered_alias_mode,
            hosts_resolver_mode=config.hosts_resolver_mode,
            dashboards=DashboardsSettings.from_dict(config.dashboards),
            on_behalf_of=OnBehalfOfSettings.from_dict(config.on_behalf_of),
            ip_auth_failure_listeners=tuple(ip_listeners),
            auth_backend_failure_listeners=frozen_multimap(backend_listeners),
            ip_client_block_registries=tuple(l.registry for l in ip_listeners),
            auth_backend_client_block_registries=frozen_multimap(backend_registries),
        )
        return BuildResult(snapshot=snapshot, listeners=listeners, pending_settings=pending)

    # ------------------------------------------------------------------
    # Authentication chain
    # ------------------------------------------------------------------

    def build_chain(self, specs: Iterable[DomainSpec]) -> list[AuthDomain]:
        """Build and validate the ordered domain chain."""
        domains = [
            self.build_domain(spec)
            for spec in specs
            if spec.enabled or spec.transport_enabled
        ]
        _check_unique_order([d for d in domains if d.enabled], "http")
        _check_unique_order([d for d in domains if d.transport_enabled], "transport")
        domains.sort(key=lambda d: (d.order, d.name))
        return domains

    def build_domain(self, spec: DomainSpec) -> AuthDomain:
        name = spec.domain_name
        if isinstance(spec.order, bool) or not isinstance(spec.order, int):
            raise ConfigurationError(f"Domain {name}: order must be an integer, got {spec.order!r}")
        if not isinstance(spec.settings, Mapping):
            raise ConfigurationError(f"Domain {name}: settings must be a mapping")

        direction = self.aliases.direction_of(spec.alias)
        implementation_id = self.aliases.resolve(spec.alias, direction)

        if direction is AliasDirection.AUTHENTICATOR_HTTP:
            http_authenticator = self.backends.create(
                implementation_id, spec.settings, challenge=spec.challenge
            )
            backend_alias = spec.backend_alias or "intern_c"
            backend_id = self.aliases.resolve(
                AliasRegistry.alias_for(backend_alias, AliasDirection.AUTHENTICATOR_CREDENTIAL),
                AliasDirection.AUTHENTICATOR_CREDENTIAL,
            )
            backend = self.backends.create(backend_id, spec.backend_settings)
        elif direction is AliasDirection.AUTHENTICATOR_CREDENTIAL:
            if spec.backend_alias:
                raise ConfigurationError(
                    f"Domain {name}: {spec.alias} is a credential backend and cannot pair with {spec.backend_alias}"
                )
            http_authenticator = HTTPBasicAuthenticator(challenge=spec.challenge)
            backend_id = implementation_id
            backend = self.backends.create(backend_id, spec.settings)
        else:
            raise ConfigurationError(
                f"Domain {name}: {spec.alias} is an {direction.value} alias, not an authenticator"
            )

        if not isinstance(http_authenticator, HTTPAuthenticator):
            raise ConfigurationError(f"Domain {name}: {implementation_id} is not an HTTP authenticator")
        if not isinstance(backend, AuthenticationBackend):
            raise ConfigurationError(f"Domain {name}: {backend_id} is not an authentication backend")

        authorizer = None
        if spec.authorizer_alias:
            authorizer = self._build_authorizer(spec.authorizer_alias, spec.authorizer_settings, name)

        logger.debug(f"Built auth domain {name} (order={spec.order}, {implementation_id} + {backend_id})")
        return AuthDomain(
            name=name,
            order=spec.order,
            http_authenticator=http_authenticator,
            backend=backend,
            backend_id=backend_id,
            authorizer=authorizer,
            enabled=spec.enabled,
            transport_enabled=spec.transport_enabled,
            challenge=spec.challenge,
            description=spec.description,
        )

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def build_authorizers(
        self, configs: Iterable[AuthzDomainConfig]
    ) -> tuple[tuple[AuthorizationBackend, ...], tuple[AuthorizationBackend, ...]]:
        """Return (rest authorizers, transport authorizers)."""
        rest: list[AuthorizationBackend] = []
        transport: list[AuthorizationBackend] = []
        for authz in configs:
            if not (authz.http_enabled or authz.transport_enabled):
                continue
            authorizer = self._build_authorizer(authz.type, authz.settings, authz.name)
            if authz.http_enabled:
                rest.append(authorizer)
            if authz.transport_enabled:
                transport.append(authorizer)
        return tuple(rest), tuple(transport)

    def _build_authorizer(self, type_name: str, settings: Mapping, where: str) -> AuthorizationBackend:
        implementation_id = self.aliases.resolve_type(type_name, AliasDirection.AUTHORIZATION)
        authorizer = self.backends.create(implementation_id, settings)
        if not isinstance(authorizer, AuthorizationBackend):
            raise ConfigurationError(f"{where}: {implementation_id} is not an authorization backend")
        return authorizer

    # ------------------------------------------------------------------
    # Failure listeners and block registries
    # ------------------------------------------------------------------

    def _build_listeners(
        self,
        configs: Iterable[FailureListenerConfig],
        existing: Mapping[ListenerIdentity, RateLimiter],
        listeners: dict[ListenerIdentity, RateLimiter],
        pending: list[tuple[RateLimiter, RateLimitSettings]],
    ) -> tuple[list[RateLimiter], dict[str, list[RateLimiter]]]:
        ip_listeners: list[RateLimiter] = []
        backend_listeners: dict[str, list[RateLimiter]] = defaultdict(list)

        for listener_config in configs:
            implementation_id = self.aliases.resolve_type(
                listener_config.type, AliasDirection.FAILURE_LISTENER
            )
            backend_id = None
            if listener_config.authentication_backend:
                backend_id = self.aliases.resolve_type(
                    listener_config.authentication_backend, AliasDirection.AUTHENTICATOR_CREDENTIAL
                )
            settings = RateLimitSettings.from_settings(listener_config.settings)
            identity: ListenerIdentity = (listener_config.name, implementation_id, backend_id)

            listener = existing.get(identity)
            if listener is not None:
                pending.append((listener, settings))
                logger.debug(f"Keeping failure listener {listener_config.name} and its counters")
            else:
                listener = self.backends.create(
                    implementation_id,
                    listener_config.name,
                    settings,
                    authentication_backend=backend_id,
                    clock=self.clock,
                )
                if not isinstance(listener, RateLimiter):
                    raise ConfigurationError(
                        f"Failure listener {listener_config.name}: {implementation_id} is not a rate limiter"
                    )
                logger.info(f"Created failure listener {listener_config.name} ({implementation_id})")

            listeners[identity] = listener

            if backend_id is not None:
                backend_listeners[backend_id].append(listener)
            elif listener.key_kind is KeyKind.ADDRESS:
                ip_listeners.append(listener)
            else:
                raise ConfigurationError(
                    f"Failure listener {listener_config.name}: username based listeners "
                    "need an authentication_backend"
                )

        return ip_listeners, dict(backend_listeners)


def _check_unique_order(domains: list[AuthDomain], layer: str) -> None:
    seen: dict[int, str] = {}
    for domain in domains:
        other = seen.get(domain.order)
        if other is not None:
            raise ConfigurationError(
                f"Domains {other} and {domain.name} share {layer} order {domain.order}"
            )
        seen[domain.order] = domain.name
