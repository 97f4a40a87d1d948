"""Authentication chain - evaluates the published auth domains for a request."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from starlette.requests import Request

from .authenticator import (
    AuthCredentials,
    AuthMethod,
    AuthorizationBackend,
    AuthResult,
    CredentialsRejected,
)
from .authorization import aggregate_roles
from .blocking import KeyKind
from .holder import DynamicConfigHolder
from .snapshot import AuthDomain, ConfigSnapshot
from .xff import resolve_remote_address

logger = logging.getLogger(__name__)


def _blocked(principal: str | None, detail: str) -> AuthResult:
    return AuthResult(success=False, principal=principal, error=detail, blocked=True)


@dataclass
class AuthChain:
    """
    Tries the auth domains of the current snapshot in order.

    Each domain abstains (no credentials it understands, or a backend that
    does not know the principal), authenticates (stop) or denies (stop). If
    every domain abstains the request is anonymous when anonymous auth is
    enabled, otherwise it is denied. Failed and anonymous results carry the
    challenges of the domains tried so far.

    The snapshot is read once per request; every decision for that request
    comes from that one generation.
    """
    holder: DynamicConfigHolder

    async def authenticate(self, request: Request) -> AuthResult:
        """Authenticate a REST request."""
        snapshot = self.holder.current

        if snapshot.rest_auth_disabled:
            logger.debug("REST authentication disabled, request is anonymous")
            return AuthResult.anonymous()

        address, via_proxy = resolve_remote_address(request, snapshot)
        request.state.remote_address = address
        request.state.xff_done = via_proxy

        if address and self._address_blocked(snapshot, address):
            return _blocked(None, "Client address is blocked")

        challenges: list[tuple[str, str]] = []
        for domain in snapshot.rest_auth_domains:
            challenge = domain.http_authenticator.get_challenge_header() if domain.challenge else None
            if challenge:
                challenges.append(challenge)

            try:
                credentials = await domain.http_authenticator.extract_credentials(request)
            except CredentialsRejected as e:
                logger.debug(f"Credentials rejected by {domain.name}: {e}")
                self._record_failure(snapshot, domain, address, None)
                return self._denied(domain, None, str(e), challenges)
            except Exception as e:
                logger.warning(f"HTTP authenticator of {domain.name} error: {e}")
                self._record_failure(snapshot, domain, address, None)
                return self._denied(domain, None, str(e), challenges)

            if credentials is None:
                logger.debug(f"{domain.name} abstained: no applicable credentials")
                continue

            result = await self._try_backend(
                snapshot, domain, credentials, address, snapshot.rest_authorizers
            )
            if result is None:
                continue
            if not result.success and not result.blocked:
                result = result.evolve(challenges=tuple(challenges))
            return result

        if snapshot.anonymous_auth_enabled:
            logger.debug("No authentication provided, using anonymous")
            return AuthResult.anonymous().evolve(challenges=tuple(challenges))

        return AuthResult(
            success=False,
            error="Authentication required",
            challenges=tuple(challenges),
        )

    async def authenticate_transport(
        self,
        credentials: AuthCredentials,
        address: str | None = None,
    ) -> AuthResult:
        """Authenticate credentials received on the transport layer."""
        snapshot = self.holder.current

        if snapshot.inter_transport_auth_disabled:
            logger.debug("Inter-transport authentication disabled")
            return AuthResult.anonymous()

        if address and self._address_blocked(snapshot, address):
            return _blocked(credentials.username, "Client address is blocked")

        for domain in snapshot.transport_auth_domains:
            result = await self._try_backend(
                snapshot, domain, credentials, address, snapshot.transport_authorizers
            )
            if result is None:
                continue
            if result.success:
                result = result.evolve(method=AuthMethod.TRANSPORT)
            return result

        return AuthResult.failed("Transport authentication failed", principal=credentials.username)

    async def _try_backend(
        self,
        snapshot: ConfigSnapshot,
        domain: AuthDomain,
        credentials: AuthCredentials,
        address: str | None,
        authorizers: Iterable[AuthorizationBackend],
    ) -> AuthResult | None:
        """Run one domain's backend; None means the domain abstained."""
        for registry in snapshot.block_registries_for(domain.backend_id):
            key = address if registry.key_kind is KeyKind.ADDRESS else credentials.username
            if key and registry.is_blocked(key):
                logger.warning(f"{registry.key_kind.value} {key} is blocked for {domain.backend_name}")
                return _blocked(credentials.username, f"Blocked by {domain.backend_name} failure limit")

        try:
            result = await domain.backend.authenticate(credentials)
        except Exception as e:
            logger.warning(f"Authentication backend {domain.backend_name} error: {e}")
            result = AuthResult.failed(f"Backend error: {e}")

        if result is None:
            logger.debug(f"{domain.name} abstained: {domain.backend_name} does not know {credentials.username}")
            return None

        if not result.success:
            logger.debug(f"Authentication failed via {domain.name}: {result.error}")
            self._record_failure(snapshot, domain, address, credentials.username)
            return result.evolve(
                principal=result.principal or credentials.username,
                method=domain.http_authenticator.method,
                domain=domain.name,
            )

        result = result.evolve(method=domain.http_authenticator.method, domain=domain.name)
        logger.debug(f"Authenticated via {domain.name}: {result.principal}")

        chain = [domain.authorizer] if domain.authorizer else []
        chain.extend(authorizers)
        return await aggregate_roles(result, chain, snapshot.multi_rolespan_enabled)

    @staticmethod
    def _address_blocked(snapshot: ConfigSnapshot, address: str) -> bool:
        for registry in snapshot.ip_client_block_registries:
            if registry.is_blocked(address):
                logger.warning(f"Request from blocked address {address} denied")
                return True
        return False

    @staticmethod
    def _record_failure(
        snapshot: ConfigSnapshot,
        domain: AuthDomain,
        address: str | None,
        username: str | None,
    ) -> None:
        for listener in snapshot.ip_auth_failure_listeners:
            listener.on_auth_failure(address, username)
        for listener in snapshot.failure_listeners_for(domain.backend_id):
            listener.on_auth_failure(address, username)

    @staticmethod
    def _denied(
        domain: AuthDomain,
        principal: str | None,
        error: str,
        challenges: list[tuple[str, str]],
    ) -> AuthResult:
        return AuthResult(
            success=False,
            principal=principal,
            method=domain.http_authenticator.method,
            domain=domain.name,
            error=error,
            challenges=tuple(challenges),
        )
