"""Internal user database backend and the no-op backends."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

import bcrypt

from ..errors import ConfigurationError
from .authenticator import AuthCredentials, AuthResult, AuthenticationBackend, AuthorizationBackend

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class InternalUser:
    """One entry of the internal user database."""
    username: str
    password_hash: str = field(repr=False)
    backend_roles: frozenset[str] = frozenset()
    attributes: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class InternalAuthenticationBackend(AuthenticationBackend):
    """
    Verifies credentials against users declared in the backend config.

    ```yaml
    authentication_backend:
      type: intern
      config:
        users:
          admin:
            hash: "$2y$12$..."
            backend_roles: [admin]
    ```

    Unknown users are not this backend's concern and yield None so the chain
    can move on; a known user with a wrong password is a failure.
    """
    users: Mapping[str, InternalUser] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> InternalAuthenticationBackend:
        raw_users = settings.get("users", {}) or {}
        if not isinstance(raw_users, Mapping):
            raise ConfigurationError("'users' must be a mapping of username to user entry")

        users: dict[str, InternalUser] = {}
        for username, entry in raw_users.items():
            if not isinstance(entry, Mapping) or not isinstance(entry.get("hash"), str):
                raise ConfigurationError(f"Internal user {username!r} has no password hash")
            roles = entry.get("backend_roles", []) or []
            if not isinstance(roles, list):
                raise ConfigurationError(f"backend_roles of {username!r} must be a list")
            users[str(username)] = InternalUser(
                username=str(username),
                password_hash=entry["hash"],
                backend_roles=frozenset(str(r) for r in roles),
                attributes=dict(entry.get("attributes", {}) or {}),
            )
        return cls(users=MappingProxyType(users))

    @property
    def name(self) -> str:
        return "internal"

    async def authenticate(self, credentials: AuthCredentials) -> AuthResult | None:
        user = self.users.get(credentials.username)
        if user is None:
            logger.debug(f"User {credentials.username} not in internal user database")
            return None

        if not credentials.complete:
            if credentials.password is None or not _check_password(credentials.password, user.password_hash):
                return AuthResult.failed("Invalid username or password", principal=user.username)

        return AuthResult.authenticated(
            principal=user.username,
            backend_roles=user.backend_roles | credentials.backend_roles,
            attributes={**user.attributes, **credentials.attributes},
        )


def _check_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError as e:
        logger.warning(f"Unusable password hash in internal user database: {e}")
        return False


def hash_password(password: str, rounds: int = 12) -> str:
    """Produce a bcrypt hash suitable for the internal user database."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("ascii")


@dataclass
class NoOpAuthenticationBackend(AuthenticationBackend):
    """Accepts whatever the HTTP authenticator extracted."""

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> NoOpAuthenticationBackend:
        return cls()

    @property
    def name(self) -> str:
        return "noop"

    async def authenticate(self, credentials: AuthCredentials) -> AuthResult | None:
        return AuthResult.authenticated(
            principal=credentials.username,
            backend_roles=credentials.backend_roles,
            attributes=dict(credentials.attributes),
        )


@dataclass
class NoOpAuthorizationBackend(AuthorizationBackend):
    """Grants no additional roles."""

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> NoOpAuthorizationBackend:
        return cls()

    @property
    def name(self) -> str:
        return "noop"

    async def fetch_roles(self, result: AuthResult) -> set[str]:
        return set()
