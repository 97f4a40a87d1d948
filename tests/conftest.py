"""Shared fixtures for the security configuration tests."""

from __future__ import annotations

import base64

import pytest
from starlette.requests import Request

from secconf_svc.auth.aliases import (
    LDAP_AUTHENTICATION,
    AliasBinding,
    AliasDirection,
    build_default_alias_registry,
)
from secconf_svc.auth.authenticator import (
    AuthCredentials,
    AuthenticationBackend,
    AuthorizationBackend,
    AuthResult,
)
from secconf_svc.auth.backends import default_backend_registry
from secconf_svc.auth.builder import SnapshotBuilder
from secconf_svc.auth.holder import DynamicConfigHolder
from secconf_svc.auth.internal import hash_password

ABSTAIN = "test.AbstainingBackend"
DENY = "test.DenyingBackend"
ALLOW = "test.AllowingBackend"

TEST_BINDINGS = (
    AliasBinding("abstain_c", AliasDirection.AUTHENTICATOR_CREDENTIAL, ABSTAIN),
    AliasBinding("deny_c", AliasDirection.AUTHENTICATOR_CREDENTIAL, DENY),
    AliasBinding("allow_c", AliasDirection.AUTHENTICATOR_CREDENTIAL, ALLOW),
)


class FakeClock:
    """Manually advanced clock for window and expiry tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedBackend(AuthenticationBackend):
    """Backend with a fixed outcome that counts how often it was asked."""

    def __init__(self, name: str, outcome: str):
        self._name = name
        self.outcome = outcome
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    async def authenticate(self, credentials: AuthCredentials) -> AuthResult | None:
        self.calls += 1
        if self.outcome == "abstain":
            return None
        if self.outcome == "deny":
            return AuthResult.failed("denied", principal=credentials.username)
        if self.outcome == "error":
            raise RuntimeError("directory unreachable")
        return AuthResult.authenticated(credentials.username, backend_roles={f"{self._name}-role"})


class FakeLdapBackend(AuthenticationBackend):
    """LDAP stand-in: knows only the users it was given."""

    def __init__(self, users: dict[str, str] | None = None):
        self.users = users or {}
        self.calls = 0

    @property
    def name(self) -> str:
        return "ldap"

    async def authenticate(self, credentials: AuthCredentials) -> AuthResult | None:
        self.calls += 1
        password = self.users.get(credentials.username)
        if password is None:
            return None
        if password != credentials.password:
            return AuthResult.failed("Invalid LDAP credentials", principal=credentials.username)
        return AuthResult.authenticated(credentials.username, backend_roles={"ldap-user"})


class StaticAuthorizer(AuthorizationBackend):
    """Grants a fixed role set, or raises when ``fail`` is set."""

    def __init__(self, name: str, roles: set[str], fail: bool = False):
        self._name = name
        self.roles = roles
        self.fail = fail
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    async def fetch_roles(self, result: AuthResult) -> set[str]:
        self.calls += 1
        if self.fail:
            raise RuntimeError("authorizer down")
        return set(self.roles)


def basic_header(username: str, password: str) -> dict[str, str]:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


def make_request(
    headers: dict[str, str] | None = None,
    client: tuple[str, int] | None = ("203.0.113.7", 50000),
    query_string: bytes = b"",
) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()],
        "query_string": query_string,
        "client": client,
    }
    return Request(scope)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def aliases():
    return build_default_alias_registry(extra=TEST_BINDINGS)


@pytest.fixture
def scripted():
    """The three scripted backends, keyed by outcome."""
    return {
        "abstain": ScriptedBackend("abstaining", "abstain"),
        "deny": ScriptedBackend("denying", "deny"),
        "allow": ScriptedBackend("allowing", "allow"),
    }


@pytest.fixture
def ldap_backend():
    return FakeLdapBackend()


@pytest.fixture
def backends(scripted, ldap_backend):
    registry = default_backend_registry()
    registry.register(ABSTAIN, lambda settings: scripted["abstain"])
    registry.register(DENY, lambda settings: scripted["deny"])
    registry.register(ALLOW, lambda settings: scripted["allow"])
    registry.register(LDAP_AUTHENTICATION, lambda settings: ldap_backend)
    return registry


@pytest.fixture
def builder(aliases, backends, clock):
    return SnapshotBuilder(aliases=aliases, backends=backends, clock=clock)


@pytest.fixture
def holder(builder):
    return DynamicConfigHolder(builder)


@pytest.fixture(scope="session")
def admin_hash():
    return hash_password("admin-secret", rounds=4)


@pytest.fixture
def basic_internal_config(admin_hash):
    """Basic auth against the internal user database, with an IP limiter."""
    return {
        "_meta": {"type": "config", "config_version": 2},
        "config": {
            "dynamic": {
                "http": {"anonymous_auth_enabled": False},
                "authc": {
                    "basic_internal_auth_domain": {
                        "http_enabled": True,
                        "transport_enabled": True,
                        "order": 1,
                        "http_authenticator": {"type": "basic", "challenge": True},
                        "authentication_backend": {
                            "type": "intern",
                            "config": {
                                "users": {
                                    "admin": {"hash": admin_hash, "backend_roles": ["admin"]},
                                },
                            },
                        },
                    },
                },
                "auth_failure_listeners": {
                    "ip_rate_limiting": {
                        "type": "ip",
                        "allowed_tries": 3,
                        "time_window_seconds": 60,
                        "block_expiry_seconds": 120,
                    },
                },
            },
        },
    }
