import pytest

from secconf_svc.auth.authenticator import AuthCredentials, AuthResult
from secconf_svc.auth.internal import (
    InternalAuthenticationBackend,
    NoOpAuthenticationBackend,
    NoOpAuthorizationBackend,
)


@pytest.fixture
def backend(admin_hash):
    return InternalAuthenticationBackend.from_settings({
        "users": {
            "admin": {
                "hash": admin_hash,
                "backend_roles": ["admin", "ops"],
                "attributes": {"team": "search"},
            },
        },
    })


@pytest.mark.asyncio
async def test_correct_password(backend):
    result = await backend.authenticate(AuthCredentials("admin", "admin-secret"))
    assert result.success
    assert result.principal == "admin"
    assert result.backend_roles == frozenset({"admin", "ops"})
    assert result.attributes == {"team": "search"}


@pytest.mark.asyncio
async def test_wrong_password_is_a_failure(backend):
    result = await backend.authenticate(AuthCredentials("admin", "nope"))
    assert not result.success
    assert result.principal == "admin"


@pytest.mark.asyncio
async def test_missing_password_is_a_failure(backend):
    result = await backend.authenticate(AuthCredentials("admin"))
    assert not result.success


@pytest.mark.asyncio
async def test_unknown_user_abstains(backend):
    assert await backend.authenticate(AuthCredentials("ghost", "admin-secret")) is None


@pytest.mark.asyncio
async def test_complete_credentials_skip_password_check(backend):
    credentials = AuthCredentials("admin", backend_roles=frozenset({"from-jwt"}), complete=True)
    result = await backend.authenticate(credentials)
    assert result.success
    assert result.backend_roles == frozenset({"admin", "ops", "from-jwt"})


@pytest.mark.asyncio
async def test_unusable_hash_fails_closed():
    backend = InternalAuthenticationBackend.from_settings({"users": {"u": {"hash": "plain"}}})
    result = await backend.authenticate(AuthCredentials("u", "plain"))
    assert not result.success


@pytest.mark.asyncio
async def test_noop_backends():
    credentials = AuthCredentials("node-1", backend_roles=frozenset({"r"}))
    result = await NoOpAuthenticationBackend().authenticate(credentials)
    assert result.success
    assert result.backend_roles == frozenset({"r"})
    assert await NoOpAuthorizationBackend().fetch_roles(AuthResult.authenticated("x")) == set()
