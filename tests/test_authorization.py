import pytest

from conftest import StaticAuthorizer, basic_header, make_request
from secconf_svc.auth.aliases import AliasBinding, AliasDirection, AliasRegistry
from secconf_svc.auth.authenticator import AuthResult
from secconf_svc.auth.authorization import aggregate_roles
from secconf_svc.auth.builder import SnapshotBuilder
from secconf_svc.auth.chain import AuthChain
from secconf_svc.auth.config import DomainSpec, DynamicConfig
from secconf_svc.auth.holder import DynamicConfigHolder


@pytest.fixture
def authorizers():
    return [StaticAuthorizer("first", {"A", "B"}), StaticAuthorizer("second", {"B", "C"})]


@pytest.mark.asyncio
async def test_multi_rolespan_unions_roles(authorizers):
    result = await aggregate_roles(AuthResult.authenticated("alice"), authorizers, multi_rolespan=True)
    assert result.roles == frozenset({"A", "B", "C"})
    assert all(a.calls == 1 for a in authorizers)


@pytest.mark.asyncio
async def test_without_multi_rolespan_first_authorizer_wins(authorizers):
    result = await aggregate_roles(AuthResult.authenticated("alice"), authorizers, multi_rolespan=False)
    assert result.roles == frozenset({"A", "B"})
    assert authorizers[1].calls == 0


@pytest.mark.asyncio
async def test_failing_authorizer_is_skipped(authorizers):
    authorizers[0].fail = True
    result = await aggregate_roles(AuthResult.authenticated("alice"), authorizers, multi_rolespan=False)
    assert result.roles == frozenset({"B", "C"})

    result = await aggregate_roles(AuthResult.authenticated("alice"), authorizers, multi_rolespan=True)
    assert result.roles == frozenset({"B", "C"})


@pytest.mark.asyncio
async def test_no_authorizers():
    result = await aggregate_roles(AuthResult.authenticated("alice", backend_roles={"x"}), [], multi_rolespan=True)
    assert result.roles == frozenset()
    assert result.effective_roles == frozenset({"x"})


@pytest.mark.asyncio
async def test_chain_aggregates_configured_authorizers(backends, aliases):
    first = StaticAuthorizer("first", {"A", "B"})
    second = StaticAuthorizer("second", {"B", "C"})
    backends.register("test.First", lambda settings: first)
    backends.register("test.Second", lambda settings: second)
    extended = AliasRegistry([
        *aliases,
        AliasBinding("first_z", AliasDirection.AUTHORIZATION, "test.First"),
        AliasBinding("second_z", AliasDirection.AUTHORIZATION, "test.Second"),
    ])
    holder = DynamicConfigHolder(SnapshotBuilder(aliases=extended, backends=backends))

    def config(multi_rolespan):
        parsed = DynamicConfig.from_dict({
            "multi_rolespan_enabled": multi_rolespan,
            "authz": {
                "a": {"authorization_backend": {"type": "first"}},
                "b": {"authorization_backend": {"type": "second"}},
            },
        })
        parsed.domains = [DomainSpec(alias="allow_c", order=1)]
        return parsed

    holder.reload(config(True))
    result = await AuthChain(holder).authenticate(make_request(basic_header("alice", "pw")))
    assert result.roles == frozenset({"A", "B", "C"})

    holder.reload(config(False))
    result = await AuthChain(holder).authenticate(make_request(basic_header("alice", "pw")))
    assert result.roles == frozenset({"A", "B"})
