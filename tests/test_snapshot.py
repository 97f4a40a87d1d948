import dataclasses

import pytest

from secconf_svc.auth.config import DynamicConfig
from secconf_svc.auth.snapshot import ConfigSnapshot, DashboardsSettings, OnBehalfOfSettings, SignInOption
from secconf_svc.errors import ConfigurationError


def test_dashboards_defaults():
    settings = DashboardsSettings.from_dict({})
    assert settings.multitenancy_enabled is True
    assert settings.private_tenant_enabled is True
    assert settings.default_tenant == ""
    assert settings.server_username == "kibanaserver"
    assert settings.opendistro_role is None
    assert settings.index == ".kibana"
    assert settings.sign_in_options == (SignInOption.BASIC,)


def test_dashboards_null_values_use_defaults():
    settings = DashboardsSettings.from_dict({"server_username": None, "index": None, "default_tenant": None})
    assert settings.server_username == "kibanaserver"
    assert settings.index == ".kibana"
    assert settings.default_tenant == ""


def test_dashboards_values():
    settings = DashboardsSettings.from_dict({
        "multitenancy_enabled": False,
        "server_username": "dashboards",
        "index": ".dashboards",
        "sign_in_options": ["basic", "OPENID"],
        "opendistro_role": "kibana_server",
    })
    assert settings.multitenancy_enabled is False
    assert settings.server_username == "dashboards"
    assert settings.index == ".dashboards"
    assert settings.sign_in_options == (SignInOption.BASIC, SignInOption.OPENID)
    assert settings.opendistro_role == "kibana_server"


@pytest.mark.parametrize("data", [
    {"sign_in_options": ["PASSKEY"]},
    {"multitenancy_enabled": "yes"},
    {"server_username": 5},
    {"index": [".kibana"]},
    {"opendistro_role": True},
    {"default_tenant": 0},
])
def test_dashboards_rejected(data):
    with pytest.raises(ConfigurationError):
        DashboardsSettings.from_dict(data)


def test_on_behalf_of():
    assert OnBehalfOfSettings.from_dict({}).enabled is False
    settings = OnBehalfOfSettings.from_dict({"enabled": True, "signing_key": "obo-signing-key", "encryption_key": "e"})
    assert settings.as_dict() == {"enabled": True, "signing_key": "obo-signing-key", "encryption_key": "e"}
    assert "obo-signing-key" not in repr(settings)


@pytest.mark.parametrize("data", [
    {"enabled": True},
    {"enabled": "true", "signing_key": "k"},
    {"enabled": False, "signing_key": 12},
    {"enabled": True, "signing_key": "k", "encryption_key": b"e"},
])
def test_on_behalf_of_rejected(data):
    with pytest.raises(ConfigurationError):
        OnBehalfOfSettings.from_dict(data)


def test_snapshot_is_immutable():
    snapshot = ConfigSnapshot()
    with pytest.raises(dataclasses.FrozenInstanceError):
        snapshot.generation = 5
    with pytest.raises(TypeError):
        snapshot.auth_backend_failure_listeners["x"] = ()


def test_snapshot_from_builder_carries_flags(builder):
    config = DynamicConfig.from_dict({
        "http": {"anonymous_auth_enabled": True},
        "respect_request_indices_options": True,
        "do_not_fail_on_forbidden": True,
        "do_not_fail_on_forbidden_empty": True,
        "hosts_resolver_mode": "ip-hostname",
        "kibana": {"sign_in_options": ["SAML", "ANONYMOUS"]},
        "on_behalf_of": {"enabled": True, "signing_key": "secret"},
    })
    snapshot = builder.build(config, generation=3).snapshot

    assert snapshot.anonymous_auth_enabled is True
    assert snapshot.respect_request_indices_enabled is True
    assert snapshot.dnfof_enabled is True
    assert snapshot.dnfof_for_empty_results_enabled is True
    assert snapshot.hosts_resolver_mode == "ip-hostname"
    assert snapshot.sign_in_options == (SignInOption.SAML, SignInOption.ANONYMOUS)
    assert snapshot.on_behalf_of.signing_key == "secret"


def test_describe_has_no_secrets(builder, basic_internal_config):
    basic_internal_config["config"]["dynamic"]["on_behalf_of"] = {"enabled": True, "signing_key": "top-secret"}
    snapshot = builder.build(DynamicConfig.from_dict(basic_internal_config), generation=1).snapshot

    described = snapshot.describe()
    assert described["generation"] == 1
    assert described["rest_auth_domains"] == [{
        "name": "basic_internal_auth_domain",
        "order": 1,
        "method": "basic",
        "backend": "internal",
        "transport_enabled": True,
    }]
    assert described["ip_auth_failure_listeners"] == ["ip_rate_limiting"]
    assert described["on_behalf_of_enabled"] is True
    assert "top-secret" not in repr(described)
    assert "$2b$" not in repr(described)
