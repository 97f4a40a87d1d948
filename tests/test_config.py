import json

import pytest

from secconf_svc.auth.config import DEFAULT_INTERNAL_PROXIES, DynamicConfig
from secconf_svc.auth.loader import load_security_config
from secconf_svc.config import ServiceConfig
from secconf_svc.errors import ConfigurationError


def test_parses_full_document(basic_internal_config):
    config = DynamicConfig.from_dict(basic_internal_config)

    assert config.anonymous_auth_enabled is False
    assert len(config.domains) == 1
    domain = config.domains[0]
    assert domain.name == "basic_internal_auth_domain"
    assert domain.alias == "basic_h"
    assert domain.backend_alias == "intern_c"
    assert domain.order == 1
    assert domain.challenge is True
    assert "admin" in domain.backend_settings["users"]

    assert [l.name for l in config.failure_listeners] == ["ip_rate_limiting"]
    listener = config.failure_listeners[0]
    assert listener.type == "ip"
    assert listener.settings == {"allowed_tries": 3, "time_window_seconds": 60, "block_expiry_seconds": 120}


def test_accepts_dynamic_section_alone():
    config = DynamicConfig.from_dict({"authc": {"d": {"order": 4}}, "multi_rolespan_enabled": False})
    assert config.domains[0].alias == "basic_h"
    assert config.domains[0].backend_alias == "intern_c"
    assert config.domains[0].order == 4
    assert config.multi_rolespan_enabled is False


def test_defaults():
    config = DynamicConfig.from_dict(None)
    assert config.domains == []
    assert config.xff.enabled is False
    assert config.xff.internal_proxies == DEFAULT_INTERNAL_PROXIES
    assert config.xff.remote_ip_header == "X-Forwarded-For"
    assert config.multi_rolespan_enabled is True
    assert config.hosts_resolver_mode == "ip-only"


def test_parses_flags_xff_and_sections():
    config = DynamicConfig.from_dict({
        "http": {
            "anonymous_auth_enabled": True,
            "xff": {"enabled": True, "internalProxies": r"10\.0\.0\.1", "remoteIpHeader": "x-real-ip"},
        },
        "disable_rest_auth": True,
        "do_not_fail_on_forbidden": True,
        "filtered_alias_mode": "nowarn",
        "kibana": {"multitenancy_enabled": False},
        "on_behalf_of": {"enabled": False},
        "authz": {"roles_from_ldap": {"authorization_backend": {"type": "ldap", "config": {"x": 1}}}},
    })
    assert config.anonymous_auth_enabled is True
    assert config.xff.enabled is True
    assert config.xff.internal_proxies == r"10\.0\.0\.1"
    assert config.xff.remote_ip_header == "x-real-ip"
    assert config.disable_rest_auth is True
    assert config.do_not_fail_on_forbidden is True
    assert config.filtered_alias_mode == "nowarn"
    assert config.dashboards == {"multitenancy_enabled": False}
    assert config.authz[0].type == "ldap"
    assert config.authz[0].settings == {"x": 1}


@pytest.mark.parametrize("data", [
    {"authc": {"d": {"order": "first"}}},
    {"authc": {"d": {"order": True}}},
    {"authc": {"d": "basic"}},
    {"authc": {"d": {"http_authenticator": {"type": 7}}}},
    {"http": {"anonymous_auth_enabled": "yes"}},
    {"auth_failure_listeners": {"l": {"allowed_tries": 3}}},
    {"authc": []},
])
def test_malformed_payload_rejected(data):
    with pytest.raises(ConfigurationError):
        DynamicConfig.from_dict(data)


def test_load_yaml_file(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(
        "_meta:\n"
        "  type: config\n"
        "config:\n"
        "  dynamic:\n"
        "    http:\n"
        "      anonymous_auth_enabled: true\n"
        "    authc:\n"
        "      basic:\n"
        "        order: 0\n"
        "        authentication_backend:\n"
        "          type: noop\n"
    )
    config = load_security_config(path)
    assert config.anonymous_auth_enabled is True
    assert config.domains[0].backend_alias == "noop_c"


def test_load_json_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"config": {"dynamic": {"authc": {"a": {"order": 2}}}}}))
    assert load_security_config(path).domains[0].order == 2


def test_load_unparseable_file(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("authc: [unclosed\n")
    with pytest.raises(ConfigurationError):
        load_security_config(path)


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_security_config(tmp_path / "absent.yml")


def test_load_rejects_other_document_types():
    with pytest.raises(ConfigurationError):
        load_security_config({"_meta": {"type": "internalusers"}})


def test_service_config_from_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("security_config_file: security/config.yml\nlog_level: debug\n")
    config = ServiceConfig.from_yaml(path)
    assert config.security_config_file == "security/config.yml"
    assert config.log_level == "DEBUG"
    assert config.level == 10


def test_service_config_rejects_unknown_level():
    with pytest.raises(ConfigurationError):
        ServiceConfig.from_dict({"log_level": "chatty"})
