from secconf_svc import _bootstrap as bs
from secconf_svc.auth import get_auth_chain, set_auth_chain
from secconf_svc.config import ServiceConfig


def test_load_config_defaults(tmp_path):
    config, path = bs.load_config(str(tmp_path / "missing.yaml"))
    assert config == ServiceConfig()
    assert path.endswith("missing.yaml")


def test_load_config_from_env(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("log_level: WARNING\n")
    monkeypatch.setenv("SECCONF_CONFIG", str(path))
    config, resolved = bs.load_config()
    assert config.log_level == "WARNING"
    assert resolved == str(path)


def test_security_config_resolved_relative_to_service_config(tmp_path):
    config = ServiceConfig(security_config_file="security/config.yml")
    path = bs.resolve_security_config_path(config, str(tmp_path / "config.yaml"))
    assert path == (tmp_path / "security" / "config.yml").resolve()
    assert bs.resolve_security_config_path(ServiceConfig(), str(tmp_path / "config.yaml")) is None


def test_build_config_holder_publishes_file(tmp_path):
    (tmp_path / "security.yml").write_text("config:\n  dynamic:\n    http:\n      anonymous_auth_enabled: true\n")
    config = ServiceConfig(security_config_file="security.yml")
    holder, path = bs.build_config_holder(config, str(tmp_path / "config.yaml"))
    assert holder.generation == 1
    assert holder.current.anonymous_auth_enabled is True


def test_build_config_holder_missing_file(tmp_path):
    config = ServiceConfig(security_config_file="absent.yml")
    holder, path = bs.build_config_holder(config, str(tmp_path / "config.yaml"))
    assert holder.generation == 0
    assert path == (tmp_path / "absent.yml").resolve()


def test_configure_auth(tmp_path):
    holder, _ = bs.build_config_holder(ServiceConfig(), str(tmp_path / "config.yaml"))
    try:
        bs.configure_auth(holder)
        assert get_auth_chain().holder is holder
    finally:
        set_auth_chain(None)
