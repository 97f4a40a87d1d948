import threading

import pytest

from conftest import FakeClock
from secconf_svc.auth.blocking import ClientBlockRegistry, KeyKind, normalize_key
from secconf_svc.auth.limiting import (
    AddressBasedRateLimiter,
    RateLimitSettings,
    UserNameBasedRateLimiter,
)
from secconf_svc.errors import ConfigurationError


def _limiter(clock, **settings):
    return AddressBasedRateLimiter("ip", RateLimitSettings.from_settings(settings), clock=clock)


def test_settings_defaults():
    settings = RateLimitSettings.from_settings({})
    assert settings.allowed_tries == 10
    assert settings.time_window_seconds == 3600
    assert settings.block_expiry_seconds == 600
    assert settings.max_blocked_clients == 100_000
    assert settings.max_tracked_clients == 100_000
    assert settings.ignore_hosts == ()


@pytest.mark.parametrize("settings", [
    {"allowed_tries": -1},
    {"allowed_tries": True},
    {"block_expiry_seconds": 1.5},
    {"ignore_hosts": ["300.1.1.1"]},
])
def test_settings_rejected(settings):
    with pytest.raises(ConfigurationError):
        RateLimitSettings.from_settings(settings)


def test_blocks_after_threshold_and_unblocks_after_duration(clock):
    limiter = _limiter(clock, allowed_tries=3, time_window_seconds=60, block_expiry_seconds=120)

    assert limiter.record_failure("198.51.100.1") is False
    assert limiter.record_failure("198.51.100.1") is False
    assert not limiter.registry.is_blocked("198.51.100.1")
    assert limiter.record_failure("198.51.100.1") is True
    assert limiter.registry.is_blocked("198.51.100.1")
    assert limiter.current_count("198.51.100.1") == 0
    assert limiter.registry.remaining("198.51.100.1") == 120

    clock.advance(119)
    assert limiter.registry.is_blocked("198.51.100.1")
    clock.advance(1)
    assert not limiter.registry.is_blocked("198.51.100.1")


def test_failures_outside_window_do_not_count(clock):
    limiter = _limiter(clock, allowed_tries=3, time_window_seconds=60)

    limiter.record_failure("198.51.100.1")
    limiter.record_failure("198.51.100.1")
    clock.advance(60)
    assert limiter.current_count("198.51.100.1") == 0
    assert limiter.record_failure("198.51.100.1") is False
    assert limiter.current_count("198.51.100.1") == 1


def test_sliding_window(clock):
    limiter = _limiter(clock, allowed_tries=3, time_window_seconds=60)

    limiter.record_failure("198.51.100.1")
    clock.advance(30)
    limiter.record_failure("198.51.100.1")
    clock.advance(31)
    # first failure slid out
    assert limiter.record_failure("198.51.100.1") is False
    assert limiter.current_count("198.51.100.1") == 2
    assert limiter.record_failure("198.51.100.1") is True


def test_keys_are_independent(clock):
    limiter = _limiter(clock, allowed_tries=2)
    limiter.record_failure("198.51.100.1")
    limiter.record_failure("198.51.100.2")
    assert not limiter.registry.blocked_keys()
    limiter.record_failure("198.51.100.1")
    assert limiter.registry.blocked_keys() == ["198.51.100.1"]


def test_ignore_hosts(clock):
    limiter = _limiter(clock, allowed_tries=1, ignore_hosts=["10.0.0.0/8", "::1"])
    assert limiter.record_failure("10.1.2.3") is False
    assert limiter.record_failure("0:0:0:0:0:0:0:1") is False
    assert limiter.current_count("10.1.2.3") == 0
    assert limiter.record_failure("192.0.2.1") is True


def test_address_keys_normalised(clock):
    limiter = _limiter(clock, allowed_tries=2)
    limiter.record_failure("::1")
    limiter.record_failure("0:0:0:0:0:0:0:1")
    assert limiter.registry.is_blocked("::1")
    assert normalize_key(KeyKind.USERNAME, "Admin") == "Admin"


def test_on_auth_failure_picks_key(clock):
    by_address = _limiter(clock)
    by_user = UserNameBasedRateLimiter("user", RateLimitSettings(), authentication_backend="x", clock=clock)

    by_address.on_auth_failure("192.0.2.1", "alice")
    by_user.on_auth_failure("192.0.2.1", "alice")
    by_user.on_auth_failure("192.0.2.1", None)

    assert by_address.current_count("192.0.2.1") == 1
    assert by_user.current_count("alice") == 1
    assert by_user.identity == ("user", KeyKind.USERNAME, "x")


def test_tracked_clients_bounded(clock):
    limiter = _limiter(clock, allowed_tries=5, max_tracked_clients=2)
    for host in ("192.0.2.1", "192.0.2.2", "192.0.2.3"):
        limiter.record_failure(host)
    assert limiter.current_count("192.0.2.1") == 0
    assert limiter.current_count("192.0.2.3") == 1


def test_reset(clock):
    limiter = _limiter(clock)
    limiter.record_failure("192.0.2.1")
    limiter.reset("192.0.2.1")
    assert limiter.current_count("192.0.2.1") == 0


def test_apply_settings_keeps_counters_and_blocks(clock):
    limiter = _limiter(clock, allowed_tries=2, block_expiry_seconds=100)
    limiter.record_failure("192.0.2.1")
    limiter.record_failure("192.0.2.2")
    limiter.record_failure("192.0.2.2")

    limiter.apply_settings(RateLimitSettings(allowed_tries=5, block_expiry_seconds=10))

    assert limiter.current_count("192.0.2.1") == 1
    assert limiter.registry.remaining("192.0.2.2") == 100
    assert limiter.registry.block_duration == 10


def test_concurrent_failures_are_all_counted():
    limiter = AddressBasedRateLimiter(
        "ip", RateLimitSettings(allowed_tries=10_000, time_window_seconds=3600), clock=FakeClock()
    )
    threads_count, per_thread = 8, 250
    barrier = threading.Barrier(threads_count)

    def hammer():
        barrier.wait()
        for _ in range(per_thread):
            limiter.record_failure("192.0.2.1")

    threads = [threading.Thread(target=hammer) for _ in range(threads_count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert limiter.current_count("192.0.2.1") == threads_count * per_thread


def test_block_registry_manual_block(clock):
    registry = ClientBlockRegistry(KeyKind.USERNAME, block_duration=60, clock=clock)
    registry.block("alice")
    registry.block("bob", duration=5)
    assert registry.is_blocked("alice")
    clock.advance(6)
    assert not registry.is_blocked("bob")
    assert registry.remaining("bob") == 0.0
    registry.unblock("alice")
    assert not registry.is_blocked("alice")


def test_block_registry_bounded(clock):
    registry = ClientBlockRegistry(KeyKind.USERNAME, block_duration=60, max_blocked_clients=2, clock=clock)
    for user in ("a", "b", "c"):
        registry.block(user)
    assert registry.blocked_keys() == ["b", "c"]
