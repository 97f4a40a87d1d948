"""Failure listeners - count failed logins and block clients that exceed a limit.

Algorithm: sliding window. Each key keeps the timestamps of its recent
failures; once ``allowed_tries`` failures fall inside ``time_window_seconds``
the key is blocked for ``block_expiry_seconds`` and its history is cleared.
"""

from __future__ import annotations

import ipaddress
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Any, Mapping

from ..errors import ConfigurationError
from .blocking import Clock, ClientBlockRegistry, KeyKind, normalize_key

logger = logging.getLogger(__name__)

IpNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


def _positive_int(settings: Mapping[str, Any], key: str, default: int) -> int:
    value = settings.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(f"'{key}' must be a positive integer, got {value!r}")
    return value


@dataclass(frozen=True, slots=True)
class RateLimitSettings:
    """Limits of one failure listener, as read from ``auth_failure_listeners``."""
    allowed_tries: int = 10
    time_window_seconds: int = 3600
    block_expiry_seconds: int = 600
    max_blocked_clients: int = 100_000
    max_tracked_clients: int = 100_000
    ignore_hosts: tuple[IpNetwork, ...] = field(default_factory=tuple)

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> RateLimitSettings:
        ignore_hosts: list[IpNetwork] = []
        for host in settings.get("ignore_hosts", []) or []:
            try:
                ignore_hosts.append(ipaddress.ip_network(str(host), strict=False))
            except ValueError:
                raise ConfigurationError(f"ignore_hosts entry {host!r} is not an address or network") from None

        return cls(
            allowed_tries=_positive_int(settings, "allowed_tries", 10),
            time_window_seconds=_positive_int(settings, "time_window_seconds", 3600),
            block_expiry_seconds=_positive_int(settings, "block_expiry_seconds", 600),
            max_blocked_clients=_positive_int(settings, "max_blocked_clients", 100_000),
            max_tracked_clients=_positive_int(settings, "max_tracked_clients", 100_000),
            ignore_hosts=tuple(ignore_hosts),
        )


class FailureListener(ABC):
    """Something that is told about failed authentication attempts."""

    name: str
    key_kind: KeyKind
    authentication_backend: str | None

    @abstractmethod
    def record_failure(self, key: str) -> bool:
        """Count one failure for *key*. Returns True if *key* got blocked."""
        ...

    @abstractmethod
    def current_count(self, key: str) -> int:
        """Failures recorded for *key* inside the current window."""
        ...

    def on_auth_failure(self, address: str | None, username: str | None) -> bool:
        """Record a failure, picking the key this listener is keyed by."""
        key = address if self.key_kind is KeyKind.ADDRESS else username
        if not key:
            return False
        return self.record_failure(key)


class RateLimiter(FailureListener):
    """Sliding-window failure counter that feeds its own block registry."""

    key_kind: KeyKind

    def __init__(
        self,
        name: str,
        settings: RateLimitSettings,
        authentication_backend: str | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.name = name
        self.authentication_backend = authentication_backend
        self._settings = settings
        self._clock = clock
        self._failures: OrderedDict[str, deque[float]] = OrderedDict()
        self._lock = threading.Lock()
        self.registry = ClientBlockRegistry(
            self.key_kind,
            block_duration=settings.block_expiry_seconds,
            max_blocked_clients=settings.max_blocked_clients,
            clock=clock,
        )

    @property
    def settings(self) -> RateLimitSettings:
        return self._settings

    @property
    def identity(self) -> tuple[str, KeyKind, str | None]:
        return (self.name, self.key_kind, self.authentication_backend)

    def is_ignored(self, key: str) -> bool:
        return False

    def record_failure(self, key: str) -> bool:
        key = normalize_key(self.key_kind, key)
        if self.is_ignored(key):
            return False

        now = self._clock()
        with self._lock:
            settings = self._settings
            window = self._failures.pop(key, None) or deque()
            while window and now - window[0] >= settings.time_window_seconds:
                window.popleft()
            window.append(now)

            if len(window) < settings.allowed_tries:
                self._failures[key] = window
                while len(self._failures) > settings.max_tracked_clients:
                    self._failures.popitem(last=False)
                return False

        self.registry.block(key)
        logger.warning(
            f"{self.key_kind.value} {key} blocked by {self.name} for "
            f"{settings.block_expiry_seconds}s after {len(window)} failures"
        )
        return True

    def current_count(self, key: str) -> int:
        key = normalize_key(self.key_kind, key)
        now = self._clock()
        with self._lock:
            window = self._failures.get(key)
            if not window:
                return 0
            window_seconds = self._settings.time_window_seconds
            return sum(1 for t in window if now - t < window_seconds)

    def reset(self, key: str) -> None:
        """Forget failures of *key*, e.g. after a successful login."""
        key = normalize_key(self.key_kind, key)
        with self._lock:
            self._failures.pop(key, None)

    def apply_settings(self, settings: RateLimitSettings) -> None:
        """Switch to new limits while keeping counters and blocks."""
        with self._lock:
            self._settings = settings
        self.registry.reconfigure(settings.block_expiry_seconds, settings.max_blocked_clients)


class AddressBasedRateLimiter(RateLimiter):
    """Counts failures per caller network address."""

    key_kind = KeyKind.ADDRESS

    def is_ignored(self, key: str) -> bool:
        if not self._settings.ignore_hosts:
            return False
        try:
            address = ipaddress.ip_address(key)
        except ValueError:
            return False
        return any(address in network for network in self._settings.ignore_hosts)


class UserNameBasedRateLimiter(RateLimiter):
    """Counts failures per attempted username."""

    key_kind = KeyKind.USERNAME
