"""Client block registry - keys denied for a while after repeated failures.

In-memory, thread-safe. Blocks expire on their own; expired entries are
dropped lazily on lookup.
"""

from __future__ import annotations

import ipaddress
import logging
import threading
import time
from collections import OrderedDict
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class KeyKind(str, Enum):
    """What a listener or registry is keyed by."""
    ADDRESS = "address"
    USERNAME = "username"


def normalize_key(kind: KeyKind, key: str) -> str:
    """Canonical form of *key*: addresses are parsed so ``::1`` == ``0:0::1``."""
    if kind is KeyKind.ADDRESS:
        try:
            return str(ipaddress.ip_address(key.strip()))
        except ValueError:
            return key.strip()
    return key


class ClientBlockRegistry:
    """
    Set of currently blocked keys with per-key expiry.

    Generic over the key kind: network addresses for per-IP blocking,
    usernames for backend scoped blocking.
    """

    def __init__(
        self,
        key_kind: KeyKind,
        block_duration: float,
        max_blocked_clients: int = 100_000,
        clock: Clock = time.monotonic,
    ) -> None:
        self.key_kind = key_kind
        self._block_duration = block_duration
        self._max_blocked = max_blocked_clients
        self._clock = clock
        self._blocked: OrderedDict[str, float] = OrderedDict()  # key -> blocked_until
        self._lock = threading.Lock()

    @property
    def block_duration(self) -> float:
        return self._block_duration

    def is_blocked(self, key: str) -> bool:
        """Check whether *key* is blocked right now."""
        key = normalize_key(self.key_kind, key)
        now = self._clock()
        with self._lock:
            until = self._blocked.get(key)
            if until is None:
                return False
            if until > now:
                return True
            del self._blocked[key]
            logger.debug(f"Block on {self.key_kind.value} {key} expired")
            return False

    def block(self, key: str, duration: float | None = None) -> None:
        """Block *key* for *duration* seconds (default: the configured block expiry)."""
        key = normalize_key(self.key_kind, key)
        until = self._clock() + (self._block_duration if duration is None else duration)
        with self._lock:
            self._blocked.pop(key, None)
            self._blocked[key] = until
            while len(self._blocked) > self._max_blocked:
                evicted, _ = self._blocked.popitem(last=False)
                logger.debug(f"Block registry full, dropped oldest block on {evicted}")

    def unblock(self, key: str) -> None:
        key = normalize_key(self.key_kind, key)
        with self._lock:
            self._blocked.pop(key, None)

    def remaining(self, key: str) -> float:
        """Seconds until the block on *key* lifts, 0 if not blocked."""
        key = normalize_key(self.key_kind, key)
        with self._lock:
            until = self._blocked.get(key)
        if until is None:
            return 0.0
        return max(0.0, until - self._clock())

    def blocked_keys(self) -> list[str]:
        now = self._clock()
        with self._lock:
            return [k for k, until in self._blocked.items() if until > now]

    def reconfigure(self, block_duration: float, max_blocked_clients: int) -> None:
        """Change limits for future blocks; existing blocks keep their expiry."""
        with self._lock:
            self._block_duration = block_duration
            self._max_blocked = max_blocked_clients
