"""Holder of the published configuration snapshot.

One writer rebuilds, many readers read. Readers grab ``holder.current``
once per request; publication is a single reference assignment so a reader
sees either the old generation or the new one, never a mix.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Mapping

from ..errors import ConfigurationError
from .builder import ListenerIdentity, SnapshotBuilder
from .config import DynamicConfig
from .limiting import RateLimiter
from .loader import load_security_config
from .snapshot import ConfigSnapshot

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[ConfigSnapshot], None]


class DynamicConfigHolder:
    """Publishes ConfigSnapshot generations built by a SnapshotBuilder."""

    def __init__(self, builder: SnapshotBuilder, initial: ConfigSnapshot | None = None) -> None:
        self._builder = builder
        self._current = initial or ConfigSnapshot()
        self._listeners: dict[ListenerIdentity, RateLimiter] = {}
        self._write_lock = threading.Lock()
        self._callbacks: list[SnapshotCallback] = []

    @property
    def current(self) -> ConfigSnapshot:
        """The published snapshot."""
        return self._current

    @property
    def generation(self) -> int:
        return self._current.generation

    def on_publish(self, callback: SnapshotCallback) -> None:
        """Call *callback* with every newly published snapshot."""
        self._callbacks.append(callback)

    def reload(self, config: DynamicConfig | Mapping[str, Any]) -> ConfigSnapshot:
        """
        Build a new generation from *config* and publish it.

        Raises:
            ConfigurationError: the config is invalid; the previous snapshot
                stays published and no listener is touched.
        """
        with self._write_lock:
            try:
                if not isinstance(config, DynamicConfig):
                    config = DynamicConfig.from_dict(config)
                result = self._builder.build(
                    config,
                    generation=self._current.generation + 1,
                    existing_listeners=self._listeners,
                )
            except ConfigurationError as e:
                logger.error(
                    f"Security config rejected, keeping generation {self._current.generation}: {e}"
                )
                raise

            for listener, settings in result.pending_settings:
                listener.apply_settings(settings)

            dropped = set(self._listeners) - set(result.listeners)
            for identity in dropped:
                logger.info(f"Failure listener {identity[0]} removed, its counters are discarded")

            self._listeners = result.listeners
            self._current = result.snapshot
            snapshot = result.snapshot

        logger.info(
            f"Published security config generation {snapshot.generation}: "
            f"{len(snapshot.rest_auth_domains)} REST domains, "
            f"{len(snapshot.rest_authorizers)} authorizers, "
            f"anonymous={'ON' if snapshot.anonymous_auth_enabled else 'OFF'}"
        )
        for callback in list(self._callbacks):
            try:
                callback(snapshot)
            except Exception as e:
                logger.warning(f"Snapshot publish callback failed: {e}")
        return snapshot

    def reload_from_file(self, path: str | Path) -> ConfigSnapshot:
        """Load *path* and publish it. Parse errors surface as ConfigurationError."""
        return self.reload(load_security_config(path))

    def listener(self, name: str) -> RateLimiter | None:
        """Look up a live failure listener by its configured name."""
        for identity, listener in self._listeners.items():
            if identity[0] == name:
                return listener
        return None
