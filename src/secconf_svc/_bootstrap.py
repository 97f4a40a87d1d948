"""Shared initialisation helpers for the service entry points.

Each function constructs exactly one component from the service stack.
management_app.py calls them from its lifespan; tests call them directly
to get the same wiring without a running server.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

def load_config(config_path: str | None = None):
    """Load config from file or fall back to defaults.

    Returns ``(config, resolved_config_path)`` where *resolved_config_path*
    is the string that was actually used (needed to resolve relative paths
    such as ``security_config_file``).
    """
    from .config import ServiceConfig

    config_path = config_path or os.environ.get("SECCONF_CONFIG", "config.yaml")
    if Path(config_path).exists():
        config = ServiceConfig.from_yaml(config_path)
        logger.info("Loaded config from %s", config_path)
    else:
        config = ServiceConfig()
        logger.info("Using default config (no file at %s)", config_path)
    return config, config_path


def configure_logging(config) -> None:
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=config.level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger().setLevel(config.level)


# ---------------------------------------------------------------------------
# Registries
# ---------------------------------------------------------------------------

def build_alias_registry():
    """Build the alias table used to resolve configuration type names."""
    from .auth.aliases import build_default_alias_registry

    registry = build_default_alias_registry()
    logger.info("Registered %d aliases", len(registry.aliases()))
    return registry


def build_backend_registry():
    """Build the registry of constructible backend implementations."""
    from .auth.backends import default_backend_registry

    registry = default_backend_registry()
    logger.info("Registered backends: %s", registry.all_ids())
    return registry


# ---------------------------------------------------------------------------
# Security config
# ---------------------------------------------------------------------------

def resolve_security_config_path(config, config_path: str) -> Path | None:
    """Resolve ``security_config_file`` relative to the service config file."""
    if not config.security_config_file:
        return None
    config_dir = Path(config_path).parent.resolve()
    return (config_dir / config.security_config_file).resolve()


def build_config_holder(config, config_path: str, aliases=None, backends=None):
    """Create the snapshot holder and publish the initial generation.

    Returns ``(holder, security_config_path)``. Without a security config
    file the holder keeps the empty generation 0 snapshot.
    """
    from .auth.builder import SnapshotBuilder
    from .auth.holder import DynamicConfigHolder

    builder = SnapshotBuilder(
        aliases=aliases if aliases is not None else build_alias_registry(),
        backends=backends if backends is not None else build_backend_registry(),
    )
    holder = DynamicConfigHolder(builder)

    security_config_path = resolve_security_config_path(config, config_path)
    if security_config_path is None:
        logger.info("No security_config_file configured, starting with an empty snapshot")
    elif security_config_path.exists():
        logger.info("Loading security config from: %s", security_config_path)
        holder.reload_from_file(security_config_path)
    else:
        logger.warning("Security config %s not found, starting with an empty snapshot", security_config_path)
    return holder, security_config_path


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

def configure_auth(holder) -> None:
    """Configure the process-global auth chain singleton."""
    from .auth import AuthChain, set_auth_chain

    set_auth_chain(AuthChain(holder))
    logger.info("Authentication chain bound to generation %d", holder.generation)
