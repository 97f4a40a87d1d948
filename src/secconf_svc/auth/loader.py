"""Security config loader - reads the dynamic config from YAML or JSON files."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from ..errors import ConfigurationError
from .config import DynamicConfig

logger = logging.getLogger(__name__)


class SecurityConfigLoader:
    """
    Loads the dynamic security configuration.

    File format:
    ```yaml
    _meta:
      type: config
      config_version: 2
    config:
      dynamic:
        http:
          anonymous_auth_enabled: false
        authc:
          basic_internal_auth_domain:
            order: 1
            http_authenticator: {type: basic, challenge: true}
            authentication_backend: {type: intern}
    ```
    """

    def load_file(self, path: str | Path) -> DynamicConfig:
        """Load config from a YAML or JSON file."""
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Security config file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            try:
                if path.suffix in (".yaml", ".yml"):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
            except (yaml.YAMLError, json.JSONDecodeError) as e:
                raise ConfigurationError(f"Cannot parse {path}: {e}") from e

        logger.debug(f"Read security config from {path}")
        return self.load_dict(data or {})

    def load_dict(self, data: dict[str, Any]) -> DynamicConfig:
        """Load config from a dictionary."""
        meta = data.get("_meta") if isinstance(data, dict) else None
        if isinstance(meta, dict) and meta.get("type", "config") != "config":
            raise ConfigurationError(f"Expected a config document, got type {meta.get('type')!r}")
        config = DynamicConfig.from_dict(data)
        logger.info(
            f"Loaded security config with {len(config.domains)} authc domains, "
            f"{len(config.authz)} authz domains, {len(config.failure_listeners)} failure listeners"
        )
        return config


def load_security_config(source: str | Path | dict) -> DynamicConfig:
    """
    Convenience function to load the dynamic security config.

    Args:
        source: File path or dictionary

    Returns:
        DynamicConfig ready for the snapshot builder
    """
    loader = SecurityConfigLoader()

    if isinstance(source, dict):
        return loader.load_dict(source)
    return loader.load_file(source)
