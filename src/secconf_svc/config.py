"""Service configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from .errors import ConfigurationError

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ServiceConfig:
    """Process-level settings for the security configuration service."""
    security_config_file: str | None = None  # e.g., "security/config.yml"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict) -> ServiceConfig:
        """Create config from dictionary."""
        log_level = str(data.get("log_level", "INFO")).upper()
        if log_level not in _LOG_LEVELS:
            raise ConfigurationError(f"log_level must be one of {', '.join(_LOG_LEVELS)}, got {log_level!r}")

        security_config_file = data.get("security_config_file")
        if security_config_file is not None and not isinstance(security_config_file, str):
            raise ConfigurationError("security_config_file must be a string")

        return cls(security_config_file=security_config_file, log_level=log_level)

    @classmethod
    def from_yaml(cls, path: str | Path) -> ServiceConfig:
        """Load config from a YAML file."""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path}: expected a mapping at the top level")
        return cls.from_dict(data)

    @property
    def level(self) -> int:
        return logging.getLevelName(self.log_level)
