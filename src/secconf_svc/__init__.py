"""Dynamic security configuration service."""

__version__ = "0.2.0"
