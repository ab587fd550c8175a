"""Configuration package."""

from faxbridge.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
