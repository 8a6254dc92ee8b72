"""Configuration module for tenantdb."""

from tenantdb.config.settings import MigrationSettings, Settings, get_settings

__all__ = ["MigrationSettings", "Settings", "get_settings"]
