"""Custom exceptions for tenantdb."""


class TenantDbError(Exception):
    """Base exception for all tenantdb errors."""

    pass


class ConfigurationError(TenantDbError):
    """Error in configuration or settings."""

    pass

