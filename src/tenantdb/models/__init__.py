"""Domain value objects for tenant databases."""

from tenantdb.models.database import DatabaseProvider, DatabaseStrategy, UnsupportedProviderError
from tenantdb.models.migration import MigrationStatus

__all__ = [
    "DatabaseProvider",
    "DatabaseStrategy",
    "MigrationStatus",
    "UnsupportedProviderError",
]
