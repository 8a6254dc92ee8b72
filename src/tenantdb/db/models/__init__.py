"""Database models for tenantdb."""

from .base import Base, TimestampMixin
from .tenant import Tenant, TenantCreated, TenantDatabaseMetadata, TenantMigrationStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "Tenant",
    "TenantCreated",
    "TenantDatabaseMetadata",
    "TenantMigrationStatus",
]
