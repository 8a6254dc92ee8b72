"""Schema migrations for tenant and shared service databases."""

from tenantdb.migration.dialects import MigrationDialect, dialect_for
from tenantdb.migration.handler import BASELINE_MIGRATION_VERSION, TenantMigrationHandler
from tenantdb.migration.journal import ScriptJournal
from tenantdb.migration.runner import (
    MigrationFailure,
    MigrationOptions,
    MigrationResult,
    MigrationRunner,
)
from tenantdb.migration.scripts import MigrationScript, discover_scripts, split_statements
from tenantdb.migration.status import (
    CustomerApiClient,
    LocalStatusReporter,
    StatusApiError,
    StatusReporter,
)

__all__ = [
    "BASELINE_MIGRATION_VERSION",
    "CustomerApiClient",
    "LocalStatusReporter",
    "MigrationDialect",
    "MigrationFailure",
    "MigrationOptions",
    "MigrationResult",
    "MigrationRunner",
    "MigrationScript",
    "ScriptJournal",
    "StatusApiError",
    "StatusReporter",
    "TenantMigrationHandler",
    "dialect_for",
    "discover_scripts",
    "split_statements",
]
