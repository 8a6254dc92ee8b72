"""Per-provider migration dialect settings."""

from dataclasses import dataclass

from tenantdb.models.database import DatabaseProvider, UnsupportedProviderError
from tenantdb.secrets.types import DEFAULT_DRIVERS

from .scripts import split_statements


@dataclass(frozen=True, slots=True)
class MigrationDialect:
    """How migrations run against one provider.

    Attributes:
        provider: Database provider
        driver: SQLAlchemy ``dialect+driver`` name
        default_journal_schema: Schema for the journal table when none is configured
    """

    provider: DatabaseProvider
    driver: str
    default_journal_schema: str | None = None

    def split(self, sql: str) -> list[str]:
        return split_statements(sql, self.provider)


_DIALECTS: dict[DatabaseProvider, MigrationDialect] = {
    DatabaseProvider.POSTGRESQL: MigrationDialect(
        DatabaseProvider.POSTGRESQL, DEFAULT_DRIVERS[DatabaseProvider.POSTGRESQL]
    ),
    DatabaseProvider.SQLSERVER: MigrationDialect(
        DatabaseProvider.SQLSERVER, DEFAULT_DRIVERS[DatabaseProvider.SQLSERVER], "dbo"
    ),
    DatabaseProvider.MYSQL: MigrationDialect(
        DatabaseProvider.MYSQL, DEFAULT_DRIVERS[DatabaseProvider.MYSQL]
    ),
}


def dialect_for(provider: DatabaseProvider | str | None) -> MigrationDialect:
    """Look up the migration dialect for a provider.

    Raises:
        UnsupportedProviderError: For ``None``, ``NONE`` or unknown providers
    """
    if provider is None:
        raise UnsupportedProviderError(None)
    resolved = DatabaseProvider.parse(provider)
    dialect = _DIALECTS.get(resolved)
    if dialect is None:
        raise UnsupportedProviderError(resolved.value)
    return dialect
