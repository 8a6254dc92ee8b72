"""Database strategy and provider value objects.

Strategy decides the physical topology a tenant gets for each service;
provider decides connection-string syntax and migration dialect. Both are
closed enumerations: every dispatch over them is exhaustive and an unknown
provider fails closed with ``UnsupportedProviderError``.
"""

from enum import Enum

from tenantdb.utils.exceptions import TenantDbError


class UnsupportedProviderError(TenantDbError):
    """Raised when a database provider has no supported dialect."""

    def __init__(self, provider: object):
        self.provider = provider
        super().__init__(f"Database provider '{provider}' is not supported")


class DatabaseStrategy(str, Enum):
    """Isolation strategy for a tenant's databases."""

    NONE = "none"
    SHARED = "shared"
    DEDICATED = "dedicated"
    EXTERNAL = "external"

    @classmethod
    def parse(cls, value: "str | DatabaseStrategy") -> "DatabaseStrategy":
        """Parse a strategy name case-insensitively.

        Raises:
            ValueError: If the name is not a known strategy
        """
        if isinstance(value, DatabaseStrategy):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown database strategy: {value!r}") from None

    @property
    def has_separate_read_database(self) -> bool:
        """System-managed topologies get a read replica path."""
        return self in (DatabaseStrategy.SHARED, DatabaseStrategy.DEDICATED)

    @property
    def requires_custom_credentials(self) -> bool:
        return self is DatabaseStrategy.EXTERNAL

    @property
    def requires_dedicated_connection(self) -> bool:
        return self in (DatabaseStrategy.DEDICATED, DatabaseStrategy.EXTERNAL)

    @property
    def path_scope(self) -> str:
        """Top-level secret path segment for this strategy."""
        match self:
            case DatabaseStrategy.SHARED:
                return "shared"
            case DatabaseStrategy.DEDICATED | DatabaseStrategy.EXTERNAL:
                return "tenants"
            case DatabaseStrategy.NONE:
                raise ValueError("Strategy NONE has no secret path scope")


class DatabaseProvider(str, Enum):
    """Relational database engine behind a tenant database."""

    NONE = "none"
    POSTGRESQL = "postgresql"
    SQLSERVER = "sqlserver"
    MYSQL = "mysql"

    @classmethod
    def parse(cls, value: "str | DatabaseProvider") -> "DatabaseProvider":
        """Parse a provider name, accepting common aliases.

        Args:
            value: Provider name such as ``postgres``, ``npgsql`` or ``mssql``

        Raises:
            UnsupportedProviderError: If the name is not a supported provider
        """
        if isinstance(value, DatabaseProvider):
            return value
        provider = _PROVIDER_ALIASES.get(value.strip().lower())
        if provider is None:
            raise UnsupportedProviderError(value)
        return provider

    def require_supported(self) -> "DatabaseProvider":
        """Return self, or raise if this is the NONE placeholder."""
        if self is DatabaseProvider.NONE:
            raise UnsupportedProviderError(self.value)
        return self

    @property
    def default_port(self) -> int:
        match self:
            case DatabaseProvider.POSTGRESQL:
                return 5432
            case DatabaseProvider.SQLSERVER:
                return 1433
            case DatabaseProvider.MYSQL:
                return 3306
            case DatabaseProvider.NONE:
                raise UnsupportedProviderError(self.value)

    @property
    def field_separator(self) -> str:
        """Separator between connection string fields."""
        return ";"


_PROVIDER_ALIASES: dict[str, DatabaseProvider] = {
    "postgresql": DatabaseProvider.POSTGRESQL,
    "postgres": DatabaseProvider.POSTGRESQL,
    "npgsql": DatabaseProvider.POSTGRESQL,
    "sqlserver": DatabaseProvider.SQLSERVER,
    "mssql": DatabaseProvider.SQLSERVER,
    "mysql": DatabaseProvider.MYSQL,
}
