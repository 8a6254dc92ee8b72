"""Credential types and connection-string construction.

A ``DatabaseCredentials`` bundle holds two distinct principals for one
physical database: the admin user, used only by migrations, and the
application user, used only at runtime. Bundles are stored in the secret
store as flat string payloads (see ``to_secret_data``).
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy.engine import URL

from tenantdb.models.database import DatabaseProvider, UnsupportedProviderError
from tenantdb.secrets.exceptions import SecretValidationError

PARAM_PREFIX = "param_"

REQUIRED_FIELDS = (
    "admin_username",
    "admin_password",
    "app_username",
    "app_password",
    "host",
    "port",
    "database",
)

# SQLAlchemy async drivers per provider
DEFAULT_DRIVERS: dict[DatabaseProvider, str] = {
    DatabaseProvider.POSTGRESQL: "postgresql+asyncpg",
    DatabaseProvider.SQLSERVER: "mssql+aioodbc",
    DatabaseProvider.MYSQL: "mysql+aiomysql",
}

SQLSERVER_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"


class CredentialRole(str, Enum):
    """Which principal of a bundle a connection uses."""

    ADMIN = "admin"
    APPLICATION = "application"


class InvalidConnectionParameterError(ValueError):
    """Raised when a value would break the connection string it is placed in."""

    def __init__(self, name: str, separator: str):
        self.name = name
        super().__init__(
            f"Connection parameter '{name}' contains the field separator '{separator}'"
        )


@dataclass(frozen=True, slots=True)
class UserCredentials:
    """A database login.

    Attributes:
        username: Database user name
        password: Database password
    """

    username: str
    password: str

    def __repr__(self) -> str:
        return f"UserCredentials(username={self.username!r}, password='***')"


@dataclass(frozen=True, slots=True)
class DatabaseCredentials:
    """Admin and application logins for one tenant database.

    Attributes:
        admin: Principal used by migrations
        application: Principal used by the service at runtime
        host: Database host
        port: Database port
        database: Database name
        provider: Provider recorded with the bundle, if any
        additional_parameters: Extra connection parameters appended verbatim
    """

    admin: UserCredentials
    application: UserCredentials
    host: str
    port: int
    database: str
    provider: DatabaseProvider | None = None
    additional_parameters: Mapping[str, str] | None = field(default=None)

    def user_for(self, role: CredentialRole) -> UserCredentials:
        return self.admin if role is CredentialRole.ADMIN else self.application

    def validate_principals(self) -> None:
        """Ensure admin and application are distinct principals.

        Raises:
            ValueError: If both roles share a username
        """
        if self.admin.username == self.application.username:
            raise ValueError(
                f"Admin and application principals must differ (both are '{self.admin.username}')"
            )

    def connection_string(
        self,
        role: CredentialRole,
        provider: DatabaseProvider | str | None = None,
        host_override: str | None = None,
        port_override: int | None = None,
    ) -> str:
        """Build a connection string using the recorded provider unless one is given."""
        return build_connection_string(
            self, provider or self.provider, role, host_override, port_override
        )

    def to_url(
        self,
        role: CredentialRole = CredentialRole.ADMIN,
        provider: DatabaseProvider | str | None = None,
        driver: str | None = None,
    ) -> URL:
        """Convert credentials to a SQLAlchemy URL.

        Args:
            role: Which principal to connect as
            provider: Provider override (defaults to the recorded provider)
            driver: Explicit ``dialect+driver`` name

        Returns:
            SQLAlchemy URL; passwords are escaped by ``URL`` itself

        Raises:
            UnsupportedProviderError: If no supported provider is known
        """
        resolved = _resolve_provider(provider or self.provider)
        user = self.user_for(role)
        query: dict[str, str] = {}
        if resolved is DatabaseProvider.SQLSERVER:
            query = {"driver": SQLSERVER_ODBC_DRIVER, "TrustServerCertificate": "yes"}
        if self.additional_parameters:
            query.update(self.additional_parameters)

        return URL.create(
            drivername=driver or DEFAULT_DRIVERS[resolved],
            username=user.username,
            password=user.password,
            host=self.host,
            port=self.port,
            database=self.database,
            query=query,
        )

    def to_secret_data(self) -> dict[str, str]:
        """Flatten the bundle into the stored payload format."""
        data = {
            "admin_username": self.admin.username,
            "admin_password": self.admin.password,
            "app_username": self.application.username,
            "app_password": self.application.password,
            "host": self.host,
            "port": str(self.port),
            "database": self.database,
        }
        if self.provider is not None:
            data["provider"] = self.provider.value
        for key, value in (self.additional_parameters or {}).items():
            data[f"{PARAM_PREFIX}{key}"] = value
        return data

    @classmethod
    def from_secret_data(cls, path: str, data: Mapping[str, Any]) -> "DatabaseCredentials":
        """Parse a stored payload.

        Args:
            path: Path the payload was read from, used in error messages
            data: Raw key/value payload

        Raises:
            SecretValidationError: If a required key is missing or the port is invalid
        """
        for key in REQUIRED_FIELDS:
            if key not in data or data[key] is None or str(data[key]) == "":
                raise SecretValidationError.missing_key(path, key)

        try:
            port = int(data["port"])
        except (TypeError, ValueError):
            raise SecretValidationError(
                path, f"Invalid port '{data['port']}' in credentials at {path}", key="port"
            ) from None

        provider: DatabaseProvider | None = None
        if data.get("provider"):
            try:
                provider = DatabaseProvider.parse(str(data["provider"]))
            except UnsupportedProviderError as e:
                raise SecretValidationError(path, str(e), key="provider") from e

        params = {
            key[len(PARAM_PREFIX) :]: str(value)
            for key, value in data.items()
            if key.startswith(PARAM_PREFIX)
        }

        return cls(
            admin=UserCredentials(str(data["admin_username"]), str(data["admin_password"])),
            application=UserCredentials(str(data["app_username"]), str(data["app_password"])),
            host=str(data["host"]),
            port=port,
            database=str(data["database"]),
            provider=provider,
            additional_parameters=params or None,
        )


def _resolve_provider(provider: DatabaseProvider | str | None) -> DatabaseProvider:
    if provider is None:
        raise UnsupportedProviderError(None)
    return DatabaseProvider.parse(provider).require_supported()


def _check_field(name: str, value: str, separator: str) -> str:
    if separator in value:
        raise InvalidConnectionParameterError(name, separator)
    return value


def build_connection_string(
    credentials: DatabaseCredentials,
    provider: DatabaseProvider | str | None,
    role: CredentialRole,
    host_override: str | None = None,
    port_override: int | None = None,
) -> str:
    """Build a provider-specific connection string.

    Host and port overrides let a read replica reuse the bundle's logins
    against a different endpoint.

    Args:
        credentials: Credential bundle
        provider: Target provider (name or enum)
        role: Principal to connect as
        host_override: Host to use instead of the bundle's
        port_override: Port to use instead of the bundle's

    Returns:
        Connection string, each field terminated by the provider separator

    Raises:
        UnsupportedProviderError: For unknown providers or ``NONE``
        InvalidConnectionParameterError: If any field contains the separator
    """
    resolved = _resolve_provider(provider)
    sep = resolved.field_separator
    user = credentials.user_for(role)

    host = _check_field("host", host_override or credentials.host, sep)
    port = port_override if port_override is not None else credentials.port
    database = _check_field("database", credentials.database, sep)
    username = _check_field("username", user.username, sep)
    password = _check_field("password", user.password, sep)

    match resolved:
        case DatabaseProvider.POSTGRESQL:
            fields = [
                f"Host={host}",
                f"Port={port}",
                f"Database={database}",
                f"Username={username}",
                f"Password={password}",
            ]
        case DatabaseProvider.SQLSERVER:
            fields = [
                f"Server={host},{port}",
                f"Database={database}",
                f"User Id={username}",
                f"Password={password}",
                "TrustServerCertificate=True",
            ]
        case DatabaseProvider.MYSQL:
            fields = [
                f"Server={host}",
                f"Port={port}",
                f"Database={database}",
                f"Uid={username}",
                f"Pwd={password}",
            ]
        case _:
            raise UnsupportedProviderError(resolved.value)

    for key, value in (credentials.additional_parameters or {}).items():
        _check_field(key, key, sep)
        if "=" in key:
            raise InvalidConnectionParameterError(key, "=")
        _check_field(key, value, sep)
        fields.append(f"{key}={value}")

    return "".join(f"{item}{sep}" for item in fields)
