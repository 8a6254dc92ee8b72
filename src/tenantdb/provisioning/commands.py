"""Commands accepted by provisioning handlers."""

from uuid import UUID

from pydantic import Field, SecretStr, field_validator, model_validator

from tenantdb.models.database import DatabaseProvider, DatabaseStrategy, UnsupportedProviderError
from tenantdb.models.migration import MigrationStatus
from tenantdb.secrets.types import DatabaseCredentials, UserCredentials

from .dtos import WireModel

IDENTIFIER_PATTERN = r"^[a-z0-9-]+$"


class CustomCredentials(WireModel):
    """Caller-supplied credential bundle for an External database."""

    admin_username: str = Field(..., min_length=1)
    admin_password: SecretStr
    app_username: str = Field(..., min_length=1)
    app_password: SecretStr
    host: str = Field(..., min_length=1)
    port: int = Field(..., ge=1, le=65535)
    database: str = Field(..., min_length=1)
    additional_parameters: dict[str, str] | None = None

    @model_validator(mode="after")
    def _distinct_principals(self) -> "CustomCredentials":
        if self.admin_username == self.app_username:
            raise ValueError("Admin and application users must be different principals")
        return self

    def to_credentials(self, provider: DatabaseProvider) -> DatabaseCredentials:
        return DatabaseCredentials(
            admin=UserCredentials(self.admin_username, self.admin_password.get_secret_value()),
            application=UserCredentials(self.app_username, self.app_password.get_secret_value()),
            host=self.host,
            port=self.port,
            database=self.database,
            provider=provider,
            additional_parameters=self.additional_parameters,
        )


class CreateTenantCommand(WireModel):
    """Create a tenant and provision credentials for every participating service.

    ``custom_credentials`` is required for the External strategy; the
    handler reports its absence as ``Tenant.ExternalCredentialsRequired``.
    """

    identifier: str = Field(..., min_length=1, max_length=100, pattern=IDENTIFIER_PATTERN)
    name: str = Field(..., min_length=1, max_length=200)
    plan: str = Field(..., min_length=1, max_length=50)
    database_strategy: DatabaseStrategy
    database_provider: DatabaseProvider
    custom_credentials: CustomCredentials | None = None

    @field_validator("database_strategy", mode="before")
    @classmethod
    def _parse_strategy(cls, value: object) -> DatabaseStrategy:
        strategy = DatabaseStrategy.parse(value) if isinstance(value, str) else value
        if strategy is DatabaseStrategy.NONE:
            raise ValueError("Database strategy cannot be none")
        return strategy

    @field_validator("database_provider", mode="before")
    @classmethod
    def _parse_provider(cls, value: object) -> DatabaseProvider:
        try:
            provider = DatabaseProvider.parse(value) if isinstance(value, str) else value
        except UnsupportedProviderError as e:
            raise ValueError(str(e)) from e
        if provider is DatabaseProvider.NONE:
            raise ValueError("Database provider cannot be none")
        return provider


class UpdateMigrationStatusCommand(WireModel):
    """Record a status transition reported by a service's migration handler."""

    tenant_id: UUID
    service_name: str = Field(..., min_length=1, max_length=100)
    status: MigrationStatus
    last_migration_version: str | None = Field(default=None, max_length=255)
    error_message: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: object) -> MigrationStatus:
        return MigrationStatus.parse(value) if isinstance(value, str) else value
