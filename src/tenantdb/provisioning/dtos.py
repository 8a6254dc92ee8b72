"""Data transfer objects returned by provisioning handlers and the tenant API.

Field names are camelCase on the wire and snake_case in Python; both are
accepted when parsing.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from tenantdb.db.models.tenant import Tenant, TenantDatabaseMetadata, TenantMigrationStatus
from tenantdb.models.database import DatabaseProvider, DatabaseStrategy
from tenantdb.models.migration import MigrationStatus


class WireModel(BaseModel):
    """Base for camelCase wire contracts."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TenantDatabaseDto(WireModel):
    """Where one service's credentials are found."""

    service_name: str
    write_secret_path: str
    write_env_key: str
    read_secret_path: str | None = None
    read_env_key: str | None = None
    has_separate_read_database: bool

    @classmethod
    def from_model(cls, metadata: TenantDatabaseMetadata) -> "TenantDatabaseDto":
        return cls(
            service_name=metadata.service_name,
            write_secret_path=metadata.write_secret_path,
            write_env_key=metadata.write_env_key,
            read_secret_path=metadata.read_secret_path,
            read_env_key=metadata.read_env_key,
            has_separate_read_database=metadata.has_separate_read_database,
        )


class MigrationStatusDto(WireModel):
    """Migration state of one service."""

    service_name: str
    status: MigrationStatus
    last_migration_version: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None

    @classmethod
    def from_model(cls, entry: TenantMigrationStatus) -> "MigrationStatusDto":
        return cls(
            service_name=entry.service_name,
            status=entry.status,
            last_migration_version=entry.last_migration_version,
            started_at=entry.started_at,
            completed_at=entry.completed_at,
            error_message=entry.error_message,
        )


class TenantDto(WireModel):
    """Tenant with its per-service topology and migration state."""

    tenant_id: UUID
    identifier: str
    name: str
    plan: str
    database_strategy: DatabaseStrategy
    database_provider: DatabaseProvider
    is_active: bool
    provisioning_status: MigrationStatus
    databases: list[TenantDatabaseDto] = Field(default_factory=list)
    migration_statuses: list[MigrationStatusDto] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, tenant: Tenant) -> "TenantDto":
        return cls(
            tenant_id=tenant.tenant_id,
            identifier=tenant.identifier,
            name=tenant.name,
            plan=tenant.plan,
            database_strategy=tenant.database_strategy,
            database_provider=tenant.database_provider,
            is_active=tenant.is_active,
            provisioning_status=tenant.provisioning_status,
            databases=[TenantDatabaseDto.from_model(db) for db in tenant.databases],
            migration_statuses=[
                MigrationStatusDto.from_model(entry) for entry in tenant.migration_statuses
            ],
            created_at=tenant.created_at,
            updated_at=tenant.updated_at,
        )


class ServiceDatabaseInfoDto(WireModel):
    """Credential locations a migration handler needs for one service."""

    vault_write_path: str
    vault_read_path: str | None = None
    has_separate_read_database: bool
    write_env_key: str | None = None
    read_env_key: str | None = None


class ServiceReadinessDto(WireModel):
    """Whether a service's database for a tenant is ready for traffic."""

    service_name: str
    ready: bool
    status: MigrationStatus
    last_migration_version: str | None = None


class UpdateMigrationStatusRequest(WireModel):
    """Body of ``PUT /api/v1/tenants/{id}/services/{service}/migration-status``."""

    status: MigrationStatus
    last_migration_version: str | None = Field(default=None, max_length=255)
    error_message: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: object) -> MigrationStatus:
        return MigrationStatus.parse(value) if isinstance(value, str) else value
