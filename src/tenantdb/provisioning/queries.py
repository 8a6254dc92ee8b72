"""Read-side handlers over tenant aggregates."""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tenantdb.core.result import Error, Outcome
from tenantdb.db.models.tenant import Tenant
from tenantdb.db.repositories.tenant import TenantRepository
from tenantdb.models.migration import MigrationStatus

from .dtos import MigrationStatusDto, ServiceDatabaseInfoDto, ServiceReadinessDto, TenantDto


class _TenantQuery:
    def __init__(self, session: AsyncSession):
        self.repository = TenantRepository(session)

    async def _load(self, tenant_id: UUID) -> Outcome[Tenant]:
        tenant = await self.repository.get(tenant_id)
        if tenant is None:
            return Outcome.fail(
                Error.not_found(
                    "Tenant.NotFound",
                    f"Tenant with ID '{tenant_id}' not found",
                    tenant_id=str(tenant_id),
                )
            )
        return Outcome.ok(tenant)


class GetTenantByIdHandler(_TenantQuery):
    async def handle(self, tenant_id: UUID) -> Outcome[TenantDto]:
        return (await self._load(tenant_id)).map(TenantDto.from_model)


class GetTenantDatabaseInfoHandler(_TenantQuery):
    """Credential locations for one service of a tenant."""

    async def handle(self, tenant_id: UUID, service_name: str) -> Outcome[ServiceDatabaseInfoDto]:
        loaded = await self._load(tenant_id)
        if loaded.is_error:
            return Outcome.fail(*loaded.errors)

        database = loaded.value.get_database(service_name)
        if database is None:
            return Outcome.fail(
                Error.not_found(
                    "Tenant.DatabaseNotFound",
                    f"Database metadata for service '{service_name}' not found",
                    service_name=service_name,
                )
            )
        return Outcome.ok(
            ServiceDatabaseInfoDto(
                vault_write_path=database.write_secret_path,
                vault_read_path=database.read_secret_path,
                has_separate_read_database=database.has_separate_read_database,
                write_env_key=database.write_env_key,
                read_env_key=database.read_env_key,
            )
        )


class GetMigrationStatusHandler(_TenantQuery):
    async def handle(self, tenant_id: UUID, service_name: str) -> Outcome[MigrationStatusDto]:
        loaded = await self._load(tenant_id)
        if loaded.is_error:
            return Outcome.fail(*loaded.errors)

        entry = loaded.value.get_migration_status(service_name)
        if entry is None:
            return Outcome.fail(
                Error.not_found(
                    "Tenant.MigrationStatusNotFound",
                    f"Migration status for service '{service_name}' not found",
                    service_name=service_name,
                )
            )
        return Outcome.ok(MigrationStatusDto.from_model(entry))


class CheckServiceReadinessHandler(_TenantQuery):
    """A service is ready for a tenant once its database metadata exists
    and its migrations completed.
    """

    async def handle(self, tenant_id: UUID, service_name: str) -> Outcome[ServiceReadinessDto]:
        loaded = await self._load(tenant_id)
        if loaded.is_error:
            return Outcome.fail(*loaded.errors)
        tenant = loaded.value

        if tenant.get_database(service_name) is None:
            return Outcome.fail(
                Error.not_found(
                    "Tenant.DatabaseMetadataNotFound",
                    f"Database metadata for service '{service_name}' not found",
                    service_name=service_name,
                )
            )

        entry = tenant.get_migration_status(service_name)
        status = entry.status if entry is not None else MigrationStatus.PENDING
        return Outcome.ok(
            ServiceReadinessDto(
                service_name=service_name,
                ready=tenant.is_active and status is MigrationStatus.COMPLETED,
                status=status,
                last_migration_version=entry.last_migration_version if entry else None,
            )
        )
