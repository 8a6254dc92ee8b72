"""Command handlers for tenant provisioning.

Handlers return ``Outcome`` values and never raise for expected failures.
Secret-store writes are not transactional with the tenant store: bundles
are written first, idempotently by path, and the aggregate is committed
only when every write succeeded.
"""

from collections.abc import Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from tenantdb.core.logging import LogContext, get_logger
from tenantdb.core.result import Error, Outcome
from tenantdb.db.models.tenant import Tenant
from tenantdb.db.repositories.tenant import TenantRepository
from tenantdb.models.database import DatabaseStrategy
from tenantdb.secrets.exceptions import SecretsError
from tenantdb.secrets.paths import AccessLevel, SecretPaths, connection_env_key
from tenantdb.secrets.protocol import SecretStore
from tenantdb.secrets.types import DatabaseCredentials

from .commands import CreateTenantCommand, UpdateMigrationStatusCommand
from .credentials import generate_credentials
from .dtos import MigrationStatusDto, TenantDto
from .events import EventPublisher, TenantCreatedEvent

logger = get_logger(__name__)

DEFAULT_SERVICES: tuple[str, ...] = ("catalog", "orders", "customer")


class _CredentialStorageFailed(Exception):
    def __init__(self, path: str, cause: SecretsError):
        self.path = path
        self.cause = cause
        super().__init__(str(cause))


class CreateTenantHandler:
    """Creates a tenant, stores its credential bundles and announces it.

    Args:
        session: Tenant store session
        secret_store: Credential store
        publisher: Receives ``TenantCreatedEvent`` after commit
        services: Participating services
        paths: Secret path layout
        database_host: Host recorded in generated bundles
    """

    def __init__(
        self,
        session: AsyncSession,
        secret_store: SecretStore,
        publisher: EventPublisher | None = None,
        *,
        services: Sequence[str] = DEFAULT_SERVICES,
        paths: SecretPaths | None = None,
        database_host: str = "localhost",
    ):
        self.session = session
        self.secret_store = secret_store
        self.publisher = publisher
        self.services = tuple(services)
        self.paths = paths or SecretPaths()
        self.database_host = database_host
        self.repository = TenantRepository(session)

    async def handle(self, command: CreateTenantCommand) -> Outcome[TenantDto]:
        if await self.repository.exists_by_identifier(command.identifier):
            return Outcome.fail(_already_exists(command.identifier))

        created = Tenant.create(
            command.identifier,
            command.name,
            command.plan,
            command.database_strategy,
            command.database_provider,
        )
        if created.is_error:
            return Outcome.fail(*created.errors)
        tenant = created.value

        strategy = command.database_strategy
        if strategy is DatabaseStrategy.EXTERNAL and command.custom_credentials is None:
            return Outcome.fail(
                Error.validation(
                    "Tenant.ExternalCredentialsRequired",
                    "Custom credentials are required for External database strategy",
                )
            )

        written: list[str] = []
        with LogContext(tenant_identifier=tenant.identifier, strategy=strategy.value):
            for service_name in self.services:
                try:
                    setup = await self._setup_service(tenant, service_name, command, written)
                except _CredentialStorageFailed as e:
                    logger.error(
                        "credential_storage_failed",
                        service_name=service_name,
                        path=e.path,
                        written=len(written),
                        error=str(e.cause),
                    )
                    return Outcome.fail(
                        Error.unexpected(
                            "Tenant.CredentialStorageFailed",
                            f"Failed to store credentials for service '{service_name}': {e.cause}",
                            service_name=service_name,
                            failed_path=e.path,
                            written_paths=list(written),
                            transient=e.cause.transient,
                        )
                    )
                if setup.is_error:
                    return Outcome.fail(*setup.errors)

            for service_name in self.services:
                initialized = tenant.initialize_migration_status(service_name)
                if initialized.is_error:
                    return Outcome.fail(*initialized.errors)

            events = tenant.pull_events()
            try:
                await self.repository.add(tenant)
            except IntegrityError:
                await self.session.rollback()
                return Outcome.fail(_already_exists(command.identifier))

            logger.info(
                "tenant_created",
                tenant_id=str(tenant.tenant_id),
                services=list(self.services),
                credential_writes=len(written),
            )

            if self.publisher is not None:
                for event in events:
                    await self.publisher.publish(TenantCreatedEvent.from_domain(event))

        return Outcome.ok(TenantDto.from_model(tenant))

    async def _setup_service(
        self,
        tenant: Tenant,
        service_name: str,
        command: CreateTenantCommand,
        written: list[str],
    ) -> Outcome[None]:
        strategy = command.database_strategy
        provider = command.database_provider
        write_key = connection_env_key(tenant.identifier, service_name, AccessLevel.WRITE)
        read_key = connection_env_key(tenant.identifier, service_name, AccessLevel.READ)

        match strategy:
            case DatabaseStrategy.SHARED | DatabaseStrategy.DEDICATED:
                write_path = self.paths.for_tenant(
                    strategy, tenant.identifier, service_name, AccessLevel.WRITE
                )
                read_path = self.paths.for_tenant(
                    strategy, tenant.identifier, service_name, AccessLevel.READ
                )
                for path, read_only in ((write_path, False), (read_path, True)):
                    # shared bundles are created once and reused by every shared tenant
                    if strategy is DatabaseStrategy.SHARED and await self._exists(path):
                        continue
                    bundle = generate_credentials(
                        service_name,
                        provider,
                        strategy,
                        tenant.identifier,
                        read_only=read_only,
                        host=self.database_host,
                    )
                    await self._store(path, bundle, written)
                added = tenant.add_database_metadata(
                    service_name,
                    write_secret_path=write_path,
                    write_env_key=write_key,
                    read_secret_path=read_path,
                    read_env_key=read_key,
                    has_separate_read_database=True,
                )

            case DatabaseStrategy.EXTERNAL:
                write_path = self.paths.for_tenant(
                    strategy, tenant.identifier, service_name, AccessLevel.WRITE
                )
                bundle = command.custom_credentials.to_credentials(provider)
                await self._store(write_path, bundle, written)
                added = tenant.add_database_metadata(
                    service_name,
                    write_secret_path=write_path,
                    write_env_key=write_key,
                    has_separate_read_database=False,
                )

            case DatabaseStrategy.NONE:
                return Outcome.fail(
                    Error.validation(
                        "Tenant.InvalidStrategy", f"Invalid database strategy: {strategy.value}"
                    )
                )

        if added.is_error:
            return Outcome.fail(*added.errors)
        return Outcome.ok(None)

    async def _exists(self, path: str) -> bool:
        try:
            return await self.secret_store.credentials_exist(path)
        except SecretsError as e:
            raise _CredentialStorageFailed(path, e) from e

    async def _store(self, path: str, bundle: DatabaseCredentials, written: list[str]) -> None:
        try:
            await self.secret_store.store_credentials(path, bundle)
        except SecretsError as e:
            raise _CredentialStorageFailed(path, e) from e
        written.append(path)


class UpdateMigrationStatusHandler:
    """Applies a service's reported migration status to its tenant."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repository = TenantRepository(session)

    async def handle(self, command: UpdateMigrationStatusCommand) -> Outcome[MigrationStatusDto]:
        tenant = await self.repository.get(command.tenant_id)
        if tenant is None:
            return Outcome.fail(_tenant_not_found(command.tenant_id))

        updated = tenant.update_migration_status(
            command.service_name,
            command.status,
            command.last_migration_version,
            command.error_message,
        )
        if updated.is_error:
            return Outcome.fail(*updated.errors)

        previous = tenant.provisioning_status
        rolled_up = tenant.reconcile_provisioning_status()
        try:
            await self.repository.save()
        except StaleDataError:
            await self.session.rollback()
            return Outcome.fail(
                Error.conflict(
                    "Tenant.ConcurrentUpdate",
                    f"Tenant '{command.tenant_id}' was modified concurrently; retry the update",
                )
            )

        log = logger.bind(tenant_id=str(command.tenant_id), service_name=command.service_name)
        log.info(
            "migration_status_updated",
            status=command.status.value,
            last_migration_version=updated.value.last_migration_version,
        )
        if rolled_up is not previous:
            log.info(
                "provisioning_status_changed", previous=previous.value, current=rolled_up.value
            )
        return Outcome.ok(MigrationStatusDto.from_model(updated.value))


def _already_exists(identifier: str) -> Error:
    return Error.conflict(
        "Tenant.AlreadyExists",
        f"Tenant with identifier '{identifier}' already exists",
        identifier=identifier,
    )


def _tenant_not_found(tenant_id) -> Error:
    return Error.not_found(
        "Tenant.NotFound", f"Tenant with ID '{tenant_id}' not found", tenant_id=str(tenant_id)
    )
