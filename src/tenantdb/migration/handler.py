"""Per-service reaction to tenant creation: migrate the new tenant's database.

Each participating service runs one ``TenantMigrationHandler`` subscribed
to ``TenantCreatedEvent``. Migrations for one (tenant, service) pair never
run concurrently: a second delivery is skipped while the first is running
in this process, or while the status API reports a recent IN_PROGRESS.

Usage:
    handler = TenantMigrationHandler(
        "catalog", CustomerApiClient.from_settings(settings), runner, options
    )
    bus.subscribe(handler.handle)
"""

import asyncio
from dataclasses import replace
from datetime import timedelta
from uuid import UUID

from tenantdb.core.logging import LogContext, get_logger
from tenantdb.db.models.base import ensure_utc, utcnow
from tenantdb.models.database import DatabaseProvider
from tenantdb.models.migration import MigrationStatus
from tenantdb.provisioning.dtos import MigrationStatusDto
from tenantdb.provisioning.events import TenantCreatedEvent
from tenantdb.secrets.paths import AccessLevel, SecretPaths

from .runner import MigrationFailure, MigrationOptions, MigrationResult, MigrationRunner
from .status import StatusReporter

logger = get_logger(__name__)

# Recorded as the completed version when a database has no scripts at all
BASELINE_MIGRATION_VERSION = "baseline"

DEFAULT_STALE_AFTER = timedelta(hours=1)


class TenantMigrationHandler:
    """Runs one service's migrations for tenants and reports their status.

    Args:
        service_name: Service whose databases this handler migrates
        reporter: Status API access
        runner: Migration runner
        options: Base run options; the provider comes from each tenant
        stale_after: Age after which a reported IN_PROGRESS no longer blocks a re-run
        paths: Secret path layout for the shared database
    """

    def __init__(
        self,
        service_name: str,
        reporter: StatusReporter,
        runner: MigrationRunner,
        options: MigrationOptions,
        *,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        paths: SecretPaths | None = None,
    ):
        self.service_name = service_name
        self.reporter = reporter
        self.runner = runner
        self.options = options
        self.stale_after = stale_after
        self.paths = paths or SecretPaths()
        self._running: set[UUID] = set()

    async def handle(
        self,
        event: TenantCreatedEvent,
        *,
        cancel_event: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> MigrationResult | None:
        """Migrate the service's database for a newly created tenant.

        Returns:
            The run result, or None when the run was skipped because a
            migration for the same tenant is already in progress

        Raises:
            StatusApiError: If a status update cannot be delivered
        """
        return await self.migrate_tenant(
            event.tenant_id,
            event.database_provider,
            cancel_event=cancel_event,
            timeout=timeout,
        )

    async def migrate_tenant(
        self,
        tenant_id: UUID,
        provider: DatabaseProvider | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> MigrationResult | None:
        if tenant_id in self._running:
            logger.info(
                "migration_skipped_in_process",
                tenant_id=str(tenant_id),
                service_name=self.service_name,
            )
            return None

        self._running.add(tenant_id)
        try:
            with LogContext(tenant_id=str(tenant_id), service_name=self.service_name):
                return await self._migrate_tenant(tenant_id, provider, cancel_event, timeout)
        finally:
            self._running.discard(tenant_id)

    async def _migrate_tenant(
        self,
        tenant_id: UUID,
        provider: DatabaseProvider | None,
        cancel_event: asyncio.Event | None,
        timeout: float | None,
    ) -> MigrationResult | None:
        current = await self.reporter.get_migration_status(tenant_id, self.service_name)
        if current is not None and self._in_progress_elsewhere(current):
            logger.info(
                "migration_skipped_in_progress",
                started_at=current.started_at.isoformat() if current.started_at else None,
            )
            return None

        await self.reporter.update_migration_status(
            tenant_id, self.service_name, MigrationStatus.IN_PROGRESS
        )

        info = await self.reporter.get_database_info(tenant_id, self.service_name)
        if info is None:
            message = f"Database metadata for service '{self.service_name}' not found"
            logger.warning("database_info_not_found")
            await self.reporter.update_migration_status(
                tenant_id, self.service_name, MigrationStatus.FAILED, error_message=message
            )
            return MigrationResult.failed(
                MigrationFailure.METADATA_NOT_FOUND, message, provider=provider
            )

        options = self.options if provider is None else replace(self.options, provider=provider)
        logger.info("tenant_migration_started", secret_path=info.vault_write_path)
        result = await self.runner.migrate(
            info.vault_write_path, options, cancel_event=cancel_event, timeout=timeout
        )

        if result.success:
            version = (
                result.last_applied_script
                or result.current_version
                or (current.last_migration_version if current is not None else None)
                or BASELINE_MIGRATION_VERSION
            )
            await self.reporter.update_migration_status(
                tenant_id,
                self.service_name,
                MigrationStatus.COMPLETED,
                last_migration_version=version,
            )
            logger.info(
                "tenant_migration_completed",
                scripts_applied=result.scripts_applied,
                version=version,
            )
        else:
            await self.reporter.update_migration_status(
                tenant_id,
                self.service_name,
                MigrationStatus.FAILED,
                last_migration_version=result.current_version,
                error_message=result.error_message or "Migration failed",
            )
            logger.error(
                "tenant_migration_failed",
                failure=result.failure.value if result.failure else None,
                error=result.error_message,
            )
        return result

    def _in_progress_elsewhere(self, current: MigrationStatusDto) -> bool:
        if current.status is not MigrationStatus.IN_PROGRESS:
            return False
        started = ensure_utc(current.started_at)
        if started is None:
            return False
        return utcnow() - started < self.stale_after

    async def migrate_shared_database(
        self,
        provider: DatabaseProvider,
        *,
        cancel_event: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> MigrationResult:
        """Migrate the service's shared database; no tenant status is reported."""
        secret_path = self.paths.shared(self.service_name, AccessLevel.WRITE)
        with LogContext(service_name=self.service_name, database="shared"):
            logger.info("shared_migration_started", secret_path=secret_path)
            return await self.runner.migrate(
                secret_path,
                replace(self.options, provider=provider),
                cancel_event=cancel_event,
                timeout=timeout,
            )
