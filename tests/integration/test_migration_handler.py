"""Tests for TenantMigrationHandler."""

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from uuid import UUID

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from uuid_utils.compat import uuid7

from tenantdb.db.models.base import utcnow
from tenantdb.migration.handler import BASELINE_MIGRATION_VERSION, TenantMigrationHandler
from tenantdb.migration.runner import (
    MigrationFailure,
    MigrationOptions,
    MigrationResult,
    MigrationRunner,
)
from tenantdb.migration.status import LocalStatusReporter
from tenantdb.models.database import DatabaseProvider, DatabaseStrategy
from tenantdb.models.migration import MigrationStatus
from tenantdb.provisioning.commands import CreateTenantCommand
from tenantdb.provisioning.dtos import MigrationStatusDto, ServiceDatabaseInfoDto
from tenantdb.provisioning.events import InMemoryEventBus, TenantCreatedEvent
from tenantdb.provisioning.handlers import CreateTenantHandler
from tenantdb.provisioning.queries import GetMigrationStatusHandler
from tenantdb.secrets.memory import InMemorySecretStore

WRITE_PATH = "database/tenants/acme/catalog/write"


@dataclass
class FakeReporter:
    """Records status updates and serves canned lookups."""

    info: ServiceDatabaseInfoDto | None = field(
        default_factory=lambda: ServiceDatabaseInfoDto(
            vault_write_path=WRITE_PATH, has_separate_read_database=False
        )
    )
    status: MigrationStatusDto | None = None
    updates: list[tuple[MigrationStatus, str | None, str | None]] = field(default_factory=list)

    async def update_migration_status(
        self,
        tenant_id: UUID,
        service_name: str,
        status: MigrationStatus,
        last_migration_version: str | None = None,
        error_message: str | None = None,
    ) -> None:
        self.updates.append((status, last_migration_version, error_message))

    async def get_database_info(self, tenant_id: UUID, service_name: str):
        return self.info

    async def get_migration_status(self, tenant_id: UUID, service_name: str):
        return self.status


@dataclass
class FakeRunner:
    result: MigrationResult = field(default_factory=lambda: MigrationResult.successful())
    calls: list[tuple[str, MigrationOptions]] = field(default_factory=list)

    async def migrate(self, secret_path, options, *, cancel_event=None, timeout=None):
        self.calls.append((secret_path, options))
        return self.result


def created_event(tenant_id: UUID | None = None) -> TenantCreatedEvent:
    return TenantCreatedEvent(
        tenant_id=tenant_id or uuid7(),
        identifier="acme",
        name="Acme",
        database_strategy=DatabaseStrategy.DEDICATED,
        database_provider=DatabaseProvider.MYSQL,
    )


def make_handler(reporter: FakeReporter, runner: FakeRunner) -> TenantMigrationHandler:
    return TenantMigrationHandler("catalog", reporter, runner, MigrationOptions())


@pytest.mark.asyncio
class TestTenantMigrationHandler:
    """Tests for status reporting around a migration run."""

    async def test_success_reports_last_script(self) -> None:
        """Test IN_PROGRESS then COMPLETED with the last applied script."""
        reporter = FakeReporter()
        runner = FakeRunner(MigrationResult.successful(["001.sql", "002.sql"]))

        result = await make_handler(reporter, runner).handle(created_event())

        assert result.success
        assert reporter.updates == [
            (MigrationStatus.IN_PROGRESS, None, None),
            (MigrationStatus.COMPLETED, "002.sql", None),
        ]
        secret_path, options = runner.calls[0]
        assert secret_path == WRITE_PATH
        assert options.provider is DatabaseProvider.MYSQL

    async def test_nothing_to_apply_keeps_journal_version(self) -> None:
        """Test that an up-to-date database reports its journaled version."""
        reporter = FakeReporter()
        runner = FakeRunner(MigrationResult.successful(current_version="005.sql"))

        await make_handler(reporter, runner).handle(created_event())

        assert reporter.updates[-1] == (MigrationStatus.COMPLETED, "005.sql", None)

    async def test_previous_version_then_baseline(self) -> None:
        """Test the version fallbacks when no script was ever journaled."""
        previous = FakeReporter(
            status=MigrationStatusDto(
                service_name="catalog",
                status=MigrationStatus.FAILED,
                last_migration_version="003.sql",
            )
        )
        fresh = FakeReporter()

        await make_handler(previous, FakeRunner()).handle(created_event())
        await make_handler(fresh, FakeRunner()).handle(created_event())

        assert previous.updates[-1][1] == "003.sql"
        assert fresh.updates[-1][1] == BASELINE_MIGRATION_VERSION

    async def test_failure_reports_error(self) -> None:
        """Test that a failed run is reported with its message and version."""
        reporter = FakeReporter()
        runner = FakeRunner(
            MigrationResult.failed(
                MigrationFailure.SCRIPT_EXECUTION,
                "Script 002.sql failed",
                current_version="001.sql",
            )
        )

        result = await make_handler(reporter, runner).handle(created_event())

        assert not result.success
        assert reporter.updates[-1] == (
            MigrationStatus.FAILED,
            "001.sql",
            "Script 002.sql failed",
        )

    async def test_missing_metadata_fails(self) -> None:
        """Test that a tenant without metadata for the service is failed without a run."""
        reporter = FakeReporter(info=None)
        runner = FakeRunner()

        result = await make_handler(reporter, runner).handle(created_event())

        assert result.failure is MigrationFailure.METADATA_NOT_FOUND
        assert reporter.updates[-1][0] is MigrationStatus.FAILED
        assert runner.calls == []

    async def test_skips_when_in_progress_elsewhere(self) -> None:
        """Test that a recent IN_PROGRESS report blocks a second run."""
        reporter = FakeReporter(
            status=MigrationStatusDto(
                service_name="catalog",
                status=MigrationStatus.IN_PROGRESS,
                started_at=utcnow() - timedelta(minutes=5),
            )
        )
        runner = FakeRunner()

        result = await make_handler(reporter, runner).handle(created_event())

        assert result is None
        assert reporter.updates == []
        assert runner.calls == []

    async def test_takes_over_stale_run(self) -> None:
        """Test that an IN_PROGRESS older than the stale window is re-run."""
        reporter = FakeReporter(
            status=MigrationStatusDto(
                service_name="catalog",
                status=MigrationStatus.IN_PROGRESS,
                started_at=utcnow() - timedelta(hours=2),
            )
        )
        runner = FakeRunner(MigrationResult.successful(["001.sql"]))

        result = await make_handler(reporter, runner).handle(created_event())

        assert result.success
        assert len(runner.calls) == 1

    async def test_shared_database(self) -> None:
        """Test migrating the service's shared database."""
        reporter = FakeReporter()
        runner = FakeRunner()

        await make_handler(reporter, runner).migrate_shared_database(DatabaseProvider.SQLSERVER)

        secret_path, options = runner.calls[0]
        assert secret_path == "database/shared/shared/catalog/write"
        assert options.provider is DatabaseProvider.SQLSERVER
        assert reporter.updates == []


@pytest.mark.asyncio
class TestTenantCreatedFlow:
    """Tenant creation through to a migrated service database."""

    async def test_created_tenant_is_migrated(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        secret_store: InMemorySecretStore,
        event_bus: InMemoryEventBus,
        engine_factory,
        scripts_dir: Path,
        target_tables,
    ) -> None:
        """Test that the published event drives a migration and a COMPLETED status."""
        (scripts_dir / "001_init.sql").write_text("CREATE TABLE products (id INTEGER);")
        handler = TenantMigrationHandler(
            "catalog",
            LocalStatusReporter(session_factory),
            MigrationRunner(secret_store, engine_factory=engine_factory),
            MigrationOptions(scripts_path=scripts_dir),
        )
        event_bus.subscribe(handler.handle)

        created = await CreateTenantHandler(
            db_session, secret_store, event_bus, services=("catalog",)
        ).handle(
            CreateTenantCommand(
                identifier="acme",
                name="Acme",
                plan="pro",
                database_strategy="dedicated",
                database_provider="postgresql",
            )
        )

        async with session_factory() as session:
            status = await GetMigrationStatusHandler(session).handle(
                created.value.tenant_id, "catalog"
            )
        assert status.value.status is MigrationStatus.COMPLETED
        assert status.value.last_migration_version == "001_init.sql"
        assert "products" in await target_tables()
        assert engine_factory.urls[0].username == "acme_catalog_admin"
