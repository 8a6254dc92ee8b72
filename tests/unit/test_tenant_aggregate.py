"""Unit tests for the tenant aggregate and its migration state machine."""

from datetime import UTC, datetime

import pytest

from tenantdb.core.result import ErrorType
from tenantdb.db.models.tenant import Tenant, TenantCreated
from tenantdb.models.database import DatabaseProvider, DatabaseStrategy
from tenantdb.models.migration import MigrationStatus

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def new_tenant(strategy: DatabaseStrategy = DatabaseStrategy.DEDICATED) -> Tenant:
    result = Tenant.create(
        "acme", "Acme Corp", "enterprise", strategy, DatabaseProvider.POSTGRESQL
    )
    return result.value


def tenant_with_services(*services: str) -> Tenant:
    tenant = new_tenant()
    for service in services:
        tenant.initialize_migration_status(service)
    return tenant


class TestMigrationStatusParse:
    """Tests for MigrationStatus.parse."""

    @pytest.mark.parametrize("name", ["InProgress", "in-progress", "in_progress", "IN_PROGRESS"])
    def test_spellings(self, name: str) -> None:
        """Test the accepted spellings of a status."""
        assert MigrationStatus.parse(name) is MigrationStatus.IN_PROGRESS

    def test_unknown(self) -> None:
        """Test that unknown names are rejected."""
        with pytest.raises(ValueError):
            MigrationStatus.parse("done")


class TestTenantCreate:
    """Tests for Tenant.create."""

    def test_create_raises_event(self) -> None:
        """Test that a created tenant queues exactly one TenantCreated event."""
        tenant = new_tenant()

        events = tenant.pull_events()

        assert events == [
            TenantCreated(
                tenant_id=tenant.tenant_id,
                identifier="acme",
                name="Acme Corp",
                strategy=DatabaseStrategy.DEDICATED,
                provider=DatabaseProvider.POSTGRESQL,
            )
        ]
        assert tenant.pull_events() == []

    def test_create_initial_state(self) -> None:
        """Test the state of a new tenant."""
        tenant = new_tenant()

        assert tenant.is_active
        assert tenant.provisioning_status is MigrationStatus.PENDING
        assert tenant.databases == []
        assert tenant.migration_statuses == []

    def test_create_collects_every_validation_error(self) -> None:
        """Test that all invalid fields are reported together."""
        outcome = Tenant.create(" ", "", "pro", DatabaseStrategy.NONE, DatabaseProvider.NONE)

        assert outcome.is_error
        assert {e.code for e in outcome.errors} == {
            "Tenant.IdentifierRequired",
            "Tenant.NameRequired",
            "Tenant.DatabaseStrategyRequired",
            "Tenant.DatabaseProviderRequired",
        }

    def test_identifier_is_immutable(self) -> None:
        """Test that the identifier cannot be changed after creation."""
        tenant = new_tenant()

        with pytest.raises(ValueError):
            tenant.identifier = "globex"


class TestDatabaseMetadata:
    """Tests for add_database_metadata."""

    def test_add_with_read_path(self) -> None:
        """Test recording a service with a read replica."""
        tenant = new_tenant()

        outcome = tenant.add_database_metadata(
            "catalog",
            write_secret_path="database/tenants/acme/catalog/write",
            write_env_key="w",
            read_secret_path="database/tenants/acme/catalog/read",
            read_env_key="r",
            has_separate_read_database=True,
        )

        assert not outcome.is_error
        assert tenant.get_database("catalog") is outcome.value

    def test_duplicate_service_conflicts(self) -> None:
        """Test that a service can be recorded only once."""
        tenant = new_tenant()
        tenant.add_database_metadata("catalog", "p", "w")

        outcome = tenant.add_database_metadata("catalog", "p2", "w2")

        assert outcome.first_error.code == "Tenant.DatabaseMetadataExists"
        assert outcome.first_error.type is ErrorType.CONFLICT
        assert len(tenant.databases) == 1

    def test_read_path_required_with_replica(self) -> None:
        """Test that a read replica needs a read path."""
        outcome = new_tenant().add_database_metadata(
            "catalog", "p", "w", has_separate_read_database=True
        )

        assert outcome.first_error.code == "Tenant.ReadPathRequired"

    def test_read_path_not_allowed_without_replica(self) -> None:
        """Test that a read path without a replica is rejected."""
        outcome = new_tenant().add_database_metadata(
            "catalog", "p", "w", read_secret_path="r", has_separate_read_database=False
        )

        assert outcome.first_error.code == "Tenant.ReadPathNotAllowed"


class TestMigrationStatusTransitions:
    """Tests for per-service status transitions."""

    def test_initialize_twice_conflicts(self) -> None:
        """Test that a service is initialized once."""
        tenant = tenant_with_services("catalog")

        outcome = tenant.initialize_migration_status("catalog")

        assert outcome.first_error.code == "Tenant.MigrationStatusExists"

    def test_unknown_service(self) -> None:
        """Test updating a service that was never initialized."""
        outcome = new_tenant().update_migration_status("billing", MigrationStatus.IN_PROGRESS)

        assert outcome.first_error.code == "Tenant.MigrationStatusNotFound"
        assert outcome.first_error.type is ErrorType.NOT_FOUND

    def test_in_progress_stamps_start(self) -> None:
        """Test entering IN_PROGRESS."""
        tenant = tenant_with_services("catalog")

        entry = tenant.update_migration_status(
            "catalog", MigrationStatus.IN_PROGRESS, now=NOW
        ).value

        assert entry.status is MigrationStatus.IN_PROGRESS
        assert entry.started_at == NOW
        assert entry.completed_at is None

    def test_in_progress_twice_is_noop(self) -> None:
        """Test that a repeated IN_PROGRESS keeps the original start time."""
        tenant = tenant_with_services("catalog")
        tenant.update_migration_status("catalog", MigrationStatus.IN_PROGRESS, now=NOW)

        later = datetime(2026, 3, 1, 13, 0, tzinfo=UTC)
        entry = tenant.update_migration_status(
            "catalog", MigrationStatus.IN_PROGRESS, now=later
        ).value

        assert entry.started_at == NOW

    def test_completed_requires_version(self) -> None:
        """Test that completing without any version fails."""
        tenant = tenant_with_services("catalog")

        outcome = tenant.update_migration_status("catalog", MigrationStatus.COMPLETED)

        assert outcome.first_error.code == "Tenant.MigrationVersionRequired"

    def test_completed_keeps_previous_version(self) -> None:
        """Test that a completion without a new version retains the stored one."""
        tenant = tenant_with_services("catalog")
        tenant.update_migration_status("catalog", MigrationStatus.COMPLETED, "001_init.sql")
        tenant.update_migration_status("catalog", MigrationStatus.IN_PROGRESS)

        entry = tenant.update_migration_status("catalog", MigrationStatus.COMPLETED).value

        assert entry.last_migration_version == "001_init.sql"
        assert entry.completed_at is not None

    def test_failed_requires_message(self) -> None:
        """Test that failing without an error message is rejected."""
        tenant = tenant_with_services("catalog")

        outcome = tenant.update_migration_status(
            "catalog", MigrationStatus.FAILED, error_message="  "
        )

        assert outcome.first_error.code == "Tenant.MigrationErrorRequired"

    def test_retry_after_failure(self) -> None:
        """Test that a failed service can be moved back to pending and rerun."""
        tenant = tenant_with_services("catalog")
        tenant.update_migration_status("catalog", MigrationStatus.FAILED, error_message="boom")

        entry = tenant.update_migration_status("catalog", MigrationStatus.PENDING).value

        assert entry.status is MigrationStatus.PENDING
        assert entry.error_message is None

    def test_completed_cannot_return_to_pending(self) -> None:
        """Test that a completed service cannot be reset."""
        tenant = tenant_with_services("catalog")
        tenant.update_migration_status("catalog", MigrationStatus.COMPLETED, "001.sql")

        outcome = tenant.update_migration_status("catalog", MigrationStatus.PENDING)

        assert outcome.first_error.code == "Tenant.InvalidMigrationTransition"

    def test_partially_provisioned_is_tenant_level_only(self) -> None:
        """Test that a service cannot report PARTIALLY_PROVISIONED."""
        tenant = tenant_with_services("catalog")

        outcome = tenant.update_migration_status(
            "catalog", MigrationStatus.PARTIALLY_PROVISIONED
        )

        assert outcome.first_error.code == "Tenant.InvalidMigrationStatus"


class TestProvisioningRollUp:
    """Tests for reconcile_provisioning_status."""

    def _apply(self, tenant: Tenant, states: dict[str, MigrationStatus]) -> None:
        for service, status in states.items():
            tenant.update_migration_status(
                service, status, last_migration_version="001.sql", error_message="boom"
            )

    @pytest.mark.parametrize(
        "states,expected",
        [
            ({}, MigrationStatus.PENDING),
            ({"catalog": MigrationStatus.IN_PROGRESS}, MigrationStatus.IN_PROGRESS),
            ({"catalog": MigrationStatus.COMPLETED}, MigrationStatus.IN_PROGRESS),
            (
                {
                    "catalog": MigrationStatus.COMPLETED,
                    "orders": MigrationStatus.COMPLETED,
                    "customer": MigrationStatus.COMPLETED,
                },
                MigrationStatus.COMPLETED,
            ),
            (
                {
                    "catalog": MigrationStatus.FAILED,
                    "orders": MigrationStatus.FAILED,
                    "customer": MigrationStatus.FAILED,
                },
                MigrationStatus.FAILED,
            ),
            (
                {
                    "catalog": MigrationStatus.COMPLETED,
                    "orders": MigrationStatus.FAILED,
                    "customer": MigrationStatus.COMPLETED,
                },
                MigrationStatus.PARTIALLY_PROVISIONED,
            ),
        ],
    )
    def test_roll_up(self, states: dict[str, MigrationStatus], expected: MigrationStatus) -> None:
        """Test rolling per-service states up to the tenant."""
        tenant = tenant_with_services("catalog", "orders", "customer")
        self._apply(tenant, states)

        assert tenant.reconcile_provisioning_status() is expected
        assert tenant.provisioning_status is expected

    def test_no_services_is_pending(self) -> None:
        """Test a tenant with no tracked services."""
        assert new_tenant().reconcile_provisioning_status() is MigrationStatus.PENDING


class TestLifecycle:
    """Tests for activate/deactivate."""

    def test_deactivate_and_activate(self) -> None:
        """Test toggling the active flag."""
        tenant = new_tenant()

        tenant.deactivate()
        assert not tenant.is_active

        tenant.activate()
        assert tenant.is_active
