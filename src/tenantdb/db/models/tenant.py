"""Tenant aggregate: identity, database topology and per-service migration state.

The ``Tenant`` root exclusively owns its ``TenantDatabaseMetadata`` and
``TenantMigrationStatus`` rows. Both collections are append-only: entries
are never removed, only superseded by status transitions. Mutation methods
return ``Outcome`` values instead of raising, and are not synchronized;
concurrent writers are serialized by the version columns at flush time.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from uuid_utils.compat import uuid7

from tenantdb.core.result import Error, Outcome
from tenantdb.models.database import DatabaseProvider, DatabaseStrategy
from tenantdb.models.migration import MigrationStatus

from .base import Base, PortableUUID, TimestampMixin, enum_column, utcnow


@dataclass(frozen=True, slots=True)
class TenantCreated:
    """Domain event raised when a tenant aggregate is created.

    Attributes:
        tenant_id: New tenant's ID
        identifier: Unique slug
        name: Display name
        strategy: Chosen database strategy
        provider: Chosen database provider
    """

    tenant_id: UUID
    identifier: str
    name: str
    strategy: DatabaseStrategy
    provider: DatabaseProvider


class TenantDatabaseMetadata(TimestampMixin, Base):
    """Where one service finds its credentials for a tenant.

    ``read_secret_path`` is set exactly when ``has_separate_read_database``.
    """

    __tablename__ = "tenant_databases"
    __table_args__ = (UniqueConstraint("tenant_id", "service_name", name="uq_tenant_db_service"),)

    id: Mapped[UUID] = mapped_column(PortableUUID(), primary_key=True, default=uuid7)
    tenant_id: Mapped[UUID] = mapped_column(
        PortableUUID(), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), nullable=False
    )
    service_name: Mapped[str] = mapped_column(String(100), nullable=False)
    write_secret_path: Mapped[str] = mapped_column(String(500), nullable=False)
    write_env_key: Mapped[str] = mapped_column(String(300), nullable=False)
    read_secret_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    read_env_key: Mapped[str | None] = mapped_column(String(300), nullable=True)
    has_separate_read_database: Mapped[bool] = mapped_column(Boolean, nullable=False)

    tenant: Mapped["Tenant"] = relationship(back_populates="databases")

    def __repr__(self) -> str:
        return (
            f"<TenantDatabaseMetadata(service={self.service_name}, "
            f"write={self.write_secret_path})>"
        )


class TenantMigrationStatus(TimestampMixin, Base):
    """Migration state machine for one service of one tenant."""

    __tablename__ = "tenant_migration_statuses"
    __table_args__ = (
        UniqueConstraint("tenant_id", "service_name", name="uq_tenant_migration_service"),
    )

    id: Mapped[UUID] = mapped_column(PortableUUID(), primary_key=True, default=uuid7)
    tenant_id: Mapped[UUID] = mapped_column(
        PortableUUID(), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), nullable=False
    )
    service_name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[MigrationStatus] = mapped_column(
        enum_column(MigrationStatus), default=MigrationStatus.PENDING, nullable=False
    )
    last_migration_version: Mapped[str | None] = mapped_column(String(255), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    tenant: Mapped["Tenant"] = relationship(back_populates="migration_statuses")

    __mapper_args__ = {"version_id_col": version}

    def transition(
        self,
        status: MigrationStatus,
        last_migration_version: str | None = None,
        error_message: str | None = None,
        now: datetime | None = None,
    ) -> Outcome["TenantMigrationStatus"]:
        """Apply a status update.

        Rules:
        - IN_PROGRESS while already in progress is a no-op.
        - Entering IN_PROGRESS stamps ``started_at`` and clears the previous
          completion time and error.
        - COMPLETED needs a version, supplied now or retained from before.
        - FAILED needs a non-empty error message.
        - The stored version changes only when a new one is supplied.
        """
        now = now or utcnow()

        match status:
            case MigrationStatus.PENDING:
                if self.status not in (MigrationStatus.PENDING, MigrationStatus.FAILED):
                    return Outcome.fail(
                        Error.validation(
                            "Tenant.InvalidMigrationTransition",
                            f"Service '{self.service_name}' cannot return to pending "
                            f"from {self.status.value}",
                        )
                    )
                self.status = MigrationStatus.PENDING
                self.started_at = None
                self.completed_at = None
                self.error_message = None

            case MigrationStatus.IN_PROGRESS:
                if self.status is MigrationStatus.IN_PROGRESS:
                    return Outcome.ok(self)
                self.status = MigrationStatus.IN_PROGRESS
                self.started_at = now
                self.completed_at = None
                self.error_message = None

            case MigrationStatus.COMPLETED:
                version = last_migration_version or self.last_migration_version
                if not version:
                    return Outcome.fail(
                        Error.validation(
                            "Tenant.MigrationVersionRequired",
                            f"Completing service '{self.service_name}' "
                            "requires a migration version",
                        )
                    )
                self.status = MigrationStatus.COMPLETED
                self.last_migration_version = version
                self.started_at = self.started_at or now
                self.completed_at = now
                self.error_message = None

            case MigrationStatus.FAILED:
                if not error_message or not error_message.strip():
                    return Outcome.fail(
                        Error.validation(
                            "Tenant.MigrationErrorRequired",
                            f"Failing service '{self.service_name}' requires an error message",
                        )
                    )
                self.status = MigrationStatus.FAILED
                if last_migration_version:
                    self.last_migration_version = last_migration_version
                self.started_at = self.started_at or now
                self.completed_at = now
                self.error_message = error_message

            case MigrationStatus.PARTIALLY_PROVISIONED:
                return Outcome.fail(
                    Error.validation(
                        "Tenant.InvalidMigrationStatus",
                        "Partially provisioned describes a tenant, not a single service",
                    )
                )

        return Outcome.ok(self)

    def __repr__(self) -> str:
        return f"<TenantMigrationStatus(service={self.service_name}, status={self.status})>"


class Tenant(TimestampMixin, Base):
    """Tenant (customer account) and its per-service database topology."""

    __tablename__ = "tenants"

    tenant_id: Mapped[UUID] = mapped_column(PortableUUID(), primary_key=True, default=uuid7)
    identifier: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    plan: Mapped[str] = mapped_column(String(50), nullable=False)
    database_strategy: Mapped[DatabaseStrategy] = mapped_column(
        enum_column(DatabaseStrategy), nullable=False
    )
    database_provider: Mapped[DatabaseProvider] = mapped_column(
        enum_column(DatabaseProvider), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    provisioning_status: Mapped[MigrationStatus] = mapped_column(
        enum_column(MigrationStatus), default=MigrationStatus.PENDING, nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    databases: Mapped[list[TenantDatabaseMetadata]] = relationship(
        back_populates="tenant",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TenantDatabaseMetadata.service_name",
    )
    migration_statuses: Mapped[list[TenantMigrationStatus]] = relationship(
        back_populates="tenant",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TenantMigrationStatus.service_name",
    )

    __mapper_args__ = {"version_id_col": version}

    # Transient, not mapped
    _pending_events = None

    @validates("identifier")
    def _validate_identifier(self, key: str, value: str) -> str:
        current = self.__dict__.get("identifier")
        if current is not None and current != value:
            raise ValueError("Tenant identifier is immutable")
        return value

    @classmethod
    def create(
        cls,
        identifier: str,
        name: str,
        plan: str,
        strategy: DatabaseStrategy,
        provider: DatabaseProvider,
    ) -> Outcome["Tenant"]:
        """Create a tenant and queue its ``TenantCreated`` event.

        Returns:
            The new tenant, or validation errors for blank identifier, name,
            plan or an unset strategy/provider
        """
        errors: list[Error] = []
        for field_name, value in (("Identifier", identifier), ("Name", name), ("Plan", plan)):
            if not value or not value.strip():
                errors.append(
                    Error.validation(f"Tenant.{field_name}Required", f"{field_name} is required")
                )
        if strategy is DatabaseStrategy.NONE:
            errors.append(
                Error.validation("Tenant.DatabaseStrategyRequired", "Database strategy is required")
            )
        if provider is DatabaseProvider.NONE:
            errors.append(
                Error.validation("Tenant.DatabaseProviderRequired", "Database provider is required")
            )
        if errors:
            return Outcome.fail(*errors)

        tenant = cls(
            tenant_id=uuid7(),
            identifier=identifier.strip(),
            name=name.strip(),
            plan=plan.strip(),
            database_strategy=strategy,
            database_provider=provider,
            is_active=True,
            provisioning_status=MigrationStatus.PENDING,
            databases=[],
            migration_statuses=[],
        )
        tenant._raise(
            TenantCreated(
                tenant_id=tenant.tenant_id,
                identifier=tenant.identifier,
                name=tenant.name,
                strategy=strategy,
                provider=provider,
            )
        )
        return Outcome.ok(tenant)

    # ------------------------------------------------------------------
    # Domain events
    # ------------------------------------------------------------------

    def _raise(self, event: TenantCreated) -> None:
        if self._pending_events is None:
            self._pending_events = []
        self._pending_events.append(event)

    @property
    def pending_events(self) -> list[TenantCreated]:
        return list(self._pending_events or [])

    def pull_events(self) -> list[TenantCreated]:
        """Return and clear queued domain events."""
        events = self.pending_events
        self._pending_events = []
        return events

    # ------------------------------------------------------------------
    # Database metadata
    # ------------------------------------------------------------------

    def get_database(self, service_name: str) -> TenantDatabaseMetadata | None:
        return next((db for db in self.databases if db.service_name == service_name), None)

    def add_database_metadata(
        self,
        service_name: str,
        write_secret_path: str,
        write_env_key: str,
        read_secret_path: str | None = None,
        read_env_key: str | None = None,
        has_separate_read_database: bool = False,
    ) -> Outcome[TenantDatabaseMetadata]:
        """Record where a service's credentials live.

        Returns:
            The new entry, a conflict if the service already has one, or a
            validation error if the read path does not match the read/write split
        """
        if self.get_database(service_name) is not None:
            return Outcome.fail(
                Error.conflict(
                    "Tenant.DatabaseMetadataExists",
                    f"Database metadata for service '{service_name}' already exists",
                )
            )
        if not write_secret_path:
            return Outcome.fail(
                Error.validation("Tenant.WritePathRequired", "A write credential path is required")
            )
        if has_separate_read_database and not read_secret_path:
            return Outcome.fail(
                Error.validation(
                    "Tenant.ReadPathRequired",
                    f"Service '{service_name}' has a separate read database but no read path",
                )
            )
        if not has_separate_read_database and read_secret_path:
            return Outcome.fail(
                Error.validation(
                    "Tenant.ReadPathNotAllowed",
                    f"Service '{service_name}' has no separate read database",
                )
            )

        metadata = TenantDatabaseMetadata(
            service_name=service_name,
            write_secret_path=write_secret_path,
            write_env_key=write_env_key,
            read_secret_path=read_secret_path if has_separate_read_database else None,
            read_env_key=read_env_key if has_separate_read_database else None,
            has_separate_read_database=has_separate_read_database,
        )
        self.databases.append(metadata)
        return Outcome.ok(metadata)

    # ------------------------------------------------------------------
    # Migration status
    # ------------------------------------------------------------------

    def get_migration_status(self, service_name: str) -> TenantMigrationStatus | None:
        return next((s for s in self.migration_statuses if s.service_name == service_name), None)

    def initialize_migration_status(self, service_name: str) -> Outcome[TenantMigrationStatus]:
        """Start tracking a service in the pending state."""
        if self.get_migration_status(service_name) is not None:
            return Outcome.fail(
                Error.conflict(
                    "Tenant.MigrationStatusExists",
                    f"Migration status for service '{service_name}' already initialized",
                )
            )
        entry = TenantMigrationStatus(service_name=service_name, status=MigrationStatus.PENDING)
        self.migration_statuses.append(entry)
        return Outcome.ok(entry)

    def update_migration_status(
        self,
        service_name: str,
        status: MigrationStatus,
        last_migration_version: str | None = None,
        error_message: str | None = None,
        now: datetime | None = None,
    ) -> Outcome[TenantMigrationStatus]:
        """Transition a service's migration status.

        Returns:
            The updated entry, ``Tenant.MigrationStatusNotFound`` if the service
            was never initialized, or a validation error for a rejected transition
        """
        entry = self.get_migration_status(service_name)
        if entry is None:
            return Outcome.fail(
                Error.not_found(
                    "Tenant.MigrationStatusNotFound",
                    f"Migration status for service '{service_name}' not found",
                    service_name=service_name,
                )
            )
        return entry.transition(status, last_migration_version, error_message, now)

    def reconcile_provisioning_status(self) -> MigrationStatus:
        """Roll per-service states up into the tenant-level provisioning status.

        - every service completed: COMPLETED
        - every service failed: FAILED
        - every service finished, with mixed results: PARTIALLY_PROVISIONED
        - any service started or finished: IN_PROGRESS
        - otherwise: PENDING
        """
        states = [entry.status for entry in self.migration_statuses]

        if not states:
            rolled_up = MigrationStatus.PENDING
        elif all(s is MigrationStatus.COMPLETED for s in states):
            rolled_up = MigrationStatus.COMPLETED
        elif all(s is MigrationStatus.FAILED for s in states):
            rolled_up = MigrationStatus.FAILED
        elif all(s.is_terminal for s in states):
            rolled_up = MigrationStatus.PARTIALLY_PROVISIONED
        elif any(s is not MigrationStatus.PENDING for s in states):
            rolled_up = MigrationStatus.IN_PROGRESS
        else:
            rolled_up = MigrationStatus.PENDING

        if self.provisioning_status is not rolled_up:
            self.provisioning_status = rolled_up
        return rolled_up

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def activate(self) -> None:
        self.is_active = True

    def deactivate(self) -> None:
        self.is_active = False

    def __repr__(self) -> str:
        return f"<Tenant(id={self.tenant_id}, identifier={self.identifier})>"
