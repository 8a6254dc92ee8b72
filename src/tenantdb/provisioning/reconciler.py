"""Cross-service roll-up of tenant provisioning status.

No single service can tell whether a tenant is partially provisioned, so
the reconciler reads every service's migration status and stores the
tenant-level result. Run it after status updates or periodically.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tenantdb.core.logging import get_logger
from tenantdb.core.result import Error, Outcome
from tenantdb.db.models.base import ensure_utc, utcnow
from tenantdb.db.models.tenant import Tenant
from tenantdb.db.repositories.tenant import TenantRepository
from tenantdb.models.migration import MigrationStatus

logger = get_logger(__name__)

# Tenants whose roll-up can still change
OPEN_STATUSES = (
    MigrationStatus.PENDING,
    MigrationStatus.IN_PROGRESS,
    MigrationStatus.PARTIALLY_PROVISIONED,
    MigrationStatus.FAILED,
)


@dataclass(frozen=True)
class ReconciliationChange:
    """A tenant whose roll-up status changed."""

    tenant_id: UUID
    identifier: str
    previous: MigrationStatus
    current: MigrationStatus


class ProvisioningReconciler:
    """Recomputes tenant provisioning status from per-service states.

    Args:
        session: Tenant store session
        stale_after: Services in progress for longer than this are marked
            failed before rolling up (None disables the check)
    """

    def __init__(self, session: AsyncSession, *, stale_after: timedelta | None = None):
        self.session = session
        self.repository = TenantRepository(session)
        self.stale_after = stale_after

    async def reconcile(self, tenant_id: UUID) -> Outcome[MigrationStatus]:
        tenant = await self.repository.get(tenant_id)
        if tenant is None:
            return Outcome.fail(
                Error.not_found("Tenant.NotFound", f"Tenant with ID '{tenant_id}' not found")
            )
        change = self._reconcile(tenant, utcnow())
        await self.repository.save()
        if change is not None:
            self._log(change)
        return Outcome.ok(tenant.provisioning_status)

    async def reconcile_all(self, *, limit: int = 500) -> list[ReconciliationChange]:
        """Reconcile every tenant whose roll-up is not yet final."""
        now = utcnow()
        tenants = await self.repository.list_by_provisioning_status(OPEN_STATUSES, limit=limit)
        changes = [c for c in (self._reconcile(t, now) for t in tenants) if c is not None]
        await self.repository.save()
        for change in changes:
            self._log(change)
        logger.info("reconciliation_completed", examined=len(tenants), changed=len(changes))
        return changes

    def _reconcile(self, tenant: Tenant, now: datetime) -> ReconciliationChange | None:
        if self.stale_after is not None:
            self._fail_stale(tenant, now)
        previous = tenant.provisioning_status
        current = tenant.reconcile_provisioning_status()
        if current is previous:
            return None
        return ReconciliationChange(tenant.tenant_id, tenant.identifier, previous, current)

    def _fail_stale(self, tenant: Tenant, now: datetime) -> None:
        for entry in tenant.migration_statuses:
            started = ensure_utc(entry.started_at)
            if entry.status is not MigrationStatus.IN_PROGRESS or started is None:
                continue
            if now - started > self.stale_after:
                tenant.update_migration_status(
                    entry.service_name,
                    MigrationStatus.FAILED,
                    error_message=f"Migration did not finish within {self.stale_after}",
                    now=now,
                )
                logger.warning(
                    "stale_migration_failed",
                    tenant_id=str(tenant.tenant_id),
                    service_name=entry.service_name,
                    started_at=started.isoformat(),
                )

    def _log(self, change: ReconciliationChange) -> None:
        logger.info(
            "provisioning_status_changed",
            tenant_id=str(change.tenant_id),
            identifier=change.identifier,
            previous=change.previous.value,
            current=change.current.value,
        )
