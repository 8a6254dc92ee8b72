"""Tenant aggregate repository."""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import func, select

from tenantdb.db.models.tenant import Tenant
from tenantdb.models.migration import MigrationStatus

from .base import BaseRepository


class TenantRepository(BaseRepository[Tenant, UUID]):
    """Loads and stores whole tenant aggregates.

    Child collections are eager-loaded (``selectin``) so an aggregate is
    always complete once returned.
    """

    async def get_by_identifier(self, identifier: str) -> Tenant | None:
        stmt = select(Tenant).where(Tenant.identifier == identifier)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def exists_by_identifier(self, identifier: str) -> bool:
        stmt = select(func.count(Tenant.tenant_id)).where(Tenant.identifier == identifier)
        result = await self.db.execute(stmt)
        return (result.scalar() or 0) > 0

    async def list_by_provisioning_status(
        self, statuses: Sequence[MigrationStatus], *, limit: int = 500
    ) -> list[Tenant]:
        """Tenants whose roll-up status is one of ``statuses``, oldest first."""
        stmt = (
            select(Tenant)
            .where(Tenant.provisioning_status.in_(list(statuses)))
            .order_by(Tenant.created_at)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_active(self, *, limit: int = 1000) -> list[Tenant]:
        stmt = (
            select(Tenant)
            .where(Tenant.is_active.is_(True))
            .order_by(Tenant.identifier)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
