"""Base repository with common data access operations.

Usage:
    from tenantdb.db.repositories.base import BaseRepository

    class TenantRepository(BaseRepository[Tenant, UUID]):
        pass

    repo = TenantRepository(db_session)
    tenant = await repo.get(tenant_id)
"""

from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdb.db.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)
PKType = TypeVar("PKType", bound=UUID | int | str)


class BaseRepository(Generic[ModelType, PKType]):
    """Generic repository for SQLAlchemy models.

    Type Parameters:
        ModelType: The SQLAlchemy model class
        PKType: The type of the primary key

    Attributes:
        model: The model class
        db: The database session
    """

    model: type[ModelType]

    def __init__(self, db: AsyncSession):
        self.db = db

    def __init_subclass__(cls, **kwargs):
        """Extract model type from generic parameter."""
        super().__init_subclass__(**kwargs)
        for base in getattr(cls, "__orig_bases__", []):
            args = getattr(base, "__args__", None)
            if args and len(args) >= 1:
                first_arg = args[0]
                if isinstance(first_arg, type) and issubclass(first_arg, Base):
                    cls.model = first_arg
                    break

    async def get(self, pk: PKType) -> ModelType | None:
        """Get a single record by primary key."""
        return await self.db.get(self.model, pk)

    async def list(self, *, limit: int = 100, offset: int = 0) -> list[ModelType]:
        """List records ordered by primary key."""
        stmt = select(self.model).order_by(self._get_pk_column()).limit(limit).offset(offset)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count(self) -> int:
        """Count total records."""
        result = await self.db.execute(select(func.count(self._get_pk_column())))
        return result.scalar() or 0

    async def add(self, obj: ModelType, *, commit: bool = True) -> ModelType:
        """Add a new record (and its cascaded children).

        Args:
            obj: Model instance to add
            commit: Commit instead of only flushing
        """
        self.db.add(obj)
        await self.save(commit=commit)
        return obj

    async def save(self, *, commit: bool = True) -> None:
        """Flush or commit pending changes."""
        if commit:
            await self.db.commit()
        else:
            await self.db.flush()

    def _get_pk_column(self):
        mapper = self.model.__mapper__
        pk_cols = mapper.primary_key
        if not pk_cols:
            raise ValueError(f"No primary key found for {self.model.__name__}")
        return pk_cols[0]
