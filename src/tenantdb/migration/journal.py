"""Applied-script journal kept inside each migrated database."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, insert, select
from sqlalchemy.ext.asyncio import AsyncConnection


class ScriptJournal:
    """The table recording which scripts ran against a database.

    One row per applied script, inserted in the same unit of work as the
    script itself. The table is created on first use.

    Attributes:
        table: SQLAlchemy Core table definition
    """

    def __init__(self, table_name: str = "SchemaVersions", schema: str | None = None):
        metadata = MetaData(schema=schema)
        self.table = Table(
            table_name,
            metadata,
            Column("schemaversionsid", Integer, primary_key=True, autoincrement=True),
            Column("scriptname", String(255), nullable=False),
            Column("applied", DateTime(timezone=True), nullable=False),
        )

    async def ensure(self, conn: AsyncConnection) -> None:
        """Create the journal table if it does not exist."""
        await conn.run_sync(self.table.metadata.create_all, checkfirst=True)

    async def applied_scripts(self, conn: AsyncConnection) -> list[str]:
        """Names of applied scripts in the order they were journaled."""
        result = await conn.execute(
            select(self.table.c.scriptname).order_by(self.table.c.schemaversionsid)
        )
        return [row[0] for row in result]

    async def record(self, conn: AsyncConnection, script_name: str, applied_at: datetime) -> None:
        await conn.execute(insert(self.table).values(scriptname=script_name, applied=applied_at))
