"""Create tenant tables

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("identifier", sa.String(100), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("plan", sa.String(50), nullable=False),
        sa.Column("database_strategy", sa.String(32), nullable=False),
        sa.Column("database_provider", sa.String(32), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("provisioning_status", sa.String(32), nullable=False),
        sa.Column("version", sa.Integer, nullable=False),
        *_timestamps(),
    )
    op.create_index("idx_tenant_identifier", "tenants", ["identifier"], unique=True)
    op.create_index("idx_tenant_provisioning_status", "tenants", ["provisioning_status"])

    # One row per participating service; secrets themselves live in the secret store
    op.create_table(
        "tenant_databases",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tenants.tenant_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("service_name", sa.String(100), nullable=False),
        sa.Column("write_secret_path", sa.String(500), nullable=False),
        sa.Column("write_env_key", sa.String(300), nullable=False),
        sa.Column("read_secret_path", sa.String(500), nullable=True),
        sa.Column("read_env_key", sa.String(300), nullable=True),
        sa.Column("has_separate_read_database", sa.Boolean, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "service_name", name="uq_tenant_db_service"),
    )

    op.create_table(
        "tenant_migration_statuses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tenants.tenant_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("service_name", sa.String(100), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("last_migration_version", sa.String(255), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "service_name", name="uq_tenant_migration_service"),
    )
    op.create_index(
        "idx_migration_status_in_progress",
        "tenant_migration_statuses",
        ["status", "started_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_migration_status_in_progress", table_name="tenant_migration_statuses")
    op.drop_table("tenant_migration_statuses")
    op.drop_table("tenant_databases")
    op.drop_index("idx_tenant_provisioning_status", table_name="tenants")
    op.drop_index("idx_tenant_identifier", table_name="tenants")
    op.drop_table("tenants")
