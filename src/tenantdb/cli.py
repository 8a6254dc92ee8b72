"""Command-line migrator for one service's databases.

Runs the same handler the event-driven path uses, reporting status
in-process against the tenant store.

Usage:
    tenantdb-migrate --service catalog                  # shared, then every active tenant
    tenantdb-migrate --service catalog --shared-only
    tenantdb-migrate --service catalog --tenant 0192f0c1-...
"""

import argparse
import asyncio
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenantdb.config.settings import Settings, get_settings
from tenantdb.config.validation import validate_or_raise
from tenantdb.core.logging import get_logger, log_exception, setup_logging
from tenantdb.db.config import close_db, get_session_factory
from tenantdb.db.repositories.tenant import TenantRepository
from tenantdb.migration.handler import TenantMigrationHandler
from tenantdb.migration.runner import (
    MigrationFailure,
    MigrationOptions,
    MigrationResult,
    MigrationRunner,
)
from tenantdb.migration.status import LocalStatusReporter, StatusApiError
from tenantdb.models.database import DatabaseProvider, UnsupportedProviderError
from tenantdb.secrets.manager import initialize_secrets, shutdown_secrets
from tenantdb.secrets.paths import SecretPaths
from tenantdb.secrets.protocol import SecretStore
from tenantdb.utils.exceptions import ConfigurationError

logger = get_logger(__name__)


@dataclass
class DatabaseRun:
    """One database the migrator touched; ``result`` is None when skipped."""

    label: str
    result: MigrationResult | None
    note: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None and self.result.success

    @property
    def skipped(self) -> bool:
        return self.result is None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tenantdb-migrate",
        description="Apply pending SQL migration scripts to a service's databases.",
    )
    parser.add_argument("--service", required=True, help="Service whose databases to migrate")
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument(
        "--shared-only", action="store_true", help="Migrate only the shared database"
    )
    scope.add_argument("--tenant", type=UUID, help="Migrate only this tenant's database")
    parser.add_argument("--scripts-path", help="Directory of .sql scripts (default from settings)")
    parser.add_argument(
        "--provider",
        default=DatabaseProvider.POSTGRESQL.value,
        help="Provider of the shared database (default: postgresql)",
    )
    return parser


async def run(
    args: argparse.Namespace,
    settings: Settings,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    secret_store: SecretStore | None = None,
) -> int:
    """Run the requested migrations and return the process exit code.

    The tenant store and secret store are opened from settings unless given,
    and only what was opened here is closed.
    """
    try:
        provider = DatabaseProvider.parse(args.provider)
    except UnsupportedProviderError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    try:
        validate_or_raise(settings)
    except ConfigurationError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    overrides = {"scripts_path": args.scripts_path} if args.scripts_path else {}
    options = MigrationOptions.from_settings(settings, **overrides)

    owns_db = session_factory is None
    owns_secrets = secret_store is None
    if owns_db:
        session_factory = get_session_factory()
    if owns_secrets:
        secret_store = await initialize_secrets(settings)

    try:
        handler = TenantMigrationHandler(
            args.service,
            LocalStatusReporter(session_factory),
            MigrationRunner(secret_store, local_mode=settings.LOCAL_MODE),
            options,
            stale_after=timedelta(seconds=settings.migration.stale_after_seconds),
            paths=SecretPaths(settings.VAULT_DATABASE_SECRETS_PATH),
        )
        runs = await _migrate(handler, session_factory, args, provider)
    finally:
        if owns_secrets:
            await shutdown_secrets()
        if owns_db:
            await close_db()

    _print_summary(runs)
    return 0 if runs and all(r.succeeded for r in runs) else 1


async def _migrate(
    handler: TenantMigrationHandler,
    session_factory: async_sessionmaker[AsyncSession],
    args: argparse.Namespace,
    provider: DatabaseProvider,
) -> list[DatabaseRun]:
    runs: list[DatabaseRun] = []

    if args.tenant is not None:
        async with session_factory() as session:
            tenant = await TenantRepository(session).get(args.tenant)
        if tenant is None:
            missing = DatabaseRun(f"tenant {args.tenant}", None, "tenant not found")
            _print_run(missing)
            return [missing]
        return [
            await _migrate_tenant(
                handler, tenant.tenant_id, tenant.identifier, tenant.database_provider
            )
        ]

    shared = DatabaseRun("shared", await handler.migrate_shared_database(provider))
    runs.append(shared)
    _print_run(shared)
    if args.shared_only:
        return runs
    if not shared.succeeded:
        logger.error("tenant_migrations_skipped", reason="shared database migration failed")
        print("Skipping tenant databases: shared database migration failed")
        return runs

    async with session_factory() as session:
        tenants = await TenantRepository(session).list_active()
    logger.info("tenant_migrations_starting", service_name=args.service, tenants=len(tenants))

    for tenant in tenants:
        runs.append(
            await _migrate_tenant(
                handler, tenant.tenant_id, tenant.identifier, tenant.database_provider
            )
        )
    return runs


async def _migrate_tenant(
    handler: TenantMigrationHandler,
    tenant_id: UUID,
    identifier: str,
    provider: DatabaseProvider,
) -> DatabaseRun:
    try:
        result = await handler.migrate_tenant(tenant_id, provider)
    except StatusApiError as e:
        log_exception(logger, e, tenant_id=str(tenant_id), service_name=handler.service_name)
        result = MigrationResult.failed(
            MigrationFailure.STATUS_REPORT, f"Status update rejected: {e}", provider=provider
        )
    run = DatabaseRun(
        f"tenant {identifier}",
        result,
        "already in progress" if result is None else None,
    )
    _print_run(run)
    return run


def _print_run(run: DatabaseRun) -> None:
    if run.result is None:
        print(f"- {run.label}: skipped ({run.note})")
    elif run.result.success:
        detail = run.result.skipped_reason or f"{run.result.scripts_applied} script(s) applied"
        print(f"✓ {run.label}: {detail} in {run.result.duration_ms:.0f} ms")
    else:
        print(f"✗ {run.label}: {run.result.error_message}")


def _print_summary(runs: Sequence[DatabaseRun]) -> None:
    succeeded = sum(1 for r in runs if r.succeeded)
    skipped = sum(1 for r in runs if r.skipped)
    failed = len(runs) - succeeded - skipped
    print()
    print(f"{'Succeeded':<10} {'Failed':<10} {'Skipped':<10} {'Total':<10}")
    print(f"{succeeded:<10} {failed:<10} {skipped:<10} {len(runs):<10}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    return asyncio.run(run(args, get_settings()))


if __name__ == "__main__":
    sys.exit(main())
