"""Schema migration runner for one tenant or shared database.

The runner resolves admin credentials from the secret store, connects
with the provider's async driver, and applies every script under the
scripts directory that the database's journal has not recorded yet.
Expected failures never raise: they come back as a failed
``MigrationResult`` tagged with a ``MigrationFailure`` kind.

Usage:
    runner = MigrationRunner(store, local_mode=settings.LOCAL_MODE)
    result = await runner.migrate(
        "database/tenants/acme/catalog/write",
        MigrationOptions.from_settings(settings, provider=DatabaseProvider.POSTGRESQL),
    )
    if not result.success:
        ...
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any

from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from tenantdb.config.settings import Settings
from tenantdb.core.logging import get_logger, log_exception
from tenantdb.db.models.base import utcnow
from tenantdb.models.database import DatabaseProvider, UnsupportedProviderError
from tenantdb.secrets.exceptions import SecretsError, SecretValidationError
from tenantdb.secrets.protocol import SecretStore
from tenantdb.secrets.types import CredentialRole, DatabaseCredentials

from .dialects import MigrationDialect, dialect_for
from .journal import ScriptJournal
from .scripts import MigrationScript, discover_scripts, has_sql_files

logger = get_logger(__name__)

EngineFactory = Callable[[URL], AsyncEngine]


class MigrationFailure(str, Enum):
    """Why a migration run failed."""

    SECRET_RETRIEVAL = "secret_retrieval"
    UNSUPPORTED_PROVIDER = "unsupported_provider"
    SCRIPT_EXECUTION = "script_execution"
    ENGINE_CONFIGURATION = "engine_configuration"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    METADATA_NOT_FOUND = "metadata_not_found"
    STATUS_REPORT = "status_report"


# Failures that local mode downgrades to a successful no-op
_LOCAL_FALLBACK = frozenset(
    {MigrationFailure.SECRET_RETRIEVAL, MigrationFailure.ENGINE_CONFIGURATION}
)


@dataclass
class MigrationOptions:
    """Per-run migration settings.

    Attributes:
        scripts_path: Directory searched recursively for ``.sql`` scripts
        provider: Provider to use when the credential bundle records none
        journal_schema: Journal schema (provider default when None)
        journal_table: Journal table name
        use_transactions: Run the whole batch in one transaction
        command_timeout_seconds: Timeout for each statement
        log_script_output: Log each script as it is applied
    """

    scripts_path: str | Path = "Scripts"
    provider: DatabaseProvider | None = None
    journal_schema: str | None = None
    journal_table: str = "SchemaVersions"
    use_transactions: bool = True
    command_timeout_seconds: float = 300
    log_script_output: bool = True

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "MigrationOptions":
        migration = settings.migration
        options = cls(
            scripts_path=migration.scripts_path,
            journal_schema=migration.journal_schema,
            journal_table=migration.journal_table,
            use_transactions=migration.use_transactions,
            command_timeout_seconds=migration.command_timeout_seconds,
            log_script_output=migration.log_script_output,
        )
        return replace(options, **overrides)


@dataclass(frozen=True)
class MigrationResult:
    """Outcome of one migration run.

    Attributes:
        success: Whether the database is now up to date
        scripts_applied: Number of scripts applied and kept by this run
        duration: Wall-clock duration of the run
        applied_scripts: Names of those scripts, in application order
        error_message: Failure description
        provider: Provider the run targeted, when known
        failure: Failure kind when ``success`` is False
        current_version: Last journaled script after the run
        skipped_reason: Set when local mode turned the run into a no-op
    """

    success: bool
    scripts_applied: int = 0
    duration: timedelta = field(default_factory=timedelta)
    applied_scripts: tuple[str, ...] = ()
    error_message: str | None = None
    provider: DatabaseProvider | None = None
    failure: MigrationFailure | None = None
    current_version: str | None = None
    skipped_reason: str | None = None

    @property
    def last_applied_script(self) -> str | None:
        return self.applied_scripts[-1] if self.applied_scripts else None

    @property
    def duration_ms(self) -> float:
        return self.duration.total_seconds() * 1000

    @classmethod
    def successful(
        cls,
        applied_scripts: tuple[str, ...] | list[str] = (),
        *,
        duration: timedelta | None = None,
        provider: DatabaseProvider | None = None,
        current_version: str | None = None,
        skipped_reason: str | None = None,
    ) -> "MigrationResult":
        applied = tuple(applied_scripts)
        return cls(
            success=True,
            scripts_applied=len(applied),
            duration=duration or timedelta(),
            applied_scripts=applied,
            provider=provider,
            current_version=current_version or (applied[-1] if applied else None),
            skipped_reason=skipped_reason,
        )

    @classmethod
    def failed(
        cls,
        failure: MigrationFailure,
        error_message: str,
        *,
        applied_scripts: tuple[str, ...] | list[str] = (),
        duration: timedelta | None = None,
        provider: DatabaseProvider | None = None,
        current_version: str | None = None,
    ) -> "MigrationResult":
        applied = tuple(applied_scripts)
        return cls(
            success=False,
            scripts_applied=len(applied),
            duration=duration or timedelta(),
            applied_scripts=applied,
            error_message=error_message,
            provider=provider,
            failure=failure,
            current_version=current_version,
        )


class _RunFailed(Exception):
    """Internal: aborts a run with a classified failure."""

    def __init__(self, failure: MigrationFailure, message: str, script: str | None = None):
        self.failure = failure
        self.script = script
        super().__init__(message)


def default_engine_factory(url: URL) -> AsyncEngine:
    """Create an unpooled engine for a single run."""
    return create_async_engine(url, poolclass=NullPool)


class MigrationRunner:
    """Applies pending migration scripts to a database.

    Args:
        secret_store: Store holding the admin credential bundles
        local_mode: Local development mode (missing scripts and unreachable
            infrastructure become successful no-ops)
        engine_factory: Creates the engine for a target URL
    """

    def __init__(
        self,
        secret_store: SecretStore,
        *,
        local_mode: bool = False,
        engine_factory: EngineFactory | None = None,
    ):
        self.secret_store = secret_store
        self.local_mode = local_mode
        self.engine_factory = engine_factory or default_engine_factory

    async def migrate(
        self,
        secret_path: str,
        options: MigrationOptions,
        *,
        cancel_event: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> MigrationResult:
        """Bring the database behind ``secret_path`` up to date.

        Args:
            secret_path: Secret store path of the admin credential bundle
            options: Run options
            cancel_event: When set, the run stops before the next script
            timeout: Overall deadline in seconds

        Returns:
            Result describing what was applied; never raises for expected failures
        """
        started = time.perf_counter()
        log = logger.bind(secret_path=secret_path)

        if self.local_mode and not has_sql_files(options.scripts_path):
            log.info("migration_skipped_no_scripts", scripts_path=str(options.scripts_path))
            return MigrationResult.successful(
                duration=_elapsed(started),
                provider=options.provider,
                skipped_reason="no migration scripts found",
            )

        deadline = started + timeout if timeout is not None else None
        progress = _Progress()

        try:
            result = await self._run(secret_path, options, progress, cancel_event, deadline, log)
        except _RunFailed as e:
            result = MigrationResult.failed(
                e.failure,
                str(e),
                applied_scripts=progress.committed,
                duration=_elapsed(started),
                provider=progress.provider,
                current_version=progress.current_version,
            )
        except Exception as e:
            log_exception(log, e, stage="engine")
            result = MigrationResult.failed(
                MigrationFailure.ENGINE_CONFIGURATION,
                f"Migration engine failed: {e}",
                applied_scripts=progress.committed,
                duration=_elapsed(started),
                provider=progress.provider,
                current_version=progress.current_version,
            )
        else:
            result = replace(result, duration=_elapsed(started))

        if not result.success and self.local_mode and result.failure in _LOCAL_FALLBACK:
            log.warning(
                "migration_local_fallback",
                failure=result.failure.value,
                error=result.error_message,
            )
            return MigrationResult.successful(
                duration=result.duration,
                provider=result.provider,
                skipped_reason=f"local mode: {result.error_message}",
            )

        if result.success:
            log.info(
                "migration_completed",
                scripts_applied=result.scripts_applied,
                current_version=result.current_version,
                duration_ms=round(result.duration_ms, 2),
            )
        else:
            log.error(
                "migration_failed",
                failure=result.failure.value if result.failure else None,
                error=result.error_message,
                scripts_applied=result.scripts_applied,
            )
        return result

    async def _run(
        self,
        secret_path: str,
        options: MigrationOptions,
        progress: "_Progress",
        cancel_event: asyncio.Event | None,
        deadline: float | None,
        log,
    ) -> MigrationResult:
        credentials = await self._load_credentials(secret_path)

        try:
            dialect = dialect_for(credentials.provider or options.provider)
        except UnsupportedProviderError as e:
            raise _RunFailed(MigrationFailure.UNSUPPORTED_PROVIDER, str(e)) from e
        progress.provider = dialect.provider

        try:
            scripts = discover_scripts(options.scripts_path)
        except FileNotFoundError as e:
            raise _RunFailed(MigrationFailure.ENGINE_CONFIGURATION, str(e)) from e

        try:
            url = credentials.to_url(CredentialRole.ADMIN, dialect.provider, dialect.driver)
            engine = self.engine_factory(url)
        except (SQLAlchemyError, ImportError, ValueError) as e:
            raise _RunFailed(
                MigrationFailure.ENGINE_CONFIGURATION, f"Cannot create engine: {e}"
            ) from e

        journal = ScriptJournal(
            options.journal_table, options.journal_schema or dialect.default_journal_schema
        )
        try:
            conn = engine.connect()
            try:
                await _bounded(conn.start(), _remaining(deadline))
            except TimeoutError as e:
                if deadline is not None and _remaining(deadline) <= 0:
                    raise _RunFailed(
                        MigrationFailure.TIMEOUT, "Migration deadline exceeded while connecting"
                    ) from e
                raise _RunFailed(
                    MigrationFailure.ENGINE_CONFIGURATION, f"Cannot connect to database: {e}"
                ) from e
            except (SQLAlchemyError, OSError) as e:
                raise _RunFailed(
                    MigrationFailure.ENGINE_CONFIGURATION, f"Cannot connect to database: {e}"
                ) from e
            try:
                return await self._apply(
                    conn, journal, dialect, scripts, options, progress, cancel_event, deadline, log
                )
            finally:
                await conn.close()
        finally:
            await engine.dispose()

    async def _load_credentials(self, secret_path: str) -> DatabaseCredentials:
        try:
            return await self.secret_store.get_credentials_by_path(secret_path)
        except SecretValidationError as e:
            if e.key == "provider":
                raise _RunFailed(MigrationFailure.UNSUPPORTED_PROVIDER, str(e)) from e
            raise _RunFailed(
                MigrationFailure.SECRET_RETRIEVAL,
                f"Failed to retrieve credentials from {secret_path}: {e}",
            ) from e
        except SecretsError as e:
            raise _RunFailed(
                MigrationFailure.SECRET_RETRIEVAL,
                f"Failed to retrieve credentials from {secret_path}: {e}",
            ) from e

    async def _apply(
        self,
        conn: AsyncConnection,
        journal: ScriptJournal,
        dialect: MigrationDialect,
        scripts: list[MigrationScript],
        options: MigrationOptions,
        progress: "_Progress",
        cancel_event: asyncio.Event | None,
        deadline: float | None,
        log,
    ) -> MigrationResult:
        try:
            await journal.ensure(conn)
            await conn.commit()
            applied = await journal.applied_scripts(conn)
            await conn.commit()
        except SQLAlchemyError as e:
            raise _RunFailed(
                MigrationFailure.ENGINE_CONFIGURATION, f"Cannot read migration journal: {e}"
            ) from e

        progress.current_version = applied[-1] if applied else None
        already = set(applied)
        pending = [s for s in scripts if s.name not in already]
        if not pending:
            log.info("migration_up_to_date", journaled=len(applied))
            return MigrationResult.successful(
                provider=dialect.provider, current_version=progress.current_version
            )

        log.info("migration_pending_scripts", pending=len(pending), journaled=len(applied))

        if options.use_transactions:
            run_applied: list[str] = []
            try:
                async with conn.begin():
                    for script in pending:
                        self._check_continue(script, cancel_event, deadline, len(run_applied))
                        await self._execute(conn, script, dialect, options, deadline, log)
                        await journal.record(conn, script.name, utcnow())
                        run_applied.append(script.name)
            except _RunFailed as e:
                if run_applied:
                    log.warning("migration_rolled_back", rolled_back=run_applied, script=e.script)
                raise
            progress.committed.extend(run_applied)
        else:
            for script in pending:
                self._check_continue(script, cancel_event, deadline, len(progress.committed))
                try:
                    await self._execute(
                        conn, script, dialect, options, deadline, log, commit_each=True
                    )
                    await journal.record(conn, script.name, utcnow())
                    await conn.commit()
                except _RunFailed:
                    await conn.rollback()
                    raise
                progress.committed.append(script.name)
                progress.current_version = script.name

        current = progress.committed[-1] if progress.committed else progress.current_version
        progress.current_version = current
        return MigrationResult.successful(
            progress.committed, provider=dialect.provider, current_version=current
        )

    def _check_continue(
        self,
        script: MigrationScript,
        cancel_event: asyncio.Event | None,
        deadline: float | None,
        applied_count: int,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise _RunFailed(
                MigrationFailure.CANCELLED,
                f"Migration cancelled before script {script.name} "
                f"({applied_count} script(s) applied in this run)",
                script=script.name,
            )
        remaining = _remaining(deadline)
        if remaining is not None and remaining <= 0:
            raise _RunFailed(
                MigrationFailure.TIMEOUT,
                f"Migration deadline exceeded before script {script.name}",
                script=script.name,
            )

    async def _execute(
        self,
        conn: AsyncConnection,
        script: MigrationScript,
        dialect: MigrationDialect,
        options: MigrationOptions,
        deadline: float | None,
        log,
        *,
        commit_each: bool = False,
    ) -> None:
        if options.log_script_output:
            log.info("migration_script_started", script=script.name)

        try:
            statements = dialect.split(script.read())
        except OSError as e:
            raise _RunFailed(
                MigrationFailure.SCRIPT_EXECUTION,
                f"Cannot read script {script.name}: {e}",
                script=script.name,
            ) from e

        for statement in statements:
            limit = options.command_timeout_seconds
            remaining = _remaining(deadline)
            if remaining is not None:
                limit = min(limit, max(remaining, 0))
            try:
                async with asyncio.timeout(limit):
                    await conn.exec_driver_sql(
                        statement, execution_options={"no_parameters": True}
                    )
                if commit_each:
                    await conn.commit()
            except TimeoutError as e:
                raise _RunFailed(
                    MigrationFailure.TIMEOUT,
                    f"Script {script.name} timed out after {limit:g}s",
                    script=script.name,
                ) from e
            except SQLAlchemyError as e:
                raise _RunFailed(
                    MigrationFailure.SCRIPT_EXECUTION,
                    f"Script {script.name} failed: {_db_message(e)}",
                    script=script.name,
                ) from e

        if options.log_script_output:
            log.info("migration_script_applied", script=script.name, statements=len(statements))


@dataclass
class _Progress:
    provider: DatabaseProvider | None = None
    committed: list[str] = field(default_factory=list)
    current_version: str | None = None


def _elapsed(started: float) -> timedelta:
    return timedelta(seconds=time.perf_counter() - started)


def _remaining(deadline: float | None) -> float | None:
    if deadline is None:
        return None
    return deadline - time.perf_counter()


async def _bounded(awaitable, limit: float | None):
    if limit is None:
        return await awaitable
    async with asyncio.timeout(max(limit, 0)):
        return await awaitable


def _db_message(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)
