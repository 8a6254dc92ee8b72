"""Pytest fixtures for tenantdb tests."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import pytest
import pytest_asyncio
import structlog
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from tenantdb.config.settings import SecretsBackendName, Settings
from tenantdb.db.models.base import Base
from tenantdb.models.database import DatabaseProvider
from tenantdb.provisioning.events import InMemoryEventBus
from tenantdb.secrets.memory import InMemorySecretStore
from tenantdb.secrets.types import DatabaseCredentials, UserCredentials

# =============================================================================
# Structlog Configuration Fixture
# =============================================================================


@pytest.fixture(scope="function", autouse=True)
def reset_structlog_after_test():
    """Reset structlog configuration after each test."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Settings for tests: in-memory SQLite, environment secrets."""
    return Settings(
        ENVIRONMENT="test",
        DEBUG=True,
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        SECRETS_BACKEND=SecretsBackendName.ENVIRONMENT,
        TENANT_SERVICES=["catalog", "orders", "customer"],
        TENANT_DATABASE_HOST="db.internal",
        log_level="DEBUG",
    )


# =============================================================================
# Tenant store
# =============================================================================


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory tenant store per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# =============================================================================
# Secrets and events
# =============================================================================


@pytest.fixture
def secret_store() -> InMemorySecretStore:
    return InMemorySecretStore()


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def sample_credentials() -> DatabaseCredentials:
    """A PostgreSQL bundle with distinct admin and application users."""
    return DatabaseCredentials(
        admin=UserCredentials("acme_catalog_admin", "admin-pass"),
        application=UserCredentials("acme_catalog_app", "app-pass"),
        host="db.internal",
        port=5432,
        database="catalog_acme",
        provider=DatabaseProvider.POSTGRESQL,
    )


# =============================================================================
# Migration target databases
# =============================================================================


def sqlite_engine(db_path: Path) -> AsyncEngine:
    """File-backed SQLite engine with transactional DDL.

    pysqlite's own transaction handling commits before DDL; turning it off
    and emitting BEGIN ourselves lets a rolled-back batch undo its CREATE
    TABLE statements, as it does on PostgreSQL.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest.fixture
def target_db(tmp_path: Path) -> Path:
    """Path of the database migrations are applied to."""
    return tmp_path / "target.db"


@pytest.fixture
def engine_factory(target_db: Path) -> Callable[[URL], AsyncEngine]:
    """Engine factory that ignores the credential URL and opens the SQLite target."""
    urls: list[URL] = []

    def factory(url: URL) -> AsyncEngine:
        urls.append(url)
        return sqlite_engine(target_db)

    factory.urls = urls  # type: ignore[attr-defined]
    return factory


@pytest.fixture
def target_tables(target_db: Path) -> Callable[[], Awaitable[set[str]]]:
    """Read the table names currently present in the target database."""

    async def read() -> set[str]:
        engine = sqlite_engine(target_db)
        try:
            async with engine.connect() as conn:
                result = await conn.exec_driver_sql(
                    "SELECT name FROM sqlite_master WHERE type = 'table'"
                )
                return {row[0] for row in result}
        finally:
            await engine.dispose()

    return read


@pytest.fixture
def scripts_dir(tmp_path: Path) -> Path:
    path = tmp_path / "Scripts"
    path.mkdir()
    return path


# =============================================================================
# API
# =============================================================================


@pytest.fixture
def test_app(
    test_settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    secret_store: InMemorySecretStore,
    event_bus: InMemoryEventBus,
) -> FastAPI:
    """FastAPI app wired to the in-memory tenant store and secret store."""
    from tenantdb.api.app import create_app

    return create_app(
        test_settings, session_factory, secret_store=secret_store, publisher=event_bus
    )


@pytest_asyncio.fixture
async def test_client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client calling the app in-process."""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as client:
        yield client
