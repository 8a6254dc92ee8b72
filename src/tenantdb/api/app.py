"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenantdb.api.middleware import (
    ErrorHandlingMiddleware,
    RequestContextMiddleware,
    RequestLoggingMiddleware,
)
from tenantdb.api.routers import health_router, v1_router
from tenantdb.api.schemas.errors import APIError, ErrorCode
from tenantdb.config.settings import Settings, get_settings
from tenantdb.config.validation import validate_or_raise
from tenantdb.core.logging import get_logger
from tenantdb.provisioning.events import EventPublisher, InMemoryEventBus
from tenantdb.secrets.protocol import SecretStore

logger = get_logger("tenantdb.api")


def create_app(
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    *,
    secret_store: SecretStore | None = None,
    publisher: EventPublisher | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Dependencies left as None are created in the lifespan from settings:
    the process-wide engine and session factory, and the configured secret
    store. Passing them in skips that step, which is how tests run the app
    against SQLite and an in-memory secret store.

    Args:
        settings: Optional settings override
        session_factory: Tenant store session factory
        secret_store: Credential store
        publisher: Receives ``TenantCreatedEvent``; defaults to an in-process bus

    Example:
        uvicorn tenantdb.api.app:create_app --factory
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="Tenant Database API",
        description="Tenant database provisioning and migration status",
        version="0.1.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=_lifespan,
    )

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.secret_store = secret_store
    app.state.publisher = publisher if publisher is not None else InMemoryEventBus()

    _configure_middleware(app, settings)
    _configure_routers(app)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)

    return app


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the tenant store and secret store unless they were injected."""
    logger.info("api_starting", environment=app.state.settings.ENVIRONMENT)
    validate_or_raise(app.state.settings)

    owns_db = app.state.session_factory is None
    owns_secrets = app.state.secret_store is None

    if owns_db:
        from tenantdb.db.config import get_session_factory, init_db

        await init_db()
        app.state.session_factory = get_session_factory()
        logger.info("database_initialized")

    if owns_secrets:
        from tenantdb.secrets.manager import initialize_secrets

        app.state.secret_store = await initialize_secrets(app.state.settings)

    try:
        yield
    finally:
        logger.info("api_stopping")
        if owns_secrets:
            from tenantdb.secrets.manager import shutdown_secrets

            await shutdown_secrets()
        if owns_db:
            from tenantdb.db.config import close_db

            await close_db()


def _configure_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure middleware stack.

    Execution order, outermost first:
    1. RequestLoggingMiddleware - logs every request
    2. ErrorHandlingMiddleware - converts escaped exceptions to APIError
    3. RequestContextMiddleware - assigns the request ID

    Starlette runs the last-added middleware outermost, so they are added
    in reverse.
    """
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(ErrorHandlingMiddleware, debug=settings.DEBUG)
    app.add_middleware(RequestLoggingMiddleware)


def _configure_routers(app: FastAPI) -> None:
    app.include_router(health_router)
    app.include_router(v1_router)


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    request_id = str(getattr(request.state, "request_id", "unknown"))
    error = APIError(
        error_code=ErrorCode.VALIDATION_ERROR.value,
        message="Request validation failed",
        details={"errors": _jsonable_errors(exc)},
        request_id=request_id,
        timestamp=datetime.now(UTC),
    )
    return JSONResponse(
        status_code=422,
        content=error.model_dump(mode="json"),
        headers={"X-Request-ID": request_id},
    )


def _jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
