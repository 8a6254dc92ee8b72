"""Tenant provisioning and migration status endpoints.

Handlers return ``Outcome`` values; errors become ``APIError`` bodies with
the handler's error code and a status derived from its ``ErrorType``.
"""

from datetime import UTC, datetime
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, Path, status
from fastapi.responses import JSONResponse

from tenantdb.api.dependencies import (
    DbSession,
    get_app_settings,
    get_publisher,
    get_request_id,
    get_secret_store,
)
from tenantdb.api.schemas.errors import APIError
from tenantdb.config.settings import Settings
from tenantdb.core.logging import get_logger
from tenantdb.core.result import Outcome
from tenantdb.provisioning.commands import CreateTenantCommand, UpdateMigrationStatusCommand
from tenantdb.provisioning.dtos import (
    MigrationStatusDto,
    ServiceDatabaseInfoDto,
    ServiceReadinessDto,
    TenantDto,
    UpdateMigrationStatusRequest,
)
from tenantdb.provisioning.events import EventPublisher
from tenantdb.provisioning.handlers import CreateTenantHandler, UpdateMigrationStatusHandler
from tenantdb.provisioning.queries import (
    CheckServiceReadinessHandler,
    GetMigrationStatusHandler,
    GetTenantByIdHandler,
    GetTenantDatabaseInfoHandler,
)
from tenantdb.secrets.paths import SecretPaths
from tenantdb.secrets.protocol import SecretStore

logger = get_logger(__name__)

router = APIRouter(prefix="/tenants", tags=["tenants"])

RequestId = Annotated[str, Depends(get_request_id)]
ServiceName = Annotated[str, Path(min_length=1, max_length=100)]

_ERRORS: dict[int | str, dict[str, Any]] = {
    400: {"model": APIError, "description": "Validation failed"},
    404: {"model": APIError, "description": "Tenant or service not found"},
    500: {"model": APIError, "description": "Unexpected failure"},
}


def _respond(outcome: Outcome[Any], request_id: str) -> Any:
    if not outcome.is_error:
        return outcome.value

    error = outcome.first_error
    body = APIError.from_error(error, request_id, datetime.now(UTC))
    return JSONResponse(
        status_code=error.type.http_status,
        content=body.model_dump(mode="json"),
        headers={"X-Request-ID": request_id},
    )


@router.post(
    "",
    response_model=TenantDto,
    status_code=status.HTTP_201_CREATED,
    summary="Create a tenant",
    description=(
        "Create a tenant, store credential bundles for every participating service "
        "and announce it to the services' migration handlers."
    ),
    responses={**_ERRORS, 409: {"model": APIError, "description": "Identifier already taken"}},
)
async def create_tenant(
    command: CreateTenantCommand,
    db: DbSession,
    secret_store: Annotated[SecretStore, Depends(get_secret_store)],
    publisher: Annotated[EventPublisher | None, Depends(get_publisher)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    request_id: RequestId,
) -> TenantDto | JSONResponse:
    handler = CreateTenantHandler(
        db,
        secret_store,
        publisher,
        services=settings.TENANT_SERVICES,
        paths=SecretPaths(settings.VAULT_DATABASE_SECRETS_PATH),
        database_host=settings.TENANT_DATABASE_HOST,
    )
    outcome = await handler.handle(command)
    if outcome.is_error:
        logger.warning(
            "tenant_creation_rejected",
            identifier=command.identifier,
            error_code=outcome.first_error.code,
        )
    return _respond(outcome, request_id)


@router.get(
    "/{tenant_id}",
    response_model=TenantDto,
    summary="Get a tenant",
    responses=_ERRORS,
)
async def get_tenant(
    tenant_id: UUID, db: DbSession, request_id: RequestId
) -> TenantDto | JSONResponse:
    return _respond(await GetTenantByIdHandler(db).handle(tenant_id), request_id)


@router.get(
    "/{tenant_id}/services/{service_name}/database-info",
    response_model=ServiceDatabaseInfoDto,
    summary="Credential locations for a service",
    responses=_ERRORS,
)
async def get_database_info(
    tenant_id: UUID, service_name: ServiceName, db: DbSession, request_id: RequestId
) -> ServiceDatabaseInfoDto | JSONResponse:
    outcome = await GetTenantDatabaseInfoHandler(db).handle(tenant_id, service_name)
    return _respond(outcome, request_id)


@router.get(
    "/{tenant_id}/services/{service_name}/migration-status",
    response_model=MigrationStatusDto,
    summary="Migration status for a service",
    responses=_ERRORS,
)
async def get_migration_status(
    tenant_id: UUID, service_name: ServiceName, db: DbSession, request_id: RequestId
) -> MigrationStatusDto | JSONResponse:
    outcome = await GetMigrationStatusHandler(db).handle(tenant_id, service_name)
    return _respond(outcome, request_id)


@router.put(
    "/{tenant_id}/services/{service_name}/migration-status",
    response_model=MigrationStatusDto,
    summary="Report a migration status transition",
    responses={**_ERRORS, 409: {"model": APIError, "description": "Concurrent update"}},
)
async def update_migration_status(
    tenant_id: UUID,
    service_name: ServiceName,
    body: UpdateMigrationStatusRequest,
    db: DbSession,
    request_id: RequestId,
) -> MigrationStatusDto | JSONResponse:
    command = UpdateMigrationStatusCommand(
        tenant_id=tenant_id,
        service_name=service_name,
        status=body.status,
        last_migration_version=body.last_migration_version,
        error_message=body.error_message,
    )
    outcome = await UpdateMigrationStatusHandler(db).handle(command)
    return _respond(outcome, request_id)


@router.get(
    "/{tenant_id}/services/{service_name}/readiness",
    response_model=ServiceReadinessDto,
    summary="Whether a service's database is ready for traffic",
    responses=_ERRORS,
)
async def get_readiness(
    tenant_id: UUID, service_name: ServiceName, db: DbSession, request_id: RequestId
) -> ServiceReadinessDto | JSONResponse:
    outcome = await CheckServiceReadinessHandler(db).handle(tenant_id, service_name)
    return _respond(outcome, request_id)
