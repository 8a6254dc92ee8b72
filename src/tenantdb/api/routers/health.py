"""Health check endpoints."""

import time
from datetime import UTC, datetime
from importlib.metadata import PackageNotFoundError, version
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from tenantdb.api.dependencies import DbSession, get_secret_store
from tenantdb.api.schemas.health import (
    ComponentHealth,
    HealthDetailResponse,
    HealthResponse,
    HealthStatus,
)
from tenantdb.secrets.exceptions import SecretsError
from tenantdb.secrets.protocol import SecretStore

router = APIRouter(tags=["health"])

try:
    APP_VERSION = version("tenantdb")
except PackageNotFoundError:
    APP_VERSION = "0.0.0"


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Basic health check",
    description="Returns liveness status without touching dependencies.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(
        status=HealthStatus.HEALTHY,
        version=APP_VERSION,
        timestamp=datetime.now(UTC),
    )


@router.get(
    "/health/ready",
    response_model=HealthDetailResponse,
    summary="Readiness check",
    description="Checks the tenant store and the secret store.",
)
async def health_ready(
    db: DbSession,
    secret_store: Annotated[SecretStore, Depends(get_secret_store)],
) -> HealthDetailResponse:
    db_health = await _check_database(db)
    secrets_health = await _check_secrets(secret_store)

    return HealthDetailResponse(
        status=_aggregate_health([db_health, secrets_health]),
        version=APP_VERSION,
        timestamp=datetime.now(UTC),
        database=db_health,
        secrets=secrets_health,
    )


async def _check_database(db) -> ComponentHealth:
    start = time.perf_counter()
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        return ComponentHealth(
            status=HealthStatus.UNHEALTHY,
            message=f"Database connection failed: {str(e)[:100]}",
            latency_ms=_ms_since(start),
        )
    return ComponentHealth(
        status=HealthStatus.HEALTHY,
        message="Database connection successful",
        latency_ms=_ms_since(start),
    )


async def _check_secrets(store: SecretStore) -> ComponentHealth:
    start = time.perf_counter()
    try:
        healthy = await store.health_check()
    except SecretsError as e:
        return ComponentHealth(
            status=HealthStatus.UNHEALTHY,
            message=f"Secret store check failed: {str(e)[:100]}",
            latency_ms=_ms_since(start),
        )
    return ComponentHealth(
        status=HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY,
        message=None if healthy else "Secret store unreachable or unauthenticated",
        latency_ms=_ms_since(start),
    )


def _aggregate_health(components: list[ComponentHealth]) -> HealthStatus:
    """UNHEALTHY if any component is, DEGRADED if any is degraded, else HEALTHY."""
    statuses = [c.status for c in components]
    if HealthStatus.UNHEALTHY in statuses:
        return HealthStatus.UNHEALTHY
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


def _ms_since(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
