"""Status reporting between migration handlers and the tenant service.

Migration handlers never touch the tenant store directly. They go through
a ``StatusReporter``: ``CustomerApiClient`` over HTTP when the handler
runs in another process, or ``LocalStatusReporter`` in-process.
"""

import time
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar, runtime_checkable
from uuid import UUID

import httpx
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from tenantdb.config.settings import Settings
from tenantdb.core.logging import get_logger, log_external_call
from tenantdb.core.result import ErrorType, Outcome
from tenantdb.models.migration import MigrationStatus
from tenantdb.provisioning.commands import UpdateMigrationStatusCommand
from tenantdb.provisioning.dtos import (
    MigrationStatusDto,
    ServiceDatabaseInfoDto,
    UpdateMigrationStatusRequest,
)
from tenantdb.provisioning.handlers import UpdateMigrationStatusHandler
from tenantdb.provisioning.queries import GetMigrationStatusHandler, GetTenantDatabaseInfoHandler
from tenantdb.utils.exceptions import TenantDbError

logger = get_logger(__name__)

T = TypeVar("T")


class StatusApiError(TenantDbError):
    """Raised when the status API rejects a call or cannot be reached.

    Attributes:
        status_code: HTTP status, None for transport failures
        error_code: Machine-readable code from the response, when present
    """

    def __init__(self, message: str, status_code: int | None = None, error_code: str | None = None):
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)

    @property
    def transient(self) -> bool:
        return self.status_code is None or self.status_code >= 500


@runtime_checkable
class StatusReporter(Protocol):
    """Status and metadata access used by migration handlers."""

    async def update_migration_status(
        self,
        tenant_id: UUID,
        service_name: str,
        status: MigrationStatus,
        last_migration_version: str | None = None,
        error_message: str | None = None,
    ) -> None:
        """Record a transition.

        Raises:
            StatusApiError: If the update was rejected or could not be delivered
        """
        ...

    async def get_database_info(
        self, tenant_id: UUID, service_name: str
    ) -> ServiceDatabaseInfoDto | None:
        """Credential locations for the service, or None if unknown."""
        ...

    async def get_migration_status(
        self, tenant_id: UUID, service_name: str
    ) -> MigrationStatusDto | None:
        """Current status for the service, or None if unknown."""
        ...


class CustomerApiClient:
    """HTTP client for the tenant service's status API.

    Transport errors are retried with exponential backoff; HTTP error
    responses are not.

    Usage:
        async with CustomerApiClient("http://customer-api:8000") as client:
            info = await client.get_database_info(tenant_id, "catalog")
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        retry_attempts: int = 3,
        retry_backoff: float = 0.5,
    ):
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._owns_client = client is None
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff

    @classmethod
    def from_settings(cls, settings: Settings) -> "CustomerApiClient":
        return cls(settings.CUSTOMER_API_URL, timeout=settings.CUSTOMER_API_TIMEOUT_SECONDS)

    async def __aenter__(self) -> "CustomerApiClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def update_migration_status(
        self,
        tenant_id: UUID,
        service_name: str,
        status: MigrationStatus,
        last_migration_version: str | None = None,
        error_message: str | None = None,
    ) -> None:
        body = UpdateMigrationStatusRequest(
            status=status,
            last_migration_version=last_migration_version,
            error_message=error_message,
        )
        response = await self._send(
            "PUT",
            _service_url(tenant_id, service_name, "migration-status"),
            json=body.model_dump(mode="json", by_alias=True),
        )
        if response.is_error:
            raise _api_error("update migration status", response)
        logger.info(
            "migration_status_reported",
            tenant_id=str(tenant_id),
            service_name=service_name,
            status=status.value,
        )

    async def get_database_info(
        self, tenant_id: UUID, service_name: str
    ) -> ServiceDatabaseInfoDto | None:
        return await self._get(
            _service_url(tenant_id, service_name, "database-info"), ServiceDatabaseInfoDto
        )

    async def get_migration_status(
        self, tenant_id: UUID, service_name: str
    ) -> MigrationStatusDto | None:
        return await self._get(
            _service_url(tenant_id, service_name, "migration-status"), MigrationStatusDto
        )

    async def _get(self, url: str, model: type[T]) -> T | None:
        response = await self._send("GET", url)
        if response.status_code == 404:
            return None
        if response.is_error:
            raise _api_error(f"GET {url}", response)
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise StatusApiError(
                f"Invalid response from {url}: {e}", status_code=response.status_code
            ) from e

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        start = time.perf_counter()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_exponential(multiplier=self.retry_backoff, max=5),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    response = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            log_external_call(
                logger, "customer_api", f"{method} {url}", _ms_since(start), False, error=str(e)
            )
            raise StatusApiError(f"Status API unreachable ({method} {url}): {e}") from e

        log_external_call(
            logger,
            "customer_api",
            f"{method} {url}",
            _ms_since(start),
            not response.is_error,
            status_code=response.status_code,
        )
        return response


class LocalStatusReporter:
    """In-process reporter calling the provisioning handlers directly.

    Each call runs in its own session so status updates commit independently.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def update_migration_status(
        self,
        tenant_id: UUID,
        service_name: str,
        status: MigrationStatus,
        last_migration_version: str | None = None,
        error_message: str | None = None,
    ) -> None:
        command = UpdateMigrationStatusCommand(
            tenant_id=tenant_id,
            service_name=service_name,
            status=status,
            last_migration_version=last_migration_version,
            error_message=error_message,
        )
        async with self.session_factory() as session:
            outcome = await UpdateMigrationStatusHandler(session).handle(command)
        _raise_for_outcome(outcome)

    async def get_database_info(
        self, tenant_id: UUID, service_name: str
    ) -> ServiceDatabaseInfoDto | None:
        return await self._query(
            lambda session: GetTenantDatabaseInfoHandler(session).handle(tenant_id, service_name)
        )

    async def get_migration_status(
        self, tenant_id: UUID, service_name: str
    ) -> MigrationStatusDto | None:
        return await self._query(
            lambda session: GetMigrationStatusHandler(session).handle(tenant_id, service_name)
        )

    async def _query(self, run: Callable[[AsyncSession], Awaitable[Outcome[T]]]) -> T | None:
        async with self.session_factory() as session:
            outcome = await run(session)
        if outcome.is_error and outcome.first_error.type is ErrorType.NOT_FOUND:
            return None
        _raise_for_outcome(outcome)
        return outcome.value


def _raise_for_outcome(outcome: Outcome) -> None:
    if outcome.is_error:
        error = outcome.first_error
        raise StatusApiError(error.description, error.type.http_status, error.code)


def _service_url(tenant_id: UUID, service_name: str, resource: str) -> str:
    return f"/api/v1/tenants/{tenant_id}/services/{service_name}/{resource}"


def _api_error(action: str, response: httpx.Response) -> StatusApiError:
    error_code = None
    message = response.text
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        error_code = payload.get("error_code")
        message = payload.get("message") or message
    return StatusApiError(
        f"Failed to {action}: HTTP {response.status_code} {message}".strip(),
        status_code=response.status_code,
        error_code=error_code,
    )


def _ms_since(start: float) -> float:
    return (time.perf_counter() - start) * 1000
