"""FastAPI dependencies for API endpoints.

Everything is read from ``app.state`` so tests can hand ``create_app`` an
in-memory session factory and secret store.
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdb.config.settings import Settings
from tenantdb.provisioning.events import EventPublisher
from tenantdb.secrets.protocol import SecretStore

__all__ = [
    "DbSession",
    "get_app_settings",
    "get_db",
    "get_publisher",
    "get_request_id",
    "get_secret_store",
]


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a tenant store session for the duration of the request."""
    async with request.app.state.session_factory() as session:
        yield session


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_secret_store(request: Request) -> SecretStore:
    return request.app.state.secret_store


def get_publisher(request: Request) -> EventPublisher | None:
    return getattr(request.app.state, "publisher", None)


def get_request_id(request: Request) -> str:
    """Request ID set by ``RequestContextMiddleware``."""
    return str(getattr(request.state, "request_id", "unknown"))


DbSession = Annotated[AsyncSession, Depends(get_db)]
