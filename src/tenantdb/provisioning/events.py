"""Integration events published after a tenant is persisted.

The aggregate queues ``TenantCreated`` domain events; the create handler
converts them to ``TenantCreatedEvent`` messages and publishes them only
after the commit succeeds. Delivery is at-least-once: subscribers must
tolerate re-delivery.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from pydantic import ConfigDict, Field
from uuid_utils.compat import uuid7

from tenantdb.core.logging import get_logger
from tenantdb.db.models.base import utcnow
from tenantdb.db.models.tenant import TenantCreated
from tenantdb.models.database import DatabaseProvider, DatabaseStrategy

from .dtos import WireModel

logger = get_logger(__name__)


class TenantCreatedEvent(WireModel):
    """Message telling each service to provision its database for a new tenant."""

    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(default_factory=uuid7)
    occurred_at: datetime = Field(default_factory=utcnow)
    tenant_id: UUID
    identifier: str
    name: str
    database_strategy: DatabaseStrategy
    database_provider: DatabaseProvider

    @classmethod
    def from_domain(cls, event: TenantCreated) -> "TenantCreatedEvent":
        return cls(
            tenant_id=event.tenant_id,
            identifier=event.identifier,
            name=event.name,
            database_strategy=event.strategy,
            database_provider=event.provider,
        )


EventSubscriber = Callable[[TenantCreatedEvent], Awaitable[Any]]


@runtime_checkable
class EventPublisher(Protocol):
    """Outbound event channel."""

    async def publish(self, event: TenantCreatedEvent) -> None:
        ...


class InMemoryEventBus:
    """Process-local publisher that fans events out to subscribers.

    Subscribers run concurrently; a failing subscriber is logged and does
    not prevent delivery to the others.

    Attributes:
        published: Every event published, in order
    """

    def __init__(self) -> None:
        self._subscribers: list[EventSubscriber] = []
        self.published: list[TenantCreatedEvent] = []

    def subscribe(self, subscriber: EventSubscriber) -> None:
        self._subscribers.append(subscriber)

    async def publish(self, event: TenantCreatedEvent) -> None:
        self.published.append(event)
        logger.info(
            "event_published",
            event_type=type(event).__name__,
            event_id=str(event.event_id),
            tenant_id=str(event.tenant_id),
            subscribers=len(self._subscribers),
        )
        if not self._subscribers:
            return

        results = await asyncio.gather(
            *(subscriber(event) for subscriber in self._subscribers), return_exceptions=True
        )
        for subscriber, result in zip(self._subscribers, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "event_subscriber_failed",
                    subscriber=getattr(subscriber, "__qualname__", repr(subscriber)),
                    event_id=str(event.event_id),
                    error=str(result),
                    error_type=type(result).__name__,
                )
