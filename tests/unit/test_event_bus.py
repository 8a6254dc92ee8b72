"""Unit tests for tenant integration events and the in-memory bus."""

import pytest
from uuid_utils.compat import uuid7

from tenantdb.db.models.tenant import TenantCreated
from tenantdb.models.database import DatabaseProvider, DatabaseStrategy
from tenantdb.provisioning.events import EventPublisher, InMemoryEventBus, TenantCreatedEvent


def make_event() -> TenantCreatedEvent:
    return TenantCreatedEvent.from_domain(
        TenantCreated(
            tenant_id=uuid7(),
            identifier="acme",
            name="Acme",
            strategy=DatabaseStrategy.SHARED,
            provider=DatabaseProvider.POSTGRESQL,
        )
    )


class TestTenantCreatedEvent:
    """Tests for TenantCreatedEvent."""

    def test_from_domain(self) -> None:
        """Test conversion from the aggregate's domain event."""
        event = make_event()

        assert event.identifier == "acme"
        assert event.database_strategy is DatabaseStrategy.SHARED
        assert event.database_provider is DatabaseProvider.POSTGRESQL
        assert event.event_id != make_event().event_id

    def test_wire_format(self) -> None:
        """Test camelCase serialization."""
        payload = make_event().model_dump(mode="json", by_alias=True)

        assert payload["databaseStrategy"] == "shared"
        assert payload["databaseProvider"] == "postgresql"
        assert {"eventId", "occurredAt", "tenantId"} <= payload.keys()

    def test_bus_is_event_publisher(self) -> None:
        """Test the publisher protocol."""
        assert isinstance(InMemoryEventBus(), EventPublisher)


@pytest.mark.asyncio
class TestInMemoryEventBus:
    """Tests for InMemoryEventBus."""

    async def test_publish_records_and_delivers(self) -> None:
        """Test that every subscriber receives the event."""
        bus = InMemoryEventBus()
        received: list[TenantCreatedEvent] = []

        async def subscriber(event: TenantCreatedEvent) -> None:
            received.append(event)

        bus.subscribe(subscriber)
        event = make_event()
        await bus.publish(event)

        assert bus.published == [event]
        assert received == [event]

    async def test_failing_subscriber_is_isolated(self) -> None:
        """Test that one failing subscriber does not block the others."""
        bus = InMemoryEventBus()
        received: list[TenantCreatedEvent] = []

        async def broken(event: TenantCreatedEvent) -> None:
            raise RuntimeError("handler crashed")

        async def healthy(event: TenantCreatedEvent) -> None:
            received.append(event)

        bus.subscribe(broken)
        bus.subscribe(healthy)
        await bus.publish(make_event())

        assert len(received) == 1

    async def test_no_subscribers(self) -> None:
        """Test publishing without subscribers."""
        bus = InMemoryEventBus()

        await bus.publish(make_event())

        assert len(bus.published) == 1