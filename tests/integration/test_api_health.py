"""Integration tests for health check endpoints."""

import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from tenantdb.secrets.exceptions import SecretsAccessError


@pytest.mark.asyncio
class TestHealthEndpoint:
    """Tests for GET /health endpoint."""

    async def test_health_returns_healthy(self, test_client: AsyncClient) -> None:
        """Test basic health check returns 200 and healthy status."""
        response = await test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "timestamp" in data

    async def test_health_sets_request_id(self, test_client: AsyncClient) -> None:
        """Test that every response carries a request ID."""
        first = await test_client.get("/health")
        second = await test_client.get("/health")

        assert first.headers["X-Request-ID"]
        assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]


@pytest.mark.asyncio
class TestHealthReadyEndpoint:
    """Tests for GET /health/ready endpoint."""

    async def test_ready_checks_dependencies(self, test_client: AsyncClient) -> None:
        """Test readiness with a reachable tenant store and secret store."""
        response = await test_client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"]["status"] == "healthy"
        assert data["secrets"]["status"] == "healthy"
        assert data["database"]["latency_ms"] >= 0

    async def test_ready_unhealthy_secret_store(
        self, test_app: FastAPI, test_client: AsyncClient
    ) -> None:
        """Test that a failing secret store makes the service unhealthy."""

        class BrokenStore:
            async def health_check(self) -> bool:
                raise SecretsAccessError("permission denied")

        test_app.state.secret_store = BrokenStore()

        response = await test_client.get("/health/ready")

        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["database"]["status"] == "healthy"
        assert "permission denied" in data["secrets"]["message"]
