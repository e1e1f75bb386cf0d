"""Tests for health and root API endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient

from app.main import app


@pytest.fixture
async def client():
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac


class TestHealthEndpoint:
    """Test health check endpoint."""

    @pytest.mark.asyncio
    async def test_health_returns_200(self, client: AsyncClient) -> None:
        """Test health endpoint returns 200 OK."""
        response = await client.get("/health")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_health_returns_healthy_status(self, client: AsyncClient) -> None:
        """Test health endpoint returns healthy status."""
        response = await client.get("/health")
        data = response.json()
        assert data["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_health_returns_service_name(self, client: AsyncClient) -> None:
        """Test health endpoint returns service name."""
        response = await client.get("/health")
        data = response.json()
        assert data["service"] == "billing-decision-engine"

    @pytest.mark.asyncio
    async def test_health_returns_timestamp(self, client: AsyncClient) -> None:
        """Test health endpoint returns timestamp."""
        response = await client.get("/health")
        data = response.json()
        # Should be ISO format
        assert "T" in data["timestamp"]


class TestRootEndpoint:
    """Test root endpoint."""

    @pytest.mark.asyncio
    async def test_root_returns_service_info(self, client: AsyncClient) -> None:
        """Test root endpoint returns service info."""
        response = await client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert "Billing Decision Engine" in data["service"]
        assert data["docs"] == "/docs"
        assert data["health"] == "/health"


class TestAPIMetadata:
    """Test API metadata and configuration."""

    def test_app_title(self) -> None:
        """Test app has correct title."""
        assert app.title == "Billing Decision Engine"

    def test_app_version(self) -> None:
        """Test app has correct version."""
        assert app.version == "0.1.0"

    def test_billing_routes_registered(self) -> None:
        paths = {route.path for route in app.routes}
        assert "/billing/encounters/process" in paths
        assert "/billing/fees/{cpt_code}" in paths
