"""Tests for the health endpoints."""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, patch

from httpx import ASGITransport, AsyncClient

from app.main import app


@pytest_asyncio.fixture
async def client():
    """HTTP client bound to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


class TestHealth:
    """Test health probes."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        """Test the basic check needs no dependencies."""
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_ready_without_redis(self, client):
        """Test Redis being down does not fail readiness."""
        with patch("app.api.routes.health.check_db_health", AsyncMock(return_value=True)), \
                patch("app.api.routes.health.check_redis_health", AsyncMock(return_value=False)):
            response = await client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["checks"] == {"database": "ok", "redis": "failed"}

    @pytest.mark.asyncio
    async def test_not_ready_without_database(self, client):
        """Test a database outage gives 503."""
        with patch("app.api.routes.health.check_db_health", AsyncMock(return_value=False)), \
                patch("app.api.routes.health.check_redis_health", AsyncMock(return_value=True)):
            response = await client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    @pytest.mark.asyncio
    async def test_probe_exception(self, client):
        """Test a raising probe is reported as an error."""
        with patch("app.api.routes.health.check_db_health", AsyncMock(side_effect=RuntimeError("boom"))), \
                patch("app.api.routes.health.check_redis_health", AsyncMock(return_value=True)):
            response = await client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"]["database"] == "error"
