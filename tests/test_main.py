"""Tests for the FastAPI application wiring."""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fastapi import status
from httpx import ASGITransport, AsyncClient

import flagpole.main
from flagpole.feature_flags.exceptions import FeatureFlagError
from flagpole.main import app, create_application


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class TestApplication:
    """Test application construction."""

    def test_feature_routes_mounted_under_api_prefix(self):
        paths = {route.path for route in create_application().routes}

        assert "/api/v1/groups" in paths
        assert "/api/v1/groups/{group_name}/features" in paths
        assert "/api/v1/groups/{group_name}/features/{feature_name}" in paths
        assert "/health" in paths

    def test_catalog_errors_have_handler(self):
        assert FeatureFlagError in create_application().exception_handlers


@pytest.mark.asyncio
class TestHealth:
    """Test the health endpoint."""

    async def test_healthy(self, client, monkeypatch):
        monkeypatch.setattr(flagpole.main, "check_database_health", AsyncMock(return_value=True))

        response = await client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "healthy"

    async def test_unhealthy(self, client, monkeypatch):
        monkeypatch.setattr(flagpole.main, "check_database_health", AsyncMock(return_value=False))

        response = await client.get("/health")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["status"] == "unhealthy"
