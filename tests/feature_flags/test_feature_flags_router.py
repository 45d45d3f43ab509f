"""
Tests for the feature flags API router.

Runs the router against the in-memory test database and checks how catalog
errors map to HTTP responses.
"""

import pytest
import pytest_asyncio
from fastapi import FastAPI, status
from httpx import ASGITransport, AsyncClient

from flagpole.db import get_async_session
from flagpole.feature_flags.router import feature_flags_router, register_exception_handlers

pytestmark = [pytest.mark.asyncio, pytest.mark.integration]


@pytest.fixture
def app(session_factory):
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(feature_flags_router, prefix="/api/v1")

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_session
    return app


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def gated_feature(client):
    response = await client.post(
        "/api/v1/groups/wibble/features",
        json={
            "name": "feat",
            "description": "cheese",
            "enabled": True,
            "user_groups": {"list": ["admin", "editor"], "regex": ".*admin.*"},
        },
    )
    assert response.status_code == status.HTTP_200_OK
    return response.json()


class TestGroups:
    """Test group endpoints."""

    async def test_create_and_list_groups(self, client):
        response = await client.post("/api/v1/groups", json={"name": "burgers"})
        assert response.status_code == status.HTTP_201_CREATED
        assert response.json() == {"name": "burgers"}

        await client.post("/api/v1/groups", json={"name": "burgers"})
        await client.post("/api/v1/groups", json={"name": "chips"})

        response = await client.get("/api/v1/groups")
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"groups": ["burgers", "chips"]}

    async def test_empty_group_name_rejected(self, client):
        response = await client.post("/api/v1/groups", json={"name": ""})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestFeatures:
    """Test feature endpoints."""

    async def test_upsert_returns_stored_state(self, gated_feature):
        assert gated_feature == {
            "group": "wibble",
            "name": "feat",
            "description": "cheese",
            "enabled": True,
            "user_groups": {"list": ["admin", "editor"], "regex": ".*admin.*"},
        }

    async def test_upsert_updates_existing(self, client, gated_feature):
        response = await client.post(
            "/api/v1/groups/wibble/features", json={"name": "feat", "active": False}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["enabled"] is False
        assert response.json()["user_groups"] is None

        listed = await client.get("/api/v1/groups/wibble/features")
        assert [feature["name"] for feature in listed.json()] == ["feat"]

    async def test_list_group_features_in_order(self, client):
        for name in ("feature1", "feature2"):
            await client.post("/api/v1/groups/group_name/features", json={"name": name})
        await client.post("/api/v1/groups/something_else/features", json={"name": "wibble"})

        response = await client.get("/api/v1/groups/group_name/features")

        assert response.status_code == status.HTTP_200_OK
        assert [feature["name"] for feature in response.json()] == ["feature1", "feature2"]

    @pytest.mark.parametrize(
        ("user_groups", "active"),
        [
            ([], False),
            (["superadmin"], True),
            (["editor"], True),
            (["viewer"], False),
            (["viewer", "admin"], True),
        ],
    )
    async def test_get_feature_resolves_for_user_groups(
        self, client, gated_feature, user_groups, active
    ):
        response = await client.get(
            "/api/v1/groups/wibble/features/feat", params={"user_group": user_groups}
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["active"] is active
        assert body["enabled"] is True

    async def test_update_feature(self, client, gated_feature):
        response = await client.patch(
            "/api/v1/groups/wibble/features/feat", json={"name": "renamed", "enabled": False}
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["name"] == "renamed"
        assert body["enabled"] is False
        assert body["description"] == "cheese"

    async def test_delete_feature(self, client, gated_feature):
        response = await client.delete("/api/v1/groups/wibble/features/feat")
        assert response.status_code == status.HTTP_204_NO_CONTENT

        response = await client.get("/api/v1/groups/wibble/features/feat")
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["kind"] == "feature_not_found"

        groups = await client.get("/api/v1/groups")
        assert groups.json() == {"groups": ["wibble"]}


class TestErrorMapping:
    """Test catalog errors rendered as HTTP responses."""

    async def test_missing_group(self, client):
        response = await client.get("/api/v1/groups/cheeses/features/stilton")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        body = response.json()
        assert body["kind"] == "group_not_found"
        assert body["error_code"] == "GROUP_NOT_FOUND"
        assert body["context"] == {"group": "cheeses"}

    async def test_missing_group_on_list(self, client):
        response = await client.get("/api/v1/groups/cheeses/features")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["kind"] == "group_not_found"

    async def test_missing_feature(self, client):
        await client.post("/api/v1/groups", json={"name": "cheeses"})

        response = await client.delete("/api/v1/groups/cheeses/features/stilton")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["kind"] == "feature_not_found"

    async def test_rename_conflict(self, client):
        await client.post("/api/v1/groups/g/features", json={"name": "one"})
        await client.post("/api/v1/groups/g/features", json={"name": "two"})

        response = await client.patch("/api/v1/groups/g/features/one", json={"name": "two"})

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["kind"] == "feature_conflict"

    async def test_invalid_regex(self, client):
        response = await client.post(
            "/api/v1/groups/g/features",
            json={"name": "feat", "user_groups": {"list": [], "regex": "(unclosed"}},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

        groups = await client.get("/api/v1/groups")
        assert groups.json() == {"groups": []}
