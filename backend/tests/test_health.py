"""Tests for health check endpoint."""

import pytest
from httpx import AsyncClient

from survey_chat.config import Settings, get_settings
from survey_chat.main import app


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    """Health endpoint returns 200 with service status."""
    response = await client.get("/api/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert data["services"]["transcript_store"]["status"] == "healthy"
    assert data["services"]["assistant"]["status"] == "healthy"


@pytest.mark.asyncio
async def test_health_degraded_without_assistant_credentials(client: AsyncClient) -> None:
    app.dependency_overrides[get_settings] = lambda: Settings(
        openai_api_key="", openai_assistant_id=""
    )
    response = await client.get("/api/health")

    data = response.json()
    assert data["status"] == "degraded"
    assert data["services"]["assistant"]["status"] == "unhealthy"
