import pytest
from httpx import AsyncClient, ASGITransport
from dentai.main import app


@pytest.mark.asyncio
async def test_health_endpoint():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "success"
    assert data["data"]["service"] == "dentai-review-api"
    assert data["data"]["version"] == "0.1.0"
    assert data["message"] is None
