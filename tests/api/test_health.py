"""Tests for the health check endpoint."""
from httpx import AsyncClient


async def test_health_endpoint_returns_healthy_status(client: AsyncClient) -> None:
    """Both databases are reachable."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {
        "status": "healthy",
        "hits_database": "healthy",
        "roles_database": "healthy",
    }


async def test_health_endpoint_does_not_require_authentication(client: AsyncClient, as_user) -> None:
    as_user(None)
    response = await client.get("/health")
    assert response.status_code == 200


async def test_security_headers_present(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "max-age=31536000" in response.headers["Strict-Transport-Security"]
