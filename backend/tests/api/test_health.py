"""Tests for the health check endpoint."""
from unittest.mock import AsyncMock, MagicMock, patch

from httpx import AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from core.redis import RedisClient, set_redis_client


async def test_health_endpoint_returns_200(client: AsyncClient) -> None:
    """Test that the health endpoint returns 200 OK."""
    response = await client.get("/health")
    assert response.status_code == 200


async def test_health_endpoint_response_structure(client: AsyncClient) -> None:
    """Test that the health endpoint returns the expected structure."""
    response = await client.get("/health")
    data = response.json()
    assert set(data) == {"status", "database", "redis"}


async def test_health_endpoint_without_redis_is_healthy(client: AsyncClient) -> None:
    """Redis only backs rate limiting, so its absence keeps the app healthy."""
    response = await client.get("/health")
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "healthy"
    assert data["redis"] == "unavailable"


async def test_health_endpoint_redis_disabled(client: AsyncClient) -> None:
    """A disabled Redis client is reported as unavailable."""
    disabled_client = RedisClient("redis://localhost:6379", enabled=False)
    await disabled_client.connect()
    set_redis_client(disabled_client)

    try:
        response = await client.get("/health")
        assert response.json()["redis"] == "unavailable"
    finally:
        set_redis_client(None)
        await disabled_client.close()


async def test_health_endpoint_redis_connected(client: AsyncClient) -> None:
    """Test that health endpoint reports Redis as connected."""
    connected = MagicMock(spec=RedisClient)
    connected.ping = AsyncMock(return_value=True)
    set_redis_client(connected)

    try:
        response = await client.get("/health")
        assert response.json()["redis"] == "connected"
    finally:
        set_redis_client(None)


async def test_health_endpoint_database_down_is_degraded(client: AsyncClient) -> None:
    """Database errors are reported rather than raised."""
    with patch.object(
        AsyncSession,
        "execute",
        new_callable=AsyncMock,
        side_effect=OperationalError("SELECT 1", {}, Exception("connection refused")),
    ):
        response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["database"] == "unhealthy"
