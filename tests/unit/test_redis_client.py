"""Unit tests for Redis client service."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from services.redis_client import RedisClient


class TestRedisClient:
    """Test cases for RedisClient class."""

    @pytest.fixture
    def redis_client(self, mock_config) -> RedisClient:
        """Create a Redis client instance for testing."""
        return RedisClient(mock_config)

    @pytest.fixture
    def connected(self, redis_client) -> AsyncMock:
        """Attach a mock connection to the client."""
        mock_client = AsyncMock()
        mock_client.ping = AsyncMock()
        redis_client._client = mock_client
        redis_client._connected = True
        return mock_client

    @pytest.mark.asyncio
    async def test_connect_success(self, redis_client, mock_config) -> None:
        """Test successful Redis connection."""
        with patch("services.redis_client.redis") as mock_redis:
            mock_client = AsyncMock()
            mock_redis.Redis.return_value = mock_client

            await redis_client.connect()

            assert redis_client._connected is True
            mock_redis.ConnectionPool.assert_called_once_with(
                host=mock_config.redis_host,
                port=mock_config.redis_port,
                password=mock_config.redis_password,
                db=mock_config.redis_db,
                socket_timeout=mock_config.redis_socket_timeout,
                retry_on_timeout=mock_config.redis_retry_on_timeout,
                max_connections=mock_config.redis_max_connections,
                decode_responses=True,
            )
            mock_client.ping.assert_called_once()

    @pytest.mark.asyncio
    async def test_connect_failure(self, redis_client) -> None:
        """Test Redis connection failure."""
        with patch("services.redis_client.redis") as mock_redis:
            mock_client = AsyncMock()
            mock_client.ping = AsyncMock(side_effect=ConnectionError("Connection failed"))
            mock_redis.Redis.return_value = mock_client

            with pytest.raises(ConnectionError):
                await redis_client.connect()

            assert redis_client._connected is False

    @pytest.mark.asyncio
    async def test_disconnect(self, redis_client, connected) -> None:
        """Test Redis disconnection."""
        await redis_client.disconnect()

        connected.aclose.assert_called_once()
        assert redis_client._connected is False

    @pytest.mark.asyncio
    async def test_is_connected_ping_failure(self, redis_client, connected) -> None:
        """A failed ping marks the client disconnected."""
        connected.ping.side_effect = ConnectionError("gone")

        assert await redis_client.is_connected() is False
        assert redis_client._connected is False

    @pytest.mark.asyncio
    async def test_hget_int(self, redis_client, connected) -> None:
        connected.hget = AsyncMock(side_effect=["42", None])

        assert await redis_client.hget_int("user:acct-1", "count") == 42
        assert await redis_client.hget_int("user:acct-1", "count") is None

    @pytest.mark.asyncio
    async def test_hset_if_absent(self, redis_client, connected) -> None:
        connected.hsetnx = AsyncMock(side_effect=[1, 0])

        assert await redis_client.hset_if_absent("user:acct-1", "count", 10) is True
        assert await redis_client.hset_if_absent("user:acct-1", "count", 10) is False

    @pytest.mark.asyncio
    async def test_read_fields_uses_transaction(self, redis_client, connected) -> None:
        """Hash fields and TTLs are read in one pipeline, in argument order."""
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=["5", "1", 3600, -2])
        pipeline_cm = MagicMock()
        pipeline_cm.__aenter__ = AsyncMock(return_value=pipe)
        pipeline_cm.__aexit__ = AsyncMock(return_value=False)
        connected.pipeline = MagicMock(return_value=pipeline_cm)

        result = await redis_client.read_fields(
            [("user:acct-1", "count"), ("user:acct-1", "usertype")],
            ["days:acct-1", "daysplus:acct-1"],
        )

        assert result == ["5", "1", 3600, -2]
        connected.pipeline.assert_called_once_with(transaction=True)
        assert pipe.hget.call_count == 2
        assert pipe.ttl.call_count == 2

    @pytest.mark.asyncio
    async def test_run_script_registers_once(self, redis_client, connected) -> None:
        """Scripts are registered on first use and reused afterwards."""
        script = AsyncMock(return_value=7)
        connected.register_script = MagicMock(return_value=script)

        first = await redis_client.run_script("return 1", keys=["k"], args=[1])
        second = await redis_client.run_script("return 1", keys=["k"], args=[2])

        assert (first, second) == (7, 7)
        connected.register_script.assert_called_once_with("return 1")
        script.assert_called_with(keys=["k"], args=[2])

    @pytest.mark.asyncio
    async def test_health_check_healthy(self, redis_client, connected) -> None:
        health = await redis_client.health_check()

        assert health["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_health_check_disconnected(self, redis_client) -> None:
        health = await redis_client.health_check()

        assert health == {"status": "unhealthy", "error": "Not connected to Redis"}
