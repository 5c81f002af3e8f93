"""Redis client service for the LLM relay.

This module provides Redis connectivity and the handful of primitives the
entitlement store is built on.
"""

from typing import Any, Awaitable, Dict, List, Optional, Sequence, Union, cast

import redis.asyncio as redis

from config import ApplicationConfig
from utils import create_contextual_logger, log_exception


class RedisClient:
    """Async Redis client with connection management and script execution."""

    def __init__(self, config: ApplicationConfig) -> None:
        """Initialize Redis client."""
        self.config = config
        self.logger = create_contextual_logger(__name__, service="redis_client")
        self._pool: Optional[redis.ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._connected = False
        self._scripts: Dict[str, Any] = {}

    async def connect(self) -> None:
        """Establish Redis connection."""
        try:
            self._pool = redis.ConnectionPool(
                host=self.config.redis_host,
                port=self.config.redis_port,
                password=self.config.redis_password,
                db=self.config.redis_db,
                socket_timeout=self.config.redis_socket_timeout,
                retry_on_timeout=self.config.redis_retry_on_timeout,
                max_connections=self.config.redis_max_connections,
                decode_responses=True,
            )
            self._client = redis.Redis(connection_pool=self._pool)

            await self._client.ping()
            self._connected = True

            self.logger.info(
                "Redis connection established successfully",
                serviceName="RedisClient",
                operationName="connect",
                host=self.config.redis_host,
                port=self.config.redis_port,
                db=self.config.redis_db,
                success=True,
            )
        except Exception as e:
            log_exception(
                self.logger,
                e,
                "Redis connection failed: RedisClient.connect",
                serviceName="RedisClient",
                operationName="connect",
                host=self.config.redis_host,
                port=self.config.redis_port,
                db=self.config.redis_db,
            )
            raise

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._connected = False
            self.logger.info("Disconnected from Redis")

    async def is_connected(self) -> bool:
        """Check Redis connection status."""
        if not self._client or not self._connected:
            return False

        try:
            await self._client.ping()
            return True
        except Exception:
            self._connected = False
            return False

    async def _ensure_connected(self) -> redis.Redis:
        """Ensure Redis connection is established and return the client."""
        if not await self.is_connected():
            await self.connect()
        return cast(redis.Redis, self._client)

    async def hget_int(self, name: str, key: str) -> Optional[int]:
        """Read an integer hash field, None when absent."""
        client = await self._ensure_connected()
        value = await cast(Awaitable[Optional[str]], client.hget(name, key))
        if value is None:
            return None
        return int(value)

    async def hset_if_absent(self, name: str, key: str, value: Union[int, str]) -> bool:
        """HSETNX; True when the field was created."""
        client = await self._ensure_connected()
        created = await cast(Awaitable[int], client.hsetnx(name, key, value))
        return bool(created)

    async def hset(self, name: str, key: str, value: Union[int, str]) -> None:
        client = await self._ensure_connected()
        await cast(Awaitable[int], client.hset(name, key, value))

    async def hincrby(self, name: str, key: str, amount: int) -> int:
        client = await self._ensure_connected()
        return await cast(Awaitable[int], client.hincrby(name, key, amount))

    async def read_fields(self, hashes: Sequence[tuple], ttl_keys: Sequence[str]) -> List[Any]:
        """Read hash fields and key TTLs in one MULTI/EXEC round trip.

        Args:
            hashes: ``(hash_name, field)`` pairs read with HGET.
            ttl_keys: Keys whose remaining TTL in seconds is read.

        Returns:
            HGET results followed by TTL results, in argument order.
        """
        client = await self._ensure_connected()
        async with client.pipeline(transaction=True) as pipe:
            for name, field in hashes:
                pipe.hget(name, field)
            for key in ttl_keys:
                pipe.ttl(key)
            return await pipe.execute()

    async def run_script(self, source: str, keys: Sequence[str], args: Sequence[Any]) -> Any:
        """Run a Lua script atomically, registering it on first use."""
        client = await self._ensure_connected()
        script = self._scripts.get(source)
        if script is None:
            script = client.register_script(source)
            self._scripts[source] = script
        try:
            return await script(keys=list(keys), args=list(args))
        except Exception as e:
            log_exception(
                self.logger,
                e,
                "Redis script failed",
                serviceName="RedisClient",
                operationName="run_script",
                keys=list(keys),
            )
            raise

    async def health_check(self) -> Dict[str, Any]:
        """Perform Redis health check."""
        try:
            if not await self.is_connected():
                return {
                    "status": "unhealthy",
                    "error": "Not connected to Redis"
                }
            return {
                "status": "healthy",
                "host": self.config.redis_host,
                "port": self.config.redis_port,
                "db": self.config.redis_db,
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e)
            }
