"""
Async Redis client wrapper with connection pooling, retry logic, and error handling.
"""
import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, List, Optional

import redis.asyncio as redis
from redis.exceptions import (
    ConnectionError,
    TimeoutError,
    RedisError,
    AuthenticationError
)

from storefront.config import Config
from storefront.exceptions import RemoteStoreError

logger = logging.getLogger(__name__)


class RedisClient:
    """Redis client with connection pooling and retry logic"""

    def __init__(self, url: Optional[str] = None):
        self.url = url or Config.redis_url()
        self.pool: Optional[redis.ConnectionPool] = None
        self.client: Optional[redis.Redis] = None
        self._connect()

    def _connect(self):
        """Initialize Redis connection pool (connections are opened lazily)"""
        options = dict(
            max_connections=Config.REDIS_MAX_CONNECTIONS,
            socket_connect_timeout=Config.REDIS_SOCKET_CONNECT_TIMEOUT,
            socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
            retry_on_timeout=Config.REDIS_RETRY_ON_TIMEOUT,
            decode_responses=True,
        )
        if self.url.startswith("rediss://"):
            # ElastiCache with encryption-in-transit uses self-signed certs
            options["ssl_cert_reqs"] = None

        try:
            self.pool = redis.ConnectionPool.from_url(self.url, **options)
            self.client = redis.Redis(connection_pool=self.pool)
        except (ConnectionError, AuthenticationError, ValueError) as e:
            raise RemoteStoreError(f"Failed to configure Redis connection: {e}")

    async def _retry_with_backoff(
        self,
        func: Callable[[], Awaitable[Any]],
        max_retries: int = 3,
        initial_backoff: float = 0.1,
        max_backoff: float = 2.0
    ) -> Any:
        """
        Execute coroutine factory with exponential backoff retry.

        Args:
            func: Zero-argument callable returning an awaitable
            max_retries: Maximum number of attempts
            initial_backoff: Initial backoff delay in seconds
            max_backoff: Maximum backoff delay in seconds

        Returns:
            Result of the awaited call

        Raises:
            RemoteStoreError: If all retries fail or Redis rejects the command
        """
        backoff = initial_backoff

        for attempt in range(max_retries):
            try:
                return await func()
            except (ConnectionError, TimeoutError) as e:
                if attempt == max_retries - 1:
                    raise RemoteStoreError(f"Redis operation failed after {max_retries} retries: {e}")

                # Exponential backoff with jitter
                jitter = random.uniform(0, backoff * 0.1)
                logger.warning(f"Redis transient error (attempt {attempt + 1}/{max_retries}): {e}")
                await asyncio.sleep(backoff + jitter)
                backoff = min(backoff * 2, max_backoff)

            except RedisError as e:
                # Non-retryable errors
                raise RemoteStoreError(f"Redis error: {e}")

    async def get(self, key: str) -> Optional[str]:
        """Get value from Redis"""
        return await self._retry_with_backoff(lambda: self.client.get(key))

    async def mget(self, keys: List[str]) -> List[Optional[str]]:
        """Get several values in one round trip"""
        if not keys:
            return []
        return await self._retry_with_backoff(lambda: self.client.mget(keys))

    async def set(self, key: str, value: Any, ex: Optional[int] = None) -> bool:
        """Set value in Redis with optional TTL"""
        return await self._retry_with_backoff(lambda: self.client.set(key, value, ex=ex))

    async def delete(self, *keys: str) -> int:
        """Delete one or more keys"""
        return await self._retry_with_backoff(lambda: self.client.delete(*keys))

    async def hgetall(self, key: str) -> dict:
        """Get all fields from hash"""
        return await self._retry_with_backoff(lambda: self.client.hgetall(key))

    async def hdel(self, key: str, *fields: str) -> int:
        """Delete fields from hash"""
        return await self._retry_with_backoff(lambda: self.client.hdel(key, *fields))

    async def smembers(self, key: str) -> set:
        """Get all members of a set"""
        return await self._retry_with_backoff(lambda: self.client.smembers(key))

    async def sadd(self, key: str, *members: str) -> int:
        """Add members to a set"""
        return await self._retry_with_backoff(lambda: self.client.sadd(key, *members))

    async def lrange(self, key: str, start: int, end: int) -> list:
        """Get a range of list elements"""
        return await self._retry_with_backoff(lambda: self.client.lrange(key, start, end))

    async def eval(self, script: str, num_keys: int, *keys_and_args) -> Any:
        """Execute Lua script"""
        return await self._retry_with_backoff(
            lambda: self.client.eval(script, num_keys, *keys_and_args)
        )

    async def ping(self) -> bool:
        """Test Redis connection"""
        try:
            return await self.client.ping()
        except Exception:
            return False

    async def close(self):
        """Close connection pool"""
        if self.pool:
            await self.pool.disconnect()


# Global Redis client instance
_redis_client: Optional[RedisClient] = None

def get_redis_client() -> RedisClient:
    """Get or create Redis client instance (singleton)"""
    global _redis_client
    if _redis_client is None:
        _redis_client = RedisClient()
    return _redis_client
