# app/services/redis_client.py
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class FastRedisClient:
    """Pooled async Redis client. Every operation degrades to a miss when Redis is unavailable."""

    def __init__(self, url: str | None = None):
        self._url = url
        self.pool = None
        self.client = None
        self._initialized = False

    @property
    def url(self) -> str | None:
        return self._url if self._url is not None else settings.REDIS_URL

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return
        if not self.enabled:
            logger.info("REDIS_URL not set, dashboard result cache disabled")
            return

        try:
            redis_url = self.url
            logger.info("Attempting Redis connection", url_preview=redis_url[:30] + "...")

            self.pool = ConnectionPool.from_url(
                redis_url,
                max_connections=20,
                retry_on_timeout=True,
                retry_on_error=[redis.ConnectionError, redis.TimeoutError],
                socket_connect_timeout=10,
                socket_timeout=10,
                health_check_interval=30,
                decode_responses=True,
            )

            self.client = redis.Redis(connection_pool=self.pool)

            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True
            logger.info("Fast Redis client initialized successfully", max_connections=20)

        except Exception as e:
            logger.error("Failed to initialize fast Redis client", error=str(e))
            self._initialized = False
            raise RuntimeError("Redis initialization failed") from e

    async def close(self):
        """Clean shutdown"""
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
            self._initialized = False
            logger.info("Fast Redis client closed")
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))

    async def _ensure_initialized(self):
        if not self._initialized:
            logger.warning("Redis not initialized, attempting to initialize")
            await self.initialize()
            if not self._initialized:
                raise ConnectionError("Redis client not available")

    async def ping(self) -> bool:
        try:
            await self._ensure_initialized()
            result = await self.client.ping()
            return bool(result)
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def get(self, key: str) -> str | None:
        try:
            await self._ensure_initialized()
            result = await self.client.get(key)
            return result if result else None
        except Exception as e:
            logger.error("Redis GET failed", key=key[:30], error=str(e))
            return None

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        try:
            await self._ensure_initialized()

            if ttl_s:
                result = await self.client.setex(key, ttl_s, value)
            else:
                result = await self.client.set(key, value)
            return bool(result)
        except Exception as e:
            logger.error("Redis SET failed", key=key[:30], error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        try:
            await self._ensure_initialized()
            result = await self.client.delete(key)
            return result > 0
        except Exception as e:
            logger.error("Redis DELETE failed", key=key[:30], error=str(e))
            return False

    async def health_check(self) -> dict:
        """Ping plus a set/get/delete round trip."""
        if not self.enabled:
            return {"healthy": True, "enabled": False, "service": "redis"}

        ping_success = await self.ping()
        if not ping_success:
            return {"healthy": False, "enabled": True, "ping": False, "error": "Redis ping failed", "service": "redis"}

        test_key = "health_check_test"
        test_value = "test_value_123"
        set_success = await self.set_with_ttl(test_key, test_value, 10)
        get_success = set_success and await self.get(test_key) == test_value
        if set_success:
            await self.delete(test_key)

        return {
            "healthy": set_success and get_success,
            "enabled": True,
            "ping": True,
            "set_get_operations": set_success and get_success,
            "service": "redis",
        }


# Global instance
fast_redis = FastRedisClient()
