# app/services/redis_client.py
"""
Shared async Redis connection.

Only opened when the rate limiter runs on the "redis" backend, so several
API workers share one fixed window per account. The limiter talks to
`fast_redis.client` directly; readiness uses `ping()`.
"""

import redis.asyncio as redis

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Limiter calls are single EVALs; fail fast and let the limiter decide open/closed
SOCKET_TIMEOUT_SECONDS = 2.0


class FastRedisClient:
    def __init__(self, url: str | None = None, max_connections: int = 20):
        self.url = url
        self.max_connections = max_connections
        self.client: redis.Redis | None = None

    @property
    def initialized(self) -> bool:
        return self.client is not None

    async def initialize(self) -> None:
        if self.client is not None:
            return

        url = self.url or settings.REDIS_URL
        if not url:
            raise RuntimeError("REDIS_URL is required for the redis rate limit backend")

        client = redis.Redis.from_url(
            url,
            max_connections=self.max_connections,
            socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
            socket_timeout=SOCKET_TIMEOUT_SECONDS,
            health_check_interval=30,
            decode_responses=True,
        )
        try:
            await client.ping()
        except redis.RedisError as e:
            await client.aclose()
            logger.error("Redis unreachable at startup", error=str(e))
            raise RuntimeError("Redis initialization failed") from e

        self.client = client
        logger.info("Redis connected", max_connections=self.max_connections)

    async def close(self) -> None:
        if self.client is None:
            return
        client, self.client = self.client, None
        await client.aclose()
        logger.info("Redis connection closed")

    async def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except redis.RedisError as e:
            logger.error("Redis ping failed", error=str(e))
            return False


fast_redis = FastRedisClient()
