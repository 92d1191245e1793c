"""Redis async client used for real-time conversation update fan-out.

Provides helper methods wrapping raw Redis commands so callers never need
to handle redis.exceptions directly. All connection/command errors are
caught and re-raised as RedisConnectionError.
"""

import json
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.asyncio import from_url as redis_from_url
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.exceptions import RedisConnectionError

logger = structlog.get_logger(__name__)

_client: Redis = redis_from_url(
    settings.redis_url,
    decode_responses=True,
    encoding="utf-8",
)


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

async def get_redis() -> "RedisClient":
    """FastAPI dependency returning the singleton RedisClient wrapper."""
    return RedisClient(_client)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

async def close_redis() -> None:
    """Gracefully close the Redis connection pool."""
    logger.info("redis_shutdown")
    await _client.aclose()


# ---------------------------------------------------------------------------
# Helper wrapper
# ---------------------------------------------------------------------------

class RedisClient:
    """Thin wrapper over redis.asyncio.Redis with typed helpers."""

    def __init__(self, client: Redis) -> None:
        self._r = client

    @property
    def raw(self) -> Redis:
        """Escape hatch for advanced operations not covered by helpers."""
        return self._r

    async def publish_json(self, channel: str, message: dict[str, Any]) -> int:
        """PUBLISH a JSON-serialized message. Returns the number of receivers."""
        payload = json.dumps(message, default=str)
        try:
            return await self._r.publish(channel, payload)
        except RedisError as e:
            logger.error("redis_publish_failed", channel=channel, error=str(e))
            raise RedisConnectionError(f"Redis PUBLISH failed: {e}") from e

    async def ping(self) -> bool:
        """PING the server. Returns False instead of raising."""
        try:
            return bool(await self._r.ping())
        except RedisError as e:
            logger.warning("redis_ping_failed", error=str(e))
            return False
