"""Liveness endpoint."""

from fastapi import APIRouter, Depends

from app.api.deps import get_redis
from app.core.config import settings
from app.db.redis import RedisClient

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(redis: RedisClient = Depends(get_redis)) -> dict[str, str]:
    """Report process liveness and Redis reachability.

    An unreachable Redis is reported but does not fail the check.
    """
    redis_ok = await redis.ping()
    return {
        "status": "ok",
        "env": settings.app_env,
        "redis": "ok" if redis_ok else "unavailable",
    }
