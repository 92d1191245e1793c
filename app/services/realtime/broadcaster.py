"""Real-time conversation updates published to per-user Redis channels.

Dashboards subscribe to ``user-{user_id}``. Publishing is best-effort: a
Redis outage is logged and never fails webhook processing.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import structlog

from app.core.exceptions import RedisConnectionError
from app.db.redis import RedisClient

logger = structlog.get_logger(__name__)


def user_channel(user_id: uuid.UUID) -> str:
    return f"user-{user_id}"


class ConversationBroadcaster:
    """Publishes ``conversation_update`` messages for a user's dashboard."""

    def __init__(self, redis: RedisClient | None, enabled: bool = True) -> None:
        self._redis = redis
        self._enabled = enabled and redis is not None

    async def publish(
        self,
        user_id: uuid.UUID,
        update_type: str,
        conversation_id: uuid.UUID,
        **data: Any,
    ) -> None:
        if not self._enabled:
            return

        message = {
            "event": "conversation_update",
            "type": update_type,
            "conversation_id": str(conversation_id),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **data,
        }
        try:
            await self._redis.publish_json(user_channel(user_id), message)
        except RedisConnectionError as e:
            logger.warning(
                "broadcast_failed",
                user_id=str(user_id),
                update_type=update_type,
                error=str(e),
            )
