"""Subscription lookup: resolves a user's current billing period.

Subscriptions are owned by the payments integration. The engine treats the
lookup as read-only and authoritative.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.subscription import Subscription
from app.schemas.records import SubscriptionPeriod

ACTIVE_SUBSCRIPTION_STATUSES = ("active", "trialing")


class SubscriptionDirectory(ABC):
    """Read-only view of the billing collaborator."""

    @abstractmethod
    async def get_current_period(self, user_id: uuid.UUID) -> SubscriptionPeriod | None:
        """Return the user's active billing window and plan, or None."""
        ...


class SqlSubscriptionDirectory(SubscriptionDirectory):
    """Reads the newest active or trialing subscription row for a user."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get_current_period(self, user_id: uuid.UUID) -> SubscriptionPeriod | None:
        result = await self._db.execute(
            select(Subscription)
            .where(
                Subscription.user_id == user_id,
                Subscription.status.in_(ACTIVE_SUBSCRIPTION_STATUSES),
            )
            .order_by(Subscription.current_period_start.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return SubscriptionPeriod(
            period_start=row.current_period_start,
            period_end=row.current_period_end,
            tier=row.tier,
            price_id=row.price_id,
        )
