"""Usage accountant: billing-period ledger for conversation minutes and sessions.

Every ledger mutation goes through PersistenceGateway.increment_ledger_counters,
which applies additive SQL updates, so concurrent webhook deliveries for
different conversations of one user never lose increments.

Quota state is advisory here: sessions and minutes are recorded even when a
tier limit has been reached.
"""

from __future__ import annotations

import math
import uuid
from datetime import datetime

import structlog

from app.core.exceptions import SubscriptionNotFoundError
from app.db.gateway import PersistenceGateway
from app.schemas.records import LedgerEntryRecord, UsageDetailRecord
from app.schemas.usage import QuotaStatus
from app.services.subscriptions import SubscriptionDirectory
from app.services.usage.tiers import get_tier_limits

logger = structlog.get_logger(__name__)

LOW_MINUTES_WARNING_THRESHOLD = 30


def billable_minutes(started_at: datetime, ended_at: datetime) -> int:
    """Whole minutes billed for a conversation, rounded up.

    A 61-second conversation bills 2 minutes. A clock that runs backwards
    bills 0 rather than a negative amount.
    """
    elapsed = (ended_at - started_at).total_seconds()
    if elapsed <= 0:
        return 0
    return math.ceil(elapsed / 60)


class UsageAccountant:
    """Maintains per-user, per-billing-period usage ledgers."""

    def __init__(
        self, gateway: PersistenceGateway, subscriptions: SubscriptionDirectory
    ) -> None:
        self._gateway = gateway
        self._subscriptions = subscriptions

    async def _current_entry(self, user_id: uuid.UUID) -> LedgerEntryRecord | None:
        period = await self._subscriptions.get_current_period(user_id)
        if period is None:
            logger.warning("usage_subscription_missing", user_id=str(user_id))
            return None
        return await self._gateway.find_or_create_ledger_entry(user_id, period)

    async def record_session_start(
        self,
        user_id: uuid.UUID,
        conversation_id: uuid.UUID,
        started_at: datetime,
    ) -> LedgerEntryRecord | None:
        """Count one session and one conversation; open the usage detail."""
        entry = await self._current_entry(user_id)
        if entry is not None:
            await self._gateway.increment_ledger_counters(
                entry.id, sessions=1, conversations=1
            )

        await self._gateway.upsert_usage_detail(
            UsageDetailRecord(
                conversation_id=conversation_id,
                user_id=user_id,
                ledger_entry_id=entry.id if entry else None,
                started_at=started_at,
                completion_status="in_progress",
            )
        )

        logger.info(
            "usage_session_started",
            user_id=str(user_id),
            conversation_id=str(conversation_id),
            ledger_entry_id=str(entry.id) if entry else None,
        )
        return entry

    async def record_usage_minutes(
        self, user_id: uuid.UUID, minutes: int
    ) -> LedgerEntryRecord | None:
        """Add minutes to the user's current ledger entry. Never decrements."""
        if minutes < 0:
            raise ValueError(f"minutes must be non-negative, got {minutes}")

        entry = await self._current_entry(user_id)
        if entry is None or minutes == 0:
            return entry

        await self._gateway.increment_ledger_counters(entry.id, minutes=minutes)
        logger.info(
            "usage_minutes_recorded",
            user_id=str(user_id),
            ledger_entry_id=str(entry.id),
            minutes=minutes,
        )
        return entry

    async def record_session_end(
        self,
        user_id: uuid.UUID,
        conversation_id: uuid.UUID,
        *,
        started_at: datetime | None,
        ended_at: datetime,
        minutes: int,
        completion_status: str,
        reason: str | None,
    ) -> None:
        """Accrue the conversation's minutes and close its usage detail."""
        entry = await self.record_usage_minutes(user_id, minutes)

        await self._gateway.upsert_usage_detail(
            UsageDetailRecord(
                conversation_id=conversation_id,
                user_id=user_id,
                ledger_entry_id=entry.id if entry else None,
                started_at=started_at,
                ended_at=ended_at,
                duration_minutes=minutes,
                completion_status=completion_status,
                termination_reason=reason,
            )
        )

    async def quota_status(self, user_id: uuid.UUID) -> tuple[LedgerEntryRecord, QuotaStatus]:
        """Current-period usage and advisory quota state for a user.

        Reads without creating a ledger row; a period with no usage yet
        reports zero counters.

        Raises:
            SubscriptionNotFoundError: If the user has no active subscription.
        """
        period = await self._subscriptions.get_current_period(user_id)
        if period is None:
            raise SubscriptionNotFoundError()

        entry = await self._gateway.find_ledger_entry(user_id, period)
        if entry is None:
            entry = LedgerEntryRecord(
                id=uuid.uuid4(),
                user_id=user_id,
                period_start=period.period_start,
                period_end=period.period_end,
                subscription_tier=period.tier,
                price_id=period.price_id,
            )

        limits = get_tier_limits(entry.subscription_tier)
        remaining_sessions = limits.remaining_sessions(entry.sessions_used)
        remaining_minutes = limits.remaining_minutes(entry.minutes_used)

        warnings: list[str] = []
        if remaining_sessions == 1:
            warnings.append("This is the last video session for this billing period.")
        if remaining_minutes is not None and 0 < remaining_minutes <= LOW_MINUTES_WARNING_THRESHOLD:
            warnings.append(f"{remaining_minutes} minutes remaining in this billing period.")

        over_limit = remaining_sessions == 0 or remaining_minutes == 0
        if over_limit:
            logger.info(
                "usage_over_limit",
                user_id=str(user_id),
                tier=entry.subscription_tier,
                minutes_used=entry.minutes_used,
                sessions_used=entry.sessions_used,
            )

        return entry, QuotaStatus(
            tier=entry.subscription_tier,
            max_sessions=limits.max_sessions_per_period,
            max_minutes=limits.max_minutes_per_period,
            max_minutes_per_session=limits.max_minutes_per_session,
            remaining_sessions=remaining_sessions,
            remaining_minutes=remaining_minutes,
            over_limit=over_limit,
            warnings=warnings,
        )
