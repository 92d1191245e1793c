"""Conversation lifecycle: pending → in_progress → completed | error.

Webhook delivery is at-least-once, so every transition is a compare-and-set
on the prior status. A transition whose precondition no longer holds
(duplicate start, shutdown before start, shutdown after shutdown) is an
InvalidTransitionError that the state machine logs and swallows; the caller
sees an idempotent success and no usage is accrued twice.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum

import structlog

from app.core.exceptions import InvalidTransitionError
from app.db.gateway import PersistenceGateway
from app.schemas.records import ConversationRecord
from app.services.realtime.broadcaster import ConversationBroadcaster
from app.services.usage.accountant import UsageAccountant, billable_minutes

logger = structlog.get_logger(__name__)


class ConversationStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ConversationStatus.COMPLETED, ConversationStatus.ERROR)


class CompletionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    MAX_DURATION_REACHED = "max_duration_reached"
    ERROR = "error"


MAX_DURATION_REASON = "max_call_duration"
ERROR_REASONS = frozenset({"error", "replica_error", "internal_error", "system_error"})


def classify_shutdown(reason: str | None) -> tuple[ConversationStatus, CompletionStatus]:
    """Map a shutdown ``properties.reason`` to (conversation status, completion status)."""
    if reason is None:
        return ConversationStatus.COMPLETED, CompletionStatus.COMPLETED

    normalized = reason.strip().lower()
    if normalized == MAX_DURATION_REASON:
        return ConversationStatus.COMPLETED, CompletionStatus.MAX_DURATION_REACHED
    if normalized in ERROR_REASONS or normalized.endswith("_error"):
        return ConversationStatus.ERROR, CompletionStatus.ERROR
    return ConversationStatus.COMPLETED, CompletionStatus.COMPLETED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationStateMachine:
    """Applies start/end transitions and emits usage side effects."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        accountant: UsageAccountant,
        broadcaster: ConversationBroadcaster,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._gateway = gateway
        self._accountant = accountant
        self._broadcaster = broadcaster
        self._clock = clock

    async def start(self, conversation: ConversationRecord) -> bool:
        """Handle ``system.replica_joined``. Returns True if the transition applied."""
        started_at = self._clock()
        try:
            applied = await self._gateway.update_conversation_status(
                conversation.id,
                expected_status=ConversationStatus.PENDING.value,
                new_status=ConversationStatus.IN_PROGRESS.value,
                started_at=started_at,
            )
            if not applied:
                raise InvalidTransitionError(
                    f"Cannot start conversation in status '{conversation.status}'"
                )
        except InvalidTransitionError as e:
            logger.info(
                "conversation_start_ignored",
                conversation_id=str(conversation.id),
                status=conversation.status,
                reason=e.message,
            )
            return False

        await self._accountant.record_session_start(
            conversation.user_id, conversation.id, started_at
        )
        await self._broadcaster.publish(
            conversation.user_id,
            "conversation_started",
            conversation.id,
            status=ConversationStatus.IN_PROGRESS.value,
        )
        logger.info(
            "conversation_started",
            conversation_id=str(conversation.id),
            user_id=str(conversation.user_id),
        )
        return True

    async def end(self, conversation: ConversationRecord, reason: str | None) -> bool:
        """Handle ``system.shutdown``. Returns True if the transition applied."""
        ended_at = self._clock()
        status, completion = classify_shutdown(reason)

        try:
            if conversation.status != ConversationStatus.IN_PROGRESS.value:
                raise InvalidTransitionError(
                    f"Cannot end conversation in status '{conversation.status}'"
                )

            started_at = conversation.started_at or ended_at
            if ended_at < started_at:
                ended_at = started_at
            minutes = billable_minutes(started_at, ended_at)

            applied = await self._gateway.update_conversation_status(
                conversation.id,
                expected_status=ConversationStatus.IN_PROGRESS.value,
                new_status=status.value,
                ended_at=ended_at,
                duration_minutes=minutes,
                end_reason=reason,
            )
            if not applied:
                raise InvalidTransitionError("Conversation already ended")
        except InvalidTransitionError as e:
            logger.info(
                "conversation_end_ignored",
                conversation_id=str(conversation.id),
                status=conversation.status,
                reason=e.message,
            )
            return False

        await self._accountant.record_session_end(
            conversation.user_id,
            conversation.id,
            started_at=started_at,
            ended_at=ended_at,
            minutes=minutes,
            completion_status=completion.value,
            reason=reason,
        )
        await self._broadcaster.publish(
            conversation.user_id,
            "conversation_ended",
            conversation.id,
            status=status.value,
            reason=reason,
            duration_minutes=minutes,
        )
        logger.info(
            "conversation_ended",
            conversation_id=str(conversation.id),
            status=status.value,
            completion_status=completion.value,
            duration_minutes=minutes,
            reason=reason,
        )
        return True
