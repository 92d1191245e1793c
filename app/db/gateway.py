"""Persistence gateway, the only writer of conversation and usage records.

The engine (state machine, usage accountant, dispatcher) depends on the
abstract PersistenceGateway only. SqlPersistenceGateway is the PostgreSQL
implementation; tests run the engine against an in-memory fake with the
same semantics.

Atomicity contract:
  - update_conversation_status is a compare-and-set on the prior status.
    It returns False when the row was not in ``expected_status``.
  - increment_ledger_counters applies ``col = col + delta`` in SQL, never a
    read-modify-write in Python.
  - find_or_create_ledger_entry relies on the unique
    (user_id, period_start, period_end) constraint with ON CONFLICT DO NOTHING.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DuplicateConversationError
from app.models.conversation import Conversation
from app.models.event import ConversationEvent, ConversationTranscript
from app.models.usage import ConversationUsageDetail, UsageLedgerEntry
from app.schemas.records import (
    ConversationRecord,
    LedgerEntryRecord,
    SubscriptionPeriod,
    UsageDetailRecord,
)

logger = structlog.get_logger(__name__)


class PersistenceGateway(ABC):
    """Abstract storage interface for the metering engine."""

    @abstractmethod
    async def find_conversation_by_provider_id(
        self, provider_conversation_id: str
    ) -> ConversationRecord | None:
        """Return the conversation with this provider ID, or None."""
        ...

    @abstractmethod
    async def create_conversation(
        self, user_id: uuid.UUID, provider_conversation_id: str
    ) -> ConversationRecord:
        """Provision a ``pending`` conversation.

        Raises:
            DuplicateConversationError: If the provider ID already exists.
        """
        ...

    @abstractmethod
    async def update_conversation_status(
        self,
        conversation_id: uuid.UUID,
        expected_status: str,
        new_status: str,
        **fields: Any,
    ) -> bool:
        """Move a conversation from ``expected_status`` to ``new_status``.

        Extra ``fields`` (started_at, ended_at, duration_minutes, end_reason)
        are written in the same statement. Returns True only if the row was
        in ``expected_status`` and was updated.
        """
        ...

    @abstractmethod
    async def find_or_create_ledger_entry(
        self, user_id: uuid.UUID, period: SubscriptionPeriod
    ) -> LedgerEntryRecord:
        """Return the single ledger entry for (user, period), creating it if missing."""
        ...

    @abstractmethod
    async def find_ledger_entry(
        self, user_id: uuid.UUID, period: SubscriptionPeriod
    ) -> LedgerEntryRecord | None:
        """Return the ledger entry for (user, period) without creating it."""
        ...

    @abstractmethod
    async def increment_ledger_counters(
        self,
        entry_id: uuid.UUID,
        *,
        minutes: int = 0,
        sessions: int = 0,
        conversations: int = 0,
    ) -> None:
        """Atomically add non-negative deltas to a ledger entry's counters."""
        ...

    @abstractmethod
    async def upsert_usage_detail(self, detail: UsageDetailRecord) -> None:
        """Insert or overwrite the usage detail keyed by conversation_id."""
        ...

    @abstractmethod
    async def record_event(
        self,
        conversation_id: uuid.UUID,
        event_type: str,
        message_type: str | None,
        payload: dict[str, Any],
    ) -> None:
        """Append a received webhook to the conversation event log."""
        ...

    @abstractmethod
    async def save_transcript(
        self, conversation_id: uuid.UUID, transcript: list[dict[str, Any]]
    ) -> bool:
        """Store a conversation transcript once. Returns False if one already exists."""
        ...


def _check_deltas(**deltas: int) -> None:
    for name, value in deltas.items():
        if value < 0:
            raise ValueError(f"Ledger counter '{name}' cannot decrease (got {value})")


class SqlPersistenceGateway(PersistenceGateway):
    """PostgreSQL implementation over a request-scoped AsyncSession.

    Never commits; the session owner (get_async_session) commits or rolls back.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def find_conversation_by_provider_id(
        self, provider_conversation_id: str
    ) -> ConversationRecord | None:
        result = await self._db.execute(
            select(Conversation).where(
                Conversation.provider_conversation_id == provider_conversation_id
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return ConversationRecord.model_validate(row)

    async def create_conversation(
        self, user_id: uuid.UUID, provider_conversation_id: str
    ) -> ConversationRecord:
        conversation = Conversation(
            id=uuid.uuid4(),
            user_id=user_id,
            provider_conversation_id=provider_conversation_id,
            status="pending",
        )
        self._db.add(conversation)
        try:
            await self._db.flush()
        except IntegrityError as e:
            await self._db.rollback()
            logger.warning(
                "conversation_duplicate",
                provider_conversation_id=provider_conversation_id,
            )
            raise DuplicateConversationError() from e

        logger.info(
            "conversation_provisioned",
            conversation_id=str(conversation.id),
            user_id=str(user_id),
        )
        return ConversationRecord.model_validate(conversation)

    async def update_conversation_status(
        self,
        conversation_id: uuid.UUID,
        expected_status: str,
        new_status: str,
        **fields: Any,
    ) -> bool:
        result = await self._db.execute(
            update(Conversation)
            .where(
                Conversation.id == conversation_id,
                Conversation.status == expected_status,
            )
            .values(
                status=new_status,
                updated_at=datetime.now(timezone.utc),
                **fields,
            )
            .returning(Conversation.id)
        )
        return result.scalar_one_or_none() is not None

    async def find_or_create_ledger_entry(
        self, user_id: uuid.UUID, period: SubscriptionPeriod
    ) -> LedgerEntryRecord:
        await self._db.execute(
            pg_insert(UsageLedgerEntry)
            .values(
                id=uuid.uuid4(),
                user_id=user_id,
                period_start=period.period_start,
                period_end=period.period_end,
                subscription_tier=period.tier,
                price_id=period.price_id,
                minutes_used=0,
                sessions_used=0,
                total_conversations=0,
            )
            .on_conflict_do_nothing(
                index_elements=["user_id", "period_start", "period_end"]
            )
        )
        entry = await self.find_ledger_entry(user_id, period)
        if entry is None:  # pragma: no cover - unique constraint guarantees a row
            raise RuntimeError("Ledger entry vanished after insert")
        return entry

    async def find_ledger_entry(
        self, user_id: uuid.UUID, period: SubscriptionPeriod
    ) -> LedgerEntryRecord | None:
        result = await self._db.execute(
            select(UsageLedgerEntry).where(
                UsageLedgerEntry.user_id == user_id,
                UsageLedgerEntry.period_start == period.period_start,
                UsageLedgerEntry.period_end == period.period_end,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return LedgerEntryRecord.model_validate(row)

    async def increment_ledger_counters(
        self,
        entry_id: uuid.UUID,
        *,
        minutes: int = 0,
        sessions: int = 0,
        conversations: int = 0,
    ) -> None:
        _check_deltas(minutes=minutes, sessions=sessions, conversations=conversations)
        if not (minutes or sessions or conversations):
            return

        now = datetime.now(timezone.utc)
        await self._db.execute(
            update(UsageLedgerEntry)
            .where(UsageLedgerEntry.id == entry_id)
            .values(
                minutes_used=UsageLedgerEntry.minutes_used + minutes,
                sessions_used=UsageLedgerEntry.sessions_used + sessions,
                total_conversations=UsageLedgerEntry.total_conversations + conversations,
                last_conversation_at=now,
                updated_at=now,
            )
        )
        logger.debug(
            "ledger_counters_incremented",
            entry_id=str(entry_id),
            minutes=minutes,
            sessions=sessions,
            conversations=conversations,
        )

    async def upsert_usage_detail(self, detail: UsageDetailRecord) -> None:
        values = detail.model_dump()
        updatable = {
            k: v for k, v in values.items() if k not in ("conversation_id", "user_id")
        }
        updatable["updated_at"] = datetime.now(timezone.utc)
        await self._db.execute(
            pg_insert(ConversationUsageDetail)
            .values(id=uuid.uuid4(), **values)
            .on_conflict_do_update(
                index_elements=["conversation_id"],
                set_=updatable,
            )
        )

    async def record_event(
        self,
        conversation_id: uuid.UUID,
        event_type: str,
        message_type: str | None,
        payload: dict[str, Any],
    ) -> None:
        self._db.add(
            ConversationEvent(
                conversation_id=conversation_id,
                event_type=event_type,
                message_type=message_type,
                payload=payload,
            )
        )
        await self._db.flush()

    async def save_transcript(
        self, conversation_id: uuid.UUID, transcript: list[dict[str, Any]]
    ) -> bool:
        user_count = sum(1 for m in transcript if m.get("role") == "user")
        assistant_count = sum(1 for m in transcript if m.get("role") == "assistant")
        result = await self._db.execute(
            pg_insert(ConversationTranscript)
            .values(
                id=uuid.uuid4(),
                conversation_id=conversation_id,
                transcript=transcript,
                total_messages=len(transcript),
                user_message_count=user_count,
                assistant_message_count=assistant_count,
            )
            .on_conflict_do_nothing(index_elements=["conversation_id"])
            .returning(ConversationTranscript.id)
        )
        return result.scalar_one_or_none() is not None
