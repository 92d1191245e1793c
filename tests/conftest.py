"""Shared pytest fixtures for the metering engine test suite.

Provides:
  - InMemoryGateway: PersistenceGateway fake with the same compare-and-set
    and additive-counter semantics as SqlPersistenceGateway
  - InMemorySubscriptionDirectory: configurable billing periods per user
  - MockRedisClient: records published messages instead of sending them
  - FrozenClock: injectable clock that only moves when advanced
  - Wired fixtures: gateway, subscriptions, broadcaster, accountant,
    state_machine, dispatcher
  - test_db: MagicMock AsyncSession for SqlPersistenceGateway tests
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.exceptions import DuplicateConversationError, RedisConnectionError
from app.db.gateway import PersistenceGateway, _check_deltas
from app.schemas.records import (
    ConversationRecord,
    LedgerEntryRecord,
    SubscriptionPeriod,
    UsageDetailRecord,
)
from app.services.conversation.state_machine import ConversationStateMachine
from app.services.realtime.broadcaster import ConversationBroadcaster
from app.services.subscriptions import SubscriptionDirectory
from app.services.usage.accountant import UsageAccountant
from app.services.webhook.dispatcher import EventDispatcher

PERIOD_START = datetime(2026, 10, 1, tzinfo=timezone.utc)
PERIOD_END = datetime(2026, 11, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# In-memory persistence gateway
# ---------------------------------------------------------------------------


class InMemoryGateway(PersistenceGateway):
    """Dict-backed gateway. Counts every mutating call in ``writes``."""

    def __init__(self) -> None:
        self.conversations: dict[uuid.UUID, ConversationRecord] = {}
        self.ledger: dict[uuid.UUID, LedgerEntryRecord] = {}
        self.usage_details: dict[uuid.UUID, UsageDetailRecord] = {}
        self.events: list[dict[str, Any]] = []
        self.transcripts: dict[uuid.UUID, list[dict[str, Any]]] = {}
        self.writes: int = 0

    def add_conversation(
        self,
        user_id: uuid.UUID,
        provider_conversation_id: str = "c123",
        status: str = "pending",
        started_at: datetime | None = None,
    ) -> ConversationRecord:
        record = ConversationRecord(
            id=uuid.uuid4(),
            user_id=user_id,
            provider_conversation_id=provider_conversation_id,
            status=status,
            started_at=started_at,
        )
        self.conversations[record.id] = record
        return record

    async def find_conversation_by_provider_id(
        self, provider_conversation_id: str
    ) -> ConversationRecord | None:
        for record in self.conversations.values():
            if record.provider_conversation_id == provider_conversation_id:
                return record.model_copy()
        return None

    async def create_conversation(
        self, user_id: uuid.UUID, provider_conversation_id: str
    ) -> ConversationRecord:
        if await self.find_conversation_by_provider_id(provider_conversation_id):
            raise DuplicateConversationError()
        self.writes += 1
        return self.add_conversation(user_id, provider_conversation_id)

    async def update_conversation_status(
        self,
        conversation_id: uuid.UUID,
        expected_status: str,
        new_status: str,
        **fields: Any,
    ) -> bool:
        current = self.conversations.get(conversation_id)
        if current is None or current.status != expected_status:
            return False
        self.writes += 1
        self.conversations[conversation_id] = current.model_copy(
            update={"status": new_status, **fields}
        )
        return True

    async def find_or_create_ledger_entry(
        self, user_id: uuid.UUID, period: SubscriptionPeriod
    ) -> LedgerEntryRecord:
        existing = await self.find_ledger_entry(user_id, period)
        if existing is not None:
            return existing
        self.writes += 1
        entry = LedgerEntryRecord(
            id=uuid.uuid4(),
            user_id=user_id,
            period_start=period.period_start,
            period_end=period.period_end,
            subscription_tier=period.tier,
            price_id=period.price_id,
        )
        self.ledger[entry.id] = entry
        return entry.model_copy()

    async def find_ledger_entry(
        self, user_id: uuid.UUID, period: SubscriptionPeriod
    ) -> LedgerEntryRecord | None:
        for entry in self.ledger.values():
            if (
                entry.user_id == user_id
                and entry.period_start == period.period_start
                and entry.period_end == period.period_end
            ):
                return entry.model_copy()
        return None

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
        self.writes += 1
        entry = self.ledger[entry_id]
        self.ledger[entry_id] = entry.model_copy(
            update={
                "minutes_used": entry.minutes_used + minutes,
                "sessions_used": entry.sessions_used + sessions,
                "total_conversations": entry.total_conversations + conversations,
                "last_conversation_at": datetime.now(timezone.utc),
            }
        )

    async def upsert_usage_detail(self, detail: UsageDetailRecord) -> None:
        self.writes += 1
        self.usage_details[detail.conversation_id] = detail

    async def record_event(
        self,
        conversation_id: uuid.UUID,
        event_type: str,
        message_type: str | None,
        payload: dict[str, Any],
    ) -> None:
        self.writes += 1
        self.events.append(
            {
                "conversation_id": conversation_id,
                "event_type": event_type,
                "message_type": message_type,
                "payload": payload,
            }
        )

    async def save_transcript(
        self, conversation_id: uuid.UUID, transcript: list[dict[str, Any]]
    ) -> bool:
        if conversation_id in self.transcripts:
            return False
        self.writes += 1
        self.transcripts[conversation_id] = transcript
        return True

    def ledger_for(self, user_id: uuid.UUID) -> list[LedgerEntryRecord]:
        return [e for e in self.ledger.values() if e.user_id == user_id]


# ---------------------------------------------------------------------------
# Subscription directory
# ---------------------------------------------------------------------------


class InMemorySubscriptionDirectory(SubscriptionDirectory):
    """Returns the period registered for a user, or None."""

    def __init__(self) -> None:
        self._periods: dict[uuid.UUID, SubscriptionPeriod] = {}

    def set_period(
        self,
        user_id: uuid.UUID,
        tier: str = "pro",
        price_id: str = "price_pro_monthly",
        period_start: datetime = PERIOD_START,
        period_end: datetime = PERIOD_END,
    ) -> SubscriptionPeriod:
        period = SubscriptionPeriod(
            period_start=period_start,
            period_end=period_end,
            tier=tier,
            price_id=price_id,
        )
        self._periods[user_id] = period
        return period

    async def get_current_period(self, user_id: uuid.UUID) -> SubscriptionPeriod | None:
        return self._periods.get(user_id)


# ---------------------------------------------------------------------------
# Mock Redis Client
# ---------------------------------------------------------------------------


class MockRedisClient:
    """In-memory mock of RedisClient that records PUBLISH calls."""

    def __init__(self, fail: bool = False) -> None:
        self.published: list[tuple[str, dict[str, Any]]] = []
        self.fail = fail

    async def publish_json(self, channel: str, message: dict[str, Any]) -> int:
        if self.fail:
            raise RedisConnectionError("Redis PUBLISH failed: connection refused")
        # Round-trip through JSON like the real client does
        self.published.append((channel, json.loads(json.dumps(message, default=str))))
        return 1

    async def ping(self) -> bool:
        return not self.fail

    @property
    def raw(self) -> Any:
        return MagicMock()

    def types(self) -> list[str]:
        return [m["type"] for _, m in self.published]


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FrozenClock:
    """Callable clock for the state machine; moves only via advance()."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 10, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def user_id() -> uuid.UUID:
    """Fixed user UUID for testing."""
    return uuid.UUID("00000000-0000-0000-0000-000000000001")


@pytest.fixture
def gateway() -> InMemoryGateway:
    return InMemoryGateway()


@pytest.fixture
def subscriptions(user_id: uuid.UUID) -> InMemorySubscriptionDirectory:
    """Directory with a pro subscription for ``user_id``."""
    directory = InMemorySubscriptionDirectory()
    directory.set_period(user_id)
    return directory


@pytest.fixture
def mock_redis() -> MockRedisClient:
    """Mock Redis client fixture."""
    return MockRedisClient()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def broadcaster(mock_redis: MockRedisClient) -> ConversationBroadcaster:
    return ConversationBroadcaster(redis=mock_redis)  # type: ignore[arg-type]


@pytest.fixture
def accountant(
    gateway: InMemoryGateway, subscriptions: InMemorySubscriptionDirectory
) -> UsageAccountant:
    return UsageAccountant(gateway=gateway, subscriptions=subscriptions)


@pytest.fixture
def state_machine(
    gateway: InMemoryGateway,
    accountant: UsageAccountant,
    broadcaster: ConversationBroadcaster,
    clock: FrozenClock,
) -> ConversationStateMachine:
    return ConversationStateMachine(
        gateway=gateway, accountant=accountant, broadcaster=broadcaster, clock=clock
    )


@pytest.fixture
def dispatcher(
    gateway: InMemoryGateway,
    state_machine: ConversationStateMachine,
    broadcaster: ConversationBroadcaster,
) -> EventDispatcher:
    return EventDispatcher(
        gateway=gateway, state_machine=state_machine, broadcaster=broadcaster
    )


# ---------------------------------------------------------------------------
# Async Database Session (mock — PG-specific types prevent real SQLite)
# ---------------------------------------------------------------------------


@pytest.fixture
def test_db() -> MagicMock:
    """Mock async database session for SqlPersistenceGateway tests.

    The ORM models use PostgreSQL-specific column types (JSONB, UUID) and
    the gateway relies on INSERT ... ON CONFLICT, which prevent using an
    in-memory SQLite session. This mock provides the AsyncSession interface.
    """
    session = MagicMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.execute = AsyncMock()
    session.close = AsyncMock()
    return session
