"""Plain data records exchanged across the persistence gateway.

The engine never touches ORM instances; gateway implementations convert
rows into these models with ``model_validate`` (``from_attributes``).
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ConversationRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    provider_conversation_id: str
    status: str
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration_minutes: int | None = None
    end_reason: str | None = None


class LedgerEntryRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    period_start: datetime
    period_end: datetime
    subscription_tier: str
    price_id: str
    minutes_used: int = 0
    sessions_used: int = 0
    total_conversations: int = 0
    last_conversation_at: datetime | None = None


class UsageDetailRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    conversation_id: uuid.UUID
    user_id: uuid.UUID
    ledger_entry_id: uuid.UUID | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration_minutes: int | None = None
    completion_status: str = "in_progress"
    termination_reason: str | None = None


class SubscriptionPeriod(BaseModel):
    """Billing window and plan snapshot returned by the subscription lookup."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    period_start: datetime
    period_end: datetime
    tier: str
    price_id: str
