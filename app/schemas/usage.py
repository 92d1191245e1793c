"""Usage summary response schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class UsageCounters(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    minutes_used: int = 0
    sessions_used: int = 0
    total_conversations: int = 0


class QuotaStatus(BaseModel):
    """Advisory quota state for the current billing period.

    Limits of -1 mean unlimited; the matching ``remaining`` value is None.
    """

    tier: str
    max_sessions: int
    max_minutes: int
    max_minutes_per_session: int
    remaining_sessions: int | None
    remaining_minutes: int | None
    over_limit: bool
    warnings: list[str] = []


class UsageSummaryResponse(BaseModel):
    """GET /v1/usage/{user_id} response body."""

    user_id: uuid.UUID
    period_start: datetime
    period_end: datetime
    subscription_tier: str
    price_id: str
    usage: UsageCounters
    quota: QuotaStatus
