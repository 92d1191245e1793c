"""Conversation provisioning request/response schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ConversationCreateRequest(BaseModel):
    """POST /v1/conversations request body."""

    model_config = ConfigDict(from_attributes=True)

    user_id: uuid.UUID
    provider_conversation_id: str = Field(min_length=1)


class ConversationResponse(BaseModel):
    """Conversation as returned by the provisioning endpoints."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    provider_conversation_id: str
    status: str
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration_minutes: int | None = None
    end_reason: str | None = None
