"""Webhook request/response schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WebhookPayload(BaseModel):
    """POST /v1/webhooks/tavus request body.

    ``properties`` is event-specific and kept as a free-form map; handlers
    read only the keys they need (``reason``, ``transcription``, ``text`` ...).
A null ``properties`` is read as an empty map.
    """

    model_config = ConfigDict(extra="ignore")

    conversation_id: str = Field(min_length=1)
    event_type: str = Field(min_length=1)
    message_type: str | None = None
    timestamp: datetime | None = None
    properties: dict[str, Any] = Field(default_factory=dict)

    @field_validator("properties", mode="before")
    @classmethod
    def _null_properties_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class WebhookResult(BaseModel):
    """Structured outcome serialized back to the provider."""

    success: bool
    error: str | None = None
    message: str | None = None
    event_type: str | None = None
    status_code: int = Field(default=200, exclude=True)

    @classmethod
    def ok(cls, message: str, event_type: str) -> "WebhookResult":
        return cls(success=True, message=message, event_type=event_type)
