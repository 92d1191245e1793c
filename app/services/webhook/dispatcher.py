"""Webhook event dispatcher.

Resolves the referenced conversation, logs the event and routes it by
EventKind. All engine errors are caught here and turned into a
WebhookResult; nothing propagates to the HTTP layer as an unhandled fault.

Processing order:
1. Look up the conversation by provider ID (missing → 404, no side effects)
2. Append the raw event to the conversation event log
3. Route: start / end → state machine, transcription → transcript store,
   other recognized kinds → broadcast only, unrecognized → acknowledge
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import (
    ConversationNotFoundError,
    MeteringError,
    PersistenceFailureError,
)
from app.db.gateway import PersistenceGateway
from app.schemas.records import ConversationRecord
from app.schemas.webhook import WebhookPayload, WebhookResult
from app.services.conversation.state_machine import ConversationStateMachine
from app.services.realtime.broadcaster import ConversationBroadcaster
from app.services.webhook.events import EventKind, ProviderEvent, classify_event

logger = structlog.get_logger(__name__)


class EventDispatcher:
    """Routes one webhook delivery to its handler."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        state_machine: ConversationStateMachine,
        broadcaster: ConversationBroadcaster,
    ) -> None:
        self._gateway = gateway
        self._state_machine = state_machine
        self._broadcaster = broadcaster

    async def dispatch(self, payload: WebhookPayload) -> WebhookResult:
        event = classify_event(payload.event_type)
        logger.info(
            "webhook_received",
            provider_conversation_id=payload.conversation_id,
            event_type=event.raw,
            event_kind=event.kind.value,
            message_type=payload.message_type,
        )

        try:
            conversation = await self._gateway.find_conversation_by_provider_id(
                payload.conversation_id
            )
            if conversation is None:
                raise ConversationNotFoundError()

            await self._gateway.record_event(
                conversation.id,
                event.raw,
                payload.message_type,
                payload.model_dump(mode="json"),
            )
            return await self._route(event, conversation, payload)

        except MeteringError as e:
            return self._failure(e, event)
        except SQLAlchemyError as e:
            logger.error("webhook_persistence_failed", event_type=event.raw, error=str(e))
            return self._failure(PersistenceFailureError(f"Database operation failed: {e}"), event)

    def _failure(self, exc: MeteringError, event: ProviderEvent) -> WebhookResult:
        logger.warning(
            "webhook_processing_failed",
            event_type=event.raw,
            code=exc.code,
            error=exc.message,
        )
        return WebhookResult(
            success=False,
            error=exc.message,
            event_type=event.raw,
            status_code=exc.status_code,
        )

    async def _route(
        self,
        event: ProviderEvent,
        conversation: ConversationRecord,
        payload: WebhookPayload,
    ) -> WebhookResult:
        props = payload.properties

        if event.kind is EventKind.START:
            applied = await self._state_machine.start(conversation)
            message = "Conversation started" if applied else "Conversation already started"
            return WebhookResult.ok(message, event.raw)

        if event.kind is EventKind.END:
            reason = props.get("reason")
            applied = await self._state_machine.end(
                conversation, str(reason) if reason is not None else None
            )
            message = "Conversation ended" if applied else "Conversation end ignored"
            return WebhookResult.ok(message, event.raw)

        if event.kind is EventKind.TRANSCRIPTION:
            return await self._handle_transcription(event, conversation, props)

        if event.kind is EventKind.UNRECOGNIZED:
            logger.info(
                "webhook_event_unrecognized",
                event_type=event.raw,
                conversation_id=str(conversation.id),
            )
            return WebhookResult.ok(f"Event acknowledged: {event.raw}", event.raw)

        await self._broadcaster.publish(
            conversation.user_id,
            event.kind.value,
            conversation.id,
            **_broadcast_fields(event, props),
        )
        return WebhookResult.ok(f"Event logged: {event.raw}", event.raw)

    async def _handle_transcription(
        self,
        event: ProviderEvent,
        conversation: ConversationRecord,
        props: dict[str, Any],
    ) -> WebhookResult:
        transcript = props.get("transcription")
        if not isinstance(transcript, list) or not transcript:
            logger.warning(
                "transcript_missing",
                conversation_id=str(conversation.id),
            )
            return WebhookResult.ok("No transcription data provided", event.raw)

        messages = [m for m in transcript if isinstance(m, dict)]
        created = await self._gateway.save_transcript(conversation.id, messages)
        if not created:
            return WebhookResult.ok("Transcript already processed", event.raw)

        await self._broadcaster.publish(
            conversation.user_id,
            "transcript_ready",
            conversation.id,
            message_count=len(messages),
        )
        logger.info(
            "transcript_saved",
            conversation_id=str(conversation.id),
            message_count=len(messages),
        )
        return WebhookResult.ok("Transcript saved", event.raw)


def _broadcast_fields(event: ProviderEvent, props: dict[str, Any]) -> dict[str, Any]:
    """Select the properties a dashboard needs for each event kind."""
    if event.kind is EventKind.UTTERANCE:
        return {"role": props.get("role"), "content": props.get("text")}
    if event.kind is EventKind.TOOL_CALL:
        return {"function_name": props.get("name"), "arguments": props.get("arguments")}
    if event.kind is EventKind.SPEAKING_STATE:
        return {
            "speaker": "replica" if ".replica." in event.raw else "user",
            "state": "started" if event.raw.endswith("started_speaking") else "stopped",
            "inference_id": props.get("inference_id"),
        }
    if event.kind is EventKind.RECORDING:
        return {"recording_url": props.get("recording_url"), "duration": props.get("duration")}
    return {"event_type": event.raw}
