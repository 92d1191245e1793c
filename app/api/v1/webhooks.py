"""Provider webhook endpoint.

Every outcome, including rejection, is serialized as a WebhookResult
(``{success, error?, message?, event_type?}``) so the provider's delivery
dashboard always receives a structured body.
"""

import json

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_authenticator, get_db, get_dispatcher
from app.core.exceptions import (
    InvalidPayloadError,
    MeteringError,
    UnauthorizedOriginError,
)
from app.schemas.webhook import WebhookPayload, WebhookResult
from app.services.webhook.authenticator import WebhookAuthenticator
from app.services.webhook.dispatcher import EventDispatcher

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _respond(result: WebhookResult) -> JSONResponse:
    return JSONResponse(
        status_code=result.status_code,
        content=result.model_dump(exclude_none=True),
    )


def _rejected(exc: MeteringError) -> JSONResponse:
    return _respond(
        WebhookResult(success=False, error=exc.message, status_code=exc.status_code)
    )


async def _parse_payload(request: Request) -> WebhookPayload:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidPayloadError("Invalid JSON body") from e

    if not isinstance(body, dict):
        raise InvalidPayloadError("Webhook body must be a JSON object")

    try:
        return WebhookPayload.model_validate(body)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
        raise InvalidPayloadError(f"Invalid webhook payload: {fields}") from e


@router.post("/tavus")
async def receive_tavus_webhook(
    request: Request,
    authenticator: WebhookAuthenticator = Depends(get_authenticator),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Authenticate, parse and dispatch one provider event."""
    if not authenticator.is_trusted(request.headers):
        return _rejected(UnauthorizedOriginError())

    try:
        payload = await _parse_payload(request)
    except InvalidPayloadError as e:
        logger.warning("webhook_payload_invalid", error=e.message)
        return _rejected(e)

    result = await dispatcher.dispatch(payload)
    if not result.success:
        await db.rollback()
    return _respond(result)
