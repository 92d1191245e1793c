"""Conversation provisioning and lookup endpoints (internal API key)."""

from fastapi import APIRouter, Depends, status

from app.api.deps import get_gateway, require_internal_api_key
from app.core.exceptions import ConversationNotFoundError
from app.db.gateway import PersistenceGateway
from app.schemas.conversation import ConversationCreateRequest, ConversationResponse

router = APIRouter(
    prefix="/conversations",
    tags=["conversations"],
    dependencies=[Depends(require_internal_api_key)],
)


@router.post(
    "",
    response_model=ConversationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation(
    body: ConversationCreateRequest,
    gateway: PersistenceGateway = Depends(get_gateway),
) -> ConversationResponse:
    """Register a provider conversation in ``pending`` before the video call starts."""
    record = await gateway.create_conversation(
        user_id=body.user_id,
        provider_conversation_id=body.provider_conversation_id,
    )
    return ConversationResponse.model_validate(record)


@router.get("/{provider_conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    provider_conversation_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
) -> ConversationResponse:
    record = await gateway.find_conversation_by_provider_id(provider_conversation_id)
    if record is None:
        raise ConversationNotFoundError()
    return ConversationResponse.model_validate(record)
