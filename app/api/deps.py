"""Shared FastAPI dependencies — auth, database sessions, service injection.

Every engine component is constructed per request from the request-scoped
AsyncSession. Tests replace any of these with app.dependency_overrides.
"""

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import InvalidAPIKeyError
from app.core.security import verify_api_key
from app.db.gateway import PersistenceGateway, SqlPersistenceGateway
from app.db.postgres import get_async_session
from app.db.redis import RedisClient, get_redis as _get_redis
from app.services.conversation.state_machine import ConversationStateMachine
from app.services.realtime.broadcaster import ConversationBroadcaster
from app.services.subscriptions import SqlSubscriptionDirectory, SubscriptionDirectory
from app.services.usage.accountant import UsageAccountant
from app.services.webhook.authenticator import WebhookAuthenticator
from app.services.webhook.dispatcher import EventDispatcher


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

async def get_db(
    session: AsyncSession = Depends(get_async_session),
) -> AsyncSession:
    """Yield an async database session."""
    return session


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

async def get_redis() -> RedisClient:
    """Return the singleton RedisClient wrapper."""
    return await _get_redis()


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

async def require_internal_api_key(
    x_api_key: str = Header("", alias="X-API-Key"),
) -> None:
    """Reject internal endpoint calls without a valid X-API-Key."""
    if not verify_api_key(x_api_key, settings.internal_api_key_hash):
        raise InvalidAPIKeyError()


def get_authenticator() -> WebhookAuthenticator:
    """Return a WebhookAuthenticator over the configured provider domains."""
    return WebhookAuthenticator(settings.provider_allowed_domains)


# ---------------------------------------------------------------------------
# Service constructors — wired via Depends()
# ---------------------------------------------------------------------------

async def get_gateway(db: AsyncSession = Depends(get_db)) -> PersistenceGateway:
    return SqlPersistenceGateway(db)


async def get_subscription_directory(
    db: AsyncSession = Depends(get_db),
) -> SubscriptionDirectory:
    return SqlSubscriptionDirectory(db)


async def get_broadcaster(
    redis: RedisClient = Depends(get_redis),
) -> ConversationBroadcaster:
    """Return a ConversationBroadcaster (no-op when broadcasting is disabled)."""
    return ConversationBroadcaster(redis=redis, enabled=settings.broadcast_enabled)


async def get_usage_accountant(
    gateway: PersistenceGateway = Depends(get_gateway),
    subscriptions: SubscriptionDirectory = Depends(get_subscription_directory),
) -> UsageAccountant:
    return UsageAccountant(gateway=gateway, subscriptions=subscriptions)


async def get_state_machine(
    gateway: PersistenceGateway = Depends(get_gateway),
    accountant: UsageAccountant = Depends(get_usage_accountant),
    broadcaster: ConversationBroadcaster = Depends(get_broadcaster),
) -> ConversationStateMachine:
    return ConversationStateMachine(
        gateway=gateway, accountant=accountant, broadcaster=broadcaster
    )


async def get_dispatcher(
    gateway: PersistenceGateway = Depends(get_gateway),
    state_machine: ConversationStateMachine = Depends(get_state_machine),
    broadcaster: ConversationBroadcaster = Depends(get_broadcaster),
) -> EventDispatcher:
    """Return an EventDispatcher fully wired with all dependencies."""
    return EventDispatcher(
        gateway=gateway, state_machine=state_machine, broadcaster=broadcaster
    )
