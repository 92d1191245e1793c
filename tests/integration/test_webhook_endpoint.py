"""Integration tests for the HTTP surface.

Drives the FastAPI app through httpx.ASGITransport with the engine wired to
the in-memory fakes from conftest via dependency_overrides.

Tests:
  - POST /v1/webhooks/tavus: 200 / 403 / 404 / 400 outcomes and body shape
  - Failed dispatch rolls back the request session
  - POST/GET /v1/conversations and GET /v1/usage require X-API-Key
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Iterator
from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio

from app.api.deps import (
    get_db,
    get_dispatcher,
    get_gateway,
    get_redis,
    get_usage_accountant,
)
from app.core.config import settings
from app.core.security import hash_api_key
from app.main import app
from app.services.usage.accountant import UsageAccountant
from app.services.webhook.dispatcher import EventDispatcher
from tests.conftest import FrozenClock, InMemoryGateway, MockRedisClient

API_KEY = "mtr_live_test_key"
TAVUS_ORIGIN = {"Origin": "https://tavus.io"}


@pytest.fixture
def db_session(test_db: MagicMock) -> MagicMock:
    return test_db


@pytest.fixture
def wired_app(
    dispatcher: EventDispatcher,
    gateway: InMemoryGateway,
    accountant: UsageAccountant,
    mock_redis: MockRedisClient,
    db_session: MagicMock,
    monkeypatch: pytest.MonkeyPatch,
) -> Iterator[None]:
    monkeypatch.setattr(settings, "internal_api_key_hash", hash_api_key(API_KEY))
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_usage_accountant] = lambda: accountant
    app.dependency_overrides[get_redis] = lambda: mock_redis
    yield
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(wired_app: None) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _event(event_type: str, conversation_id: str = "c123", **properties) -> dict:
    return {
        "conversation_id": conversation_id,
        "event_type": event_type,
        "message_type": "system",
        "timestamp": "2026-10-15T12:00:00Z",
        "properties": properties,
    }


class TestWebhookEndpoint:
    """Tests for POST /v1/webhooks/tavus."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(
        self,
        client: httpx.AsyncClient,
        gateway: InMemoryGateway,
        clock: FrozenClock,
        user_id: uuid.UUID,
    ) -> None:
        conv = gateway.add_conversation(user_id)

        resp = await client.post(
            "/v1/webhooks/tavus", json=_event("system.replica_joined"), headers=TAVUS_ORIGIN
        )
        assert resp.status_code == 200
        assert resp.json()["success"] is True

        clock.advance(125)
        resp = await client.post(
            "/v1/webhooks/tavus",
            json=_event("system.shutdown", reason="participant_left"),
            headers=TAVUS_ORIGIN,
        )
        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "message": "Conversation ended",
            "event_type": "system.shutdown",
        }
        assert gateway.conversations[conv.id].duration_minutes == 3

    @pytest.mark.asyncio
    async def test_shutdown_with_null_properties(
        self,
        client: httpx.AsyncClient,
        gateway: InMemoryGateway,
        clock: FrozenClock,
        user_id: uuid.UUID,
    ) -> None:
        """A shutdown whose properties are null still ends and bills the call."""
        conv = gateway.add_conversation(user_id)
        started = _event("system.replica_joined")
        started["properties"] = None
        resp = await client.post("/v1/webhooks/tavus", json=started, headers=TAVUS_ORIGIN)
        assert resp.status_code == 200

        clock.advance(61)
        ended = _event("system.shutdown")
        ended["properties"] = None
        resp = await client.post("/v1/webhooks/tavus", json=ended, headers=TAVUS_ORIGIN)

        assert resp.status_code == 200
        assert resp.json()["message"] == "Conversation ended"
        stored = gateway.conversations[conv.id]
        assert stored.status == "completed"
        assert stored.end_reason is None
        assert gateway.ledger_for(user_id)[0].minutes_used == 2

    @pytest.mark.asyncio
    async def test_unauthorized_origin(
        self,
        client: httpx.AsyncClient,
        gateway: InMemoryGateway,
        user_id: uuid.UUID,
    ) -> None:
        gateway.add_conversation(user_id)

        resp = await client.post(
            "/v1/webhooks/tavus",
            json=_event("system.replica_joined"),
            headers={"Origin": "https://evil.com"},
        )

        assert resp.status_code == 403
        assert resp.json() == {"success": False, "error": "Unauthorized domain"}
        assert gateway.writes == 0

    @pytest.mark.asyncio
    async def test_no_origin_headers_accepted(
        self,
        client: httpx.AsyncClient,
        gateway: InMemoryGateway,
        user_id: uuid.UUID,
    ) -> None:
        gateway.add_conversation(user_id)

        resp = await client.post("/v1/webhooks/tavus", json=_event("system.replica_joined"))

        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_unknown_conversation_404_and_rollback(
        self,
        client: httpx.AsyncClient,
        db_session: MagicMock,
    ) -> None:
        resp = await client.post(
            "/v1/webhooks/tavus",
            json=_event("system.shutdown", conversation_id="unknown"),
            headers=TAVUS_ORIGIN,
        )

        assert resp.status_code == 404
        assert resp.json()["success"] is False
        assert resp.json()["error"] == "Conversation not found"
        db_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_json(self, client: httpx.AsyncClient) -> None:
        resp = await client.post(
            "/v1/webhooks/tavus",
            content=b"{not json",
            headers={**TAVUS_ORIGIN, "Content-Type": "application/json"},
        )

        assert resp.status_code == 400
        assert resp.json()["success"] is False

    @pytest.mark.asyncio
    async def test_missing_required_fields(self, client: httpx.AsyncClient) -> None:
        resp = await client.post(
            "/v1/webhooks/tavus", json={"event_type": "system.shutdown"}, headers=TAVUS_ORIGIN
        )

        assert resp.status_code == 400
        assert "conversation_id" in resp.json()["error"]

    @pytest.mark.asyncio
    async def test_utterance_passthrough(
        self,
        client: httpx.AsyncClient,
        gateway: InMemoryGateway,
        user_id: uuid.UUID,
    ) -> None:
        conv = gateway.add_conversation(user_id, status="in_progress")

        resp = await client.post(
            "/v1/webhooks/tavus",
            json=_event("conversation.utterance", role="user", text="hello"),
            headers=TAVUS_ORIGIN,
        )

        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert gateway.conversations[conv.id].status == "in_progress"
        assert gateway.ledger == {}


class TestInternalEndpoints:
    """Provisioning and usage reads behind X-API-Key."""

    @pytest.mark.asyncio
    async def test_missing_api_key(self, client: httpx.AsyncClient) -> None:
        resp = await client.get("/v1/conversations/c123")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "INVALID_API_KEY"

    @pytest.mark.asyncio
    async def test_provision_and_read(
        self, client: httpx.AsyncClient, user_id: uuid.UUID
    ) -> None:
        headers = {"X-API-Key": API_KEY}
        body = {"user_id": str(user_id), "provider_conversation_id": "c999"}

        created = await client.post("/v1/conversations", json=body, headers=headers)
        assert created.status_code == 201
        assert created.json()["status"] == "pending"

        duplicate = await client.post("/v1/conversations", json=body, headers=headers)
        assert duplicate.status_code == 409
        assert duplicate.json()["error"]["code"] == "DUPLICATE_CONVERSATION"

        fetched = await client.get("/v1/conversations/c999", headers=headers)
        assert fetched.status_code == 200
        assert fetched.json()["provider_conversation_id"] == "c999"

        missing = await client.get("/v1/conversations/nope", headers=headers)
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_usage_summary(
        self,
        client: httpx.AsyncClient,
        accountant: UsageAccountant,
        user_id: uuid.UUID,
    ) -> None:
        await accountant.record_usage_minutes(user_id, 12)

        resp = await client.get(f"/v1/usage/{user_id}", headers={"X-API-Key": API_KEY})

        assert resp.status_code == 200
        data = resp.json()
        assert data["subscription_tier"] == "pro"
        assert data["usage"]["minutes_used"] == 12
        assert data["quota"]["remaining_minutes"] == 288
        assert data["quota"]["max_minutes_per_session"] == 45

    @pytest.mark.asyncio
    async def test_usage_without_subscription(self, client: httpx.AsyncClient) -> None:
        resp = await client.get(f"/v1/usage/{uuid.uuid4()}", headers={"X-API-Key": API_KEY})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "SUBSCRIPTION_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_health(self, client: httpx.AsyncClient) -> None:
        resp = await client.get("/v1/health")
        assert resp.status_code == 200
        assert resp.json()["redis"] == "ok"
