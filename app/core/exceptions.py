"""Custom exception classes for structured error handling."""

from typing import Any


class MeteringError(Exception):
    """Base exception for all metering engine errors."""

    def __init__(self, code: str, message: str, status_code: int = 500) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message}}


class UnauthorizedOriginError(MeteringError):
    def __init__(self, message: str = "Unauthorized domain") -> None:
        super().__init__(code="UNAUTHORIZED_ORIGIN", message=message, status_code=403)


class ConversationNotFoundError(MeteringError):
    def __init__(self, message: str = "Conversation not found") -> None:
        super().__init__(code="CONVERSATION_NOT_FOUND", message=message, status_code=404)


class InvalidTransitionError(MeteringError):
    def __init__(self, message: str = "Conversation is not in the expected state") -> None:
        super().__init__(code="INVALID_TRANSITION", message=message, status_code=409)


class DuplicateConversationError(MeteringError):
    def __init__(self, message: str = "Conversation already provisioned") -> None:
        super().__init__(code="DUPLICATE_CONVERSATION", message=message, status_code=409)


class InvalidPayloadError(MeteringError):
    def __init__(self, message: str = "Invalid webhook payload") -> None:
        super().__init__(code="INVALID_PAYLOAD", message=message, status_code=400)


class InvalidAPIKeyError(MeteringError):
    def __init__(self, message: str = "Invalid or missing API key") -> None:
        super().__init__(code="INVALID_API_KEY", message=message, status_code=401)


class SubscriptionNotFoundError(MeteringError):
    def __init__(self, message: str = "No active subscription found") -> None:
        super().__init__(code="SUBSCRIPTION_NOT_FOUND", message=message, status_code=404)


class PersistenceFailureError(MeteringError):
    def __init__(self, message: str = "Database operation failed") -> None:
        super().__init__(code="PERSISTENCE_FAILURE", message=message, status_code=503)


class RedisConnectionError(MeteringError):
    def __init__(self, message: str = "Redis connection failed") -> None:
        super().__init__(code="REDIS_CONNECTION_ERROR", message=message, status_code=503)
