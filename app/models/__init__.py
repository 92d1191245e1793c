"""SQLAlchemy ORM models.

Individual models should be imported explicitly:
    from app.models.conversation import Conversation

All models are imported here so Alembic can detect them during migration
autogenerate. This module is imported by alembic/env.py.
"""

from app.models.conversation import Conversation
from app.models.event import ConversationEvent, ConversationTranscript
from app.models.subscription import Subscription
from app.models.usage import ConversationUsageDetail, UsageLedgerEntry

__all__ = [
    "Conversation",
    "ConversationEvent",
    "ConversationTranscript",
    "ConversationUsageDetail",
    "Subscription",
    "UsageLedgerEntry",
]
