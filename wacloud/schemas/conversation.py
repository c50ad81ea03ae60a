"""
Conversation state models.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from wacloud.schemas.core.types import ConversationLifecycle


class ConversationState(BaseModel):
    """Mutable state of one conversation, keyed by the remote party's address."""

    id: str
    state: ConversationLifecycle = ConversationLifecycle.ACTIVE
    last_activity: datetime = Field(default_factory=lambda: datetime.now(UTC))
    message_count: int = 0
    display_name: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    current_step: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.state in (
            ConversationLifecycle.ACTIVE,
            ConversationLifecycle.WAITING,
        )


class ConversationStatistics(BaseModel):
    total: int = 0
    active: int = 0
    archived: int = 0
    completed: int = 0
    avg_messages_per_conversation: float = 0.0
