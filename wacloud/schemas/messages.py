"""
Stored message, queue item and send result models.
"""

import time
import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from wacloud.schemas.core.types import DeliveryStatus, MessageDirection


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def generate_local_id(prefix: str) -> str:
    """Stable local id such as ``out_1700000000000_3f9a1c2b7d``."""
    return f"{prefix}_{now_ms()}_{uuid.uuid4().hex[:10]}"


class MediaDescriptor(BaseModel):
    id: str | None = None
    url: str | None = None
    mime_type: str | None = None
    file_name: str | None = None
    file_size: int | None = None


class StoredError(BaseModel):
    code: int
    message: str
    details: Any = None


class StoredMessage(BaseModel):
    """One inbound or outbound message as kept by the message store."""

    id: str = Field(default_factory=lambda: generate_local_id("msg"))
    provider_message_id: str | None = Field(
        default=None, description="wamid assigned by the provider"
    )
    conversation_id: str
    direction: MessageDirection
    type: str
    content: Any = None
    timestamp: int = Field(default_factory=now_ms, description="Epoch milliseconds")
    status: DeliveryStatus = DeliveryStatus.PENDING
    media: MediaDescriptor | None = None
    error: StoredError | None = None


class QueueItem(BaseModel):
    """An outbound send waiting in the delivery queue."""

    id: str = Field(default_factory=lambda: generate_local_id("queue"))
    destination: str
    type: str
    payload: dict[str, Any]
    attempts: int = 0
    enqueued_at: int = Field(default_factory=now_ms)
    priority: int = 0


class MessageResult(BaseModel):
    """Result of an outbound messaging operation."""

    success: bool
    message_id: str | None = Field(default=None, description="Provider message id")
    stored_id: str | None = Field(default=None, description="Local StoredMessage id")
    queue_id: str | None = None
    queued: bool = False
    recipient: str | None = None
    error: str | None = None
    error_code: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    raw_response: dict[str, Any] | None = None


class MessageStatistics(BaseModel):
    sent: int = 0
    received: int = 0
    failed: int = 0
    delivered: int = 0
    read: int = 0


class QueueStats(BaseModel):
    size: int
    max_size: int
    usage_percentage: float
