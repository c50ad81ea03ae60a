"""Data models for wacloud."""

from .conversation import ConversationState, ConversationStatistics
from .core.types import (
    ConversationLifecycle,
    DeliveryStatus,
    ErrorCode,
    EventCategory,
    MessageDirection,
    MessageType,
)
from .messages import (
    MediaDescriptor,
    MessageResult,
    MessageStatistics,
    QueueItem,
    QueueStats,
    StoredError,
    StoredMessage,
)
from .webhook.envelope import WebhookEnvelope
from .webhook.events import (
    ContactsContent,
    EmptyContent,
    EventErrorInfo,
    ExtractedEvent,
    InteractiveContent,
    LocationContent,
    MediaContent,
    ReactionContent,
    StatusInfo,
    TextContent,
)
from .webhook.request import UniversalRequest
from .webhook.result import EventError, WebhookResult, WebhookStatistics

__all__ = [
    "ConversationLifecycle",
    "ConversationState",
    "ConversationStatistics",
    "ContactsContent",
    "DeliveryStatus",
    "EmptyContent",
    "ErrorCode",
    "EventCategory",
    "EventError",
    "EventErrorInfo",
    "ExtractedEvent",
    "InteractiveContent",
    "LocationContent",
    "MediaContent",
    "MediaDescriptor",
    "MessageDirection",
    "MessageResult",
    "MessageStatistics",
    "MessageType",
    "QueueItem",
    "QueueStats",
    "ReactionContent",
    "StatusInfo",
    "StoredError",
    "StoredMessage",
    "TextContent",
    "UniversalRequest",
    "WebhookEnvelope",
    "WebhookResult",
    "WebhookStatistics",
]
