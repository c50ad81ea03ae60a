"""
Shared enums and type aliases for the WhatsApp Cloud API adapter.
"""

from enum import Enum
from typing import Any


class EventCategory(str, Enum):
    """Top-level namespace of an extracted event type ("message:text" -> MESSAGE)."""

    MESSAGE = "message"
    STATUS = "status"
    SYSTEM = "system"


class MessageType(str, Enum):
    """Inbound message sub-types in first-match detection order."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    VOICE = "voice"
    DOCUMENT = "document"
    STICKER = "sticker"
    LOCATION = "location"
    CONTACT = "contact"
    INTERACTIVE = "interactive"
    REACTION = "reaction"
    UNKNOWN = "unknown"


MEDIA_MESSAGE_TYPES = frozenset(
    {
        MessageType.IMAGE,
        MessageType.VIDEO,
        MessageType.AUDIO,
        MessageType.VOICE,
        MessageType.DOCUMENT,
        MessageType.STICKER,
    }
)

# Media types accepted by the send endpoint
SENDABLE_MEDIA_TYPES = ("image", "video", "audio", "document")


class DeliveryStatus(str, Enum):
    """Delivery status of a stored message."""

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class MessageDirection(str, Enum):
    """Direction of a stored message relative to the business number."""

    INCOMING = "incoming"
    OUTGOING = "outgoing"


class ConversationLifecycle(str, Enum):
    """Lifecycle state of a conversation."""

    ACTIVE = "active"
    WAITING = "waiting"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class ErrorCode(str, Enum):
    """Machine-readable error codes carried by webhook results and exceptions."""

    VALIDATION_ERROR = "validation_error"
    VERIFICATION_FAILED = "verification_failed"
    INVALID_SIGNATURE = "invalid_signature"
    INVALID_BODY = "invalid_body"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    INTERNAL_ERROR = "internal_error"
    DISPATCH_TIMEOUT = "dispatch_timeout"
    PARTIAL_PROCESSING = "partial_processing"
    RATE_LIMIT_ERROR = "rate_limit_error"
    PROVIDER_ERROR = "provider_error"
    NETWORK_ERROR = "network_error"


WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

# Type aliases
JSONDict = dict[str, Any]
