"""
wacloud - WhatsApp Cloud API client and webhook dispatcher

Receives webhook requests from any host framework, verifies and flattens
them into ExtractedEvents, tracks conversation state and dispatches to user
handlers. Outbound sends are tracked in a message store and can be queued
for background delivery with retries.
"""

from .core.config.models import StorageConfig, WebhookConfig, WhatsAppConfig
from .core.config.settings import settings
from .core.events.handlers import HandlerKind, WebhookHandlers
from .core.events.notifications import NotificationType
from .core.whatsapp_app import WhatsAppCloud
from .schemas.webhook.events import ExtractedEvent
from .schemas.webhook.request import UniversalRequest
from .schemas.webhook.result import WebhookResult

__version__ = settings.version

__all__ = [
    "WhatsAppCloud",
    "WhatsAppConfig",
    "WebhookConfig",
    "StorageConfig",
    "HandlerKind",
    "WebhookHandlers",
    "NotificationType",
    "ExtractedEvent",
    "UniversalRequest",
    "WebhookResult",
]
