"""Webhook dispatch and outbound notification events."""

from .event_dispatcher import WebhookDispatcher
from .handlers import HandlerKind, WebhookHandlers, resolve_handler_kinds
from .notifications import NotificationBus, NotificationType

__all__ = [
    "HandlerKind",
    "NotificationBus",
    "NotificationType",
    "WebhookDispatcher",
    "WebhookHandlers",
    "resolve_handler_kinds",
]
