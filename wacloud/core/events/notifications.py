"""
Outbound-side notification channel.

Observers subscribe to typed notifications (message sent, queued delivery
failed, storage cleaned...) and receive a plain payload dict. A failing
subscriber is logged and never affects the sender or other subscribers.
"""

import inspect
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from wacloud.core.logging.logger import get_logger

NotificationCallback = Callable[[dict[str, Any]], Awaitable[None] | None]


class NotificationType(str, Enum):
    MESSAGE_SENT = "message_sent"
    MESSAGE_FAILED = "message_failed"
    MESSAGE_READ = "message_read"
    QUEUED_MESSAGE_SENT = "queued_message_sent"
    QUEUED_MESSAGE_FAILED = "queued_message_failed"
    STORAGE_CLEANED = "storage_cleaned"


class NotificationBus:
    """
    Explicit publish/subscribe channel for outbound notifications.

    Example:
        bus = NotificationBus()
        bus.subscribe(NotificationType.MESSAGE_SENT, on_sent)
        await bus.emit(NotificationType.MESSAGE_SENT, {"to": "123", ...})
    """

    def __init__(self):
        self._subscribers: dict[NotificationType, list[NotificationCallback]] = {}
        self.logger = get_logger(__name__)

    def subscribe(
        self, event: NotificationType | str, callback: NotificationCallback
    ) -> None:
        """Register ``callback`` (sync or async) for ``event``."""
        self._subscribers.setdefault(NotificationType(event), []).append(callback)

    def unsubscribe(
        self, event: NotificationType | str, callback: NotificationCallback
    ) -> bool:
        """Remove a previously registered callback. Returns False if not found."""
        callbacks = self._subscribers.get(NotificationType(event), [])
        if callback in callbacks:
            callbacks.remove(callback)
            return True
        return False

    def subscriber_count(self, event: NotificationType | str) -> int:
        return len(self._subscribers.get(NotificationType(event), []))

    async def emit(self, event: NotificationType | str, payload: dict[str, Any]) -> int:
        """
        Deliver ``payload`` to every subscriber of ``event`` in registration order.

        Returns:
            Number of subscribers that completed without raising
        """
        event = NotificationType(event)
        delivered = 0

        for callback in list(self._subscribers.get(event, [])):
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                self.logger.error(
                    f"Notification subscriber failed for {event.value}: {e}",
                    exc_info=True,
                )

        return delivered
