"""
User handler registry and the event-type to handler dispatch table.
"""

import inspect
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from wacloud.schemas.core.types import MessageType
from wacloud.schemas.webhook.events import ExtractedEvent

EventHandler = Callable[[ExtractedEvent], Awaitable[Any] | Any]


class HandlerKind(str, Enum):
    MESSAGE = "message"
    MEDIA = "media"
    VOICE = "voice"
    LOCATION = "location"
    CONTACT = "contact"
    INTERACTIVE = "interactive"
    REACTION = "reaction"
    STATUS = "status"
    ERROR = "error"
    UNKNOWN = "unknown"


# Message sub-types that run a second, specialized handler after the generic one
_SPECIALIZED_HANDLERS: dict[str, HandlerKind] = {
    MessageType.IMAGE.value: HandlerKind.MEDIA,
    MessageType.VIDEO.value: HandlerKind.MEDIA,
    MessageType.AUDIO.value: HandlerKind.MEDIA,
    MessageType.DOCUMENT.value: HandlerKind.MEDIA,
    MessageType.STICKER.value: HandlerKind.MEDIA,
    MessageType.VOICE.value: HandlerKind.VOICE,
    MessageType.LOCATION.value: HandlerKind.LOCATION,
    MessageType.CONTACT.value: HandlerKind.CONTACT,
    MessageType.INTERACTIVE.value: HandlerKind.INTERACTIVE,
    MessageType.REACTION.value: HandlerKind.REACTION,
}


def resolve_handler_kinds(event_type: str) -> list[HandlerKind]:
    """
    Map a namespaced event type to the handler kinds it invokes, in call order.

    Examples:
        "message:text"         -> [MESSAGE]
        "message:image"        -> [MESSAGE, MEDIA]
        "status:delivered"     -> [STATUS]
        "system:webhook_error" -> [ERROR]
        "custom:thing"         -> [UNKNOWN]
    """
    category, _, sub_type = event_type.partition(":")

    if category == "message":
        specialized = _SPECIALIZED_HANDLERS.get(sub_type)
        if specialized:
            return [HandlerKind.MESSAGE, specialized]
        return [HandlerKind.MESSAGE]

    if category == "status":
        return [HandlerKind.STATUS]

    if event_type == "system:webhook_error":
        return [HandlerKind.ERROR]

    return [HandlerKind.UNKNOWN]


class WebhookHandlers(BaseModel):
    """
    Optional user callbacks per handler kind.

    Every callback receives the ExtractedEvent and may be sync or async.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    message: EventHandler | None = None
    media: EventHandler | None = None
    voice: EventHandler | None = None
    location: EventHandler | None = None
    contact: EventHandler | None = None
    interactive: EventHandler | None = None
    reaction: EventHandler | None = None
    status: EventHandler | None = None
    error: EventHandler | None = None
    unknown: EventHandler | None = None

    def get(self, kind: HandlerKind | str) -> EventHandler | None:
        return getattr(self, HandlerKind(kind).value)

    def merge(self, other: "WebhookHandlers | dict[str, EventHandler]") -> "WebhookHandlers":
        """Return a copy where handlers set in ``other`` replace ours."""
        if isinstance(other, dict):
            other = WebhookHandlers(**other)
        updates = {
            kind.value: handler
            for kind in HandlerKind
            if (handler := other.get(kind)) is not None
        }
        return self.model_copy(update=updates)

    def registered(self) -> list[HandlerKind]:
        return [kind for kind in HandlerKind if self.get(kind) is not None]


async def invoke_handler(handler: EventHandler, event: ExtractedEvent) -> Any:
    """Call a sync or async handler and await its result when needed."""
    result = handler(event)
    if inspect.isawaitable(result):
        result = await result
    return result
