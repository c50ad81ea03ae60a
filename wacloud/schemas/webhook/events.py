"""
Normalized event model produced by the webhook extractor.

One ExtractedEvent per inbound message, status update or top-level error.
Content is a tagged union keyed by ``kind`` so handlers can match on the
variant instead of probing optional fields.
"""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from wacloud.schemas.core.types import EventCategory


class TextContent(BaseModel):
    kind: Literal["text"] = "text"
    text: str = ""


class MediaContent(BaseModel):
    kind: Literal["media"] = "media"
    media_type: Literal["image", "video", "audio", "voice", "document", "sticker"]
    id: str | None = None
    caption: str | None = None
    mime_type: str | None = None
    sha256: str | None = None
    file_size: int | None = None
    filename: str | None = None


class LocationContent(BaseModel):
    kind: Literal["location"] = "location"
    latitude: float | None = None
    longitude: float | None = None
    name: str | None = None
    address: str | None = None


class ContactsContent(BaseModel):
    kind: Literal["contacts"] = "contacts"
    contacts: list[dict[str, Any]] = Field(default_factory=list)


class InteractiveContent(BaseModel):
    kind: Literal["interactive"] = "interactive"
    interactive: dict[str, Any] = Field(default_factory=dict)
    reply_id: str | None = Field(
        default=None, description="Selected button/list row id"
    )
    reply_title: str | None = Field(
        default=None, description="Selected button/list row title"
    )


class ReactionContent(BaseModel):
    kind: Literal["reaction"] = "reaction"
    message_id: str | None = None
    emoji: str | None = None


class EmptyContent(BaseModel):
    """Content of status, system and unrecognized message events."""

    kind: Literal["empty"] = "empty"


EventContent = Annotated[
    TextContent
    | MediaContent
    | LocationContent
    | ContactsContent
    | InteractiveContent
    | ReactionContent
    | EmptyContent,
    Field(discriminator="kind"),
]


class StatusInfo(BaseModel):
    """Delivery status carried by ``status:*`` events."""

    model_config = ConfigDict(extra="allow")

    status: str
    timestamp: datetime
    conversation: dict[str, Any] | None = None
    pricing: dict[str, Any] | None = None


class EventErrorInfo(BaseModel):
    """Provider error attached to a failed status or a system error event."""

    model_config = ConfigDict(extra="allow")

    code: int | None = None
    title: str | None = None
    message: str | None = None
    details: Any = None


class ExtractedEvent(BaseModel):
    """A single normalized sub-event of a webhook envelope."""

    event_type: str = Field(description='Namespaced type, e.g. "message:text"')
    timestamp: datetime
    phone_number_id: str = "unknown"
    display_phone_number: str = "unknown"
    wa_id: str = "unknown"
    display_name: str = "unknown"
    message_id: str | None = None
    conversation_id: str = "unknown"
    content: EventContent = Field(default_factory=EmptyContent)
    status: StatusInfo | None = None
    error: EventErrorInfo | None = None
    context: dict[str, Any] | None = Field(
        default=None, description="Reply/forward context of an inbound message"
    )
    raw: dict[str, Any] = Field(
        default_factory=dict, description="Change value the event came from"
    )

    @property
    def category(self) -> str:
        return self.event_type.split(":", 1)[0]

    @property
    def sub_type(self) -> str:
        parts = self.event_type.split(":", 1)
        return parts[1] if len(parts) > 1 else ""

    @property
    def is_message(self) -> bool:
        return self.category == EventCategory.MESSAGE.value

    @property
    def is_status(self) -> bool:
        return self.category == EventCategory.STATUS.value

    def get_text(self) -> str:
        """Text of a text message, caption of media, or selected reply title."""
        content = self.content
        if isinstance(content, TextContent):
            return content.text
        if isinstance(content, MediaContent):
            return content.caption or ""
        if isinstance(content, InteractiveContent):
            return content.reply_title or content.reply_id or ""
        return ""
