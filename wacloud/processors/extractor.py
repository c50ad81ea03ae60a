"""
Webhook envelope extraction.

Flattens the nested entry -> change -> value structure into an ordered list of
ExtractedEvent records: one per inbound message, one per status update and one
per top-level error. Envelope order is preserved and nothing is deduplicated.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from wacloud.core.logging.logger import get_logger
from wacloud.schemas.core.types import MessageType
from wacloud.schemas.webhook.envelope import ChangeValue, WebhookEnvelope
from wacloud.schemas.webhook.events import (
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

UNKNOWN = "unknown"

# First match wins. The order is a fixed policy: "audio" is checked before
# "voice" even though the two dispatch to different handlers.
MESSAGE_TYPE_FIELDS: tuple[tuple[str, MessageType], ...] = (
    ("text", MessageType.TEXT),
    ("image", MessageType.IMAGE),
    ("video", MessageType.VIDEO),
    ("audio", MessageType.AUDIO),
    ("voice", MessageType.VOICE),
    ("document", MessageType.DOCUMENT),
    ("sticker", MessageType.STICKER),
    ("location", MessageType.LOCATION),
    ("contacts", MessageType.CONTACT),
    ("interactive", MessageType.INTERACTIVE),
    ("reaction", MessageType.REACTION),
)

_MEDIA_FIELDS = ("image", "video", "audio", "voice", "document", "sticker")


def parse_provider_timestamp(value: Any) -> datetime:
    """
    Convert provider epoch seconds to a UTC datetime with millisecond precision.

    Missing or malformed values fall back to the current time.
    """
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        seconds = datetime.now(UTC).timestamp()
    millis = int(round(seconds * 1000))
    return datetime.fromtimestamp(millis / 1000, tz=UTC)


def determine_message_type(message: dict[str, Any]) -> MessageType:
    """Detect the message sub-type by the first present content field."""
    for field_name, message_type in MESSAGE_TYPE_FIELDS:
        if message.get(field_name):
            return message_type
    return MessageType.UNKNOWN


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _interactive_content(interactive: dict[str, Any]) -> InteractiveContent:
    reply_id = reply_title = None
    reply_type = interactive.get("type")
    reply = interactive.get(reply_type) if isinstance(reply_type, str) else None
    if isinstance(reply, dict):
        reply_id = reply.get("id")
        reply_title = reply.get("title")
    return InteractiveContent(
        interactive=interactive, reply_id=reply_id, reply_title=reply_title
    )


def extract_message_content(message: dict[str, Any]):
    """Build the tagged content variant for an inbound message."""
    message_type = determine_message_type(message)

    if message_type is MessageType.TEXT:
        text = message["text"]
        body = text.get("body", "") if isinstance(text, dict) else str(text)
        return TextContent(text=body)

    if message_type.value in _MEDIA_FIELDS:
        media = _as_dict(message.get(message_type.value))
        return MediaContent(
            media_type=message_type.value,
            id=media.get("id"),
            caption=media.get("caption"),
            mime_type=media.get("mime_type"),
            sha256=media.get("sha256"),
            file_size=media.get("file_size"),
            filename=media.get("filename"),
        )

    if message_type is MessageType.LOCATION:
        location = _as_dict(message["location"])
        return LocationContent(
            latitude=location.get("latitude"),
            longitude=location.get("longitude"),
            name=location.get("name"),
            address=location.get("address"),
        )

    if message_type is MessageType.CONTACT:
        contacts = message["contacts"]
        return ContactsContent(
            contacts=[c for c in contacts if isinstance(c, dict)]
            if isinstance(contacts, list)
            else []
        )

    if message_type is MessageType.INTERACTIVE:
        return _interactive_content(_as_dict(message["interactive"]))

    if message_type is MessageType.REACTION:
        reaction = _as_dict(message["reaction"])
        return ReactionContent(
            message_id=reaction.get("message_id"), emoji=reaction.get("emoji")
        )

    return EmptyContent()


class WebhookExtractor:
    """Pure transformation from a WebhookEnvelope to ExtractedEvent records."""

    logger = get_logger(__name__)

    @classmethod
    def extract(
        cls, envelope: WebhookEnvelope | dict[str, Any]
    ) -> list[ExtractedEvent]:
        """
        Extract every sub-event of an envelope in envelope order.

        Args:
            envelope: Parsed envelope model or the raw JSON dict

        Returns:
            Messages, then statuses, then errors for each change, entry by entry
        """
        if not isinstance(envelope, WebhookEnvelope):
            envelope = WebhookEnvelope.model_validate(envelope)

        events: list[ExtractedEvent] = []
        for entry in envelope.entry:
            for change in entry.changes:
                events.extend(cls._extract_change(change.value))

        cls.logger.debug(f"Extracted {len(events)} event(s) from webhook envelope")
        return events

    @classmethod
    def _base_fields(cls, value: ChangeValue) -> dict[str, Any]:
        metadata = value.metadata
        contact = value.contacts[0] if value.contacts else None
        wa_id = contact.wa_id if contact else UNKNOWN
        return {
            "phone_number_id": metadata.phone_number_id if metadata else UNKNOWN,
            "display_phone_number": (
                metadata.display_phone_number if metadata else UNKNOWN
            ),
            "wa_id": wa_id,
            "display_name": contact.display_name if contact else UNKNOWN,
            "conversation_id": wa_id,
            "raw": value.model_dump(mode="json", exclude_none=True),
        }

    @classmethod
    def _extract_change(cls, value: ChangeValue) -> list[ExtractedEvent]:
        base = cls._base_fields(value)
        builders = (
            [(cls._message_event, message) for message in value.messages]
            + [(cls._status_event, status) for status in value.statuses]
            + [(cls._system_error_event, error) for error in value.errors]
        )

        events: list[ExtractedEvent] = []
        for build, item in builders:
            try:
                events.append(build(base, item))
            except ValidationError as e:
                # One malformed record never costs the rest of the batch
                cls.logger.warning(
                    f"Skipping malformed webhook record {item.get('id') or '-'}: "
                    f"{e.error_count()} validation error(s)"
                )
        return events

    @classmethod
    def _message_content(cls, message: dict[str, Any]):
        try:
            return extract_message_content(message)
        except ValidationError as e:
            cls.logger.warning(
                f"Unreadable {determine_message_type(message).value} content in "
                f"{message.get('id') or '-'} ({e.error_count()} error(s)), "
                f"keeping the message without content"
            )
            return EmptyContent()

    @classmethod
    def _message_event(
        cls, base: dict[str, Any], message: dict[str, Any]
    ) -> ExtractedEvent:
        message_type = determine_message_type(message)
        return ExtractedEvent(
            **{
                **base,
                "conversation_id": message.get("from") or base["conversation_id"],
            },
            event_type=f"message:{message_type.value}",
            timestamp=parse_provider_timestamp(message.get("timestamp")),
            message_id=message.get("id"),
            content=cls._message_content(message),
            context=_as_dict(message.get("context")) or None,
        )

    @classmethod
    def _status_event(
        cls, base: dict[str, Any], status: dict[str, Any]
    ) -> ExtractedEvent:
        status_value = str(status.get("status") or UNKNOWN)
        timestamp = parse_provider_timestamp(status.get("timestamp"))
        errors = status.get("errors")
        first_error = errors[0] if isinstance(errors, list) and errors else None
        return ExtractedEvent(
            **{
                **base,
                "conversation_id": status.get("recipient_id")
                or base["conversation_id"],
            },
            event_type=f"status:{status_value}",
            timestamp=timestamp,
            message_id=status.get("id"),
            status=StatusInfo(
                status=status_value,
                timestamp=timestamp,
                conversation=status.get("conversation"),
                pricing=status.get("pricing"),
            ),
            error=cls._error_info(first_error) if first_error is not None else None,
        )

    @classmethod
    def _system_error_event(
        cls, base: dict[str, Any], error: dict[str, Any]
    ) -> ExtractedEvent:
        return ExtractedEvent(
            **base,
            event_type="system:webhook_error",
            timestamp=datetime.now(UTC),
            error=cls._error_info(error),
        )

    @staticmethod
    def _error_info(error: Any) -> EventErrorInfo:
        error = _as_dict(error)
        error_data = error.get("error_data") or {}
        return EventErrorInfo(
            code=error.get("code"),
            title=error.get("title"),
            message=error.get("message"),
            details=error_data.get("details") if isinstance(error_data, dict) else None,
        )
