"""
WhatsApp messenger: outbound sends with message store tracking.

Every direct send stores a pending StoredMessage, calls the API, then updates
the same record to sent (with the provider message id) or failed (with the
error) and emits message_sent / message_failed. Passing ``queue=True`` admits
the payload to the outbound queue instead of sending it now.
"""

from typing import Any

from wacloud.core.events.notifications import NotificationBus, NotificationType
from wacloud.core.logging.logger import get_logger
from wacloud.domain.interfaces.message_storage import IMessageStorage
from wacloud.messaging.queue.outbound_queue import OutboundQueue
from wacloud.messaging.whatsapp.client.whatsapp_client import WhatsAppClient
from wacloud.messaging.whatsapp.utils.error_helpers import (
    handle_whatsapp_error,
    stored_error_for,
)
from wacloud.schemas.core.types import (
    SENDABLE_MEDIA_TYPES,
    DeliveryStatus,
    MessageDirection,
)
from wacloud.schemas.messages import (
    MediaDescriptor,
    MessageResult,
    MessageStatistics,
    QueueItem,
    StoredMessage,
    generate_local_id,
)

MAX_REPLY_BUTTONS = 3
MAX_LIST_SECTIONS = 10


def _media_object(media: str) -> dict[str, str]:
    """URLs are sent as ``link``, anything else as an uploaded media ``id``."""
    if media.startswith(("http://", "https://")):
        return {"link": media}
    return {"id": media}


def _provider_message_id(response: dict[str, Any]) -> str | None:
    messages = response.get("messages") or [{}]
    return messages[0].get("id") if isinstance(messages[0], dict) else None


class WhatsAppMessenger:
    """
    Outbound messaging for one business phone number.

    Uses composition:
    - WhatsAppClient: HTTP calls to the Cloud API
    - IMessageStorage: pending/sent/failed tracking of outgoing messages
    - OutboundQueue: optional deferred delivery
    - NotificationBus: sent/failed/read notifications
    """

    def __init__(
        self,
        client: WhatsAppClient,
        storage: IMessageStorage,
        notifications: NotificationBus | None = None,
        queue: OutboundQueue | None = None,
        statistics: MessageStatistics | None = None,
    ):
        self.client = client
        self.storage = storage
        self.notifications = notifications or NotificationBus()
        self.queue = queue
        self.statistics = statistics or MessageStatistics()
        self.logger = get_logger(__name__)

    @staticmethod
    def _base_payload(recipient: str, message_type: str) -> dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": recipient,
            "type": message_type,
        }

    async def _send(
        self,
        recipient: str,
        message_type: str,
        payload: dict[str, Any],
        content: Any,
        *,
        reply_to_message_id: str | None = None,
        media: MediaDescriptor | None = None,
        queue: bool = False,
        priority: int = 0,
    ) -> MessageResult:
        if reply_to_message_id:
            payload["context"] = {"message_id": reply_to_message_id}

        if queue:
            return self.queue_message(recipient, message_type, payload, priority)

        stored = StoredMessage(
            id=generate_local_id("out"),
            conversation_id=recipient,
            direction=MessageDirection.OUTGOING,
            type=message_type,
            content=content,
            status=DeliveryStatus.PENDING,
            media=media,
        )
        await self.storage.store_message(stored)

        try:
            self.logger.debug(f"Sending {message_type} message to {recipient}")
            response = await self.client.post_request(payload)
        except Exception as e:
            stored.status = DeliveryStatus.FAILED
            stored.error = stored_error_for(e)
            await self.storage.store_message(stored)

            self.statistics.failed += 1
            await self.notifications.emit(
                NotificationType.MESSAGE_FAILED,
                {
                    "to": recipient,
                    "error": str(e),
                    "type": message_type,
                    "stored_id": stored.id,
                },
            )
            result = handle_whatsapp_error(
                e, f"send {message_type} message", recipient, self.logger
            )
            result.stored_id = stored.id
            return result

        message_id = _provider_message_id(response)
        stored.provider_message_id = message_id
        stored.status = DeliveryStatus.SENT
        await self.storage.store_message(stored)

        self.statistics.sent += 1
        self.logger.info(
            f"{message_type.capitalize()} message sent to {recipient}, id: {message_id}"
        )
        await self.notifications.emit(
            NotificationType.MESSAGE_SENT,
            {
                "to": recipient,
                "message_id": message_id,
                "type": message_type,
                "stored_id": stored.id,
            },
        )
        return MessageResult(
            success=True,
            message_id=message_id,
            stored_id=stored.id,
            recipient=recipient,
            raw_response=response,
        )

    # Queue

    def queue_message(
        self,
        recipient: str,
        message_type: str,
        payload: dict[str, Any],
        priority: int = 0,
    ) -> MessageResult:
        """Admit a prepared payload to the outbound queue."""
        if self.queue is None:
            return MessageResult(
                success=False,
                queued=True,
                recipient=recipient,
                error="Outbound queue is disabled",
                error_code="queue_disabled",
            )

        queue_id = generate_local_id("queue")
        if not self.queue.enqueue(
            recipient, message_type, payload, priority=priority, item_id=queue_id
        ):
            return MessageResult(
                success=False,
                queued=True,
                recipient=recipient,
                error="Outbound queue is full",
                error_code="queue_full",
            )

        self.logger.debug(f"Queued {message_type} message {queue_id} for {recipient}")
        return MessageResult(
            success=True, queued=True, queue_id=queue_id, recipient=recipient
        )

    async def deliver_queued(self, item: QueueItem) -> str | None:
        """Deliver one queue item; errors propagate to the delivery worker."""
        response = await self.client.post_request(item.payload)
        self.statistics.sent += 1
        return _provider_message_id(response)

    # Basic messaging

    async def send_text(
        self,
        text: str,
        recipient: str,
        reply_to_message_id: str | None = None,
        preview_url: bool = False,
        queue: bool = False,
        priority: int = 0,
    ) -> MessageResult:
        """Send a text message.

        Args:
            text: Message body (1-4096 characters)
            recipient: Recipient phone number
            reply_to_message_id: Optional message id to reply to
            preview_url: Whether to render a URL preview
            queue: Admit to the outbound queue instead of sending now
            priority: Queue priority; > 0 jumps to the front

        Returns:
            MessageResult with operation status and ids
        """
        payload = self._base_payload(recipient, "text")
        payload["text"] = {"preview_url": preview_url, "body": text}
        return await self._send(
            recipient,
            "text",
            payload,
            text,
            reply_to_message_id=reply_to_message_id,
            queue=queue,
            priority=priority,
        )

    async def send_voice(
        self,
        audio: str,
        recipient: str,
        reply_to_message_id: str | None = None,
        queue: bool = False,
        priority: int = 0,
    ) -> MessageResult:
        """Send a voice note from an uploaded media id or a public URL."""
        media_object = _media_object(audio)
        payload = self._base_payload(recipient, "audio")
        payload["audio"] = media_object
        return await self._send(
            recipient,
            "voice",
            payload,
            {"audio": audio},
            reply_to_message_id=reply_to_message_id,
            media=MediaDescriptor(
                id=media_object.get("id"),
                url=media_object.get("link"),
                mime_type="audio/mpeg",
                file_name="voice_message.mp3",
            ),
            queue=queue,
            priority=priority,
        )

    async def send_media(
        self,
        media_type: str,
        media: str,
        recipient: str,
        caption: str | None = None,
        filename: str | None = None,
        reply_to_message_id: str | None = None,
        queue: bool = False,
        priority: int = 0,
    ) -> MessageResult:
        """Send image, video, audio or document media.

        Args:
            media_type: One of image, video, audio, document
            media: Uploaded media id or public URL
            recipient: Recipient phone number
            caption: Caption for image, video and document media
            filename: File name shown for documents

        Raises:
            ValueError: For any other media type
        """
        if media_type not in SENDABLE_MEDIA_TYPES:
            raise ValueError(
                f"Invalid media type. Must be one of: {', '.join(SENDABLE_MEDIA_TYPES)}"
            )

        media_object: dict[str, str] = _media_object(media)
        if caption and media_type in ("image", "video", "document"):
            media_object["caption"] = caption
        if filename and media_type == "document":
            media_object["filename"] = filename

        payload = self._base_payload(recipient, media_type)
        payload[media_type] = media_object
        return await self._send(
            recipient,
            media_type,
            payload,
            {"media": media, "caption": caption},
            reply_to_message_id=reply_to_message_id,
            media=MediaDescriptor(
                id=media_object.get("id"),
                url=media_object.get("link"),
                file_name=filename,
            ),
            queue=queue,
            priority=priority,
        )

    async def send_location(
        self,
        latitude: float,
        longitude: float,
        recipient: str,
        name: str | None = None,
        address: str | None = None,
        reply_to_message_id: str | None = None,
        queue: bool = False,
        priority: int = 0,
    ) -> MessageResult:
        if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
            raise ValueError(f"Invalid coordinates: {latitude}, {longitude}")

        location: dict[str, Any] = {"latitude": latitude, "longitude": longitude}
        if name:
            location["name"] = name
        if address:
            location["address"] = address

        payload = self._base_payload(recipient, "location")
        payload["location"] = location
        return await self._send(
            recipient,
            "location",
            payload,
            location,
            reply_to_message_id=reply_to_message_id,
            queue=queue,
            priority=priority,
        )

    async def send_reaction(
        self,
        message_id: str,
        emoji: str,
        recipient: str,
        queue: bool = False,
        priority: int = 0,
    ) -> MessageResult:
        """React to a message; an empty emoji removes the reaction."""
        payload = self._base_payload(recipient, "reaction")
        payload["reaction"] = {"message_id": message_id, "emoji": emoji}
        return await self._send(
            recipient,
            "reaction",
            payload,
            {"message_id": message_id, "emoji": emoji},
            queue=queue,
            priority=priority,
        )

    async def send_template(
        self,
        template_name: str,
        recipient: str,
        language_code: str = "en_US",
        components: list[dict[str, Any]] | None = None,
        queue: bool = False,
        priority: int = 0,
    ) -> MessageResult:
        """Send an approved business template."""
        template = {
            "name": template_name,
            "language": {"code": language_code},
            "components": components or [],
        }
        payload = self._base_payload(recipient, "template")
        payload["template"] = template
        return await self._send(
            recipient,
            "template",
            payload,
            template,
            queue=queue,
            priority=priority,
        )

    # Interactive messaging

    @staticmethod
    def _interactive(
        interactive_type: str,
        body: str,
        action: dict[str, Any],
        header: str | None,
        footer: str | None,
    ) -> dict[str, Any]:
        interactive: dict[str, Any] = {
            "type": interactive_type,
            "body": {"text": body},
            "action": action,
        }
        if header:
            interactive["header"] = {"type": "text", "text": header}
        if footer:
            interactive["footer"] = {"text": footer}
        return interactive

    async def send_buttons(
        self,
        body: str,
        buttons: list[dict[str, str]],
        recipient: str,
        header: str | None = None,
        footer: str | None = None,
        reply_to_message_id: str | None = None,
        queue: bool = False,
        priority: int = 0,
    ) -> MessageResult:
        """Send up to 3 quick-reply buttons, each given as {"id", "title"}."""
        if not 1 <= len(buttons) <= MAX_REPLY_BUTTONS:
            raise ValueError(f"Between 1 and {MAX_REPLY_BUTTONS} buttons are required")

        action = {
            "buttons": [
                {"type": "reply", "reply": {"id": b["id"], "title": b["title"]}}
                for b in buttons
            ]
        }
        payload = self._base_payload(recipient, "interactive")
        payload["interactive"] = self._interactive("button", body, action, header, footer)
        return await self._send(
            recipient,
            "interactive",
            payload,
            payload["interactive"],
            reply_to_message_id=reply_to_message_id,
            queue=queue,
            priority=priority,
        )

    async def send_list(
        self,
        body: str,
        button_text: str,
        sections: list[dict[str, Any]],
        recipient: str,
        header: str | None = None,
        footer: str | None = None,
        reply_to_message_id: str | None = None,
        queue: bool = False,
        priority: int = 0,
    ) -> MessageResult:
        """Send a sectioned list menu (max 10 sections)."""
        if not 1 <= len(sections) <= MAX_LIST_SECTIONS:
            raise ValueError(
                f"Between 1 and {MAX_LIST_SECTIONS} list sections are required"
            )

        action = {"button": button_text, "sections": sections}
        payload = self._base_payload(recipient, "interactive")
        payload["interactive"] = self._interactive("list", body, action, header, footer)
        return await self._send(
            recipient,
            "interactive",
            payload,
            payload["interactive"],
            reply_to_message_id=reply_to_message_id,
            queue=queue,
            priority=priority,
        )

    # Read receipts and media

    async def mark_as_read(self, message_id: str) -> MessageResult:
        """Mark an inbound message as read."""
        try:
            await self.client.post_request(
                {
                    "messaging_product": "whatsapp",
                    "status": "read",
                    "message_id": message_id,
                }
            )
        except Exception as e:
            return handle_whatsapp_error(e, "mark as read", message_id, self.logger)

        self.statistics.read += 1
        self.logger.debug(f"Message {message_id} marked as read")
        await self.notifications.emit(
            NotificationType.MESSAGE_READ, {"message_id": message_id}
        )
        return MessageResult(success=True, message_id=message_id)

    async def get_media_url(self, media_id: str) -> MediaDescriptor:
        """Resolve an uploaded media id to its short-lived download URL."""
        response = await self.client.get_request(media_id)
        return MediaDescriptor(
            id=response.get("id", media_id),
            url=response.get("url"),
            mime_type=response.get("mime_type"),
            file_size=response.get("file_size"),
        )

    async def download_media(self, media_id: str) -> bytes:
        descriptor = await self.get_media_url(media_id)
        if not descriptor.url:
            raise ValueError(f"No download URL returned for media {media_id}")
        return await self.client.download_media(descriptor.url)

    async def upload_media(
        self, content: bytes, mime_type: str, filename: str = "upload"
    ) -> str:
        """Upload media bytes and return the media id to send by."""
        response = await self.client.upload_media(content, mime_type, filename)
        media_id = response.get("id")
        if not media_id:
            raise ValueError(f"Media upload returned no id: {response}")
        self.logger.info(f"Uploaded {mime_type} media {media_id}")
        return media_id
