"""
WhatsAppCloud: the owning component for one WhatsApp business number.

Wires the REST client, messenger, conversation state, message storage,
outbound queue, delivery worker, notifications and webhook dispatcher, and
runs the background tasks (queued delivery, storage cleanup) between start()
and stop().
"""

import asyncio
from typing import Any

import aiohttp

from wacloud.core.config.models import WhatsAppConfig
from wacloud.core.events.event_dispatcher import WebhookDispatcher, WebhookMiddleware
from wacloud.core.events.handlers import EventHandler, HandlerKind, WebhookHandlers
from wacloud.core.events.notifications import (
    NotificationBus,
    NotificationCallback,
    NotificationType,
)
from wacloud.core.logging.logger import get_logger
from wacloud.domain.interfaces.message_storage import IMessageStorage
from wacloud.messaging.queue.outbound_queue import OutboundDeliveryWorker, OutboundQueue
from wacloud.messaging.whatsapp.client.whatsapp_client import WhatsAppClient
from wacloud.messaging.whatsapp.messenger.whatsapp_messenger import WhatsAppMessenger
from wacloud.persistence.storage_factory import create_message_storage
from wacloud.schemas.conversation import ConversationState
from wacloud.schemas.messages import MessageStatistics, QueueStats, StoredMessage, now_ms
from wacloud.schemas.webhook.request import UniversalRequest
from wacloud.schemas.webhook.result import WebhookResult
from wacloud.state.conversation_state import ConversationStateManager

MS_PER_DAY = 24 * 60 * 60 * 1000


class WhatsAppCloud:
    """
    WhatsApp Cloud API adapter with webhook dispatch and tracked outbound sends.

    Example:
        cloud = WhatsAppCloud(WhatsAppConfig.from_settings())

        @cloud.on(HandlerKind.MESSAGE)
        async def on_message(event):
            await cloud.messenger.send_text(f"Echo: {event.get_text()}", event.wa_id)

        async with cloud:
            result = await cloud.process_webhook(request)
    """

    def __init__(
        self,
        config: WhatsAppConfig,
        session: aiohttp.ClientSession | None = None,
        storage: IMessageStorage | None = None,
    ):
        self.config = config
        self.logger = get_logger(__name__)

        self._session = session
        self._owns_session = False
        self._cleanup_task: asyncio.Task | None = None

        self.notifications = NotificationBus()
        self.statistics = MessageStatistics()
        self.state = ConversationStateManager()
        self.storage = (
            storage if storage is not None else create_message_storage(config.storage)
        )

        self.client = WhatsAppClient(
            session=session,
            access_token=config.access_token,
            phone_number_id=config.phone_number_id,
            api_version=config.api_version,
            base_url=config.base_url,
            request_timeout=config.request_timeout,
            max_retries=config.max_retries,
        )

        self.queue = OutboundQueue(config.max_queue_size) if config.queue_enabled else None
        self.messenger = WhatsAppMessenger(
            client=self.client,
            storage=self.storage,
            notifications=self.notifications,
            queue=self.queue,
            statistics=self.statistics,
        )
        self.worker = (
            OutboundDeliveryWorker(
                self.queue,
                self.messenger.deliver_queued,
                self.notifications,
                max_retries=config.max_retries,
            )
            if self.queue is not None
            else None
        )

        self.dispatcher = WebhookDispatcher(
            config,
            state=self.state,
            storage=self.storage,
            messenger=self.messenger,
            notifications=self.notifications,
            statistics=self.statistics,
        )

    # Lifecycle

    @property
    def is_running(self) -> bool:
        return (self.worker is not None and self.worker.is_running) or (
            self._cleanup_task is not None and not self._cleanup_task.done()
        )

    async def start(self) -> None:
        """Open the HTTP session if needed and start background tasks."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        self.client.session = self._session

        if self.worker is not None:
            self.worker.start()

        if self.config.storage.auto_cleanup and self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(
                self._storage_cleanup_loop(), name="wacloud-storage-cleanup"
            )

        self.logger.info(
            f"🚀 WhatsAppCloud started for phone_id {self.config.phone_number_id} "
            f"(queue: {'on' if self.worker else 'off'}, "
            f"cleanup: {'on' if self._cleanup_task else 'off'})"
        )

    async def stop(self) -> None:
        """Stop background tasks and close the session if we opened it."""
        if self.worker is not None:
            await self.worker.stop()

        if self._cleanup_task is not None:
            task, self._cleanup_task = self._cleanup_task, None
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
            self.client.session = None
            self._owns_session = False

        self.logger.info("WhatsAppCloud stopped")

    async def __aenter__(self) -> "WhatsAppCloud":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def cleanup_storage(self) -> int:
        """Delete stored messages older than the retention window."""
        cutoff = now_ms() - self.config.storage.retention_days * MS_PER_DAY
        deleted = await self.storage.cleanup(cutoff)
        if deleted:
            await self.notifications.emit(
                NotificationType.STORAGE_CLEANED, {"deleted_count": deleted}
            )
        return deleted

    async def _storage_cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.storage.cleanup_interval)
            try:
                await self.cleanup_storage()
            except Exception as e:
                self.logger.error(f"Storage cleanup error: {e}", exc_info=True)

    # Webhooks

    async def process_webhook(self, request: UniversalRequest) -> WebhookResult:
        return await self.dispatcher.process_webhook(request)

    def set_handlers(
        self, handlers: WebhookHandlers | dict[str, EventHandler]
    ) -> None:
        self.dispatcher.set_handlers(handlers)

    def on(self, kind: HandlerKind | str, handler: EventHandler | None = None):
        """Register a webhook handler; usable as a decorator."""
        return self.dispatcher.on(kind, handler)

    def use(self, middleware: WebhookMiddleware) -> None:
        self.dispatcher.use(middleware)

    def on_notification(
        self, event: NotificationType | str, callback: NotificationCallback
    ) -> None:
        self.notifications.subscribe(event, callback)

    # Conversations and messages

    async def get_conversation_history(
        self, conversation_id: str, limit: int = 50, offset: int = 0
    ) -> list[StoredMessage]:
        return await self.storage.get_messages(conversation_id, limit, offset)

    async def search_messages(
        self, query: str, conversation_id: str | None = None
    ) -> list[StoredMessage]:
        return await self.storage.search(query, conversation_id)

    def get_conversation_state(self, conversation_id: str) -> ConversationState | None:
        return self.state.get(conversation_id)

    def update_conversation_context(
        self, conversation_id: str, context: dict[str, Any]
    ) -> ConversationState:
        return self.state.merge_context(conversation_id, context)

    def get_statistics(self) -> MessageStatistics:
        """Snapshot of the sent/received/failed/delivered/read counters."""
        return self.statistics.model_copy()

    def get_queue_stats(self) -> QueueStats | None:
        return self.queue.stats() if self.queue is not None else None
