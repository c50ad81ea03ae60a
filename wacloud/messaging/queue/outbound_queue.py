"""
Bounded outbound message queue and its background delivery worker.

The queue is FIFO among equal priority; an item with priority > 0 jumps to
the front. Retries go to the back. Enqueue past capacity returns False
instead of raising.
"""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

from wacloud.core.events.notifications import NotificationBus, NotificationType
from wacloud.core.logging.logger import get_logger
from wacloud.schemas.messages import QueueItem, QueueStats, now_ms

# Delivers one queued payload and returns the provider message id
DeliverFn = Callable[[QueueItem], Awaitable[str | None]]


class OutboundQueue:
    """In-memory, single-level-priority queue with a hard size limit."""

    def __init__(self, max_size: int = 1000):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._items: deque[QueueItem] = deque()
        self.logger = get_logger(__name__)

    def enqueue(
        self,
        destination: str,
        type: str,
        payload: dict[str, Any],
        priority: int = 0,
        item_id: str | None = None,
    ) -> bool:
        """
        Admit a send to the queue.

        Returns:
            False when the queue is full; the queue is left unchanged
        """
        if len(self._items) >= self.max_size:
            self.logger.warning(
                f"Outbound queue full ({self.max_size}); rejecting {type} to {destination}"
            )
            return False

        fields: dict[str, Any] = {
            "destination": destination,
            "type": type,
            "payload": payload,
            "priority": priority,
        }
        if item_id:
            fields["id"] = item_id
        item = QueueItem(**fields)

        if priority > 0:
            self._items.appendleft(item)
        else:
            self._items.append(item)
        return True

    def requeue(self, item: QueueItem) -> bool:
        """Put a failed item back at the end of the queue, keeping its attempts."""
        if len(self._items) >= self.max_size:
            return False
        item.enqueued_at = now_ms()
        self._items.append(item)
        return True

    def dequeue(self) -> QueueItem | None:
        return self._items.popleft() if self._items else None

    @property
    def is_empty(self) -> bool:
        return not self._items

    def __len__(self) -> int:
        return len(self._items)

    def stats(self) -> QueueStats:
        size = len(self._items)
        return QueueStats(
            size=size,
            max_size=self.max_size,
            usage_percentage=size / self.max_size * 100,
        )

    def clear(self) -> int:
        dropped = len(self._items)
        self._items.clear()
        return dropped


class OutboundDeliveryWorker:
    """
    Background loop that delivers queued sends one at a time.

    A failed delivery increments the item's attempts and requeues it while
    attempts < max_retries; after that it is dropped and exactly one
    queued_message_failed notification is emitted.
    """

    def __init__(
        self,
        queue: OutboundQueue,
        deliver: DeliverFn,
        notifications: NotificationBus,
        max_retries: int = 3,
        idle_interval: float = 1.0,
        busy_interval: float = 0.1,
    ):
        self.queue = queue
        self.deliver = deliver
        self.notifications = notifications
        self.max_retries = max(1, max_retries)
        self.idle_interval = idle_interval
        self.busy_interval = busy_interval
        self._task: asyncio.Task | None = None
        self.logger = get_logger(__name__)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the delivery loop on the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="wacloud-outbound-delivery")
        self.logger.info("Started outbound delivery worker")

    async def stop(self) -> None:
        """Cancel the delivery loop and wait for it to exit."""
        if self._task is None:
            return
        task, self._task = self._task, None
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.logger.info("Stopped outbound delivery worker")

    async def _run(self) -> None:
        while True:
            try:
                delivered_any = await self.run_once()
            except Exception as e:
                self.logger.error(f"Outbound delivery loop error: {e}", exc_info=True)
                delivered_any = False
            await asyncio.sleep(
                self.busy_interval if delivered_any else self.idle_interval
            )

    async def run_once(self) -> bool:
        """
        Attempt delivery of one queued item.

        Returns:
            True if an item was dequeued, False if the queue was empty
        """
        item = self.queue.dequeue()
        if item is None:
            return False

        try:
            message_id = await self.deliver(item)
        except Exception as e:
            await self._handle_failure(item, e)
            return True

        self.logger.debug(f"Delivered queued {item.type} {item.id} to {item.destination}")
        await self.notifications.emit(
            NotificationType.QUEUED_MESSAGE_SENT,
            {"queue_id": item.id, "message_id": message_id, "type": item.type},
        )
        return True

    async def _handle_failure(self, item: QueueItem, error: Exception) -> None:
        item.attempts += 1

        if item.attempts < self.max_retries and self.queue.requeue(item):
            self.logger.info(
                f"Queued {item.type} {item.id} failed "
                f"(attempt {item.attempts}/{self.max_retries}): {error}; requeued"
            )
            return

        self.logger.warning(
            f"Queued {item.type} {item.id} to {item.destination} permanently failed "
            f"after {item.attempts} attempt(s): {error}"
        )
        await self.notifications.emit(
            NotificationType.QUEUED_MESSAGE_FAILED,
            {"queue_id": item.id, "error": str(error), "attempts": item.attempts},
        )
