"""
In-memory message storage.

Messages live in a dict keyed by local id plus a per-conversation index of ids
in insertion order. Nothing survives a process restart.
"""

import asyncio

from wacloud.core.logging.logger import get_logger
from wacloud.domain.interfaces.message_storage import IMessageStorage
from wacloud.schemas.core.types import DeliveryStatus
from wacloud.schemas.messages import StoredMessage


class MemoryMessageStorage(IMessageStorage):
    """Dict-backed IMessageStorage with an optional per-conversation cap."""

    def __init__(self, max_messages_per_conversation: int | None = None):
        self._messages: dict[str, StoredMessage] = {}
        self._conversation_index: dict[str, list[str]] = {}
        self._max_per_conversation = max_messages_per_conversation
        self._lock = asyncio.Lock()
        self.logger = get_logger(__name__)

    async def store_message(self, message: StoredMessage) -> str:
        async with self._lock:
            stored = message.model_copy(deep=True)
            is_new = stored.id not in self._messages
            self._messages[stored.id] = stored

            if is_new:
                ids = self._conversation_index.setdefault(stored.conversation_id, [])
                ids.append(stored.id)
                self._trim(ids)

            return stored.id

    def _trim(self, ids: list[str]) -> None:
        # Drops the oldest entries of one conversation beyond the cap
        if not self._max_per_conversation:
            return
        overflow = len(ids) - self._max_per_conversation
        if overflow > 0:
            for message_id in ids[:overflow]:
                self._messages.pop(message_id, None)
            del ids[:overflow]
            self.logger.debug(f"Trimmed {overflow} message(s) over conversation cap")

    async def get_messages(
        self, conversation_id: str, limit: int = 50, offset: int = 0
    ) -> list[StoredMessage]:
        ids = self._conversation_index.get(conversation_id, [])
        page = [
            self._messages[message_id].model_copy(deep=True)
            for message_id in ids[offset : offset + limit]
            if message_id in self._messages
        ]
        return sorted(page, key=lambda m: m.timestamp, reverse=True)

    async def get_message(self, message_id: str) -> StoredMessage | None:
        message = self._messages.get(message_id)
        return message.model_copy(deep=True) if message else None

    async def update_status(self, message_id: str, status: DeliveryStatus) -> bool:
        async with self._lock:
            message = self._messages.get(message_id)
            if message is None:
                return False
            message.status = DeliveryStatus(status)
            return True

    async def search(
        self, query: str, conversation_id: str | None = None
    ) -> list[StoredMessage]:
        term = query.lower()
        results: list[StoredMessage] = []

        for message in list(self._messages.values()):
            if conversation_id and message.conversation_id != conversation_id:
                continue

            if (
                message.type == "text"
                and isinstance(message.content, str)
                and term in message.content.lower()
            ):
                results.append(message.model_copy(deep=True))
                continue

            if term in message.model_dump_json().lower():
                results.append(message.model_copy(deep=True))

        return sorted(results, key=lambda m: m.timestamp, reverse=True)

    async def cleanup(self, older_than_ms: int) -> int:
        async with self._lock:
            expired = [
                message
                for message in self._messages.values()
                if message.timestamp < older_than_ms
            ]
            for message in expired:
                del self._messages[message.id]
                ids = self._conversation_index.get(message.conversation_id)
                if ids and message.id in ids:
                    ids.remove(message.id)
                    if not ids:
                        del self._conversation_index[message.conversation_id]

        if expired:
            self.logger.info(f"Cleaned up {len(expired)} expired message(s)")
        return len(expired)

    def __len__(self) -> int:
        return len(self._messages)
