"""
Message storage interface.

Defines the contract every message store backend implements. The dispatcher
and messenger only ever talk to this interface.
"""

from abc import ABC, abstractmethod

from wacloud.schemas.core.types import DeliveryStatus
from wacloud.schemas.messages import StoredMessage


class IMessageStorage(ABC):
    """
    Interface for inbound/outbound message persistence.

    Implementations must be safe to call from concurrent tasks.
    """

    @abstractmethod
    async def store_message(self, message: StoredMessage) -> str:
        """
        Store a message, updating it in place if its id already exists.

        Args:
            message: Message to store

        Returns:
            The stored message id
        """
        pass

    @abstractmethod
    async def get_messages(
        self, conversation_id: str, limit: int = 50, offset: int = 0
    ) -> list[StoredMessage]:
        """
        Get a page of a conversation's messages, newest first.

        Args:
            conversation_id: Remote party address
            limit: Page size
            offset: Number of messages to skip, in insertion order

        Returns:
            Stored messages sorted by timestamp descending
        """
        pass

    @abstractmethod
    async def get_message(self, message_id: str) -> StoredMessage | None:
        """Get one message by local id."""
        pass

    @abstractmethod
    async def update_status(self, message_id: str, status: DeliveryStatus) -> bool:
        """
        Update the delivery status of a stored message.

        Returns:
            True if the message exists
        """
        pass

    @abstractmethod
    async def search(
        self, query: str, conversation_id: str | None = None
    ) -> list[StoredMessage]:
        """Case-insensitive substring search, newest first."""
        pass

    @abstractmethod
    async def cleanup(self, older_than_ms: int) -> int:
        """
        Delete messages with a timestamp before ``older_than_ms``.

        Returns:
            Number of deleted messages
        """
        pass
