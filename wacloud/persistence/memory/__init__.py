"""In-memory persistence backend."""

from .message_storage import MemoryMessageStorage

__all__ = ["MemoryMessageStorage"]
