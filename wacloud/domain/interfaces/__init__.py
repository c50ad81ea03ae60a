"""Storage contracts implemented by persistence backends."""

from .message_storage import IMessageStorage

__all__ = ["IMessageStorage"]
