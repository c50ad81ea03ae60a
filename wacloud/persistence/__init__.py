"""Message persistence backends."""

from .storage_factory import create_message_storage

__all__ = ["create_message_storage"]
