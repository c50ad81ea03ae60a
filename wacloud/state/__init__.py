"""Conversation state tracking."""

from .conversation_state import ConversationStateManager

__all__ = ["ConversationStateManager"]
