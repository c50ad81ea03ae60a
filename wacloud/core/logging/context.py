"""
Dispatch context management using contextvars for automatic propagation.

The webhook dispatcher sets the business phone number id and the conversation
id while it processes each extracted event; loggers pick them up without
parameter passing. Each asyncio task gets its own copy of the context.
"""

from contextvars import ContextVar

_phone_context: ContextVar[str | None] = ContextVar(
    "phone_number_id", default=None
)  # From webhook metadata
_conversation_context: ContextVar[str | None] = ContextVar(
    "conversation_id", default=None
)  # From webhook message/status


def set_dispatch_context(
    phone_number_id: str | None = None,
    conversation_id: str | None = None,
) -> None:
    """
    Set the dispatch context for the current async context.

    Args:
        phone_number_id: Business phone number id from the webhook metadata
        conversation_id: Remote party address the event belongs to
    """
    if phone_number_id is not None:
        _phone_context.set(phone_number_id)
    if conversation_id is not None:
        _conversation_context.set(conversation_id)


def get_current_phone_context() -> str | None:
    """Get the current business phone number id, or None if not set."""
    return _phone_context.get()


def get_current_conversation_context() -> str | None:
    """Get the current conversation id, or None if not set."""
    return _conversation_context.get()


def clear_dispatch_context() -> None:
    """Clear the dispatch context."""
    _phone_context.set(None)
    _conversation_context.set(None)


def get_context_info() -> dict[str, str | None]:
    """
    Get current context information for debugging.

    Returns:
        Dictionary with current phone_number_id and conversation_id
    """
    return {
        "phone_number_id": get_current_phone_context(),
        "conversation_id": get_current_conversation_context(),
    }
