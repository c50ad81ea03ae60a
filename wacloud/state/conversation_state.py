"""
In-memory conversation state tracking.

One ConversationState per remote party. Every update is a shallow merge of the
existing state and the incoming fields, refreshes ``last_activity`` and is
recorded in a per-conversation history. Each conversation's read-modify-write
runs under its own lock, so concurrent merges for the same id never lose
updates and different ids never block each other.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from wacloud.core.logging.logger import get_logger
from wacloud.schemas.conversation import ConversationState, ConversationStatistics
from wacloud.schemas.core.types import ConversationLifecycle
from wacloud.schemas.webhook.events import ExtractedEvent

UNKNOWN_CONVERSATION = "unknown"

_MUTABLE_FIELDS = frozenset(
    {
        "state",
        "message_count",
        "display_name",
        "metadata",
        "current_step",
        "context",
    }
)


class ConversationStateManager:
    """Keyed store from conversation id to mutable ConversationState."""

    def __init__(self, keep_history: bool = True):
        self._states: dict[str, ConversationState] = {}
        self._history: dict[str, list[ConversationState]] = {}
        self._keep_history = keep_history
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self.logger = get_logger(__name__)

    @contextmanager
    def _exclusive(self, conversation_id: str) -> Iterator[None]:
        """Exclusive-access scope for one conversation entry."""
        with self._locks_guard:
            lock = self._locks.setdefault(conversation_id, threading.Lock())
        with lock:
            yield

    def get(self, conversation_id: str) -> ConversationState | None:
        """Get a copy of the current state, or None for an unseen conversation."""
        state = self._states.get(conversation_id)
        return state.model_copy(deep=True) if state else None

    def _merge(
        self, conversation_id: str, updates: dict[str, Any]
    ) -> ConversationState:
        # Caller must hold the conversation lock
        unknown = set(updates) - _MUTABLE_FIELDS - {"id", "last_activity"}
        if unknown:
            raise ValueError(f"Unknown conversation state fields: {sorted(unknown)}")

        existing = self._states.get(conversation_id)
        merged: dict[str, Any] = (
            existing.model_dump() if existing else {"id": conversation_id}
        )
        merged.update(
            {k: v for k, v in updates.items() if k not in ("id", "last_activity")}
        )
        merged["id"] = conversation_id
        merged["last_activity"] = datetime.now(UTC)

        new_state = ConversationState.model_validate(merged)
        self._states[conversation_id] = new_state

        if self._keep_history:
            self._history.setdefault(conversation_id, []).append(
                new_state.model_copy(deep=True)
            )

        if existing is None:
            self.logger.debug(f"Created conversation state for {conversation_id}")
        return new_state.model_copy(deep=True)

    def update(
        self, conversation_id: str, partial: dict[str, Any] | None = None, **fields
    ) -> ConversationState:
        """
        Merge ``partial`` into the conversation's state (last write wins per field).

        Args:
            conversation_id: Remote party address
            partial: Fields to overwrite; also accepted as keyword arguments

        Returns:
            The new state
        """
        updates = {**(partial or {}), **fields}
        with self._exclusive(conversation_id):
            return self._merge(conversation_id, updates)

    def update_from_event(self, event: ExtractedEvent) -> ConversationState:
        """
        Apply an extracted event to its conversation.

        Inbound message events increment ``message_count``; every event refreshes
        activity and, when the sender's name is known, the display name.
        """
        conversation_id = event.conversation_id
        with self._exclusive(conversation_id):
            current = self._states.get(conversation_id)
            updates: dict[str, Any] = {}

            if event.display_name and event.display_name != UNKNOWN_CONVERSATION:
                updates["display_name"] = event.display_name
            elif current is None:
                updates["display_name"] = ""

            if event.is_message:
                updates["message_count"] = (current.message_count if current else 0) + 1

            return self._merge(conversation_id, updates)

    def set_step(self, conversation_id: str, step: str | None) -> ConversationState:
        """Set the current step of a multi-turn flow."""
        return self.update(conversation_id, {"current_step": step})

    def merge_context(
        self, conversation_id: str, context: dict[str, Any]
    ) -> ConversationState:
        """Shallow-merge ``context`` into the conversation's context map."""
        with self._exclusive(conversation_id):
            current = self._states.get(conversation_id)
            merged_context = {**(current.context if current else {}), **context}
            return self._merge(conversation_id, {"context": merged_context})

    def merge_metadata(
        self, conversation_id: str, metadata: dict[str, Any]
    ) -> ConversationState:
        """Shallow-merge ``metadata`` into the conversation's metadata map."""
        with self._exclusive(conversation_id):
            current = self._states.get(conversation_id)
            merged_metadata = {**(current.metadata if current else {}), **metadata}
            return self._merge(conversation_id, {"metadata": merged_metadata})

    def set_lifecycle(
        self, conversation_id: str, state: ConversationLifecycle | str
    ) -> ConversationState:
        """Move a conversation to another lifecycle state (e.g. archive it)."""
        return self.update(conversation_id, {"state": ConversationLifecycle(state)})

    def archive(self, conversation_id: str) -> ConversationState:
        return self.set_lifecycle(conversation_id, ConversationLifecycle.ARCHIVED)

    def list_active(self) -> list[ConversationState]:
        """Conversations in the active or waiting state."""
        return [
            state.model_copy(deep=True)
            for state in list(self._states.values())
            if state.is_active
        ]

    def list_all(self) -> list[ConversationState]:
        return [state.model_copy(deep=True) for state in list(self._states.values())]

    def history(self, conversation_id: str) -> list[ConversationState]:
        """Snapshots of every update applied to a conversation, oldest first."""
        return [s.model_copy(deep=True) for s in self._history.get(conversation_id, [])]

    def statistics(self) -> ConversationStatistics:
        states = list(self._states.values())
        total = len(states)
        total_messages = sum(state.message_count for state in states)

        return ConversationStatistics(
            total=total,
            active=sum(1 for s in states if s.state == ConversationLifecycle.ACTIVE),
            archived=sum(
                1 for s in states if s.state == ConversationLifecycle.ARCHIVED
            ),
            completed=sum(
                1 for s in states if s.state == ConversationLifecycle.COMPLETED
            ),
            avg_messages_per_conversation=total_messages / total if total else 0.0,
        )

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._states

    def __len__(self) -> int:
        return len(self._states)
