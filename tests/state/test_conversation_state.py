"""
Tests for in-memory conversation state tracking.
"""

import threading
from datetime import UTC, datetime

import pytest

from wacloud.schemas.core.types import ConversationLifecycle
from wacloud.schemas.webhook.events import ExtractedEvent, TextContent
from wacloud.state.conversation_state import ConversationStateManager


def _event(event_type: str = "message:text", conversation_id: str = "555", name="Alice"):
    return ExtractedEvent(
        event_type=event_type,
        timestamp=datetime.now(UTC),
        conversation_id=conversation_id,
        wa_id=conversation_id,
        display_name=name,
        content=TextContent(text="hi"),
    )


class TestUpdate:
    def test_creates_state_on_first_update(self, state_manager):
        state = state_manager.update("555", {"current_step": "greeting"})

        assert state.id == "555"
        assert state.state is ConversationLifecycle.ACTIVE
        assert state.current_step == "greeting"
        assert "555" in state_manager
        assert len(state_manager) == 1

    def test_merge_keeps_untouched_fields(self, state_manager):
        state_manager.update("555", display_name="Alice", current_step="one")
        state = state_manager.update("555", current_step="two")

        assert state.display_name == "Alice"
        assert state.current_step == "two"

    def test_refreshes_last_activity(self, state_manager):
        first = state_manager.update("555")
        second = state_manager.update("555")
        assert second.last_activity >= first.last_activity

    def test_rejects_unknown_fields(self, state_manager):
        with pytest.raises(ValueError, match="Unknown conversation state fields"):
            state_manager.update("555", {"favourite_colour": "blue"})

    def test_returned_state_is_a_copy(self, state_manager):
        state = state_manager.merge_context("555", {"cart": ["apple"]})
        state.context["cart"].append("pear")

        assert state_manager.get("555").context == {"cart": ["apple"]}

    def test_get_unknown_returns_none(self, state_manager):
        assert state_manager.get("nobody") is None


class TestUpdateFromEvent:
    def test_message_increments_count_and_sets_name(self, state_manager):
        state_manager.update_from_event(_event())
        state = state_manager.update_from_event(_event())

        assert state.message_count == 2
        assert state.display_name == "Alice"

    def test_status_does_not_count_as_message(self, state_manager):
        state = state_manager.update_from_event(_event("status:delivered", name="unknown"))

        assert state.message_count == 0
        assert state.display_name == ""

    def test_unknown_name_keeps_previous_name(self, state_manager):
        state_manager.update_from_event(_event())
        state = state_manager.update_from_event(_event("status:read", name="unknown"))
        assert state.display_name == "Alice"


class TestContextAndLifecycle:
    def test_merge_context_is_shallow(self, state_manager):
        state_manager.merge_context("555", {"a": 1, "b": {"x": 1}})
        state = state_manager.merge_context("555", {"b": {"y": 2}})
        assert state.context == {"a": 1, "b": {"y": 2}}

    def test_merge_metadata(self, state_manager):
        state_manager.merge_metadata("555", {"source": "ad"})
        state = state_manager.merge_metadata("555", {"lang": "es"})
        assert state.metadata == {"source": "ad", "lang": "es"}

    def test_set_step(self, state_manager):
        assert state_manager.set_step("555", "ask_name").current_step == "ask_name"
        assert state_manager.set_step("555", None).current_step is None

    def test_archive_removes_from_active(self, state_manager):
        state_manager.update("555")
        state_manager.update("777")
        state_manager.archive("555")

        assert [s.id for s in state_manager.list_active()] == ["777"]
        assert len(state_manager.list_all()) == 2

    def test_waiting_is_listed_as_active(self, state_manager):
        state_manager.set_lifecycle("555", "waiting")
        assert [s.id for s in state_manager.list_active()] == ["555"]

    def test_invalid_lifecycle_rejected(self, state_manager):
        with pytest.raises(ValueError):
            state_manager.set_lifecycle("555", "sleeping")


class TestHistoryAndStatistics:
    def test_history_records_every_update(self, state_manager):
        state_manager.set_step("555", "one")
        state_manager.set_step("555", "two")

        assert [s.current_step for s in state_manager.history("555")] == ["one", "two"]

    def test_history_can_be_disabled(self):
        manager = ConversationStateManager(keep_history=False)
        manager.update("555")
        assert manager.history("555") == []

    def test_statistics(self, state_manager):
        state_manager.update("1", message_count=4)
        state_manager.update("2", message_count=2)
        state_manager.set_lifecycle("3", "waiting")
        state_manager.archive("2")

        stats = state_manager.statistics()

        assert stats.total == 3
        assert stats.active == 1
        assert stats.archived == 1
        assert stats.completed == 0
        assert stats.avg_messages_per_conversation == 2.0

    def test_statistics_empty(self, state_manager):
        assert state_manager.statistics().avg_messages_per_conversation == 0.0


def test_concurrent_merges_do_not_lose_updates(state_manager):
    def worker(index: int) -> None:
        for j in range(50):
            state_manager.merge_context("555", {f"k{index}_{j}": j})

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(state_manager.get("555").context) == 8 * 50
