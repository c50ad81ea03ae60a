"""
Tests for the webhook dispatcher pipeline.

Covers verification, request-level rejections, per-event isolation,
middleware, deduplication, the dispatch timeout and result aggregation.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from wacloud.core.config.models import WebhookConfig, WhatsAppConfig
from wacloud.core.events.event_dispatcher import WebhookDispatcher
from wacloud.core.events.handlers import HandlerKind, WebhookHandlers
from wacloud.core.logging.context import get_context_info
from wacloud.schemas.core.types import DeliveryStatus, ErrorCode, MessageDirection
from wacloud.schemas.messages import MessageResult, MessageStatistics
from wacloud.schemas.webhook.request import UniversalRequest


def _config(**overrides) -> WhatsAppConfig:
    webhook = overrides.pop("webhook", {})
    options = {
        "access_token": "test_token",
        "phone_number_id": "test_phone_id",
        "app_secret": "test_app_secret",
        "webhook_verify_token": "test_verify_token",
        "auto_mark_read": False,
        **overrides,
    }
    return WhatsAppConfig(
        **options, webhook=WebhookConfig(**{"timeout": 5.0, **webhook})
    )


def _dispatcher(state_manager, memory_storage, **overrides) -> WebhookDispatcher:
    messenger = overrides.pop("messenger", None)
    return WebhookDispatcher(
        _config(**overrides),
        state=state_manager,
        storage=memory_storage,
        messenger=messenger,
    )


def _verification_request(**query) -> UniversalRequest:
    return UniversalRequest(method="GET", url="/webhook", headers={}, query=query)


@pytest.mark.asyncio
class TestEndToEnd:
    async def test_text_message_from_new_sender(
        self, dispatcher, make_text_envelope, make_post_request, state_manager
    ):
        on_message = AsyncMock()
        dispatcher.set_handlers(WebhookHandlers(message=on_message))

        result = await dispatcher.process_webhook(
            make_post_request(make_text_envelope("hi", sender="555"))
        )

        assert result.success
        assert result.status == 200
        assert result.error is None
        assert len(result.data.conversations) == 1
        assert result.data.conversations[0].id == "555"
        assert result.data.conversations[0].message_count == 1
        on_message.assert_awaited_once()
        assert on_message.await_args.args[0].get_text() == "hi"
        assert len(state_manager) == 1

    async def test_inbound_message_is_stored(
        self, dispatcher, make_text_envelope, make_post_request, memory_storage
    ):
        await dispatcher.process_webhook(make_post_request(make_text_envelope("hi")))

        stored = await memory_storage.get_message("wamid.TEXT")
        assert stored.direction is MessageDirection.INCOMING
        assert stored.status is DeliveryStatus.DELIVERED
        assert stored.type == "text"
        assert stored.content == "hi"
        assert stored.timestamp == 1_700_000_000_000
        assert dispatcher.statistics.received == 1

    async def test_result_statistics_and_metadata(
        self, dispatcher, make_text_envelope, make_post_request
    ):
        result = await dispatcher.process_webhook(
            make_post_request(make_text_envelope("a", "b"))
        )

        assert result.data.statistics.total_events == 2
        assert result.data.statistics.processed_events == 2
        assert result.data.statistics.errors == 0
        assert [e.get_text() for e in result.data.events] == ["a", "b"]
        assert result.metadata.framework == "raw-http"
        assert result.metadata.processing_time_ms >= 0

    async def test_media_message_runs_generic_then_specialized_handler(
        self, dispatcher, make_envelope, make_post_request
    ):
        calls = []
        dispatcher.on(HandlerKind.MESSAGE, lambda e: calls.append("message"))
        dispatcher.on(HandlerKind.MEDIA, lambda e: calls.append("media"))

        envelope = make_envelope(
            contacts=[{"wa_id": "555", "profile": {"name": "A"}}],
            messages=[{"from": "555", "id": "m1", "image": {"id": "img_1"}}],
        )
        await dispatcher.process_webhook(make_post_request(envelope))

        assert calls == ["message", "media"]

    async def test_decorator_registration(
        self, dispatcher, make_text_envelope, make_post_request
    ):
        seen = []

        @dispatcher.on("message")
        async def on_message(event):
            seen.append(event.message_id)

        await dispatcher.process_webhook(make_post_request(make_text_envelope("hi")))
        assert seen == ["wamid.TEXT"]

    async def test_status_update_counts_delivery(
        self, dispatcher, make_envelope, make_post_request, state_manager
    ):
        on_status = MagicMock()
        dispatcher.set_handlers({"status": on_status})
        envelope = make_envelope(
            statuses=[
                {
                    "id": "wamid.OUT",
                    "status": "delivered",
                    "timestamp": "1700000000",
                    "recipient_id": "555",
                }
            ]
        )

        result = await dispatcher.process_webhook(make_post_request(envelope))

        assert result.success
        on_status.assert_called_once()
        assert dispatcher.statistics.delivered == 1
        assert state_manager.get("555").message_count == 0

    async def test_dispatch_context_cleared_afterwards(
        self, dispatcher, make_text_envelope, make_post_request
    ):
        await dispatcher.process_webhook(make_post_request(make_text_envelope("hi")))
        assert get_context_info() == {"phone_number_id": None, "conversation_id": None}


@pytest.mark.asyncio
class TestVerification:
    async def test_challenge_echoed(self, dispatcher):
        result = await dispatcher.process_webhook(
            _verification_request(
                **{
                    "hub.mode": "subscribe",
                    "hub.verify_token": "test_verify_token",
                    "hub.challenge": "1158201444",
                }
            )
        )

        assert result.success
        assert result.status == 200
        assert result.challenge == "1158201444"

    @pytest.mark.parametrize(
        "query",
        [
            {"hub.mode": "subscribe", "hub.verify_token": "wrong", "hub.challenge": "1"},
            {"hub.mode": "unsubscribe", "hub.verify_token": "test_verify_token", "hub.challenge": "1"},
            {"hub.mode": "subscribe", "hub.verify_token": "test_verify_token"},
            {},
        ],
    )
    async def test_mismatch_rejected(self, dispatcher, query):
        result = await dispatcher.process_webhook(_verification_request(**query))

        assert not result.success
        assert result.status == 403
        assert result.error.code is ErrorCode.VERIFICATION_FAILED
        assert result.challenge is None


@pytest.mark.asyncio
class TestRequestRejections:
    async def test_invalid_signature(self, dispatcher, make_text_envelope, make_post_request):
        on_message = MagicMock()
        dispatcher.set_handlers({"message": on_message})

        result = await dispatcher.process_webhook(
            make_post_request(make_text_envelope("hi"), signature="sha256=" + "0" * 64)
        )

        assert result.status == 401
        assert result.error.code is ErrorCode.INVALID_SIGNATURE
        on_message.assert_not_called()

    async def test_missing_signature(self, dispatcher, make_text_envelope, make_post_request):
        result = await dispatcher.process_webhook(
            make_post_request(make_text_envelope("hi"), signed=False)
        )
        assert result.status == 401

    async def test_no_secret_fails_closed(
        self, state_manager, memory_storage, make_text_envelope, make_post_request
    ):
        dispatcher = _dispatcher(state_manager, memory_storage, app_secret=None)

        result = await dispatcher.process_webhook(
            make_post_request(make_text_envelope("hi"))
        )

        assert result.status == 401
        assert len(state_manager) == 0

    async def test_signature_check_can_be_disabled(
        self, state_manager, memory_storage, make_text_envelope, make_post_request
    ):
        dispatcher = _dispatcher(
            state_manager,
            memory_storage,
            app_secret=None,
            webhook={"verify_signature": False},
        )

        result = await dispatcher.process_webhook(
            make_post_request(make_text_envelope("hi"), signed=False)
        )
        assert result.success

    async def test_invalid_json(self, dispatcher, make_post_request):
        result = await dispatcher.process_webhook(make_post_request(b"{not json"))

        assert result.status == 400
        assert result.error.code is ErrorCode.INVALID_BODY

    async def test_non_object_body(self, dispatcher, make_post_request):
        result = await dispatcher.process_webhook(make_post_request(b"[1, 2]"))

        assert result.status == 400
        assert result.error.code is ErrorCode.INVALID_BODY

    async def test_parsed_body_without_raw_bytes(self, dispatcher, make_text_envelope, sign):
        envelope = make_text_envelope("hi")
        compact = json.dumps(envelope, separators=(",", ":")).encode()
        request = UniversalRequest(
            method="POST",
            headers={"X-Hub-Signature-256": sign(compact)},
            body=envelope,
        )

        result = await dispatcher.process_webhook(request)

        assert result.success
        assert result.metadata.framework == "generic"

    async def test_unsupported_method(self, dispatcher):
        request = UniversalRequest(method="PUT", headers={}, raw_body=b"{}")

        result = await dispatcher.process_webhook(request)

        assert result.status == 405
        assert result.error.code is ErrorCode.METHOD_NOT_ALLOWED

    async def test_write_method_without_body(self, dispatcher):
        result = await dispatcher.process_webhook(
            UniversalRequest(method="POST", headers={})
        )

        assert result.status == 400
        assert result.error.code is ErrorCode.VALIDATION_ERROR

    async def test_missing_method_and_headers(self, dispatcher):
        result = await dispatcher.process_webhook(UniversalRequest())

        assert result.status == 400
        assert result.error.details == ["Missing HTTP method", "Missing headers"]

    async def test_body_too_large(
        self, state_manager, memory_storage, make_text_envelope, make_post_request
    ):
        dispatcher = _dispatcher(
            state_manager, memory_storage, webhook={"max_body_size": 16}
        )

        result = await dispatcher.process_webhook(
            make_post_request(make_text_envelope("hi"))
        )

        assert result.status == 413
        assert result.error.code is ErrorCode.VALIDATION_ERROR

    async def test_unexpected_error_becomes_internal_error(
        self, dispatcher, make_text_envelope, make_post_request
    ):
        with patch(
            "wacloud.core.events.event_dispatcher.WebhookExtractor.extract",
            side_effect=RuntimeError("boom"),
        ):
            result = await dispatcher.process_webhook(
                make_post_request(make_text_envelope("hi"))
            )

        assert result.status == 500
        assert result.error.code is ErrorCode.INTERNAL_ERROR
        assert result.error.message == "boom"


@pytest.mark.asyncio
class TestEventIsolation:
    async def test_partial_failure(self, dispatcher, make_text_envelope, make_post_request):
        async def on_message(event):
            if event.get_text() == "bad":
                raise RuntimeError("handler exploded")

        dispatcher.set_handlers({"message": on_message})

        result = await dispatcher.process_webhook(
            make_post_request(make_text_envelope("good", "bad", "also good"))
        )

        assert not result.success
        assert result.status == 200
        assert result.error.code is ErrorCode.PARTIAL_PROCESSING
        assert result.error.message == "1 events failed to process"
        assert result.error.details[0]["message_id"] == "wamid.TEXT.1"
        assert "handler exploded" in result.error.details[0]["error"]
        assert result.data.statistics.processed_events == 2
        assert result.data.statistics.errors == 1
        assert [e.get_text() for e in result.data.events] == ["good", "also good"]

    async def test_failing_generic_handler_still_runs_specialized(
        self, dispatcher, make_envelope, make_post_request
    ):
        on_location = MagicMock()
        dispatcher.set_handlers(
            {
                "message": MagicMock(side_effect=ValueError("nope")),
                "location": on_location,
            }
        )
        envelope = make_envelope(
            messages=[
                {"from": "555", "id": "m1", "location": {"latitude": 1, "longitude": 2}}
            ]
        )

        result = await dispatcher.process_webhook(make_post_request(envelope))

        on_location.assert_called_once()
        assert result.data.statistics.errors == 1
        assert len(result.error.details) == 1

    async def test_failing_message_with_successful_status(
        self, dispatcher, make_envelope, make_post_request
    ):
        on_status = MagicMock()
        dispatcher.set_handlers(
            {"message": MagicMock(side_effect=RuntimeError("boom")), "status": on_status}
        )
        envelope = make_envelope(
            messages=[
                {"from": "555", "id": "m1", "timestamp": "1", "text": {"body": "hi"}}
            ],
            statuses=[
                {"id": "s1", "status": "delivered", "timestamp": "2", "recipient_id": "555"}
            ],
        )

        result = await dispatcher.process_webhook(make_post_request(envelope))

        assert not result.success
        assert result.status == 200
        assert result.error.code is ErrorCode.PARTIAL_PROCESSING
        assert result.data.statistics.processed_events == 1
        assert result.data.statistics.errors == 1
        assert [e.event_type for e in result.data.events] == ["status:delivered"]
        assert [d["message_id"] for d in result.error.details] == ["m1"]
        assert result.error.details[0]["event"] == "message:text"
        on_status.assert_called_once()

    async def test_errors_count_events_while_details_list_handlers(
        self, dispatcher, make_envelope, make_post_request
    ):
        dispatcher.set_handlers(
            {
                "message": MagicMock(side_effect=ValueError("generic")),
                "location": MagicMock(side_effect=ValueError("specific")),
            }
        )
        envelope = make_envelope(
            messages=[
                {"from": "555", "id": "m1", "location": {"latitude": 1, "longitude": 2}}
            ]
        )

        result = await dispatcher.process_webhook(make_post_request(envelope))

        assert result.data.statistics.errors == 1
        assert result.error.message == "1 events failed to process"
        assert len(result.error.details) == 2

    async def test_malformed_record_does_not_abort_batch(
        self, dispatcher, make_envelope, make_post_request, memory_storage
    ):
        on_message = MagicMock()
        dispatcher.set_handlers({"message": on_message})
        envelope = make_envelope(
            messages=[
                {"from": "555", "id": "m1", "timestamp": "1", "text": {"body": "hi"}},
                {"from": "555", "id": "m2", "timestamp": "2", "text": {"body": None}},
            ],
            statuses=[
                {"id": "s1", "status": "delivered", "timestamp": "3", "recipient_id": "555"},
                {
                    "id": "s2",
                    "status": "read",
                    "timestamp": "4",
                    "recipient_id": "555",
                    "conversation": "not-an-object",
                },
            ],
        )

        result = await dispatcher.process_webhook(make_post_request(envelope))

        assert result.success
        assert result.status == 200
        assert [e.message_id for e in result.data.events] == ["m1", "m2", "s1"]
        assert result.data.statistics.total_events == 3
        assert on_message.call_count == 2
        history = await memory_storage.get_messages("555")
        assert {m.id for m in history} == {"m1", "m2"}

    async def test_auto_process_disabled_skips_handlers(
        self, state_manager, memory_storage, make_text_envelope, make_post_request
    ):
        dispatcher = _dispatcher(state_manager, memory_storage, auto_process=False)
        on_message = MagicMock()
        dispatcher.set_handlers({"message": on_message})

        result = await dispatcher.process_webhook(
            make_post_request(make_text_envelope("hi"))
        )

        assert result.success
        on_message.assert_not_called()
        assert state_manager.get("555").message_count == 1

    async def test_middleware_filters_event(
        self, dispatcher, make_text_envelope, make_post_request
    ):
        on_message = MagicMock()
        dispatcher.set_handlers({"message": on_message})
        dispatcher.use(lambda event: event.get_text() != "spam")

        result = await dispatcher.process_webhook(
            make_post_request(make_text_envelope("spam", "hello"))
        )

        assert result.success
        on_message.assert_called_once()
        assert result.data.statistics.filtered_events == 1
        assert result.data.statistics.processed_events == 2

    async def test_async_middleware(self, dispatcher, make_text_envelope, make_post_request):
        on_message = MagicMock()
        dispatcher.set_handlers({"message": on_message})
        dispatcher.use(AsyncMock(return_value=False))

        await dispatcher.process_webhook(make_post_request(make_text_envelope("hi")))

        on_message.assert_not_called()

    async def test_redelivery_skipped_when_deduplicating(
        self, state_manager, memory_storage, make_text_envelope, make_post_request
    ):
        dispatcher = _dispatcher(
            state_manager, memory_storage, webhook={"deduplicate_events": True}
        )
        on_message = MagicMock()
        dispatcher.set_handlers({"message": on_message})

        await dispatcher.process_webhook(make_post_request(make_text_envelope("hi")))
        result = await dispatcher.process_webhook(
            make_post_request(make_text_envelope("hi"))
        )

        assert result.success
        on_message.assert_called_once()
        assert result.data.statistics.duplicate_events == 1
        assert result.data.statistics.processed_events == 0

    async def test_redelivery_processed_by_default(
        self, dispatcher, make_text_envelope, make_post_request
    ):
        on_message = MagicMock()
        dispatcher.set_handlers({"message": on_message})

        for _ in range(2):
            await dispatcher.process_webhook(make_post_request(make_text_envelope("hi")))

        assert on_message.call_count == 2


@pytest.mark.asyncio
class TestAutoMarkRead:
    async def test_marks_inbound_messages_read(
        self, state_manager, memory_storage, make_text_envelope, make_post_request
    ):
        messenger = MagicMock()
        messenger.statistics = MessageStatistics()
        messenger.mark_as_read = AsyncMock(return_value=MessageResult(success=True))
        dispatcher = _dispatcher(
            state_manager, memory_storage, auto_mark_read=True, messenger=messenger
        )

        result = await dispatcher.process_webhook(
            make_post_request(make_text_envelope("hi"))
        )

        assert result.success
        messenger.mark_as_read.assert_awaited_once_with("wamid.TEXT")
        assert dispatcher.statistics is messenger.statistics

    async def test_mark_read_failure_does_not_fail_event(
        self, state_manager, memory_storage, make_text_envelope, make_post_request
    ):
        messenger = MagicMock()
        messenger.statistics = MessageStatistics()
        messenger.mark_as_read = AsyncMock(side_effect=RuntimeError("offline"))
        dispatcher = _dispatcher(
            state_manager, memory_storage, auto_mark_read=True, messenger=messenger
        )

        result = await dispatcher.process_webhook(
            make_post_request(make_text_envelope("hi"))
        )

        assert result.success


@pytest.mark.asyncio
class TestTimeout:
    async def test_slow_dispatch_times_out_and_finishes_in_background(
        self, state_manager, memory_storage, make_text_envelope, make_post_request
    ):
        dispatcher = _dispatcher(state_manager, memory_storage, webhook={"timeout": 0.05})
        release = asyncio.Event()
        finished = []

        async def on_message(event):
            await release.wait()
            finished.append(event.message_id)

        dispatcher.set_handlers({"message": on_message})

        result = await dispatcher.process_webhook(
            make_post_request(make_text_envelope("hi"))
        )

        assert not result.success
        assert result.status == 504
        assert result.error.code is ErrorCode.DISPATCH_TIMEOUT

        release.set()
        for _ in range(10):
            await asyncio.sleep(0)
        assert finished == ["wamid.TEXT"]
