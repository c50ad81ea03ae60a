"""
Webhook dispatcher: the universal request to WebhookResult pipeline.

validate -> method branch (GET verification / POST events) -> body size ->
signature -> parse -> extract -> [dedup] -> middleware -> per-event processing
-> aggregate.

Request-level failures raise WACloudError subclasses inside the pipeline and
are converted into a failure WebhookResult in exactly one place. Per-event
failures are recorded and never abort the rest of the batch.
"""

import asyncio
import inspect
import json
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from wacloud.core.config.models import ResolvedWebhookConfig, WhatsAppConfig
from wacloud.core.events.handlers import (
    EventHandler,
    HandlerKind,
    WebhookHandlers,
    invoke_handler,
    resolve_handler_kinds,
)
from wacloud.core.events.notifications import NotificationBus
from wacloud.core.exceptions import (
    BodyParseError,
    DispatchTimeoutError,
    InternalError,
    MethodNotAllowedError,
    SignatureError,
    VerificationError,
    WACloudError,
    WebhookValidationError,
)
from wacloud.core.logging.context import clear_dispatch_context, set_dispatch_context
from wacloud.core.logging.logger import get_logger
from wacloud.domain.interfaces.message_storage import IMessageStorage
from wacloud.processors.extractor import WebhookExtractor
from wacloud.processors.signature import SignatureVerifier
from wacloud.schemas.core.types import DeliveryStatus, ErrorCode, MessageDirection
from wacloud.schemas.messages import MessageStatistics, StoredMessage, generate_local_id
from wacloud.schemas.webhook.envelope import WebhookEnvelope
from wacloud.schemas.webhook.events import ExtractedEvent, TextContent
from wacloud.schemas.webhook.request import UniversalRequest
from wacloud.schemas.webhook.result import (
    EventError,
    ResultMetadata,
    WebhookErrorInfo,
    WebhookResult,
    WebhookResultData,
    WebhookStatistics,
)
from wacloud.state.conversation_state import (
    UNKNOWN_CONVERSATION,
    ConversationStateManager,
)

if TYPE_CHECKING:
    from wacloud.messaging.whatsapp.messenger.whatsapp_messenger import (
        WhatsAppMessenger,
    )

WebhookMiddleware = Callable[[ExtractedEvent], Awaitable[bool] | bool]

HUB_MODE = "hub.mode"
HUB_VERIFY_TOKEN = "hub.verify_token"
HUB_CHALLENGE = "hub.challenge"

_MAX_SEEN_EVENTS = 10_000


class WebhookDispatcher:
    """
    Processes UniversalRequests for one WhatsApp business number.

    Owns no state of its own beyond the handler table, middleware chain and
    dedup window; conversation state, message storage and the messenger are
    injected so they can be shared with the outbound side.
    """

    def __init__(
        self,
        config: WhatsAppConfig | ResolvedWebhookConfig,
        state: ConversationStateManager,
        storage: IMessageStorage,
        messenger: "WhatsAppMessenger | None" = None,
        handlers: WebhookHandlers | None = None,
        notifications: NotificationBus | None = None,
        statistics: MessageStatistics | None = None,
    ):
        if isinstance(config, WhatsAppConfig):
            config = config.resolved_webhook()
        self.config = config
        self.state = state
        self.storage = storage
        self.messenger = messenger
        self.handlers = handlers or WebhookHandlers()
        self.notifications = notifications or NotificationBus()

        if statistics is None:
            statistics = messenger.statistics if messenger else MessageStatistics()
        self.statistics = statistics

        self._verifier = SignatureVerifier(config.app_secret)
        self._middlewares: list[WebhookMiddleware] = []
        self._seen_events: OrderedDict[tuple[str, str], None] = OrderedDict()
        self.logger = get_logger(__name__)

    # Registration

    def set_handlers(
        self, handlers: WebhookHandlers | dict[str, EventHandler]
    ) -> None:
        """Merge ``handlers`` into the table; unset kinds keep their handler."""
        self.handlers = self.handlers.merge(handlers)
        self.logger.debug(
            f"Webhook handlers registered: "
            f"{[kind.value for kind in self.handlers.registered()]}"
        )

    def on(self, kind: HandlerKind | str, handler: EventHandler | None = None):
        """
        Register one handler. Usable directly or as a decorator:

            @dispatcher.on(HandlerKind.MESSAGE)
            async def handle(event): ...
        """

        def register(fn: EventHandler) -> EventHandler:
            self.set_handlers({HandlerKind(kind).value: fn})
            return fn

        if handler is not None:
            return register(handler)
        return register

    def use(self, middleware: WebhookMiddleware) -> None:
        """Add an event filter; returning False skips the event's processing."""
        self._middlewares.append(middleware)

    # Pipeline

    @staticmethod
    def detect_framework(request: UniversalRequest) -> str:
        if request.framework:
            return request.framework
        if request.raw_body is not None:
            return "raw-http"
        return "generic"

    async def process_webhook(self, request: UniversalRequest) -> WebhookResult:
        """
        Process one webhook request. Never raises.

        Dispatch runs in its own task; when it exceeds the configured timeout
        the caller gets a dispatch_timeout failure and the task is left to
        finish in the background with its result discarded.
        """
        start = time.perf_counter()
        framework = self.detect_framework(request)
        task = asyncio.ensure_future(self._dispatch(request))

        try:
            result = await asyncio.wait_for(
                asyncio.shield(task), timeout=self.config.timeout
            )
        except TimeoutError:
            self.logger.error(
                f"Webhook processing timed out after {self.config.timeout}s"
            )
            task.add_done_callback(self._discard_late_result)
            result = WebhookResult.from_error(
                DispatchTimeoutError(self.config.timeout), framework
            )
        except WACloudError as e:
            self.logger.warning(f"Webhook rejected ({e.status_code}): {e.message}")
            result = WebhookResult.from_error(e, framework)
        except Exception as e:
            self.logger.error(f"Unexpected error processing webhook: {e}", exc_info=True)
            result = WebhookResult.from_error(
                InternalError(str(e) or "Unknown error occurred"), framework
            )

        result.metadata.processing_time_ms = round(
            (time.perf_counter() - start) * 1000, 3
        )
        result.metadata.framework = framework
        self.logger.debug(
            f"🕒 Webhook processed in {result.metadata.processing_time_ms}ms "
            f"(status {result.status})"
        )
        return result

    def _discard_late_result(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        if task.exception() is not None:
            self.logger.warning(
                f"Timed-out webhook dispatch failed later: {task.exception()}"
            )
        else:
            self.logger.debug("Timed-out webhook dispatch finished; result discarded")

    async def _dispatch(self, request: UniversalRequest) -> WebhookResult:
        self._validate(request)

        if request.method == "GET":
            return self._handle_verification(request)
        if request.method == "POST":
            return await self._handle_events(request)

        raise MethodNotAllowedError(request.method)

    @staticmethod
    def _validate(request: UniversalRequest) -> None:
        errors: list[str] = []
        if not request.method:
            errors.append("Missing HTTP method")
        if request.headers is None:
            errors.append("Missing headers")
        if request.is_write_method and not request.has_body_source:
            errors.append(f"Missing request body for {request.method} request")
        if errors:
            raise WebhookValidationError(errors)

    def _handle_verification(self, request: UniversalRequest) -> WebhookResult:
        mode = request.get_query(HUB_MODE)
        token = request.get_query(HUB_VERIFY_TOKEN)
        challenge = request.get_query(HUB_CHALLENGE)

        if mode == "subscribe" and token == self.config.verify_token and challenge:
            self.logger.info("✅ Webhook verified successfully")
            return WebhookResult(
                success=True,
                status=200,
                data=WebhookResultData(),
                challenge=challenge,
            )

        raise VerificationError()

    def _check_body_size(self, request: UniversalRequest) -> None:
        if request.raw_body is not None:
            size = len(request.raw_body)
        elif isinstance(request.body, str | bytes):
            size = len(request.body)
        else:
            return
        if size > self.config.max_body_size:
            raise WebhookValidationError(
                [
                    f"Request body of {size} bytes exceeds "
                    f"max_body_size of {self.config.max_body_size} bytes"
                ],
                status_code=413,
            )

    def _check_signature(self, request: UniversalRequest) -> None:
        if not self.config.verify_signature:
            return
        if not self._verifier.is_configured:
            raise SignatureError(
                "Signature verification is enabled but no app secret is configured"
            )
        if not self._verifier.verify_request(request):
            raise SignatureError()

    @staticmethod
    def _parse_body(request: UniversalRequest) -> WebhookEnvelope:
        body = request.body
        if body is None or isinstance(body, str | bytes):
            source = request.raw_body if body is None else body
            try:
                body = json.loads(source)
            except (ValueError, UnicodeDecodeError) as e:
                raise BodyParseError() from e

        if not isinstance(body, dict):
            raise BodyParseError("Webhook body must be a JSON object")

        try:
            return WebhookEnvelope.model_validate(body)
        except ValidationError as e:
            raise BodyParseError(
                f"Invalid webhook envelope: {e.error_count()} validation error(s)"
            ) from e

    def _is_duplicate(self, event: ExtractedEvent) -> bool:
        if not self.config.deduplicate_events or not event.message_id:
            return False
        key = (event.message_id, event.event_type)
        if key in self._seen_events:
            self._seen_events.move_to_end(key)
            return True
        self._seen_events[key] = None
        if len(self._seen_events) > _MAX_SEEN_EVENTS:
            self._seen_events.popitem(last=False)
        return False

    async def _passes_middlewares(self, event: ExtractedEvent) -> bool:
        for middleware in self._middlewares:
            verdict = middleware(event)
            if inspect.isawaitable(verdict):
                verdict = await verdict
            if verdict is False:
                return False
        return True

    async def _handle_events(self, request: UniversalRequest) -> WebhookResult:
        self._check_body_size(request)
        self._check_signature(request)
        envelope = self._parse_body(request)
        events = WebhookExtractor.extract(envelope)

        statistics = WebhookStatistics(total_events=len(events))
        processed: list[ExtractedEvent] = []
        errors: list[EventError] = []

        try:
            for event in events:
                set_dispatch_context(event.phone_number_id, event.conversation_id)

                if self._is_duplicate(event):
                    statistics.duplicate_events += 1
                    self.logger.debug(
                        f"Skipping redelivered {event.event_type} {event.message_id}"
                    )
                    continue

                try:
                    if not await self._passes_middlewares(event):
                        statistics.filtered_events += 1
                        processed.append(event)
                        continue

                    failures = await self._process_event(event)
                except Exception as e:
                    self.logger.error(
                        f"Error processing {event.event_type}: {e}", exc_info=True
                    )
                    failures = [str(e) or type(e).__name__]

                if failures:
                    errors.extend(
                        EventError(
                            event=event.event_type,
                            message_id=event.message_id,
                            error=failure,
                        )
                        for failure in failures
                    )
                else:
                    processed.append(event)
        finally:
            clear_dispatch_context()

        failed_events = statistics.total_events - statistics.duplicate_events - len(
            processed
        )
        statistics.processed_events = len(processed)
        statistics.errors = failed_events

        error_info = None
        if failed_events:
            error_info = WebhookErrorInfo(
                code=ErrorCode.PARTIAL_PROCESSING,
                message=f"{failed_events} events failed to process",
                details=[e.model_dump(mode="json") for e in errors],
            )
            self.logger.warning(
                f"⚠️ {failed_events}/{statistics.total_events} webhook events failed"
            )

        return WebhookResult(
            success=failed_events == 0,
            status=200,
            data=WebhookResultData(
                events=processed,
                statistics=statistics,
                conversations=self.state.list_active(),
            ),
            error=error_info,
            metadata=ResultMetadata(),
        )

    async def _process_event(self, event: ExtractedEvent) -> list[str]:
        """
        Apply one event: state, storage, auto mark-read, user handlers.

        State and storage failures propagate to the caller. Handler failures
        are collected so every matching handler still runs.
        """
        if event.conversation_id != UNKNOWN_CONVERSATION:
            self.state.update_from_event(event)

        if event.is_message:
            await self._store_inbound(event)
            self.statistics.received += 1
            if self.config.auto_mark_read and event.message_id:
                await self._auto_mark_read(event.message_id)
        elif event.event_type == "status:delivered":
            self.statistics.delivered += 1

        if not self.config.auto_process:
            return []

        failures: list[str] = []
        for kind in resolve_handler_kinds(event.event_type):
            handler = self.handlers.get(kind)
            if handler is None:
                continue
            try:
                await invoke_handler(handler, event)
            except Exception as e:
                self.logger.error(
                    f"{kind.value} handler failed for {event.event_type}: {e}",
                    exc_info=True,
                )
                failures.append(f"{kind.value} handler: {e}")
        return failures

    async def _store_inbound(self, event: ExtractedEvent) -> None:
        if isinstance(event.content, TextContent):
            content: Any = event.content.text
        else:
            content = event.content.model_dump(mode="json", exclude={"kind"})

        await self.storage.store_message(
            StoredMessage(
                id=event.message_id or generate_local_id("in"),
                provider_message_id=event.message_id,
                conversation_id=event.conversation_id,
                direction=MessageDirection.INCOMING,
                type=event.sub_type,
                content=content,
                timestamp=int(event.timestamp.timestamp() * 1000),
                status=DeliveryStatus.DELIVERED,
            )
        )

    async def _auto_mark_read(self, message_id: str) -> None:
        if self.messenger is None:
            return
        try:
            result = await self.messenger.mark_as_read(message_id)
        except Exception as e:
            self.logger.warning(f"Failed to mark message {message_id} as read: {e}")
            return
        if not result.success:
            self.logger.warning(
                f"Failed to mark message {message_id} as read: {result.error}"
            )
