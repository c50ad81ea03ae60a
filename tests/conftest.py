"""
Pytest configuration and common fixtures for wacloud tests.

Provides webhook envelope builders, request signing and pre-wired core
components shared by all test modules.
"""

import hashlib
import hmac
import json
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from wacloud.core.config.models import WebhookConfig, WhatsAppConfig
from wacloud.core.events.event_dispatcher import WebhookDispatcher
from wacloud.core.events.notifications import NotificationBus
from wacloud.persistence.memory.message_storage import MemoryMessageStorage
from wacloud.schemas.webhook.request import UniversalRequest
from wacloud.state.conversation_state import ConversationStateManager

TEST_APP_SECRET = "test_app_secret"
TEST_VERIFY_TOKEN = "test_verify_token"
TEST_PHONE_ID = "test_phone_id"


def _sign(payload: bytes, secret: str = TEST_APP_SECRET) -> str:
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def _change(value: dict[str, Any]) -> dict[str, Any]:
    value.setdefault("messaging_product", "whatsapp")
    value.setdefault(
        "metadata",
        {"display_phone_number": "15550001111", "phone_number_id": TEST_PHONE_ID},
    )
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "WABA_ID", "changes": [{"field": "messages", "value": value}]}],
    }


@pytest.fixture
def sign() -> Callable[..., str]:
    """X-Hub-Signature-256 header value for a payload."""
    return _sign


@pytest.fixture
def make_text_envelope() -> Callable[..., dict[str, Any]]:
    """Builder for an envelope with one or more inbound text messages."""

    def build(
        *texts: str,
        sender: str = "555",
        name: str = "Alice",
        message_id: str = "wamid.TEXT",
        timestamp: str = "1700000000",
    ) -> dict[str, Any]:
        texts = texts or ("hi",)
        messages = [
            {
                "from": sender,
                "id": message_id if len(texts) == 1 else f"{message_id}.{i}",
                "timestamp": timestamp,
                "type": "text",
                "text": {"body": text},
            }
            for i, text in enumerate(texts)
        ]
        return _change(
            {
                "contacts": [{"profile": {"name": name}, "wa_id": sender}],
                "messages": messages,
            }
        )

    return build


@pytest.fixture
def make_envelope() -> Callable[..., dict[str, Any]]:
    """Builder for an envelope from a raw change value."""

    def build(**value: Any) -> dict[str, Any]:
        return _change(dict(value))

    return build


@pytest.fixture
def make_post_request(sign) -> Callable[..., UniversalRequest]:
    """Builder for a signed POST UniversalRequest carrying raw bytes."""

    def build(
        envelope: dict[str, Any] | bytes,
        signature: str | None = None,
        signed: bool = True,
        headers: dict[str, str] | None = None,
    ) -> UniversalRequest:
        raw = envelope if isinstance(envelope, bytes) else json.dumps(envelope).encode()
        request_headers = {"Content-Type": "application/json", **(headers or {})}
        if signed:
            request_headers["X-Hub-Signature-256"] = signature or sign(raw)
        return UniversalRequest(
            method="POST", url="/webhook", headers=request_headers, raw_body=raw
        )

    return build


@pytest.fixture
def whatsapp_config() -> WhatsAppConfig:
    """Config with signature checks on and no background cleanup."""
    return WhatsAppConfig(
        access_token="test_token",
        phone_number_id=TEST_PHONE_ID,
        app_secret=TEST_APP_SECRET,
        webhook_verify_token=TEST_VERIFY_TOKEN,
        auto_mark_read=False,
        webhook=WebhookConfig(timeout=5.0),
    )


@pytest.fixture
def state_manager() -> ConversationStateManager:
    return ConversationStateManager()


@pytest.fixture
def memory_storage() -> MemoryMessageStorage:
    return MemoryMessageStorage()


@pytest.fixture
def notifications() -> NotificationBus:
    return NotificationBus()


@pytest.fixture
def dispatcher(
    whatsapp_config, state_manager, memory_storage, notifications
) -> WebhookDispatcher:
    return WebhookDispatcher(
        whatsapp_config,
        state=state_manager,
        storage=memory_storage,
        notifications=notifications,
    )


@pytest.fixture
def mock_client() -> MagicMock:
    """WhatsAppClient double whose sends succeed with a provider id."""
    client = MagicMock()
    client.post_request = AsyncMock(
        return_value={
            "messaging_product": "whatsapp",
            "contacts": [{"input": "555", "wa_id": "555"}],
            "messages": [{"id": "wamid.SENT"}],
        }
    )
    client.get_request = AsyncMock(return_value={})
    client.upload_media = AsyncMock(return_value={"id": "media_1"})
    client.download_media = AsyncMock(return_value=b"")
    return client


# Environment setup for tests
@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("ENVIRONMENT", "DEV")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("WP_PHONE_ID", TEST_PHONE_ID)
    monkeypatch.setenv("WP_ACCESS_TOKEN", "test_token")
    monkeypatch.setenv("WHATSAPP_WEBHOOK_VERIFY_TOKEN", TEST_VERIFY_TOKEN)
    monkeypatch.setenv("WHATSAPP_APP_SECRET", TEST_APP_SECRET)
