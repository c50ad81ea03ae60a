"""
Configuration models for a WhatsAppCloud instance.

WhatsAppConfig holds the recognized client options; WebhookConfig holds the
webhook sub-configuration. Unset webhook fields inherit from the top-level
options (webhook sub-config first, then top-level value, then default).
"""

from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from wacloud.core.config.settings import Settings

DEFAULT_API_VERSION = "v21.0"
DEFAULT_VERIFY_TOKEN = "default_verify_token"
DEFAULT_MAX_BODY_SIZE = 10 * 1024 * 1024  # 10MB
DEFAULT_WEBHOOK_TIMEOUT = 30.0


class WebhookConfig(BaseModel):
    """Webhook handling options. ``None`` means "inherit from WhatsAppConfig"."""

    model_config = ConfigDict(extra="forbid")

    verify_token: str | None = Field(
        default=None, description="Token expected in hub.verify_token"
    )
    app_secret: str | None = Field(
        default=None, description="App secret used for X-Hub-Signature-256"
    )
    auto_process: bool | None = Field(
        default=None, description="Invoke user handlers for extracted events"
    )
    auto_mark_read: bool | None = Field(
        default=None, description="Mark inbound messages as read automatically"
    )
    verify_signature: bool = Field(
        default=True, description="Require a valid signature on POST requests"
    )
    max_body_size: int = Field(default=DEFAULT_MAX_BODY_SIZE, gt=0)
    timeout: float = Field(
        default=DEFAULT_WEBHOOK_TIMEOUT, gt=0, description="Dispatch timeout (s)"
    )
    deduplicate_events: bool = Field(
        default=False,
        description="Drop events whose (message id, event type) was already seen",
    )


class ResolvedWebhookConfig(BaseModel):
    """WebhookConfig with every inherited field filled in."""

    model_config = ConfigDict(frozen=True)

    verify_token: str
    app_secret: str
    auto_process: bool
    auto_mark_read: bool
    verify_signature: bool
    max_body_size: int
    timeout: float
    deduplicate_events: bool


class StorageConfig(BaseModel):
    """Message storage selection."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    backend: Literal["memory", "file", "custom"] = "memory"
    custom_storage: Any | None = Field(
        default=None, description="IMessageStorage instance for backend='custom'"
    )
    file_path: str | None = None
    max_messages_per_conversation: int | None = Field(default=None, gt=0)
    auto_cleanup: bool = True
    retention_days: int = Field(default=30, gt=0)
    cleanup_interval: float = Field(default=24 * 60 * 60, gt=0)


class WhatsAppConfig(BaseModel):
    """Recognized options for the WhatsApp Cloud API adapter."""

    model_config = ConfigDict(extra="forbid")

    access_token: str = Field(..., min_length=1)
    phone_number_id: str = Field(..., min_length=1)
    business_account_id: str | None = None
    api_version: str = DEFAULT_API_VERSION
    base_url: str = "https://graph.facebook.com/"
    app_secret: str | None = None
    webhook_verify_token: str | None = None
    request_timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    auto_mark_read: bool = True
    auto_process: bool = True
    queue_enabled: bool = True
    max_queue_size: int = Field(default=1000, ge=1)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)

    @field_validator("access_token", "phone_number_id")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    def resolved_webhook(self) -> ResolvedWebhookConfig:
        """Fill unset webhook fields from the top-level options."""
        webhook = self.webhook
        return ResolvedWebhookConfig(
            verify_token=webhook.verify_token
            or self.webhook_verify_token
            or DEFAULT_VERIFY_TOKEN,
            app_secret=webhook.app_secret or self.app_secret or "",
            auto_process=(
                webhook.auto_process
                if webhook.auto_process is not None
                else self.auto_process
            ),
            auto_mark_read=(
                webhook.auto_mark_read
                if webhook.auto_mark_read is not None
                else self.auto_mark_read
            ),
            verify_signature=webhook.verify_signature,
            max_body_size=webhook.max_body_size,
            timeout=webhook.timeout,
            deduplicate_events=webhook.deduplicate_events,
        )

    @classmethod
    def from_settings(cls, settings: "Settings | None" = None) -> "WhatsAppConfig":
        """Build a config from environment settings."""
        if settings is None:
            from wacloud.core.config.settings import settings as env_settings

            settings = env_settings

        settings.validate_credentials()
        return cls(
            access_token=settings.wp_access_token,
            phone_number_id=settings.wp_phone_id,
            business_account_id=settings.wp_bid,
            api_version=settings.api_version,
            base_url=settings.base_url,
            app_secret=settings.whatsapp_app_secret,
            webhook_verify_token=settings.whatsapp_webhook_verify_token,
            request_timeout=settings.api_timeout,
            max_retries=settings.max_retries,
            auto_mark_read=settings.auto_mark_read,
            auto_process=settings.auto_process,
            queue_enabled=settings.queue_enabled,
            max_queue_size=settings.max_queue_size,
            storage=StorageConfig(backend=settings.storage_backend),
        )
