"""Configuration for wacloud."""

from .models import ResolvedWebhookConfig, StorageConfig, WebhookConfig, WhatsAppConfig
from .settings import Settings, settings

__all__ = [
    "Settings",
    "settings",
    "WhatsAppConfig",
    "WebhookConfig",
    "ResolvedWebhookConfig",
    "StorageConfig",
]
