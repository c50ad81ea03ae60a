"""HTTP routes."""

from .health import create_health_router
from .webhooks import create_webhook_router

__all__ = ["create_health_router", "create_webhook_router"]
