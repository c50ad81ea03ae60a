"""WhatsApp Cloud API HTTP client."""

from .whatsapp_client import WhatsAppClient

__all__ = ["WhatsAppClient"]
