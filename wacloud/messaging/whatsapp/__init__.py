"""WhatsApp Cloud API messaging."""

from .client.whatsapp_client import WhatsAppClient
from .messenger.whatsapp_messenger import WhatsAppMessenger

__all__ = ["WhatsAppClient", "WhatsAppMessenger"]
