"""
wacloud core components: configuration, logging, events and the
WhatsAppCloud facade.
"""

from .config.settings import settings
from .logging import get_logger, setup_app_logging

__all__ = ["settings", "get_logger", "setup_app_logging"]
