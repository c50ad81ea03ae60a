"""Webhook processing: signature verification and event extraction."""

from .extractor import WebhookExtractor, determine_message_type
from .signature import SignatureVerifier

__all__ = ["SignatureVerifier", "WebhookExtractor", "determine_message_type"]
