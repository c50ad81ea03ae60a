"""
X-Hub-Signature-256 verification for WhatsApp webhooks.

The provider signs the exact request bytes with HMAC-SHA256 keyed by the app
secret and sends ``sha256=<hex>``. Verification never raises and fails closed
when no secret is configured.
"""

import hashlib
import hmac
import json

from wacloud.core.logging.logger import get_logger
from wacloud.schemas.webhook.request import UniversalRequest

SIGNATURE_HEADER = "X-Hub-Signature-256"
SIGNATURE_PREFIX = "sha256="


def reserialize_body(body: object) -> bytes:
    """
    Re-serialize a parsed body for hashing when raw bytes were not captured.

    Not guaranteed byte-identical to what the provider transmitted (key order,
    whitespace and unicode escaping may differ), so a genuine request can fail
    verification. Hosts should pass ``raw_body`` whenever they can.
    """
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class SignatureVerifier:
    """Validates that a request body was produced by the holder of the app secret."""

    def __init__(self, app_secret: str | None):
        self._app_secret = app_secret or ""
        self.logger = get_logger(__name__)

    @property
    def is_configured(self) -> bool:
        return bool(self._app_secret)

    def compute(self, payload: bytes) -> str:
        """Compute the expected header value for ``payload``."""
        digest = hmac.new(
            self._app_secret.encode("utf-8"), payload, hashlib.sha256
        ).hexdigest()
        return f"{SIGNATURE_PREFIX}{digest}"

    def verify(self, payload: bytes | str, signature: str | None) -> bool:
        """
        Validate a webhook signature.

        Args:
            payload: Raw webhook payload bytes
            signature: X-Hub-Signature-256 header value

        Returns:
            True if signature is valid, False otherwise
        """
        if not self._app_secret:
            self.logger.warning(
                "App secret not configured - rejecting signed webhook request"
            )
            return False

        if not signature:
            self.logger.warning("Missing X-Hub-Signature-256 header")
            return False

        try:
            if isinstance(payload, str):
                payload = payload.encode("utf-8")

            if not signature.startswith(SIGNATURE_PREFIX):
                self.logger.error(
                    "Invalid signature format - must start with 'sha256='"
                )
                return False

            is_valid = hmac.compare_digest(
                self.compute(payload).encode("utf-8"), signature.encode("utf-8")
            )
            if not is_valid:
                self.logger.error("Webhook signature validation failed")
            return is_valid

        except Exception as e:
            self.logger.error(f"Error validating webhook signature: {e}", exc_info=True)
            return False

    def verify_request(self, request: UniversalRequest) -> bool:
        """Verify a UniversalRequest, preferring its exact wire bytes."""
        signature = request.get_header(SIGNATURE_HEADER)
        if request.raw_body is not None:
            return self.verify(request.raw_body, signature)

        self.logger.debug(
            "Raw body unavailable - verifying against a re-serialized body, "
            "which may not match the transmitted bytes"
        )
        try:
            payload = reserialize_body(request.body)
        except (TypeError, ValueError) as e:
            self.logger.error(f"Cannot re-serialize body for signature check: {e}")
            return False
        return self.verify(payload, signature)
