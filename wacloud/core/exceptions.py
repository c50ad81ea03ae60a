"""
Exception taxonomy for webhook dispatch and outbound delivery.

Request-level errors (validation, verification, signature, body, method,
timeout, internal) terminate a webhook request and are converted into a
structured WebhookResult by the dispatcher. Outbound errors (rate limit,
provider) are raised by the REST client.
"""

from typing import Any

from wacloud.schemas.core.types import ErrorCode


class WACloudError(Exception):
    """Base exception for wacloud errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Any = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details
        super().__init__(message)


class WebhookValidationError(WACloudError):
    """Raised when a UniversalRequest is malformed."""

    status_code = 400

    def __init__(self, errors: list[str], status_code: int | None = None):
        super().__init__(", ".join(errors), ErrorCode.VALIDATION_ERROR, errors)
        if status_code is not None:
            self.status_code = status_code


class VerificationError(WACloudError):
    """Raised when the verification handshake does not match."""

    status_code = 403

    def __init__(self, message: str = "Webhook verification failed"):
        super().__init__(message, ErrorCode.VERIFICATION_FAILED)


class SignatureError(WACloudError):
    """Raised when the X-Hub-Signature-256 header does not verify."""

    status_code = 401

    def __init__(self, message: str = "Webhook signature verification failed"):
        super().__init__(message, ErrorCode.INVALID_SIGNATURE)


class BodyParseError(WACloudError):
    """Raised when the request body is not a JSON webhook envelope."""

    status_code = 400

    def __init__(self, message: str = "Invalid JSON in request body"):
        super().__init__(message, ErrorCode.INVALID_BODY)


class MethodNotAllowedError(WACloudError):
    """Raised for methods other than GET and POST."""

    status_code = 405

    def __init__(self, method: str):
        super().__init__(f"Method {method} not allowed", ErrorCode.METHOD_NOT_ALLOWED)
        self.method = method


class DispatchTimeoutError(WACloudError):
    """Raised when webhook dispatch exceeds the configured timeout."""

    status_code = 504

    def __init__(self, timeout: float):
        super().__init__(
            f"Webhook processing exceeded {timeout}s", ErrorCode.DISPATCH_TIMEOUT
        )
        self.timeout = timeout


class InternalError(WACloudError):
    """Wraps an unexpected exception raised during dispatch."""

    status_code = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, ErrorCode.INTERNAL_ERROR, details)


class RateLimitError(WACloudError):
    """HTTP 429 from the messaging API, with the provider's retry-after hint."""

    status_code = 429

    def __init__(self, retry_after: float, details: Any = None):
        super().__init__(
            f"Rate limit exceeded. Retry after: {retry_after}s",
            ErrorCode.RATE_LIMIT_ERROR,
            details,
        )
        self.retry_after = retry_after


class ProviderError(WACloudError):
    """Non-2xx response from the messaging API."""

    def __init__(
        self,
        status: int,
        message: str,
        provider_code: int | None = None,
        details: Any = None,
    ):
        super().__init__(message, ErrorCode.PROVIDER_ERROR, details)
        self.status_code = status
        self.provider_code = provider_code
