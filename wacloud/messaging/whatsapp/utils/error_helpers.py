"""
WhatsApp error handling utilities.

Centralizes how failed outbound operations are logged and turned into a
MessageResult or a StoredError.
"""

import asyncio

from wacloud.core.exceptions import ProviderError, RateLimitError, WACloudError
from wacloud.core.logging.logger import ContextLogger
from wacloud.schemas.core.types import ErrorCode
from wacloud.schemas.messages import MessageResult, StoredError


def is_authentication_error(error: Exception) -> bool:
    """True if the provider rejected the access token."""
    return isinstance(error, ProviderError) and error.status_code == 401


def error_code_for(error: Exception) -> str:
    if isinstance(error, WACloudError):
        return error.error_code.value
    if isinstance(error, asyncio.TimeoutError):
        return ErrorCode.NETWORK_ERROR.value
    return ErrorCode.INTERNAL_ERROR.value


def stored_error_for(error: Exception) -> StoredError:
    """Error descriptor recorded on a failed StoredMessage."""
    if isinstance(error, ProviderError):
        return StoredError(
            code=error.status_code,
            message=error.message,
            details={"provider_code": error.provider_code, "response": error.details},
        )
    if isinstance(error, RateLimitError):
        return StoredError(
            code=429, message=error.message, details={"retry_after": error.retry_after}
        )
    return StoredError(code=500, message=str(error) or type(error).__name__)


def handle_whatsapp_error(
    error: Exception,
    operation: str,
    recipient: str | None,
    logger: ContextLogger,
    include_traceback: bool = False,
) -> MessageResult:
    """Log a failed operation and build the failure MessageResult.

    Args:
        error: The exception that occurred
        operation: Description of the operation (e.g., "send text message")
        recipient: Recipient address or message id
        logger: Logger instance for error logging
        include_traceback: Whether to include the traceback in the log

    Returns:
        MessageResult with success=False and error details
    """
    if is_authentication_error(error):
        logger.error(f"CRITICAL: WhatsApp Authentication Failed - Cannot {operation}!")

    logger.error(
        f"Failed to {operation} to {recipient}: {error}", exc_info=include_traceback
    )

    return MessageResult(
        success=False,
        recipient=recipient,
        error=str(error) or type(error).__name__,
        error_code=error_code_for(error),
    )
