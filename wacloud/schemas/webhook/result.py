"""
Aggregated outcome of processing one webhook request.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from wacloud.schemas.conversation import ConversationState
from wacloud.schemas.core.types import ErrorCode
from wacloud.schemas.webhook.events import ExtractedEvent


class EventError(BaseModel):
    """A per-event failure recorded while dispatching a batch."""

    event: str = Field(description="Event type of the failing event")
    message_id: str | None = None
    error: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class WebhookStatistics(BaseModel):
    total_events: int = 0
    processed_events: int = Field(
        default=0, description="Events handled without error, including filtered ones"
    )
    errors: int = Field(
        default=0,
        description=(
            "Events that failed. error.details holds one entry per failed "
            "handler, so it can be longer than this count"
        ),
    )
    filtered_events: int = Field(
        default=0, description="Events a middleware declined to process"
    )
    duplicate_events: int = Field(
        default=0, description="Redelivered events skipped by deduplication"
    )


class WebhookResultData(BaseModel):
    events: list[ExtractedEvent] = Field(default_factory=list)
    statistics: WebhookStatistics = Field(default_factory=WebhookStatistics)
    conversations: list[ConversationState] = Field(default_factory=list)


class WebhookErrorInfo(BaseModel):
    code: ErrorCode
    message: str
    details: Any = None


class ResultMetadata(BaseModel):
    processing_time_ms: float = 0.0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    framework: str | None = None


class WebhookResult(BaseModel):
    """Result returned to the host adapter for every webhook request."""

    success: bool
    status: int = Field(description="HTTP-equivalent status code")
    data: WebhookResultData | None = None
    error: WebhookErrorInfo | None = None
    metadata: ResultMetadata = Field(default_factory=ResultMetadata)
    challenge: str | None = None

    @classmethod
    def failure(
        cls,
        status: int,
        code: ErrorCode,
        message: str,
        details: Any = None,
        framework: str | None = None,
    ) -> "WebhookResult":
        """Build a terminal failure result."""
        return cls(
            success=False,
            status=status,
            error=WebhookErrorInfo(code=code, message=message, details=details),
            metadata=ResultMetadata(framework=framework),
        )

    @classmethod
    def from_error(cls, exc: Exception, framework: str | None = None) -> "WebhookResult":
        """Convert a request-level exception into a failure result."""
        from wacloud.core.exceptions import WACloudError

        if isinstance(exc, WACloudError):
            return cls.failure(
                exc.status_code, exc.error_code, exc.message, exc.details, framework
            )
        return cls.failure(
            500,
            ErrorCode.INTERNAL_ERROR,
            str(exc) or "Unknown error occurred",
            framework=framework,
        )

    def to_response_body(self) -> dict[str, Any]:
        """JSON-serializable body for HTTP responses."""
        return self.model_dump(mode="json", exclude_none=True)
