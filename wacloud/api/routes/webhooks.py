"""
FastAPI webhook routes.

Translate a FastAPI Request into a UniversalRequest and the resulting
WebhookResult back into an HTTP response. All webhook semantics live in the
dispatcher; these routes only handle HTTP concerns.
"""

from typing import TYPE_CHECKING

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from wacloud.schemas.webhook.request import UniversalRequest
from wacloud.schemas.webhook.result import WebhookResult

if TYPE_CHECKING:
    from wacloud.core.whatsapp_app import WhatsAppCloud

FRAMEWORK_NAME = "fastapi"


async def to_universal_request(request: Request) -> UniversalRequest:
    """Build a UniversalRequest carrying the exact body bytes for signing."""
    raw_body = await request.body() if request.method != "GET" else None
    return UniversalRequest(
        method=request.method,
        url=str(request.url),
        headers=request.headers.items(),
        query=dict(request.query_params),
        raw_body=raw_body or None,
        framework=FRAMEWORK_NAME,
    )


def to_response(result: WebhookResult) -> Response:
    if result.success and result.challenge is not None:
        return PlainTextResponse(result.challenge, status_code=result.status)
    return JSONResponse(result.to_response_body(), status_code=result.status)


def create_webhook_router(cloud: "WhatsAppCloud", path: str = "/webhook") -> APIRouter:
    """
    Create the webhook router for one WhatsAppCloud instance.

    Args:
        cloud: WhatsAppCloud that processes the webhooks
        path: Route path for both verification (GET) and events (POST)

    Returns:
        APIRouter with GET and POST handlers on ``path``
    """
    router = APIRouter(
        tags=["Webhooks"],
        responses={
            400: {"description": "Bad Request - Invalid webhook payload"},
            401: {"description": "Unauthorized - Invalid webhook signature"},
            403: {"description": "Forbidden - Webhook verification failed"},
            504: {"description": "Gateway Timeout - Webhook processing timed out"},
        },
    )

    @router.get(path)
    async def verify_webhook(request: Request) -> Response:
        """Answer the hub.challenge verification handshake."""
        result = await cloud.process_webhook(await to_universal_request(request))
        return to_response(result)

    @router.post(path)
    async def process_webhook(request: Request) -> Response:
        """Process an event notification envelope."""
        result = await cloud.process_webhook(await to_universal_request(request))
        return to_response(result)

    return router
