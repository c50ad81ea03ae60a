"""
FastAPI application factory and server runner.

The app's lifespan starts the WhatsAppCloud background tasks on startup and
stops them on shutdown, so stopping the server also stops queued delivery.
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from wacloud.api.routes.health import create_health_router
from wacloud.api.routes.webhooks import create_webhook_router
from wacloud.core.config.settings import settings
from wacloud.core.logging.logger import get_logger, setup_app_logging
from wacloud.core.whatsapp_app import WhatsAppCloud


def create_app(
    cloud: WhatsAppCloud,
    webhook_path: str | None = None,
    **fastapi_kwargs,
) -> FastAPI:
    """
    Build a FastAPI app serving the webhook endpoint for ``cloud``.

    Args:
        cloud: WhatsAppCloud instance handling the webhooks
        webhook_path: Route for GET verification and POST events
        **fastapi_kwargs: Overrides for the FastAPI constructor

    Returns:
        FastAPI application
    """
    logger = get_logger(__name__)
    path = webhook_path or settings.webhook_path

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await cloud.start()
        try:
            yield
        finally:
            await cloud.stop()

    config = {
        "title": "wacloud",
        "description": "WhatsApp Cloud API webhook receiver",
        "version": settings.version,
        "lifespan": lifespan,
    }
    config.update(fastapi_kwargs)

    app = FastAPI(**config)
    app.state.cloud = cloud
    app.include_router(create_webhook_router(cloud, path))
    app.include_router(create_health_router(cloud))

    logger.debug(f"Created FastAPI app with webhook route {path}")
    return app


def serve(
    cloud: WhatsAppCloud,
    host: str | None = None,
    port: int | None = None,
    **uvicorn_kwargs,
) -> None:
    """Run the webhook app with uvicorn until interrupted."""
    setup_app_logging()
    logger = get_logger(__name__)

    host = host or settings.host
    port = port or settings.port
    app = create_app(cloud)

    logger.info(f"Starting wacloud v{settings.version} server on {host}:{port}")
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
        **uvicorn_kwargs,
    )
