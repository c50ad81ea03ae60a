"""
Health check endpoint.
"""

import time
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter

from wacloud.core.config.settings import settings

if TYPE_CHECKING:
    from wacloud.core.whatsapp_app import WhatsAppCloud


def create_health_router(cloud: "WhatsAppCloud") -> APIRouter:
    router = APIRouter(tags=["Health"])

    @router.get("/health")
    async def health_check() -> dict[str, Any]:
        """Report liveness plus message and queue counters."""
        queue_stats = cloud.get_queue_stats()
        return {
            "status": "healthy" if cloud.is_running else "stopped",
            "timestamp": time.time(),
            "environment": {
                "environment": settings.environment,
                "version": settings.version,
                "api_version": cloud.config.api_version,
            },
            "statistics": cloud.get_statistics().model_dump(),
            "queue": queue_stats.model_dump() if queue_stats else None,
            "conversations": cloud.state.statistics().model_dump(),
        }

    return router
