"""
Health Router.

Public, unauthenticated endpoint used by process supervisors to confirm the
service is running and configured.
"""

from fastapi import APIRouter, Request
from datetime import datetime, timezone
from typing import Dict, Any

from core.logging_config import get_logger

logger = get_logger(__name__)

VERSION = "1.0.0"

health_router = APIRouter(tags=["Health"])


@health_router.get("/healthcheck")
async def health_check(request: Request) -> Dict[str, Any]:
    """
    Basic health check endpoint

    Returns:
        Dict with status, timestamp, version and cache location
    """
    logger.debug("Health check requested")

    settings = request.app.state.settings
    fetch_service = request.app.state.fetch_service

    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
        "service": "Magnify Profile Fetch API",
        "cache_dir": str(settings.cache_dir),
        "fetch_status": fetch_service.status.value,
    }
