"""
Magnify Profile Fetch API - Main Application Entry Point.

This module builds the FastAPI application that fronts the profile
fetch-and-cache pipeline. Configuration (including the API credential) is read
once during startup and passed explicitly into the fetch service; a missing
credential aborts startup before any request can reach the network.

Key Responsibilities:
- Configure logging and load settings at startup.
- Wire the `FetchService` (profile client, asset downloader, asset cache).
- Install error handling and request timing middleware.
- Mount the health, fetch and WebSocket routers.
- Cancel any fetch in flight on shutdown.
"""

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from api.endpoints import router, websocket_router
from api.health_router import health_router, VERSION
from core.config import Settings, load_settings
from core.logging_config import setup_logging, get_logger
from core.middleware import ErrorHandlingMiddleware, RequestTimingMiddleware
from services.fetch_service import FetchService, build_fetch_service


def create_app(
    settings: Optional[Settings] = None,
    fetch_service: Optional[FetchService] = None,
) -> FastAPI:
    """Build the application; explicit arguments replace environment wiring"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        setup_logging()
        logger = get_logger("api.startup")

        app.state.settings = settings if settings is not None else load_settings()
        app.state.fetch_service = (
            fetch_service
            if fetch_service is not None
            else build_fetch_service(app.state.settings)
        )
        logger.info(f"Asset cache at {app.state.settings.cache_dir}")
        logger.info("Service startup completed")
        yield

        # Cleanup on shutdown
        logger.info("Shutting down Magnify API")
        app.state.fetch_service.cancel_fetch()
        logger.info("Cleanup completed")

    app = FastAPI(
        title="Magnify Profile Fetch API",
        description="Fetches user profiles and caches their avatar and banner images",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(ErrorHandlingMiddleware)

    app.include_router(health_router)
    app.include_router(websocket_router)
    app.include_router(router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="127.0.0.1",
        port=8002,
        log_level="info",
    )
