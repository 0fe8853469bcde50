"""FastAPI application factory.

Main entry point for the study tracker Web API.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from studytrack.config.app_config import load_app_config
from studytrack.web.routes import (
    dashboard_router,
    events_router,
    health_router,
    session_router,
    subjects_router,
)
from studytrack.web.tracker import get_sync_controller

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown events."""
    config = load_app_config()
    logger.info(
        "api_startup",
        app_id=config.app_id,
        store_backend=config.store.backend,
        state_dir=config.store.state_dir,
    )
    yield
    controller = get_sync_controller()
    await controller.flush()
    controller.stop()
    logger.info("api_shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Study Tracker API",
        description="Web API for the study progress tracker",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware for web clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(session_router)
    app.include_router(subjects_router)
    app.include_router(dashboard_router)
    app.include_router(events_router)

    return app


# Default app instance for uvicorn
app = create_app()
