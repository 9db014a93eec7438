"""FastAPI application factory.

Main entry point for the SpeakUp Web API.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from speakup import __version__
from speakup.web.routes import health_router, progress_router, sessions_router
from speakup.web.sessions import get_session_manager

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown events."""
    manager = get_session_manager()
    logger.info("api_startup", store=type(manager.store).__name__)
    yield
    # Shutdown: release every live subscription
    await manager.close_all()
    logger.info("api_shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="SpeakUp API",
        description="Practice sessions and progress for SpeakUp learners",
        version=__version__,
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
    app.include_router(sessions_router)
    app.include_router(progress_router)

    return app


# Default app instance for uvicorn
app = create_app()
