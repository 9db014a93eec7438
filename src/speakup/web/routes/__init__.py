"""Route handlers for Web API."""

from speakup.web.routes.health import router as health_router
from speakup.web.routes.progress import router as progress_router
from speakup.web.routes.sessions import router as sessions_router

__all__ = [
    "health_router",
    "progress_router",
    "sessions_router",
]
