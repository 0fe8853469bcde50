"""Route handlers for the Web API."""

from studytrack.web.routes.health import router as health_router
from studytrack.web.routes.session import router as session_router
from studytrack.web.routes.subjects import router as subjects_router
from studytrack.web.routes.dashboard import router as dashboard_router
from studytrack.web.routes.events import router as events_router

__all__ = [
    "health_router",
    "session_router",
    "subjects_router",
    "dashboard_router",
    "events_router",
]
