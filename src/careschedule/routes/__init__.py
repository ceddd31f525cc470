"""
CareSchedule API Routes

FastAPI route handlers for the scheduling engine.
"""
from .health import router as health_router
from .auth import router as auth_router
from .occurrences import router as occurrences_router
from .schedule import router as schedule_router

__all__ = [
    'health_router',
    'auth_router',
    'occurrences_router',
    'schedule_router',
]
