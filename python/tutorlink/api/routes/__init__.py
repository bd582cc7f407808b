"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
"""

from fastapi import APIRouter

from tutorlink.api.routes.connections import router as connections_router
from tutorlink.api.routes.conversations import router as conversations_router
from tutorlink.api.routes.health import router as health_router
from tutorlink.api.routes.me import router as me_router
from tutorlink.api.routes.meetings import router as meetings_router
from tutorlink.api.routes.profiles import router as profiles_router
from tutorlink.api.routes.realtime import router as realtime_router
from tutorlink.api.routes.statistics import router as statistics_router
from tutorlink.api.routes.study_rooms import router as study_rooms_router
from tutorlink.api.routes.tickets import router as tickets_router
from tutorlink.api.routes.uploads import router as uploads_router


def create_api_router() -> APIRouter:
    """Create the API router with every route module registered."""
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(me_router, tags=["user"])
    api_router.include_router(profiles_router)
    api_router.include_router(tickets_router)
    api_router.include_router(conversations_router)
    api_router.include_router(meetings_router)
    api_router.include_router(study_rooms_router)
    api_router.include_router(connections_router)
    api_router.include_router(statistics_router)
    api_router.include_router(uploads_router)
    api_router.include_router(realtime_router)
    return api_router


__all__ = ["create_api_router"]
