"""FastAPI dependencies for route handlers.

Shared resources live on app.state and are created by the app lifespan:
- realtime_hub: the RealtimeHub services publish change events to
- storage_client: the object storage client used for upload signing
"""

from fastapi import Request

from tutorlink.db.session import get_db, get_session_factory
from tutorlink.realtime.hub import RealtimeHub
from tutorlink.storage.client import StorageClientBase

__all__ = ["get_db", "get_realtime_hub", "get_session_factory", "get_storage"]


def get_realtime_hub(request: Request) -> RealtimeHub:
    return request.app.state.realtime_hub


def get_storage(request: Request) -> StorageClientBase:
    return request.app.state.storage_client
