"""Meeting API routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tutorlink.api.deps import get_db, get_realtime_hub
from tutorlink.auth.middleware import Viewer, get_viewer
from tutorlink.realtime.hub import RealtimeHub
from tutorlink.responses import success_response
from tutorlink.schemas.meeting import RequestMeetingRequest, UpdateMeetingStatusRequest
from tutorlink.services import meetings as meetings_service

router = APIRouter(tags=["meetings"])


@router.get("/meetings")
def list_meetings(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    results = meetings_service.get_user_meetings(db, viewer.user_id)
    return success_response([m.model_dump(mode="json") for m in results])


@router.post("/meetings", status_code=201)
def request_meeting(
    body: RequestMeetingRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    hub: Annotated[RealtimeHub, Depends(get_realtime_hub)],
) -> dict:
    """Request a meeting with a tutor. Students only.

    Errors:
        E_INVALID_TIME_RANGE (400), E_INVALID_ROLE (400), E_PROFILE_NOT_FOUND (404)
    """
    result = meetings_service.request_meeting(
        db,
        viewer.user_id,
        body.tutor_id,
        body.subject,
        body.start_time,
        body.end_time,
        notes=body.notes,
        hub=hub,
    )
    return success_response(result.model_dump(mode="json"))


@router.patch("/meetings/{meeting_id}")
def update_meeting_status(
    meeting_id: UUID,
    body: UpdateMeetingStatusRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    hub: Annotated[RealtimeHub, Depends(get_realtime_hub)],
) -> dict:
    """Move a meeting along its status machine.

    Errors:
        E_MEETING_NOT_FOUND (404), E_FORBIDDEN (403), E_INVALID_TRANSITION (409)
    """
    result = meetings_service.update_meeting_status(
        db, viewer.user_id, meeting_id, body.status, hub=hub
    )
    return success_response(result.model_dump(mode="json"))
