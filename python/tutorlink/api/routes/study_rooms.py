"""Study room API routes.

Routes are transport-only: each calls exactly one service function.
Private rooms the viewer cannot see answer 404, like missing rooms.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from tutorlink.api.deps import get_db, get_realtime_hub
from tutorlink.auth.middleware import Viewer, get_viewer
from tutorlink.db.models import InvitationStatus, Subject
from tutorlink.realtime.hub import RealtimeHub
from tutorlink.responses import success_response
from tutorlink.schemas.study_room import (
    CreateStudyRoomRequest,
    InviteToRoomRequest,
    RoomFilter,
    SendRoomMessageRequest,
)
from tutorlink.services import study_rooms as study_rooms_service

router = APIRouter(tags=["study-rooms"])


# =============================================================================
# Room Endpoints
# =============================================================================


@router.get("/study-rooms")
def list_study_rooms(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    subject: Subject | None = Query(default=None),
    filter: RoomFilter = Query(default="all", description="all, my or public"),
) -> dict:
    results = study_rooms_service.list_study_rooms(
        db, viewer.user_id, subject=subject, room_filter=filter
    )
    return success_response([r.model_dump(mode="json") for r in results])


@router.post("/study-rooms", status_code=201)
def create_study_room(
    body: CreateStudyRoomRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    hub: Annotated[RealtimeHub, Depends(get_realtime_hub)],
) -> dict:
    """Create a room; the creator joins it in the same transaction."""
    result = study_rooms_service.create_study_room(
        db,
        viewer.user_id,
        body.name,
        body.subject,
        description=body.description,
        is_private=body.is_private,
        hub=hub,
    )
    return success_response(result.model_dump(mode="json"))


@router.get("/study-rooms/{room_id}")
def get_study_room(
    room_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = study_rooms_service.get_study_room(db, viewer.user_id, room_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/study-rooms/{room_id}/join")
def join_study_room(
    room_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    hub: Annotated[RealtimeHub, Depends(get_realtime_hub)],
) -> dict:
    """Join a room. Idempotent.

    Errors:
        E_ROOM_NOT_FOUND (404), E_ROOM_PRIVATE (403)
    """
    result = study_rooms_service.join_study_room(db, viewer.user_id, room_id, hub=hub)
    return success_response(result.model_dump(mode="json"))


@router.post("/study-rooms/{room_id}/leave", status_code=204)
def leave_study_room(
    room_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    hub: Annotated[RealtimeHub, Depends(get_realtime_hub)],
) -> Response:
    study_rooms_service.leave_study_room(db, viewer.user_id, room_id, hub=hub)
    return Response(status_code=204)


# =============================================================================
# Message Endpoints
# =============================================================================


@router.get("/study-rooms/{room_id}/messages")
def list_study_room_messages(
    room_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    limit: int = Query(default=50, ge=1, le=100, description="Maximum results (1-100)"),
    cursor: str | None = Query(default=None, description="Pagination cursor"),
) -> dict:
    messages, page = study_rooms_service.list_study_room_messages(
        db, viewer.user_id, room_id, limit=limit, cursor=cursor
    )
    return {
        "data": [m.model_dump(mode="json") for m in messages],
        "page": page.model_dump(mode="json"),
    }


@router.post("/study-rooms/{room_id}/messages", status_code=201)
def send_study_room_message(
    room_id: UUID,
    body: SendRoomMessageRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    hub: Annotated[RealtimeHub, Depends(get_realtime_hub)],
) -> dict:
    """Errors: E_ROOM_NOT_FOUND (404), E_NOT_PARTICIPANT (403)."""
    result = study_rooms_service.send_study_room_message(
        db, viewer.user_id, room_id, body.content, hub=hub
    )
    return success_response(result.model_dump(mode="json"))


# =============================================================================
# Invitation Endpoints
# =============================================================================


@router.post("/study-rooms/{room_id}/invitations", status_code=201)
def invite_to_study_room(
    room_id: UUID,
    body: InviteToRoomRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Invite a user by email into a private room.

    Errors:
        E_ROOM_NOT_PRIVATE (409), E_NOT_PARTICIPANT (403), E_USER_NOT_FOUND (404),
        E_ALREADY_PARTICIPANT (409), E_INVITE_ALREADY_EXISTS (409)
    """
    result = study_rooms_service.invite_to_study_room(db, viewer.user_id, room_id, body.email)
    return success_response(result.model_dump(mode="json"))


@router.get("/study-room-invitations")
def list_study_room_invitations(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    status: InvitationStatus | None = Query(default=InvitationStatus.pending),
) -> dict:
    results = study_rooms_service.list_viewer_study_room_invitations(
        db, viewer.user_id, status=status
    )
    return success_response([i.model_dump(mode="json") for i in results])


@router.post("/study-room-invitations/{invite_id}/accept")
def accept_study_room_invitation(
    invite_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    hub: Annotated[RealtimeHub, Depends(get_realtime_hub)],
) -> dict:
    """Errors: E_INVITE_NOT_FOUND (404), E_INVITE_NOT_PENDING (409)."""
    result = study_rooms_service.accept_study_room_invitation(
        db, viewer.user_id, invite_id, hub=hub
    )
    return success_response(result.model_dump(mode="json"))


@router.post("/study-room-invitations/{invite_id}/decline")
def decline_study_room_invitation(
    invite_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = study_rooms_service.decline_study_room_invitation(db, viewer.user_id, invite_id)
    return success_response(result.model_dump(mode="json"))
