"""Student/tutor connection API routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tutorlink.api.deps import get_db
from tutorlink.auth.middleware import Viewer, get_viewer
from tutorlink.db.models import InvitationStatus
from tutorlink.responses import success_response
from tutorlink.schemas.connection import CreateConnectionInvitationRequest
from tutorlink.services import connections as connections_service

router = APIRouter(tags=["connections"])


@router.get("/connections")
def list_connections(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Your tutors (students) or your students (tutors)."""
    results = connections_service.list_connections(db, viewer.user_id)
    return success_response([c.model_dump(mode="json") for c in results])


@router.get("/connection-invitations")
def list_connection_invitations(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    status: InvitationStatus | None = Query(default=InvitationStatus.pending),
) -> dict:
    results = connections_service.list_connection_invitations(db, viewer.user_id, status=status)
    return success_response([i.model_dump(mode="json") for i in results])


@router.post("/connection-invitations", status_code=201)
def create_connection_invitation(
    body: CreateConnectionInvitationRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Errors: E_INVALID_ROLE (400), E_ALREADY_CONNECTED (409), E_INVITE_ALREADY_EXISTS (409)."""
    result = connections_service.create_connection_invitation(
        db, viewer.user_id, body.invitee_id
    )
    return success_response(result.model_dump(mode="json"))


@router.post("/connection-invitations/{invite_id}/accept")
def accept_connection_invitation(
    invite_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = connections_service.accept_connection_invitation(db, viewer.user_id, invite_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/connection-invitations/{invite_id}/decline")
def decline_connection_invitation(
    invite_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = connections_service.decline_connection_invitation(db, viewer.user_id, invite_id)
    return success_response(result.model_dump(mode="json"))
