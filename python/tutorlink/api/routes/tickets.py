"""Ticket and response API routes.

Routes are transport-only: each calls exactly one service function.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tutorlink.api.deps import get_db, get_realtime_hub
from tutorlink.auth.middleware import Viewer, get_viewer
from tutorlink.realtime.hub import RealtimeHub
from tutorlink.responses import success_response
from tutorlink.schemas.ticket import CreateResponseRequest, CreateTicketRequest
from tutorlink.services import tickets as tickets_service

router = APIRouter(tags=["tickets"])


@router.post("/tickets", status_code=201)
def create_ticket(
    body: CreateTicketRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Open a help request. Students only.

    Errors:
        E_PROFILE_NOT_FOUND (404), E_INVALID_ROLE (400), E_INVALID_SUBJECT (400)
    """
    result = tickets_service.create_ticket(
        db, viewer.user_id, body.subject, body.topic, body.description
    )
    return success_response(result.model_dump(mode="json"))


@router.get("/tickets/mine")
def list_my_tickets(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """The student's own tickets, newest first, with responses."""
    results = tickets_service.get_student_tickets(db, viewer.user_id)
    return success_response([t.model_dump(mode="json") for t in results])


@router.get("/tickets/feed")
def list_tutor_feed(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Open tickets in the tutor's subjects, newest first."""
    results = tickets_service.get_tutor_tickets(db, viewer.user_id)
    return success_response([t.model_dump(mode="json") for t in results])


@router.get("/tickets/{ticket_id}")
def get_ticket(
    ticket_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = tickets_service.get_ticket(db, ticket_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/tickets/{ticket_id}/responses", status_code=201)
def create_response(
    ticket_id: UUID,
    body: CreateResponseRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    hub: Annotated[RealtimeHub, Depends(get_realtime_hub)],
) -> dict:
    """Respond to a ticket.

    Errors:
        E_TICKET_NOT_FOUND (404), E_NOT_TICKET_OWNER (403), E_INVALID_ROLE (400)
    """
    result = tickets_service.create_response(
        db,
        ticket_id,
        viewer.user_id,
        body.content,
        role=body.role,
        parent_id=body.parent_id,
        hub=hub,
    )
    return success_response(result.model_dump(mode="json"))


@router.post("/tickets/{ticket_id}/close")
def close_ticket(
    ticket_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = tickets_service.close_ticket(db, ticket_id, viewer.user_id)
    return success_response(result.model_dump(mode="json"))
