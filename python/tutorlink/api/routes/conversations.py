"""Direct conversation and message API routes.

Routes are transport-only: each calls exactly one service function.

Response envelope: {"data": ...} or {"data": [...], "page": {...}}
Error envelope: {"error": {"code": "...", "message": "...", "request_id": "..."}}
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tutorlink.api.deps import get_db, get_realtime_hub
from tutorlink.auth.middleware import Viewer, get_viewer
from tutorlink.realtime.hub import RealtimeHub
from tutorlink.responses import success_response
from tutorlink.schemas.conversation import CreateConversationRequest, SendMessageRequest
from tutorlink.services import conversations as conversations_service

router = APIRouter(tags=["conversations"])


# =============================================================================
# Conversation Endpoints
# =============================================================================


@router.get("/conversations")
def list_conversations(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """The viewer's conversations, most recently active first."""
    results = conversations_service.list_conversations(db, viewer.user_id)
    return success_response([c.model_dump(mode="json") for c in results])


@router.post("/conversations")
def create_or_get_conversation(
    body: CreateConversationRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    hub: Annotated[RealtimeHub, Depends(get_realtime_hub)],
) -> dict:
    """Return the conversation with other_user_id, creating it on first use.

    Errors:
        E_INVALID_REQUEST (400): other_user_id is the viewer.
        E_PROFILE_NOT_FOUND (404): Either user has no profile.
    """
    result = conversations_service.create_or_get_conversation(
        db, viewer.user_id, body.other_user_id, hub=hub
    )
    return success_response(result.model_dump(mode="json"))


@router.get("/conversations/{conversation_id}")
def get_conversation(
    conversation_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Errors: E_CONVERSATION_NOT_FOUND (404) for missing or non-participant."""
    result = conversations_service.get_conversation(db, viewer.user_id, conversation_id)
    return success_response(result.model_dump(mode="json"))


# =============================================================================
# Message Endpoints
# =============================================================================


@router.get("/conversations/{conversation_id}/messages")
def list_messages(
    conversation_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    limit: int = Query(default=50, ge=1, le=100, description="Maximum results (1-100)"),
    cursor: str | None = Query(default=None, description="Pagination cursor"),
) -> dict:
    """Messages in seq order, oldest first.

    Errors:
        E_CONVERSATION_NOT_FOUND (404), E_INVALID_CURSOR (400)
    """
    messages, page = conversations_service.list_messages(
        db, viewer.user_id, conversation_id, limit=limit, cursor=cursor
    )
    return {
        "data": [m.model_dump(mode="json") for m in messages],
        "page": page.model_dump(mode="json"),
    }


@router.post("/conversations/{conversation_id}/messages", status_code=201)
def send_message(
    conversation_id: UUID,
    body: SendMessageRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    hub: Annotated[RealtimeHub, Depends(get_realtime_hub)],
) -> dict:
    result = conversations_service.send_message(
        db, conversation_id, viewer.user_id, body.content, hub=hub
    )
    return success_response(result.model_dump(mode="json"))
