"""Profile API routes.

Routes are transport-only: each calls exactly one service function.
The caller's identity always comes from the bearer token.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tutorlink.api.deps import get_db
from tutorlink.auth.middleware import Viewer, get_viewer
from tutorlink.db.models import ProfileRole, Subject
from tutorlink.responses import success_response
from tutorlink.schemas.profile import CreateProfileRequest, UpdateProfileRequest
from tutorlink.services import profiles as profiles_service

router = APIRouter(tags=["profiles"])


@router.post("/profiles", status_code=201)
def create_profile(
    body: CreateProfileRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Create the caller's profile (signup).

    Errors:
        E_PROFILE_EXISTS (409), E_USERNAME_TAKEN (409), E_INVALID_ROLE (400)
    """
    result = profiles_service.create_profile_with_retry(db, viewer.user_id, body)
    return success_response(result.model_dump(mode="json"))


@router.get("/profiles/me")
def get_my_profile(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = profiles_service.get_profile(db, viewer.user_id)
    return success_response(result.model_dump(mode="json"))


@router.patch("/profiles/me")
def update_my_profile(
    body: UpdateProfileRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Partial update. `role` cannot be changed.

    Errors:
        E_PROFILE_NOT_FOUND (404), E_USERNAME_TAKEN (409), E_INVALID_ROLE (400)
    """
    result = profiles_service.update_profile(db, viewer.user_id, body)
    return success_response(result.model_dump(mode="json"))


@router.get("/profiles")
def search_profiles(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    q: str = Query(default="", max_length=100, description="Username substring"),
    role: ProfileRole | None = Query(default=None),
    subject: Subject | None = Query(default=None, description="Tutor subject"),
    limit: int = Query(default=20, ge=1, le=20),
) -> dict:
    results = profiles_service.search_profiles(db, q, role=role, subject=subject, limit=limit)
    return success_response([r.model_dump(mode="json") for r in results])


@router.get("/profiles/{user_id}")
def get_profile(
    user_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = profiles_service.get_profile(db, user_id)
    return success_response(result.model_dump(mode="json"))


@router.get("/profiles/{user_id}/subjects")
def get_tutor_subjects(
    user_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    return success_response(profiles_service.get_tutor_subjects(db, user_id))
