"""Dashboard statistics routes."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tutorlink.api.deps import get_db
from tutorlink.auth.middleware import Viewer, get_viewer
from tutorlink.responses import success_response
from tutorlink.services import statistics as statistics_service

router = APIRouter(tags=["statistics"])


@router.get("/statistics/student")
def get_student_statistics(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = statistics_service.get_student_statistics(db, viewer.user_id)
    return success_response(result.model_dump(mode="json"))


@router.get("/statistics/tutor")
def get_tutor_statistics(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = statistics_service.get_tutor_statistics(db, viewer.user_id)
    return success_response(result.model_dump(mode="json"))
