"""Current user endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends

from tutorlink.auth.middleware import Viewer, get_viewer
from tutorlink.responses import success_response

router = APIRouter()


@router.get("/me")
async def get_me(viewer: Annotated[Viewer, Depends(get_viewer)]) -> dict:
    """Identity of the authenticated caller, as read from the bearer token."""
    return success_response(
        {
            "user_id": str(viewer.user_id),
            "email": viewer.email,
            "is_admin": viewer.is_admin,
        }
    )
