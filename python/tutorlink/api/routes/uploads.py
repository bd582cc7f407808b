"""Upload signing routes.

Keys are passed as a query parameter because they contain slashes.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response

from tutorlink.api.deps import get_storage
from tutorlink.auth.middleware import Viewer, get_viewer
from tutorlink.responses import success_response
from tutorlink.schemas.upload import CreateUploadUrlRequest
from tutorlink.services import uploads as uploads_service
from tutorlink.storage.client import StorageClientBase

router = APIRouter(tags=["uploads"])


@router.post("/uploads", status_code=201)
def create_upload_url(
    body: CreateUploadUrlRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    storage: Annotated[StorageClientBase, Depends(get_storage)],
) -> dict:
    """Sign a direct upload under uploads/{viewer}/.

    Errors:
        E_INVALID_UPLOAD_KEY (400), E_SIGN_UPLOAD_FAILED (500)
    """
    result = uploads_service.create_upload_url(
        storage, viewer, body.file_name, body.content_type
    )
    return success_response(result.model_dump(mode="json"))


@router.get("/uploads/download")
def create_download_url(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    storage: Annotated[StorageClientBase, Depends(get_storage)],
    key: str = Query(..., min_length=1, max_length=1024),
) -> dict:
    """Errors: E_UPLOAD_ACCESS_DENIED (403), E_SIGN_DOWNLOAD_FAILED (500)."""
    result = uploads_service.create_download_url(storage, viewer, key)
    return success_response(result.model_dump(mode="json"))


@router.delete("/uploads", status_code=204)
def delete_upload(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    storage: Annotated[StorageClientBase, Depends(get_storage)],
    key: str = Query(..., min_length=1, max_length=1024),
) -> Response:
    uploads_service.delete_upload(storage, viewer, key)
    return Response(status_code=204)
