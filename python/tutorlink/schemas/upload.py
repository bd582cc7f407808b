"""Upload signing schemas."""

from pydantic import BaseModel, Field


class CreateUploadUrlRequest(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255, alias="fileName")
    content_type: str = Field(..., min_length=1, max_length=255, alias="contentType")

    model_config = {"populate_by_name": True}


class UploadUrlOut(BaseModel):
    url: str
    key: str
    expires_in: int


class DownloadUrlOut(BaseModel):
    url: str
    expires_in: int
