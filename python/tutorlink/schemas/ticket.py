"""Ticket and response Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from tutorlink.db.models import ProfileRole, Subject


class ResponseOut(BaseModel):
    id: UUID
    ticket_id: UUID
    tutor_id: UUID | None = None
    tutor_username: str | None = None
    student_id: UUID | None = None
    student_username: str | None = None
    content: str
    parent_id: UUID | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TicketOut(BaseModel):
    id: UUID
    student_id: UUID
    student_username: str
    subject: Subject
    topic: str
    description: str
    closed: bool
    created_at: datetime
    last_response_at: datetime | None = None
    responses: list[ResponseOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class CreateTicketRequest(BaseModel):
    subject: Subject
    topic: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=10000)


class CreateResponseRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)
    role: ProfileRole | None = None
    parent_id: UUID | None = None
