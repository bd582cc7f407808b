"""Meeting Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from tutorlink.db.models import MeetingStatus, Subject


class MeetingOut(BaseModel):
    id: UUID
    student_id: UUID
    student_username: str
    tutor_id: UUID
    tutor_username: str
    subject: Subject
    start_time: datetime
    end_time: datetime
    notes: str | None = None
    status: MeetingStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RequestMeetingRequest(BaseModel):
    tutor_id: UUID
    subject: Subject
    start_time: datetime
    end_time: datetime
    notes: str | None = Field(default=None, max_length=2000)


class UpdateMeetingStatusRequest(BaseModel):
    status: MeetingStatus
