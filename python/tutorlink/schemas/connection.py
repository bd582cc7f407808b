"""Student/tutor connection Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from tutorlink.db.models import InvitationStatus


class ConnectionInvitationOut(BaseModel):
    id: UUID
    student_id: UUID
    tutor_id: UUID
    inviter_id: UUID
    invitee_id: UUID
    status: InvitationStatus
    created_at: datetime
    responded_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ConnectionOut(BaseModel):
    student_id: UUID
    tutor_id: UUID
    student_username: str
    tutor_username: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreateConnectionInvitationRequest(BaseModel):
    invitee_id: UUID
