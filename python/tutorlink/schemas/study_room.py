"""Study room Pydantic schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from tutorlink.db.models import InvitationStatus, Subject

RoomFilter = Literal["all", "my", "public"]


class RoomParticipantOut(BaseModel):
    user_id: UUID
    username: str
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StudyRoomOut(BaseModel):
    id: UUID
    created_by: UUID
    name: str
    subject: Subject
    description: str | None = None
    is_private: bool
    participant_count: int
    is_participant: bool
    joinable: bool
    created_at: datetime


class StudyRoomDetailOut(StudyRoomOut):
    participants: list[RoomParticipantOut]


class StudyRoomMessageOut(BaseModel):
    id: UUID
    room_id: UUID
    user_id: UUID
    username: str
    content: str
    seq: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StudyRoomInvitationOut(BaseModel):
    id: UUID
    room_id: UUID
    room_name: str
    inviter_id: UUID
    invitee_id: UUID
    status: InvitationStatus
    created_at: datetime
    responded_at: datetime | None = None


class CreateStudyRoomRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    subject: Subject
    description: str | None = Field(default=None, max_length=2000)
    is_private: bool = False


class SendRoomMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)


class InviteToRoomRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
