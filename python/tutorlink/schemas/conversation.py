"""Direct messaging Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ParticipantOut(BaseModel):
    user_id: UUID
    username: str

    model_config = ConfigDict(from_attributes=True)


class MessageOut(BaseModel):
    """A direct message. Messages are ordered by seq within a conversation."""

    id: UUID
    conversation_id: UUID
    sender_id: UUID
    sender_username: str
    content: str
    seq: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationOut(BaseModel):
    id: UUID
    participants: list[ParticipantOut]
    last_message: MessageOut | None = None
    created_at: datetime
    updated_at: datetime


class CreateConversationRequest(BaseModel):
    other_user_id: UUID


class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)
