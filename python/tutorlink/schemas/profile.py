"""Profile Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from tutorlink.db.models import ProfileRole, Subject


class ProfileOut(BaseModel):
    id: UUID
    user_id: UUID
    username: str
    email: str
    role: ProfileRole
    hourly_rate: float | None = None
    specialties: list[Subject] = Field(default_factory=list)
    struggles: list[Subject] = Field(default_factory=list)
    bio: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProfileSummary(BaseModel):
    """Counterpart view used in search results and connection lists."""

    user_id: UUID
    username: str
    role: ProfileRole
    specialties: list[Subject] = Field(default_factory=list)
    hourly_rate: float | None = None

    model_config = ConfigDict(from_attributes=True)


class CreateProfileRequest(BaseModel):
    """Signup payload. The identity comes from the bearer token."""

    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    email: str = Field(..., min_length=3, max_length=320)
    role: ProfileRole
    hourly_rate: float | None = Field(default=None, ge=0)
    specialties: list[Subject] | None = None
    struggles: list[Subject] | None = None
    bio: str | None = Field(default=None, max_length=2000)

    model_config = ConfigDict(extra="forbid")


class UpdateProfileRequest(BaseModel):
    """Partial profile update.

    `role` is deliberately absent and extra keys are rejected, so a role
    change cannot be expressed.
    """

    username: str | None = Field(
        default=None, min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$"
    )
    hourly_rate: float | None = Field(default=None, ge=0)
    specialties: list[Subject] | None = None
    struggles: list[Subject] | None = None
    bio: str | None = Field(default=None, max_length=2000)

    model_config = ConfigDict(extra="forbid")
