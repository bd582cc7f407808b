"""SQLAlchemy ORM models for TutorLink.

Defines all database tables using SQLAlchemy 2.x declarative patterns.
Enum-valued columns are Text with CHECK constraints; the Python enums
below are the source of truth for allowed values.

Users are identified by their Supabase auth user ID (JWT sub claim).
Every user reference points at profiles.user_id.
"""

from datetime import UTC, datetime
from enum import Enum as PyEnum
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


JsonList = JSON().with_variant(JSONB(), "postgresql")


class UtcDateTime(TypeDecorator):
    """timestamptz that always hands back aware UTC datetimes.

    SQLite drops the offset on storage; naive values read back are UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def _created_at() -> Mapped[datetime]:
    return mapped_column(
        UtcDateTime(), default=utcnow, server_default=func.now(), nullable=False
    )


def _user_fk(ondelete: str = "CASCADE", **kwargs) -> Mapped[UUID]:
    return mapped_column(Uuid, ForeignKey("profiles.user_id", ondelete=ondelete), **kwargs)


def _in_check(column: str, values: list[str], name: str) -> CheckConstraint:
    quoted = ", ".join(f"'{v}'" for v in values)
    return CheckConstraint(f"{column} IN ({quoted})", name=name)


# =============================================================================
# Enums
# =============================================================================


class ProfileRole(str, PyEnum):
    student = "student"
    tutor = "tutor"


class Subject(str, PyEnum):
    """Fixed subject catalogue shared by tickets, meetings, rooms and tutors."""

    math = "Math"
    science = "Science"
    english = "English"
    history = "History"
    computer_science = "Computer Science"


class MeetingStatus(str, PyEnum):
    """Meeting lifecycle states.

    States:
        pending: Requested by the student, awaiting the tutor
        accepted: Tutor agreed
        rejected: Tutor declined (terminal)
        completed: Meeting took place (terminal)
        cancelled: Withdrawn by either party (terminal)
    """

    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"
    completed = "completed"
    cancelled = "cancelled"


class InvitationStatus(str, PyEnum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


SUBJECT_VALUES = [s.value for s in Subject]
INVITATION_STATUS_VALUES = [s.value for s in InvitationStatus]


# =============================================================================
# Profiles
# =============================================================================


class Profile(Base):
    """Public profile, exactly one per auth identity."""

    __tablename__ = "profiles"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, unique=True)
    username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False)
    hourly_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    specialties: Mapped[list[str]] = mapped_column(JsonList, nullable=False, default=list)
    struggles: Mapped[list[str]] = mapped_column(JsonList, nullable=False, default=list)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        _in_check("role", [r.value for r in ProfileRole], "ck_profiles_role"),
        CheckConstraint(
            "hourly_rate IS NULL OR hourly_rate >= 0", name="ck_profiles_hourly_rate"
        ),
    )


class TutorSubject(Base):
    """Subjects a tutor answers tickets for. Mirrors Profile.specialties."""

    __tablename__ = "tutor_subjects"

    tutor_id: Mapped[UUID] = _user_fk(primary_key=True)
    subject: Mapped[str] = mapped_column(Text, primary_key=True)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (_in_check("subject", SUBJECT_VALUES, "ck_tutor_subjects_subject"),)


# =============================================================================
# Tickets
# =============================================================================


class Ticket(Base):
    """A student's help request."""

    __tablename__ = "tickets"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    student_id: Mapped[UUID] = _user_fk(nullable=False)
    student_username: Mapped[str] = mapped_column(Text, nullable=False)
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    topic: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    closed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    created_at: Mapped[datetime] = _created_at()
    last_response_at: Mapped[datetime | None] = mapped_column(
        UtcDateTime(), nullable=True
    )

    __table_args__ = (
        _in_check("subject", SUBJECT_VALUES, "ck_tickets_subject"),
        Index("idx_tickets_student_created", "student_id", "created_at"),
        Index("idx_tickets_subject_created", "subject", "created_at"),
    )

    responses: Mapped[list["Response"]] = relationship(
        "Response",
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="Response.created_at",
    )


class Response(Base):
    """A reply on a ticket, written by a tutor or by the ticket's student."""

    __tablename__ = "responses"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    tutor_id: Mapped[UUID | None] = _user_fk(nullable=True)
    tutor_username: Mapped[str | None] = mapped_column(Text, nullable=True)
    student_id: Mapped[UUID | None] = _user_fk(nullable=True)
    student_username: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    parent_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("responses.id", ondelete="CASCADE"), nullable=True
    )
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        CheckConstraint(
            "(tutor_id IS NULL) <> (student_id IS NULL)",
            name="ck_responses_single_author",
        ),
        Index("idx_responses_ticket_created", "ticket_id", "created_at"),
    )

    ticket: Mapped["Ticket"] = relationship("Ticket", back_populates="responses")


# =============================================================================
# Direct messaging
# =============================================================================


class Conversation(Base):
    """One conversation per unordered pair of users.

    The pair is stored sorted (user_low_id < user_high_id) so the unique
    constraint covers both orderings.
    """

    __tablename__ = "conversations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_low_id: Mapped[UUID] = _user_fk(nullable=False)
    user_high_id: Mapped[UUID] = _user_fk(nullable=False)
    next_seq: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1, server_default=text("1")
    )
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        UniqueConstraint("user_low_id", "user_high_id", name="uix_conversations_pair"),
        CheckConstraint("user_low_id < user_high_id", name="ck_conversations_pair_sorted"),
        CheckConstraint("next_seq >= 1", name="ck_conversations_next_seq_positive"),
    )

    participants: Mapped[list["ConversationParticipant"]] = relationship(
        "ConversationParticipant",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="ConversationParticipant.username",
    )


class ConversationParticipant(Base):
    __tablename__ = "conversation_participants"

    conversation_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[UUID] = _user_fk(primary_key=True)
    username: Mapped[str] = mapped_column(Text, nullable=False)
    joined_at: Mapped[datetime] = _created_at()

    __table_args__ = (Index("idx_conversation_participants_user", "user_id"),)

    conversation: Mapped["Conversation"] = relationship(
        "Conversation", back_populates="participants"
    )


class Message(Base):
    """A direct message. seq is assigned under the conversation row lock."""

    __tablename__ = "messages"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    conversation_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[UUID] = _user_fk(nullable=False)
    sender_username: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        CheckConstraint("seq >= 1", name="ck_messages_seq_positive"),
        UniqueConstraint("conversation_id", "seq", name="uix_messages_conversation_seq"),
    )


# =============================================================================
# Meetings
# =============================================================================


class Meeting(Base):
    """A scheduled session between a student and a tutor."""

    __tablename__ = "meetings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    student_id: Mapped[UUID] = _user_fk(nullable=False)
    student_username: Mapped[str] = mapped_column(Text, nullable=False)
    tutor_id: Mapped[UUID] = _user_fk(nullable=False)
    tutor_username: Mapped[str] = mapped_column(Text, nullable=False)
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    start_time: Mapped[datetime] = mapped_column(UtcDateTime(), nullable=False)
    end_time: Mapped[datetime] = mapped_column(UtcDateTime(), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=MeetingStatus.pending.value, server_default="pending"
    )
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        _in_check("status", [s.value for s in MeetingStatus], "ck_meetings_status"),
        _in_check("subject", SUBJECT_VALUES, "ck_meetings_subject"),
        CheckConstraint("start_time < end_time", name="ck_meetings_time_range"),
        Index("idx_meetings_student_start", "student_id", "start_time"),
        Index("idx_meetings_tutor_start", "tutor_id", "start_time"),
    )


# =============================================================================
# Study rooms
# =============================================================================


class StudyRoom(Base):
    """A group space with a roster and a message feed."""

    __tablename__ = "study_rooms"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    created_by: Mapped[UUID] = _user_fk(nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_private: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    next_seq: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1, server_default=text("1")
    )
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        _in_check("subject", SUBJECT_VALUES, "ck_study_rooms_subject"),
        CheckConstraint("next_seq >= 1", name="ck_study_rooms_next_seq_positive"),
    )

    participants: Mapped[list["StudyRoomParticipant"]] = relationship(
        "StudyRoomParticipant",
        back_populates="room",
        cascade="all, delete-orphan",
        order_by="StudyRoomParticipant.joined_at",
    )


class StudyRoomParticipant(Base):
    __tablename__ = "study_room_participants"

    room_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("study_rooms.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[UUID] = _user_fk(primary_key=True)
    username: Mapped[str] = mapped_column(Text, nullable=False)
    joined_at: Mapped[datetime] = _created_at()

    __table_args__ = (Index("idx_study_room_participants_user", "user_id"),)

    room: Mapped["StudyRoom"] = relationship("StudyRoom", back_populates="participants")


class StudyRoomMessage(Base):
    __tablename__ = "study_room_messages"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    room_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("study_rooms.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = _user_fk(nullable=False)
    username: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        CheckConstraint("seq >= 1", name="ck_study_room_messages_seq_positive"),
        UniqueConstraint("room_id", "seq", name="uix_study_room_messages_room_seq"),
    )


class StudyRoomInvitation(Base):
    """Invitation into a private study room.

    At most one pending invitation per (room, invitee).
    """

    __tablename__ = "study_room_invitations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    room_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("study_rooms.id", ondelete="CASCADE"), nullable=False
    )
    inviter_id: Mapped[UUID] = _user_fk(nullable=False)
    invitee_id: Mapped[UUID] = _user_fk(nullable=False)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=InvitationStatus.pending.value, server_default="pending"
    )
    created_at: Mapped[datetime] = _created_at()
    responded_at: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)

    __table_args__ = (
        _in_check("status", INVITATION_STATUS_VALUES, "ck_study_room_invitations_status"),
        CheckConstraint("inviter_id <> invitee_id", name="ck_study_room_invitations_not_self"),
        Index(
            "uix_study_room_invitations_pending",
            "room_id",
            "invitee_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index("idx_study_room_invitations_invitee", "invitee_id", "status"),
    )


# =============================================================================
# Student/tutor connections
# =============================================================================


class ConnectionInvitation(Base):
    """Invite/accept handshake between one student and one tutor."""

    __tablename__ = "connection_invitations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    student_id: Mapped[UUID] = _user_fk(nullable=False)
    tutor_id: Mapped[UUID] = _user_fk(nullable=False)
    inviter_id: Mapped[UUID] = _user_fk(nullable=False)
    invitee_id: Mapped[UUID] = _user_fk(nullable=False)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=InvitationStatus.pending.value, server_default="pending"
    )
    created_at: Mapped[datetime] = _created_at()
    responded_at: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)

    __table_args__ = (
        _in_check("status", INVITATION_STATUS_VALUES, "ck_connection_invitations_status"),
        Index(
            "uix_connection_invitations_pending",
            "student_id",
            "tutor_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index("idx_connection_invitations_invitee", "invitee_id", "status"),
    )


class StudentTutorConnection(Base):
    """Durable student/tutor pairing created by an accepted invitation."""

    __tablename__ = "student_tutor_connections"

    student_id: Mapped[UUID] = _user_fk(primary_key=True)
    tutor_id: Mapped[UUID] = _user_fk(primary_key=True)
    student_username: Mapped[str] = mapped_column(Text, nullable=False)
    tutor_username: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (Index("idx_student_tutor_connections_tutor", "tutor_id"),)
