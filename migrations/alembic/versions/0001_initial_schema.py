"""Initial schema - profiles, tickets, messaging, meetings, study rooms, connections

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Enum-valued columns are Text with CHECK constraints. Every user reference
points at profiles.user_id (the Supabase auth user id).
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

SUBJECTS = "('Math', 'Science', 'English', 'History', 'Computer Science')"
INVITATION_STATUSES = "('pending', 'accepted', 'rejected')"


def _id() -> sa.Column:
    return sa.Column(
        "id", sa.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name, sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False
    )


def _user_fk(column: str) -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint([column], ["profiles.user_id"], ondelete="CASCADE")


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # ==========================================================================
    # profiles / tutor_subjects
    # ==========================================================================
    op.create_table(
        "profiles",
        _id(),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("hourly_rate", sa.Float(), nullable=True),
        sa.Column(
            "specialties",
            postgresql.JSONB(),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column(
            "struggles",
            postgresql.JSONB(),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column("bio", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", name="uix_profiles_user_id"),
        sa.UniqueConstraint("username", name="uix_profiles_username"),
        sa.CheckConstraint("role IN ('student', 'tutor')", name="ck_profiles_role"),
        sa.CheckConstraint(
            "hourly_rate IS NULL OR hourly_rate >= 0", name="ck_profiles_hourly_rate"
        ),
    )

    op.create_table(
        "tutor_subjects",
        sa.Column("tutor_id", sa.UUID(), nullable=False),
        sa.Column("subject", sa.Text(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("tutor_id", "subject"),
        _user_fk("tutor_id"),
        sa.CheckConstraint(f"subject IN {SUBJECTS}", name="ck_tutor_subjects_subject"),
    )

    # ==========================================================================
    # tickets / responses
    # ==========================================================================
    op.create_table(
        "tickets",
        _id(),
        sa.Column("student_id", sa.UUID(), nullable=False),
        sa.Column("student_username", sa.Text(), nullable=False),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("topic", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("closed", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _timestamp("created_at"),
        sa.Column("last_response_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        _user_fk("student_id"),
        sa.CheckConstraint(f"subject IN {SUBJECTS}", name="ck_tickets_subject"),
    )
    op.create_index("idx_tickets_student_created", "tickets", ["student_id", "created_at"])
    op.create_index("idx_tickets_subject_created", "tickets", ["subject", "created_at"])

    op.create_table(
        "responses",
        _id(),
        sa.Column("ticket_id", sa.UUID(), nullable=False),
        sa.Column("tutor_id", sa.UUID(), nullable=True),
        sa.Column("tutor_username", sa.Text(), nullable=True),
        sa.Column("student_id", sa.UUID(), nullable=True),
        sa.Column("student_username", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("parent_id", sa.UUID(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["parent_id"], ["responses.id"], ondelete="CASCADE"),
        _user_fk("tutor_id"),
        _user_fk("student_id"),
        # exactly one author column is set
        sa.CheckConstraint(
            "(tutor_id IS NULL) <> (student_id IS NULL)", name="ck_responses_single_author"
        ),
    )
    op.create_index("idx_responses_ticket_created", "responses", ["ticket_id", "created_at"])

    # ==========================================================================
    # conversations / participants / messages
    # ==========================================================================
    op.create_table(
        "conversations",
        _id(),
        sa.Column("user_low_id", sa.UUID(), nullable=False),
        sa.Column("user_high_id", sa.UUID(), nullable=False),
        sa.Column("next_seq", sa.Integer(), server_default=sa.text("1"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        _user_fk("user_low_id"),
        _user_fk("user_high_id"),
        sa.UniqueConstraint("user_low_id", "user_high_id", name="uix_conversations_pair"),
        sa.CheckConstraint("user_low_id < user_high_id", name="ck_conversations_pair_sorted"),
        sa.CheckConstraint("next_seq >= 1", name="ck_conversations_next_seq_positive"),
    )

    op.create_table(
        "conversation_participants",
        sa.Column("conversation_id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("username", sa.Text(), nullable=False),
        _timestamp("joined_at"),
        sa.PrimaryKeyConstraint("conversation_id", "user_id"),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversations.id"], ondelete="CASCADE"),
        _user_fk("user_id"),
    )
    op.create_index(
        "idx_conversation_participants_user", "conversation_participants", ["user_id"]
    )

    op.create_table(
        "messages",
        _id(),
        sa.Column("conversation_id", sa.UUID(), nullable=False),
        sa.Column("sender_id", sa.UUID(), nullable=False),
        sa.Column("sender_username", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversations.id"], ondelete="CASCADE"),
        _user_fk("sender_id"),
        sa.UniqueConstraint("conversation_id", "seq", name="uix_messages_conversation_seq"),
        sa.CheckConstraint("seq >= 1", name="ck_messages_seq_positive"),
    )

    # ==========================================================================
    # meetings
    # ==========================================================================
    op.create_table(
        "meetings",
        _id(),
        sa.Column("student_id", sa.UUID(), nullable=False),
        sa.Column("student_username", sa.Text(), nullable=False),
        sa.Column("tutor_id", sa.UUID(), nullable=False),
        sa.Column("tutor_username", sa.Text(), nullable=False),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("start_time", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_time", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        _user_fk("student_id"),
        _user_fk("tutor_id"),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'completed', 'cancelled')",
            name="ck_meetings_status",
        ),
        sa.CheckConstraint(f"subject IN {SUBJECTS}", name="ck_meetings_subject"),
        sa.CheckConstraint("start_time < end_time", name="ck_meetings_time_range"),
    )
    op.create_index("idx_meetings_student_start", "meetings", ["student_id", "start_time"])
    op.create_index("idx_meetings_tutor_start", "meetings", ["tutor_id", "start_time"])

    # ==========================================================================
    # study rooms
    # ==========================================================================
    op.create_table(
        "study_rooms",
        _id(),
        sa.Column("created_by", sa.UUID(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_private", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("next_seq", sa.Integer(), server_default=sa.text("1"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        _user_fk("created_by"),
        sa.CheckConstraint(f"subject IN {SUBJECTS}", name="ck_study_rooms_subject"),
        sa.CheckConstraint("next_seq >= 1", name="ck_study_rooms_next_seq_positive"),
    )

    op.create_table(
        "study_room_participants",
        sa.Column("room_id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("username", sa.Text(), nullable=False),
        _timestamp("joined_at"),
        sa.PrimaryKeyConstraint("room_id", "user_id"),
        sa.ForeignKeyConstraint(["room_id"], ["study_rooms.id"], ondelete="CASCADE"),
        _user_fk("user_id"),
    )
    op.create_index("idx_study_room_participants_user", "study_room_participants", ["user_id"])

    op.create_table(
        "study_room_messages",
        _id(),
        sa.Column("room_id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["room_id"], ["study_rooms.id"], ondelete="CASCADE"),
        _user_fk("user_id"),
        sa.UniqueConstraint("room_id", "seq", name="uix_study_room_messages_room_seq"),
        sa.CheckConstraint("seq >= 1", name="ck_study_room_messages_seq_positive"),
    )

    op.create_table(
        "study_room_invitations",
        _id(),
        sa.Column("room_id", sa.UUID(), nullable=False),
        sa.Column("inviter_id", sa.UUID(), nullable=False),
        sa.Column("invitee_id", sa.UUID(), nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        _timestamp("created_at"),
        sa.Column("responded_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["room_id"], ["study_rooms.id"], ondelete="CASCADE"),
        _user_fk("inviter_id"),
        _user_fk("invitee_id"),
        sa.CheckConstraint(
            f"status IN {INVITATION_STATUSES}", name="ck_study_room_invitations_status"
        ),
        sa.CheckConstraint("inviter_id <> invitee_id", name="ck_study_room_invitations_not_self"),
    )
    # at most one pending invitation per (room, invitee)
    op.create_index(
        "uix_study_room_invitations_pending",
        "study_room_invitations",
        ["room_id", "invitee_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index(
        "idx_study_room_invitations_invitee", "study_room_invitations", ["invitee_id", "status"]
    )

    # ==========================================================================
    # student/tutor connections
    # ==========================================================================
    op.create_table(
        "connection_invitations",
        _id(),
        sa.Column("student_id", sa.UUID(), nullable=False),
        sa.Column("tutor_id", sa.UUID(), nullable=False),
        sa.Column("inviter_id", sa.UUID(), nullable=False),
        sa.Column("invitee_id", sa.UUID(), nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        _timestamp("created_at"),
        sa.Column("responded_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        _user_fk("student_id"),
        _user_fk("tutor_id"),
        _user_fk("inviter_id"),
        _user_fk("invitee_id"),
        sa.CheckConstraint(
            f"status IN {INVITATION_STATUSES}", name="ck_connection_invitations_status"
        ),
    )
    op.create_index(
        "uix_connection_invitations_pending",
        "connection_invitations",
        ["student_id", "tutor_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index(
        "idx_connection_invitations_invitee", "connection_invitations", ["invitee_id", "status"]
    )

    op.create_table(
        "student_tutor_connections",
        sa.Column("student_id", sa.UUID(), nullable=False),
        sa.Column("tutor_id", sa.UUID(), nullable=False),
        sa.Column("student_username", sa.Text(), nullable=False),
        sa.Column("tutor_username", sa.Text(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("student_id", "tutor_id"),
        _user_fk("student_id"),
        _user_fk("tutor_id"),
    )
    op.create_index(
        "idx_student_tutor_connections_tutor", "student_tutor_connections", ["tutor_id"]
    )


def downgrade() -> None:
    op.drop_table("student_tutor_connections")
    op.drop_table("connection_invitations")
    op.drop_table("study_room_invitations")
    op.drop_table("study_room_messages")
    op.drop_table("study_room_participants")
    op.drop_table("study_rooms")
    op.drop_table("meetings")
    op.drop_table("messages")
    op.drop_table("conversation_participants")
    op.drop_table("conversations")
    op.drop_table("responses")
    op.drop_table("tickets")
    op.drop_table("tutor_subjects")
    op.drop_table("profiles")
