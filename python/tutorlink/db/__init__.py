"""Database module for TutorLink.

Provides engine creation, session management, transaction helpers, and ORM models.
"""

from tutorlink.db.engine import create_db_engine, get_engine
from tutorlink.db.models import (
    Base,
    ConnectionInvitation,
    Conversation,
    ConversationParticipant,
    InvitationStatus,
    Meeting,
    MeetingStatus,
    Message,
    Profile,
    ProfileRole,
    Response,
    StudentTutorConnection,
    StudyRoom,
    StudyRoomInvitation,
    StudyRoomMessage,
    StudyRoomParticipant,
    Subject,
    Ticket,
    TutorSubject,
)
from tutorlink.db.session import get_db, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "get_db",
    "transaction",
    # Base
    "Base",
    # Enums
    "ProfileRole",
    "Subject",
    "MeetingStatus",
    "InvitationStatus",
    # Models
    "Profile",
    "TutorSubject",
    "Ticket",
    "Response",
    "Conversation",
    "ConversationParticipant",
    "Message",
    "Meeting",
    "StudyRoom",
    "StudyRoomParticipant",
    "StudyRoomMessage",
    "StudyRoomInvitation",
    "ConnectionInvitation",
    "StudentTutorConnection",
]
