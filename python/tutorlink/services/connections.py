"""Student/tutor connection service layer.

A connection is created by an invite/accept handshake between exactly one
student and one tutor. Either side may invite. Accepting inserts the
StudentTutorConnection row in the same transaction that marks the
invitation accepted.
"""

from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tutorlink.db.models import (
    ConnectionInvitation,
    InvitationStatus,
    Profile,
    ProfileRole,
    StudentTutorConnection,
    utcnow,
)
from tutorlink.db.session import transaction
from tutorlink.errors import ApiErrorCode, ConflictError, InvalidRequestError, NotFoundError
from tutorlink.logging import get_logger
from tutorlink.schemas.connection import ConnectionInvitationOut, ConnectionOut
from tutorlink.services.profiles import get_profile_model

logger = get_logger(__name__)


def _student_and_tutor(a: Profile, b: Profile) -> tuple[Profile, Profile]:
    """Order two profiles as (student, tutor).

    Raises:
        InvalidRequestError(E_INVALID_ROLE): Not one student and one tutor.
    """
    roles = {a.role, b.role}
    if roles != {ProfileRole.student.value, ProfileRole.tutor.value}:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_ROLE, "Connections pair one student with one tutor"
        )
    return (a, b) if a.role == ProfileRole.student.value else (b, a)


def _connection_exists(db: Session, student_id: UUID, tutor_id: UUID) -> bool:
    return db.get(StudentTutorConnection, (student_id, tutor_id)) is not None


def _get_invitation_for_invitee_or_404(
    db: Session, viewer_id: UUID, invite_id: UUID
) -> ConnectionInvitation:
    invitation = db.scalars(
        select(ConnectionInvitation).where(ConnectionInvitation.id == invite_id).with_for_update()
    ).one_or_none()
    if invitation is None or invitation.invitee_id != viewer_id:
        raise NotFoundError(ApiErrorCode.E_INVITE_NOT_FOUND, "Invitation not found")
    return invitation


# =============================================================================
# Service Functions
# =============================================================================


def create_connection_invitation(
    db: Session, viewer_id: UUID, invitee_id: UUID
) -> ConnectionInvitationOut:
    """Invite a counterpart to connect.

    Raises:
        InvalidRequestError: Self-invite, or not one student and one tutor.
        NotFoundError(E_PROFILE_NOT_FOUND): Either party has no profile.
        ConflictError(E_ALREADY_CONNECTED): The pair is already connected.
        ConflictError(E_INVITE_ALREADY_EXISTS): A pending invitation exists.
    """
    if viewer_id == invitee_id:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Cannot connect with yourself")

    inviter = get_profile_model(db, viewer_id)
    invitee = get_profile_model(db, invitee_id)
    student, tutor = _student_and_tutor(inviter, invitee)

    if _connection_exists(db, student.user_id, tutor.user_id):
        raise ConflictError(ApiErrorCode.E_ALREADY_CONNECTED, "Already connected")

    invitation = ConnectionInvitation(
        student_id=student.user_id,
        tutor_id=tutor.user_id,
        inviter_id=viewer_id,
        invitee_id=invitee_id,
        status=InvitationStatus.pending.value,
    )
    try:
        with transaction(db):
            db.add(invitation)
            db.flush()
    except IntegrityError:
        raise ConflictError(
            ApiErrorCode.E_INVITE_ALREADY_EXISTS, "A pending invitation already exists"
        ) from None

    logger.info("connection_invite_created", invite_id=str(invitation.id))
    return ConnectionInvitationOut.model_validate(invitation)


def accept_connection_invitation(
    db: Session, viewer_id: UUID, invite_id: UUID
) -> ConnectionOut:
    """Accept an invitation and create the connection in one transaction.

    Idempotent: accepting an accepted invitation returns the connection.

    Raises:
        NotFoundError(E_INVITE_NOT_FOUND): Missing or not addressed to the viewer.
        ConflictError(E_INVITE_NOT_PENDING): Invitation was rejected.
    """
    with transaction(db):
        invitation = _get_invitation_for_invitee_or_404(db, viewer_id, invite_id)
        if invitation.status == InvitationStatus.rejected.value:
            raise ConflictError(ApiErrorCode.E_INVITE_NOT_PENDING, "Invitation is not pending")

        if invitation.status == InvitationStatus.pending.value:
            invitation.status = InvitationStatus.accepted.value
            invitation.responded_at = utcnow()

        connection = db.get(StudentTutorConnection, (invitation.student_id, invitation.tutor_id))
        if connection is None:
            student = get_profile_model(db, invitation.student_id)
            tutor = get_profile_model(db, invitation.tutor_id)
            connection = StudentTutorConnection(
                student_id=student.user_id,
                tutor_id=tutor.user_id,
                student_username=student.username,
                tutor_username=tutor.username,
            )
            db.add(connection)
        db.flush()

    logger.info("connection_invite_accepted", invite_id=str(invite_id))
    return ConnectionOut.model_validate(connection)


def decline_connection_invitation(
    db: Session, viewer_id: UUID, invite_id: UUID
) -> ConnectionInvitationOut:
    """Reject a pending invitation. Rejecting twice is a no-op.

    Raises:
        NotFoundError(E_INVITE_NOT_FOUND): Missing or not addressed to the viewer.
        ConflictError(E_INVITE_NOT_PENDING): Invitation was already accepted.
    """
    with transaction(db):
        invitation = _get_invitation_for_invitee_or_404(db, viewer_id, invite_id)
        if invitation.status == InvitationStatus.accepted.value:
            raise ConflictError(ApiErrorCode.E_INVITE_NOT_PENDING, "Invitation is not pending")
        if invitation.status == InvitationStatus.pending.value:
            invitation.status = InvitationStatus.rejected.value
            invitation.responded_at = utcnow()

    logger.info("connection_invite_declined", invite_id=str(invite_id))
    return ConnectionInvitationOut.model_validate(invitation)


def list_connection_invitations(
    db: Session, viewer_id: UUID, status: InvitationStatus | None = InvitationStatus.pending
) -> list[ConnectionInvitationOut]:
    """Invitations the viewer sent or received, newest first."""
    stmt = select(ConnectionInvitation).where(
        or_(
            ConnectionInvitation.inviter_id == viewer_id,
            ConnectionInvitation.invitee_id == viewer_id,
        )
    )
    if status is not None:
        stmt = stmt.where(ConnectionInvitation.status == status.value)
    invitations = db.scalars(
        stmt.order_by(ConnectionInvitation.created_at.desc(), ConnectionInvitation.id.desc())
    )
    return [ConnectionInvitationOut.model_validate(i) for i in invitations]


def list_connections(db: Session, viewer_id: UUID) -> list[ConnectionOut]:
    """The viewer's tutors (as a student) or students (as a tutor), by username."""
    profile = get_profile_model(db, viewer_id)
    if profile.role == ProfileRole.student.value:
        stmt = (
            select(StudentTutorConnection)
            .where(StudentTutorConnection.student_id == viewer_id)
            .order_by(StudentTutorConnection.tutor_username)
        )
    else:
        stmt = (
            select(StudentTutorConnection)
            .where(StudentTutorConnection.tutor_id == viewer_id)
            .order_by(StudentTutorConnection.student_username)
        )
    return [ConnectionOut.model_validate(c) for c in db.scalars(stmt)]
