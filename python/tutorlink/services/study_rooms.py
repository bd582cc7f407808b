"""Study room service layer.

Contracts:
- create_study_room(creator, name, subject, description, is_private) inserts
  the room and the creator's participant row in one transaction.
- Public rooms are visible to and joinable by everyone.
- Private rooms are visible only to participants and to users holding a
  pending or accepted invitation, and joinable only with an accepted one.
- Joining is idempotent. Accepting an invitation joins the room in the same
  transaction.
- Room messages carry a per-room seq assigned under the room row lock.
"""

from uuid import UUID

from sqlalchemy import and_, delete, exists, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from tutorlink.db.models import (
    InvitationStatus,
    Profile,
    StudyRoom,
    StudyRoomInvitation,
    StudyRoomMessage,
    StudyRoomParticipant,
    Subject,
    utcnow,
)
from tutorlink.db.session import transaction
from tutorlink.errors import (
    ApiErrorCode,
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from tutorlink.logging import get_logger
from tutorlink.realtime.channels import (
    study_room_messages_channel,
    study_room_participants_channel,
)
from tutorlink.realtime.events import ChangeType
from tutorlink.realtime.hub import RealtimeHub
from tutorlink.schemas.common import PageInfo
from tutorlink.schemas.study_room import (
    RoomFilter,
    RoomParticipantOut,
    StudyRoomDetailOut,
    StudyRoomInvitationOut,
    StudyRoomMessageOut,
    StudyRoomOut,
)
from tutorlink.services.conversations import clamp_limit, decode_seq_cursor, encode_seq_cursor
from tutorlink.services.notify import notify
from tutorlink.services.profiles import get_profile_model
from tutorlink.services.seq import assign_next_room_message_seq
from tutorlink.services.tickets import parse_subject

logger = get_logger(__name__)

DEFAULT_MESSAGE_LIMIT = 50


# =============================================================================
# Visibility
# =============================================================================


def _is_participant_clause(viewer_id: UUID):
    return exists().where(
        StudyRoomParticipant.room_id == StudyRoom.id,
        StudyRoomParticipant.user_id == viewer_id,
    )


def _invitation_clause(viewer_id: UUID, statuses: tuple[InvitationStatus, ...]):
    return exists().where(
        StudyRoomInvitation.room_id == StudyRoom.id,
        StudyRoomInvitation.invitee_id == viewer_id,
        StudyRoomInvitation.status.in_([s.value for s in statuses]),
    )


def _visible_clause(viewer_id: UUID):
    return or_(
        StudyRoom.is_private.is_(False),
        StudyRoom.created_by == viewer_id,
        _is_participant_clause(viewer_id),
        _invitation_clause(viewer_id, (InvitationStatus.pending, InvitationStatus.accepted)),
    )


def _may_join_private(db: Session, room: StudyRoom, viewer_id: UUID) -> bool:
    """The creator, or an invitee who accepted, may (re)join a private room."""
    return room.created_by == viewer_id or _has_accepted_invitation(db, room.id, viewer_id)


def _has_accepted_invitation(db: Session, room_id: UUID, viewer_id: UUID) -> bool:
    return (
        db.scalar(
            select(StudyRoomInvitation.id).where(
                StudyRoomInvitation.room_id == room_id,
                StudyRoomInvitation.invitee_id == viewer_id,
                StudyRoomInvitation.status == InvitationStatus.accepted.value,
            )
        )
        is not None
    )


def _participant(db: Session, room_id: UUID, user_id: UUID) -> StudyRoomParticipant | None:
    return db.get(StudyRoomParticipant, (room_id, user_id))


def get_visible_room_or_404(
    db: Session, viewer_id: UUID, room_id: UUID, *, for_update: bool = False
) -> StudyRoom:
    """Private rooms the viewer cannot see raise E_ROOM_NOT_FOUND, like missing ones."""
    stmt = select(StudyRoom).where(StudyRoom.id == room_id, _visible_clause(viewer_id))
    if for_update:
        stmt = stmt.with_for_update()
    room = db.scalars(stmt).one_or_none()
    if room is None:
        raise NotFoundError(ApiErrorCode.E_ROOM_NOT_FOUND, "Study room not found")
    return room


def require_room_participant(db: Session, room: StudyRoom, user_id: UUID) -> StudyRoomParticipant:
    participant = _participant(db, room.id, user_id)
    if participant is None:
        raise ForbiddenError(ApiErrorCode.E_NOT_PARTICIPANT, "Join the study room first")
    return participant


def _room_to_out(
    room: StudyRoom, participant_count: int, is_participant: bool, accepted_invite: bool
) -> dict:
    joinable = not is_participant and (not room.is_private or accepted_invite)
    return {
        "id": room.id,
        "created_by": room.created_by,
        "name": room.name,
        "subject": room.subject,
        "description": room.description,
        "is_private": room.is_private,
        "participant_count": participant_count,
        "is_participant": is_participant,
        "joinable": joinable,
        "created_at": room.created_at,
    }


# =============================================================================
# Rooms
# =============================================================================


def create_study_room(
    db: Session,
    creator_id: UUID,
    name: str,
    subject: str | Subject,
    description: str | None = None,
    is_private: bool = False,
    hub: RealtimeHub | None = None,
) -> StudyRoomDetailOut:
    """Create a room and auto-join its creator in one transaction."""
    subject = parse_subject(subject)
    creator = get_profile_model(db, creator_id)

    room = StudyRoom(
        created_by=creator.user_id,
        name=name,
        subject=subject.value,
        description=description,
        is_private=is_private,
    )
    room.participants = [StudyRoomParticipant(user_id=creator.user_id, username=creator.username)]

    with transaction(db):
        db.add(room)
        db.flush()

    logger.info("study_room_created", room_id=str(room.id), is_private=is_private)
    notify(
        hub,
        study_room_participants_channel(room.id),
        "study_room_participants",
        ChangeType.INSERT,
        RoomParticipantOut.model_validate(room.participants[0]),
    )
    return StudyRoomDetailOut(
        **_room_to_out(room, 1, True, False),
        participants=[RoomParticipantOut.model_validate(p) for p in room.participants],
    )


def list_study_rooms(
    db: Session,
    viewer_id: UUID,
    subject: str | Subject | None = None,
    room_filter: RoomFilter = "all",
) -> list[StudyRoomOut]:
    """Rooms visible to the viewer, newest first.

    room_filter: "all" (visible rooms), "my" (rooms the viewer is in),
    "public" (public rooms the viewer has not joined).
    """
    stmt = select(StudyRoom)
    if room_filter == "my":
        stmt = stmt.where(_is_participant_clause(viewer_id))
    elif room_filter == "public":
        stmt = stmt.where(StudyRoom.is_private.is_(False), ~_is_participant_clause(viewer_id))
    elif room_filter == "all":
        stmt = stmt.where(_visible_clause(viewer_id))
    else:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, f"Unknown filter: {room_filter}")
    if subject is not None:
        stmt = stmt.where(StudyRoom.subject == parse_subject(subject).value)

    rooms = list(db.scalars(stmt.order_by(StudyRoom.created_at.desc(), StudyRoom.id.desc())))
    if not rooms:
        return []
    room_ids = [r.id for r in rooms]

    counts = dict(
        db.execute(
            select(StudyRoomParticipant.room_id, func.count())
            .where(StudyRoomParticipant.room_id.in_(room_ids))
            .group_by(StudyRoomParticipant.room_id)
        ).all()
    )
    joined = set(
        db.scalars(
            select(StudyRoomParticipant.room_id).where(
                StudyRoomParticipant.room_id.in_(room_ids),
                StudyRoomParticipant.user_id == viewer_id,
            )
        )
    )
    accepted = set(
        db.scalars(
            select(StudyRoomInvitation.room_id).where(
                StudyRoomInvitation.room_id.in_(room_ids),
                StudyRoomInvitation.invitee_id == viewer_id,
                StudyRoomInvitation.status == InvitationStatus.accepted.value,
            )
        )
    )

    return [
        StudyRoomOut(
            **_room_to_out(
                room,
                counts.get(room.id, 0),
                room.id in joined,
                room.id in accepted or room.created_by == viewer_id,
            )
        )
        for room in rooms
    ]


def get_study_room(db: Session, viewer_id: UUID, room_id: UUID) -> StudyRoomDetailOut:
    room = db.scalars(
        select(StudyRoom)
        .where(StudyRoom.id == room_id, _visible_clause(viewer_id))
        .options(selectinload(StudyRoom.participants))
        .execution_options(populate_existing=True)
    ).one_or_none()
    if room is None:
        raise NotFoundError(ApiErrorCode.E_ROOM_NOT_FOUND, "Study room not found")

    is_participant = any(p.user_id == viewer_id for p in room.participants)
    accepted = room.is_private and _may_join_private(db, room, viewer_id)
    return StudyRoomDetailOut(
        **_room_to_out(room, len(room.participants), is_participant, accepted),
        participants=[RoomParticipantOut.model_validate(p) for p in room.participants],
    )


def join_study_room(
    db: Session, viewer_id: UUID, room_id: UUID, hub: RealtimeHub | None = None
) -> RoomParticipantOut:
    """Join a room. Idempotent: an existing participant row is returned as is.

    Raises:
        NotFoundError(E_ROOM_NOT_FOUND): Missing, or private and not visible.
        ForbiddenError(E_ROOM_PRIVATE): Private room, viewer is neither its creator
            nor holds an accepted invitation.
    """
    profile = get_profile_model(db, viewer_id)

    with transaction(db):
        room = get_visible_room_or_404(db, viewer_id, room_id, for_update=True)
        existing = _participant(db, room_id, viewer_id)
        if existing is not None:
            return RoomParticipantOut.model_validate(existing)

        if room.is_private and not _may_join_private(db, room, viewer_id):
            raise ForbiddenError(
                ApiErrorCode.E_ROOM_PRIVATE, "An accepted invitation is required to join"
            )

        participant = StudyRoomParticipant(
            room_id=room_id, user_id=viewer_id, username=profile.username
        )
        db.add(participant)
        db.flush()

    out = RoomParticipantOut.model_validate(participant)
    logger.info("study_room_joined", room_id=str(room_id))
    notify(
        hub,
        study_room_participants_channel(room_id),
        "study_room_participants",
        ChangeType.INSERT,
        out,
    )
    return out


def leave_study_room(
    db: Session, viewer_id: UUID, room_id: UUID, hub: RealtimeHub | None = None
) -> None:
    """Remove the viewer's participant row. Leaving a room you are not in is a no-op."""
    with transaction(db):
        get_visible_room_or_404(db, viewer_id, room_id)
        result = db.execute(
            delete(StudyRoomParticipant).where(
                StudyRoomParticipant.room_id == room_id,
                StudyRoomParticipant.user_id == viewer_id,
            )
        )

    if result.rowcount:
        logger.info("study_room_left", room_id=str(room_id))
        notify(
            hub,
            study_room_participants_channel(room_id),
            "study_room_participants",
            ChangeType.DELETE,
            {"room_id": str(room_id), "user_id": str(viewer_id)},
        )


# =============================================================================
# Messages
# =============================================================================


def send_study_room_message(
    db: Session,
    viewer_id: UUID,
    room_id: UUID,
    content: str,
    hub: RealtimeHub | None = None,
) -> StudyRoomMessageOut:
    """Post to a room. Participants only; seq assigned under the room row lock.

    Raises:
        NotFoundError(E_ROOM_NOT_FOUND): Missing or not visible.
        ForbiddenError(E_NOT_PARTICIPANT): Viewer has not joined.
    """
    with transaction(db):
        room = get_visible_room_or_404(db, viewer_id, room_id)
        participant = require_room_participant(db, room, viewer_id)

        seq = assign_next_room_message_seq(db, room_id)
        message = StudyRoomMessage(
            room_id=room_id,
            user_id=viewer_id,
            username=participant.username,
            content=content,
            seq=seq,
        )
        db.add(message)
        db.flush()

    out = StudyRoomMessageOut.model_validate(message)
    logger.info("study_room_message_sent", room_id=str(room_id), seq=seq)
    notify(hub, study_room_messages_channel(room_id), "study_room_messages", ChangeType.INSERT, out)
    return out


def list_study_room_messages(
    db: Session,
    viewer_id: UUID,
    room_id: UUID,
    limit: int = DEFAULT_MESSAGE_LIMIT,
    cursor: str | None = None,
) -> tuple[list[StudyRoomMessageOut], PageInfo]:
    """Room messages in seq order. Participants only."""
    room = get_visible_room_or_404(db, viewer_id, room_id)
    require_room_participant(db, room, viewer_id)
    limit = clamp_limit(limit)

    stmt = select(StudyRoomMessage).where(StudyRoomMessage.room_id == room_id)
    if cursor:
        stmt = stmt.where(StudyRoomMessage.seq > decode_seq_cursor(cursor))
    rows = list(db.scalars(stmt.order_by(StudyRoomMessage.seq.asc()).limit(limit + 1)))

    has_more = len(rows) > limit
    messages = [StudyRoomMessageOut.model_validate(m) for m in rows[:limit]]
    next_cursor = encode_seq_cursor(messages[-1].seq) if has_more and messages else None
    return messages, PageInfo(next_cursor=next_cursor)


# =============================================================================
# Invitations
# =============================================================================


def _invitation_to_out(invitation: StudyRoomInvitation, room_name: str) -> StudyRoomInvitationOut:
    return StudyRoomInvitationOut(
        id=invitation.id,
        room_id=invitation.room_id,
        room_name=room_name,
        inviter_id=invitation.inviter_id,
        invitee_id=invitation.invitee_id,
        status=invitation.status,
        created_at=invitation.created_at,
        responded_at=invitation.responded_at,
    )


def invite_to_study_room(
    db: Session, viewer_id: UUID, room_id: UUID, invitee_email: str
) -> StudyRoomInvitationOut:
    """Invite a user (by profile email) into a private room.

    Raises:
        NotFoundError(E_ROOM_NOT_FOUND / E_USER_NOT_FOUND)
        ConflictError(E_ROOM_NOT_PRIVATE): Public rooms need no invitation.
        ForbiddenError(E_NOT_PARTICIPANT): Inviter has not joined.
        ConflictError(E_ALREADY_PARTICIPANT / E_INVITE_ALREADY_EXISTS)
    """
    room = get_visible_room_or_404(db, viewer_id, room_id)
    if not room.is_private:
        raise ConflictError(ApiErrorCode.E_ROOM_NOT_PRIVATE, "Public rooms need no invitation")
    require_room_participant(db, room, viewer_id)

    invitee = db.scalars(
        select(Profile).where(func.lower(Profile.email) == invitee_email.strip().lower())
    ).first()
    if invitee is None:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "No user with that email")
    if invitee.user_id == viewer_id or _participant(db, room_id, invitee.user_id) is not None:
        raise ConflictError(ApiErrorCode.E_ALREADY_PARTICIPANT, "User is already in the room")

    invitation = StudyRoomInvitation(
        room_id=room_id,
        inviter_id=viewer_id,
        invitee_id=invitee.user_id,
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

    logger.info("study_room_invite_created", room_id=str(room_id), invite_id=str(invitation.id))
    return _invitation_to_out(invitation, room.name)


def _get_invitation_for_invitee_or_404(
    db: Session, viewer_id: UUID, invite_id: UUID
) -> StudyRoomInvitation:
    invitation = db.scalars(
        select(StudyRoomInvitation).where(StudyRoomInvitation.id == invite_id).with_for_update()
    ).one_or_none()
    if invitation is None or invitation.invitee_id != viewer_id:
        raise NotFoundError(ApiErrorCode.E_INVITE_NOT_FOUND, "Invitation not found")
    return invitation


def accept_study_room_invitation(
    db: Session, viewer_id: UUID, invite_id: UUID, hub: RealtimeHub | None = None
) -> StudyRoomInvitationOut:
    """Accept an invitation and join the room in the same transaction.

    Idempotent: accepting an already-accepted invitation returns it unchanged.

    Raises:
        NotFoundError(E_INVITE_NOT_FOUND): Missing or not addressed to the viewer.
        ConflictError(E_INVITE_NOT_PENDING): Invitation was rejected.
    """
    profile = get_profile_model(db, viewer_id)
    joined: StudyRoomParticipant | None = None

    with transaction(db):
        invitation = _get_invitation_for_invitee_or_404(db, viewer_id, invite_id)
        room = db.get(StudyRoom, invitation.room_id)

        if invitation.status == InvitationStatus.rejected.value:
            raise ConflictError(ApiErrorCode.E_INVITE_NOT_PENDING, "Invitation is not pending")

        if invitation.status == InvitationStatus.pending.value:
            invitation.status = InvitationStatus.accepted.value
            invitation.responded_at = utcnow()

        if _participant(db, invitation.room_id, viewer_id) is None:
            joined = StudyRoomParticipant(
                room_id=invitation.room_id, user_id=viewer_id, username=profile.username
            )
            db.add(joined)
        db.flush()

    logger.info("study_room_invite_accepted", invite_id=str(invite_id))
    if joined is not None:
        notify(
            hub,
            study_room_participants_channel(invitation.room_id),
            "study_room_participants",
            ChangeType.INSERT,
            RoomParticipantOut.model_validate(joined),
        )
    return _invitation_to_out(invitation, room.name)


def decline_study_room_invitation(
    db: Session, viewer_id: UUID, invite_id: UUID
) -> StudyRoomInvitationOut:
    """Reject a pending invitation. Idempotent for already-rejected invitations.

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
        room = db.get(StudyRoom, invitation.room_id)

    logger.info("study_room_invite_declined", invite_id=str(invite_id))
    return _invitation_to_out(invitation, room.name)


def list_viewer_study_room_invitations(
    db: Session, viewer_id: UUID, status: InvitationStatus | None = InvitationStatus.pending
) -> list[StudyRoomInvitationOut]:
    """Invitations addressed to the viewer, newest first."""
    stmt = (
        select(StudyRoomInvitation, StudyRoom.name)
        .join(StudyRoom, and_(StudyRoom.id == StudyRoomInvitation.room_id))
        .where(StudyRoomInvitation.invitee_id == viewer_id)
    )
    if status is not None:
        stmt = stmt.where(StudyRoomInvitation.status == status.value)
    rows = db.execute(
        stmt.order_by(StudyRoomInvitation.created_at.desc(), StudyRoomInvitation.id.desc())
    ).all()
    return [_invitation_to_out(invitation, name) for invitation, name in rows]
