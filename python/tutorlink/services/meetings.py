"""Meeting service layer.

Meeting status is an explicit state machine:

    pending  -> accepted | rejected | cancelled
    accepted -> completed | cancelled
    rejected, completed, cancelled are terminal

Actor rules: only the tutor accepts or rejects; either party cancels or
completes. Anything else is rejected with E_INVALID_TRANSITION (409) or
E_FORBIDDEN (403) before the row is written.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from tutorlink.db.models import Meeting, MeetingStatus, ProfileRole, Subject, utcnow
from tutorlink.db.session import transaction
from tutorlink.errors import (
    ApiErrorCode,
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from tutorlink.logging import get_logger
from tutorlink.realtime.channels import meetings_channel
from tutorlink.realtime.events import ChangeType
from tutorlink.realtime.hub import RealtimeHub
from tutorlink.schemas.meeting import MeetingOut
from tutorlink.services.notify import notify
from tutorlink.services.profiles import get_profile_model, require_role
from tutorlink.services.tickets import parse_subject

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[MeetingStatus, frozenset[MeetingStatus]] = {
    MeetingStatus.pending: frozenset(
        {MeetingStatus.accepted, MeetingStatus.rejected, MeetingStatus.cancelled}
    ),
    MeetingStatus.accepted: frozenset({MeetingStatus.completed, MeetingStatus.cancelled}),
    MeetingStatus.rejected: frozenset(),
    MeetingStatus.completed: frozenset(),
    MeetingStatus.cancelled: frozenset(),
}

TUTOR_ONLY_TARGETS = frozenset({MeetingStatus.accepted, MeetingStatus.rejected})


def can_transition(current: MeetingStatus, target: MeetingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def _get_meeting_for_party_or_404(
    db: Session, viewer_id: UUID, meeting_id: UUID, *, for_update: bool = False
) -> Meeting:
    stmt = select(Meeting).where(Meeting.id == meeting_id)
    if for_update:
        stmt = stmt.with_for_update()
    meeting = db.scalars(stmt).one_or_none()
    if meeting is None or viewer_id not in (meeting.student_id, meeting.tutor_id):
        raise NotFoundError(ApiErrorCode.E_MEETING_NOT_FOUND, "Meeting not found")
    return meeting


def _notify_parties(hub: RealtimeHub | None, out: MeetingOut, change_type: ChangeType) -> None:
    for party_id in (out.student_id, out.tutor_id):
        notify(hub, meetings_channel(party_id), "meetings", change_type, out)


# =============================================================================
# Service Functions
# =============================================================================


def request_meeting(
    db: Session,
    student_id: UUID,
    tutor_id: UUID,
    subject: str | Subject,
    start_time: datetime,
    end_time: datetime,
    notes: str | None = None,
    hub: RealtimeHub | None = None,
) -> MeetingOut:
    """Create a pending meeting request from a student to a tutor.

    Raises:
        InvalidRequestError: Unknown subject, start >= end, or wrong roles.
        NotFoundError(E_PROFILE_NOT_FOUND): Either party has no profile.
    """
    subject = parse_subject(subject)
    if start_time >= end_time:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_TIME_RANGE, "start_time must be before end_time"
        )

    student = get_profile_model(db, student_id)
    require_role(student, ProfileRole.student, "Only students can request meetings")
    tutor = get_profile_model(db, tutor_id)
    require_role(tutor, ProfileRole.tutor, "Meetings can only be requested with a tutor")

    meeting = Meeting(
        student_id=student.user_id,
        student_username=student.username,
        tutor_id=tutor.user_id,
        tutor_username=tutor.username,
        subject=subject.value,
        start_time=start_time,
        end_time=end_time,
        notes=notes,
        status=MeetingStatus.pending.value,
    )
    with transaction(db):
        db.add(meeting)
        db.flush()

    out = MeetingOut.model_validate(meeting)
    logger.info("meeting_requested", meeting_id=str(meeting.id))
    _notify_parties(hub, out, ChangeType.INSERT)
    return out


def update_meeting_status(
    db: Session,
    viewer_id: UUID,
    meeting_id: UUID,
    status: MeetingStatus,
    hub: RealtimeHub | None = None,
) -> MeetingOut:
    """Move a meeting to a new status along the transition table.

    Raises:
        NotFoundError(E_MEETING_NOT_FOUND): Missing or viewer is not a party.
        ForbiddenError: The student tries to accept or reject.
        ConflictError(E_INVALID_TRANSITION): Transition not in the table.
    """
    target = MeetingStatus(status)

    with transaction(db):
        meeting = _get_meeting_for_party_or_404(db, viewer_id, meeting_id, for_update=True)
        current = MeetingStatus(meeting.status)

        if not can_transition(current, target):
            raise ConflictError(
                ApiErrorCode.E_INVALID_TRANSITION,
                f"Cannot move meeting from {current.value} to {target.value}",
            )
        if target in TUTOR_ONLY_TARGETS and viewer_id != meeting.tutor_id:
            raise ForbiddenError(
                ApiErrorCode.E_FORBIDDEN, f"Only the tutor can mark a meeting {target.value}"
            )

        meeting.status = target.value
        meeting.updated_at = utcnow()
        db.flush()

    out = MeetingOut.model_validate(meeting)
    logger.info(
        "meeting_status_changed",
        meeting_id=str(meeting_id),
        from_status=current.value,
        to_status=target.value,
    )
    _notify_parties(hub, out, ChangeType.UPDATE)
    return out


def get_user_meetings(db: Session, user_id: UUID) -> list[MeetingOut]:
    """Meetings where the user is student or tutor, earliest start first."""
    meetings = db.scalars(
        select(Meeting)
        .where(or_(Meeting.student_id == user_id, Meeting.tutor_id == user_id))
        .order_by(Meeting.start_time.asc(), Meeting.id.asc())
    )
    return [MeetingOut.model_validate(m) for m in meetings]
