"""Ticket and response service layer.

Contracts:
- Only students create tickets; the student's username is denormalized
  onto the ticket.
- get_tutor_tickets returns OPEN tickets whose subject is one of the tutor's
  registered tutor_subjects, newest first. A tutor with no subjects sees
  nothing.
- Students may respond only on their own tickets; tutors may respond on any.
- Every response bumps ticket.last_response_at in the same transaction.

Service functions correspond 1:1 with route handlers.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from tutorlink.db.models import (
    Profile,
    ProfileRole,
    Response,
    Subject,
    Ticket,
    TutorSubject,
    utcnow,
)
from tutorlink.db.session import transaction
from tutorlink.errors import ApiErrorCode, ForbiddenError, InvalidRequestError, NotFoundError
from tutorlink.logging import get_logger
from tutorlink.realtime.channels import responses_channel
from tutorlink.realtime.events import ChangeType
from tutorlink.realtime.hub import RealtimeHub
from tutorlink.schemas.ticket import ResponseOut, TicketOut
from tutorlink.services.notify import notify
from tutorlink.services.profiles import get_profile_model, parse_user_id, require_role

logger = get_logger(__name__)


def parse_subject(raw: str | Subject) -> Subject:
    try:
        return Subject(raw)
    except ValueError:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_SUBJECT, f"Unknown subject: {raw}"
        ) from None


def _get_ticket_or_404(db: Session, ticket_id: UUID, *, for_update: bool = False) -> Ticket:
    stmt = select(Ticket).where(Ticket.id == ticket_id)
    if for_update:
        stmt = stmt.with_for_update()
    ticket = db.scalars(stmt).one_or_none()
    if ticket is None:
        raise NotFoundError(ApiErrorCode.E_TICKET_NOT_FOUND, "Ticket not found")
    return ticket


def _tickets_with_responses(db: Session, stmt) -> list[TicketOut]:
    stmt = (
        stmt.options(selectinload(Ticket.responses))
        .order_by(Ticket.created_at.desc(), Ticket.id.desc())
        .execution_options(populate_existing=True)
    )
    tickets = db.scalars(stmt)
    return [TicketOut.model_validate(t) for t in tickets]


# =============================================================================
# Service Functions
# =============================================================================


def create_ticket(
    db: Session,
    student_id: str | UUID | None,
    subject: str | Subject,
    topic: str,
    description: str,
) -> TicketOut:
    """Create a ticket for a student.

    All validation happens before the write.

    Raises:
        NotAuthenticatedError: No identity.
        InvalidRequestError: Malformed identity, non-student role, unknown subject.
        NotFoundError(E_PROFILE_NOT_FOUND): Identity has no profile.
    """
    user_id = parse_user_id(student_id)
    profile = get_profile_model(db, user_id)
    require_role(profile, ProfileRole.student, "Only students can create tickets")
    subject = parse_subject(subject)

    ticket = Ticket(
        student_id=user_id,
        student_username=profile.username,
        subject=subject.value,
        topic=topic,
        description=description,
        closed=False,
    )
    with transaction(db):
        db.add(ticket)
        db.flush()

    logger.info("ticket_created", ticket_id=str(ticket.id), subject=ticket.subject)
    return TicketOut.model_validate(ticket)


def get_ticket(db: Session, ticket_id: UUID) -> TicketOut:
    ticket = db.scalars(
        select(Ticket)
        .where(Ticket.id == ticket_id)
        .options(selectinload(Ticket.responses))
        .execution_options(populate_existing=True)
    ).one_or_none()
    if ticket is None:
        raise NotFoundError(ApiErrorCode.E_TICKET_NOT_FOUND, "Ticket not found")
    return TicketOut.model_validate(ticket)


def get_student_tickets(db: Session, student_id: UUID) -> list[TicketOut]:
    """The student's tickets, newest first, with nested responses."""
    return _tickets_with_responses(db, select(Ticket).where(Ticket.student_id == student_id))


def get_tutor_tickets(db: Session, tutor_id: UUID) -> list[TicketOut]:
    """Open tickets in the tutor's registered subjects, newest first.

    Raises:
        NotFoundError(E_PROFILE_NOT_FOUND): No profile.
        InvalidRequestError(E_INVALID_ROLE): Caller is not a tutor.
    """
    profile = get_profile_model(db, tutor_id)
    require_role(profile, ProfileRole.tutor, "Only tutors have a ticket feed")

    tutor_subjects = select(TutorSubject.subject).where(TutorSubject.tutor_id == tutor_id)
    return _tickets_with_responses(
        db,
        select(Ticket).where(Ticket.closed.is_(False), Ticket.subject.in_(tutor_subjects)),
    )


def create_response(
    db: Session,
    ticket_id: UUID,
    user_id: UUID,
    content: str,
    role: ProfileRole | None = None,
    parent_id: UUID | None = None,
    hub: RealtimeHub | None = None,
) -> ResponseOut:
    """Add a response to a ticket.

    Raises:
        NotFoundError: Ticket or author profile missing.
        InvalidRequestError(E_INVALID_ROLE): `role` disagrees with the author's profile.
        InvalidRequestError: parent_id is not a response on the same ticket.
        ForbiddenError(E_NOT_TICKET_OWNER): A student responding on someone else's ticket.
    """
    author: Profile = get_profile_model(db, user_id)
    if role is not None and role.value != author.role:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_ROLE, "Role does not match the author's profile"
        )

    with transaction(db):
        ticket = _get_ticket_or_404(db, ticket_id, for_update=True)

        if author.role == ProfileRole.student.value and ticket.student_id != user_id:
            raise ForbiddenError(
                ApiErrorCode.E_NOT_TICKET_OWNER, "Students can only respond to their own tickets"
            )

        if parent_id is not None:
            parent_ticket_id = db.scalar(
                select(Response.ticket_id).where(Response.id == parent_id)
            )
            if parent_ticket_id != ticket_id:
                raise InvalidRequestError(
                    ApiErrorCode.E_INVALID_REQUEST,
                    "parent_id must reference a response on the same ticket",
                )

        response = Response(ticket_id=ticket_id, content=content, parent_id=parent_id)
        if author.role == ProfileRole.tutor.value:
            response.tutor_id = user_id
            response.tutor_username = author.username
        else:
            response.student_id = user_id
            response.student_username = author.username

        db.add(response)
        ticket.last_response_at = utcnow()
        db.flush()

    out = ResponseOut.model_validate(response)
    logger.info("response_created", ticket_id=str(ticket_id), response_id=str(response.id))
    notify(hub, responses_channel(ticket_id), "responses", ChangeType.INSERT, out)
    return out


def close_ticket(db: Session, ticket_id: UUID, user_id: UUID) -> TicketOut:
    """Close a ticket. Owner only; closing a closed ticket is a no-op.

    Raises:
        NotFoundError(E_TICKET_NOT_FOUND): Ticket missing.
        ForbiddenError(E_NOT_TICKET_OWNER): Caller does not own the ticket.
    """
    with transaction(db):
        ticket = _get_ticket_or_404(db, ticket_id, for_update=True)
        if ticket.student_id != user_id:
            raise ForbiddenError(
                ApiErrorCode.E_NOT_TICKET_OWNER, "Only the owner can close a ticket"
            )
        if not ticket.closed:
            ticket.closed = True
            logger.info("ticket_closed", ticket_id=str(ticket_id))

    return get_ticket(db, ticket_id)
