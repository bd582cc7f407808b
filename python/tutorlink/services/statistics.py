"""Dashboard statistics.

Student dashboard:
    total tickets, top 5 tutors by responses on the student's tickets,
    ticket count per subject.

Tutor dashboard:
    total responses, top 5 students by responses the tutor wrote on their
    tickets, per-subject count of distinct tickets the tutor answered.

Counts are computed in SQL; ties break on username.
"""

from uuid import UUID

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from tutorlink.db.models import ProfileRole, Response, Ticket
from tutorlink.schemas.statistics import (
    CounterpartCount,
    StudentStatisticsOut,
    SubjectCount,
    TutorStatisticsOut,
)
from tutorlink.services.profiles import get_profile_model, require_role

TOP_COUNTERPARTS = 5


def get_student_statistics(db: Session, student_id: UUID) -> StudentStatisticsOut:
    profile = get_profile_model(db, student_id)
    require_role(profile, ProfileRole.student, "Student statistics are for students")

    total_tickets = db.scalar(
        select(func.count()).select_from(Ticket).where(Ticket.student_id == student_id)
    )

    count = func.count(Response.id).label("count")
    top_tutors = db.execute(
        select(Response.tutor_id, Response.tutor_username, count)
        .join(Ticket, Ticket.id == Response.ticket_id)
        .where(Ticket.student_id == student_id, Response.tutor_id.is_not(None))
        .group_by(Response.tutor_id, Response.tutor_username)
        .order_by(desc(count), Response.tutor_username)
        .limit(TOP_COUNTERPARTS)
    ).all()

    ticket_count = func.count(Ticket.id).label("count")
    subjects = db.execute(
        select(Ticket.subject, ticket_count)
        .where(Ticket.student_id == student_id)
        .group_by(Ticket.subject)
        .order_by(desc(ticket_count), Ticket.subject)
    ).all()

    return StudentStatisticsOut(
        total_tickets=total_tickets,
        top_tutors=[
            CounterpartCount(user_id=uid, username=name, count=n) for uid, name, n in top_tutors
        ],
        subjects=[SubjectCount(subject=s, count=n) for s, n in subjects],
    )


def get_tutor_statistics(db: Session, tutor_id: UUID) -> TutorStatisticsOut:
    profile = get_profile_model(db, tutor_id)
    require_role(profile, ProfileRole.tutor, "Tutor statistics are for tutors")

    total_responses = db.scalar(
        select(func.count()).select_from(Response).where(Response.tutor_id == tutor_id)
    )

    count = func.count(Response.id).label("count")
    top_students = db.execute(
        select(Ticket.student_id, Ticket.student_username, count)
        .join(Response, Response.ticket_id == Ticket.id)
        .where(Response.tutor_id == tutor_id)
        .group_by(Ticket.student_id, Ticket.student_username)
        .order_by(desc(count), Ticket.student_username)
        .limit(TOP_COUNTERPARTS)
    ).all()

    answered = func.count(func.distinct(Ticket.id)).label("count")
    subjects = db.execute(
        select(Ticket.subject, answered)
        .join(Response, Response.ticket_id == Ticket.id)
        .where(Response.tutor_id == tutor_id)
        .group_by(Ticket.subject)
        .order_by(desc(answered), Ticket.subject)
    ).all()

    return TutorStatisticsOut(
        total_responses=total_responses,
        top_students=[
            CounterpartCount(user_id=uid, username=name, count=n) for uid, name, n in top_students
        ],
        subjects=[SubjectCount(subject=s, count=n) for s, n in subjects],
    )
