"""Tests for tickets and responses.

Tests cover:
- Student creates ticket; tutor in the subject sees it; response nests under it
- Tutor feed limited to open tickets in the tutor's subjects
- Students respond only on their own tickets
- Close is owner-only and idempotent
- Response notifications on responses:{ticket}
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from tests.factories import create_test_student, create_test_ticket, create_test_tutor
from tests.helpers import auth_headers
from tutorlink.db.models import ProfileRole, utcnow
from tutorlink.errors import ApiError, ApiErrorCode
from tutorlink.realtime.channels import responses_channel
from tutorlink.realtime.hub import RealtimeHub
from tutorlink.services.tickets import (
    close_ticket,
    create_response,
    create_ticket,
    get_student_tickets,
    get_ticket,
    get_tutor_tickets,
)


class TestTicketLifecycle:
    def test_ticket_flows_from_student_to_tutor_and_back(self, db_session: Session):
        """Create, see in both feeds, respond, see the response nested for both sides."""
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session, specialties=["Math"])

        ticket = create_ticket(
            db_session, student.user_id, "Math", "Derivatives", "What is d/dx of x^2?"
        )

        mine = get_student_tickets(db_session, student.user_id)
        assert [t.id for t in mine] == [ticket.id]
        assert mine[0].closed is False
        assert mine[0].student_username == student.username
        assert [t.id for t in get_tutor_tickets(db_session, tutor.user_id)] == [ticket.id]

        response = create_response(db_session, ticket.id, tutor.user_id, "It is 2x.")

        for view in (
            get_student_tickets(db_session, student.user_id)[0],
            get_tutor_tickets(db_session, tutor.user_id)[0],
        ):
            assert view.last_response_at is not None
            assert [r.id for r in view.responses] == [response.id]
            assert view.responses[0].tutor_username == tutor.username
            assert view.responses[0].student_id is None

    def test_only_students_create_tickets(self, db_session: Session):
        tutor = create_test_tutor(db_session)

        with pytest.raises(ApiError) as exc_info:
            create_ticket(db_session, tutor.user_id, "Math", "t", "d")

        assert exc_info.value.code == ApiErrorCode.E_INVALID_ROLE

    def test_unknown_subject_rejected(self, db_session: Session):
        student = create_test_student(db_session)

        with pytest.raises(ApiError) as exc_info:
            create_ticket(db_session, student.user_id, "Astrology", "t", "d")

        assert exc_info.value.code == ApiErrorCode.E_INVALID_SUBJECT

    def test_missing_identity_rejected(self, db_session: Session):
        with pytest.raises(ApiError) as exc_info:
            create_ticket(db_session, None, "Math", "t", "d")

        assert exc_info.value.code == ApiErrorCode.E_UNAUTHENTICATED

    def test_malformed_identity_rejected(self, db_session: Session):
        with pytest.raises(ApiError) as exc_info:
            create_ticket(db_session, "12345", "Math", "t", "d")

        assert exc_info.value.code == ApiErrorCode.E_INVALID_USER_ID

    def test_student_tickets_newest_first(self, db_session: Session):
        student = create_test_student(db_session)
        now = utcnow()
        older = create_test_ticket(db_session, student, created_at=now - timedelta(hours=2))
        newer = create_test_ticket(db_session, student, created_at=now - timedelta(hours=1))

        ids = [t.id for t in get_student_tickets(db_session, student.user_id)]

        assert ids == [newer.id, older.id]


class TestTutorFeed:
    def test_feed_filters_by_subject_and_open(self, db_session: Session):
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session, specialties=["Math", "Science"])
        math = create_test_ticket(db_session, student, subject="Math")
        create_test_ticket(db_session, student, subject="History")
        create_test_ticket(db_session, student, subject="Science", closed=True)

        feed = get_tutor_tickets(db_session, tutor.user_id)

        assert [t.id for t in feed] == [math.id]

    def test_tutor_without_subjects_sees_nothing(self, db_session: Session):
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session, specialties=[])
        create_test_ticket(db_session, student, subject="Math")

        assert get_tutor_tickets(db_session, tutor.user_id) == []

    def test_students_have_no_feed(self, db_session: Session):
        student = create_test_student(db_session)

        with pytest.raises(ApiError) as exc_info:
            get_tutor_tickets(db_session, student.user_id)

        assert exc_info.value.code == ApiErrorCode.E_INVALID_ROLE


class TestCreateResponse:
    def test_student_cannot_respond_on_foreign_ticket(self, db_session: Session):
        owner = create_test_student(db_session)
        other = create_test_student(db_session)
        ticket = create_test_ticket(db_session, owner)

        with pytest.raises(ApiError) as exc_info:
            create_response(db_session, ticket.id, other.user_id, "me too")

        assert exc_info.value.code == ApiErrorCode.E_NOT_TICKET_OWNER
        assert get_ticket(db_session, ticket.id).responses == []

    def test_student_follow_up_on_own_ticket(self, db_session: Session):
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session)
        ticket = create_test_ticket(db_session, student)
        answer = create_response(db_session, ticket.id, tutor.user_id, "Use the chain rule")

        follow_up = create_response(
            db_session, ticket.id, student.user_id, "Thanks!", parent_id=answer.id
        )

        assert follow_up.student_id == student.user_id
        assert follow_up.tutor_id is None
        assert follow_up.parent_id == answer.id

    def test_declared_role_must_match_profile(self, db_session: Session):
        student = create_test_student(db_session)
        ticket = create_test_ticket(db_session, student)

        with pytest.raises(ApiError) as exc_info:
            create_response(
                db_session, ticket.id, student.user_id, "x", role=ProfileRole.tutor
            )

        assert exc_info.value.code == ApiErrorCode.E_INVALID_ROLE

    def test_parent_must_belong_to_same_ticket(self, db_session: Session):
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session)
        first = create_test_ticket(db_session, student)
        second = create_test_ticket(db_session, student)
        answer = create_response(db_session, first.id, tutor.user_id, "answer")

        with pytest.raises(ApiError) as exc_info:
            create_response(db_session, second.id, tutor.user_id, "x", parent_id=answer.id)

        assert exc_info.value.code == ApiErrorCode.E_INVALID_REQUEST

    def test_missing_ticket(self, db_session: Session):
        tutor = create_test_tutor(db_session)

        with pytest.raises(ApiError) as exc_info:
            create_response(db_session, uuid4(), tutor.user_id, "x")

        assert exc_info.value.code == ApiErrorCode.E_TICKET_NOT_FOUND

    def test_response_is_published(self, db_session: Session, hub: RealtimeHub):
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session)
        ticket = create_test_ticket(db_session, student)
        received = []
        hub.subscribe(responses_channel(ticket.id), received.append)

        response = create_response(db_session, ticket.id, tutor.user_id, "hello", hub=hub)

        assert len(received) == 1
        assert received[0].table == "responses"
        assert received[0].record["id"] == str(response.id)
        assert received[0].seq == 1


class TestCloseTicket:
    def test_owner_closes_and_feed_drops_it(self, db_session: Session):
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session)
        ticket = create_test_ticket(db_session, student)

        closed = close_ticket(db_session, ticket.id, student.user_id)
        again = close_ticket(db_session, ticket.id, student.user_id)

        assert closed.closed is True
        assert again.closed is True
        assert get_tutor_tickets(db_session, tutor.user_id) == []

    def test_non_owner_cannot_close(self, db_session: Session):
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session)
        ticket = create_test_ticket(db_session, student)

        with pytest.raises(ApiError) as exc_info:
            close_ticket(db_session, ticket.id, tutor.user_id)

        assert exc_info.value.code == ApiErrorCode.E_NOT_TICKET_OWNER


class TestTicketRoutes:
    def test_create_and_respond_over_http(self, auth_client, db_session: Session):
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session, specialties=["Math"])

        created = auth_client.post(
            "/tickets",
            json={"subject": "Math", "topic": "Derivatives", "description": "Help"},
            headers=auth_headers(student.user_id),
        )
        ticket_id = created.json()["data"]["id"]
        feed = auth_client.get("/tickets/feed", headers=auth_headers(tutor.user_id))
        responded = auth_client.post(
            f"/tickets/{ticket_id}/responses",
            json={"content": "Power rule", "role": "tutor"},
            headers=auth_headers(tutor.user_id),
        )
        mine = auth_client.get("/tickets/mine", headers=auth_headers(student.user_id))

        assert created.status_code == 201
        assert [t["id"] for t in feed.json()["data"]] == [ticket_id]
        assert responded.status_code == 201
        assert mine.json()["data"][0]["responses"][0]["content"] == "Power rule"

    def test_close_requires_owner(self, auth_client, db_session: Session):
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session)
        ticket = create_test_ticket(db_session, student)

        response = auth_client.post(
            f"/tickets/{ticket.id}/close", headers=auth_headers(tutor.user_id)
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "E_NOT_TICKET_OWNER"
