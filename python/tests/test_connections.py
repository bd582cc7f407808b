"""Tests for the student/tutor connection handshake."""

import pytest
from sqlalchemy.orm import Session

from tests.factories import create_test_student, create_test_tutor
from tests.helpers import auth_headers
from tutorlink.db.models import InvitationStatus
from tutorlink.errors import ApiError, ApiErrorCode
from tutorlink.services.connections import (
    accept_connection_invitation,
    create_connection_invitation,
    decline_connection_invitation,
    list_connection_invitations,
    list_connections,
)


class TestConnectionInvitations:
    def test_tutor_invites_student_who_accepts(self, db_session: Session):
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session)

        invite = create_connection_invitation(db_session, tutor.user_id, student.user_id)
        connection = accept_connection_invitation(db_session, student.user_id, invite.id)
        repeat = accept_connection_invitation(db_session, student.user_id, invite.id)

        assert invite.student_id == student.user_id
        assert invite.tutor_id == tutor.user_id
        assert connection.tutor_username == tutor.username
        assert repeat.created_at == connection.created_at
        assert [c.tutor_id for c in list_connections(db_session, student.user_id)] == [
            tutor.user_id
        ]
        assert [c.student_id for c in list_connections(db_session, tutor.user_id)] == [
            student.user_id
        ]

    def test_pair_must_be_student_and_tutor(self, db_session: Session):
        a = create_test_student(db_session)
        b = create_test_student(db_session)

        with pytest.raises(ApiError) as exc_info:
            create_connection_invitation(db_session, a.user_id, b.user_id)

        assert exc_info.value.code == ApiErrorCode.E_INVALID_ROLE

    def test_self_invite_rejected(self, db_session: Session):
        student = create_test_student(db_session)

        with pytest.raises(ApiError) as exc_info:
            create_connection_invitation(db_session, student.user_id, student.user_id)

        assert exc_info.value.code == ApiErrorCode.E_INVALID_REQUEST

    def test_duplicate_pending_from_either_side(self, db_session: Session):
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session)
        create_connection_invitation(db_session, student.user_id, tutor.user_id)

        with pytest.raises(ApiError) as exc_info:
            create_connection_invitation(db_session, tutor.user_id, student.user_id)

        assert exc_info.value.code == ApiErrorCode.E_INVITE_ALREADY_EXISTS

    def test_already_connected(self, db_session: Session):
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session)
        invite = create_connection_invitation(db_session, student.user_id, tutor.user_id)
        accept_connection_invitation(db_session, tutor.user_id, invite.id)

        with pytest.raises(ApiError) as exc_info:
            create_connection_invitation(db_session, student.user_id, tutor.user_id)

        assert exc_info.value.code == ApiErrorCode.E_ALREADY_CONNECTED

    def test_decline_is_idempotent_and_blocks_accept(self, db_session: Session):
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session)
        invite = create_connection_invitation(db_session, student.user_id, tutor.user_id)

        declined = decline_connection_invitation(db_session, tutor.user_id, invite.id)
        again = decline_connection_invitation(db_session, tutor.user_id, invite.id)

        assert declined.status == again.status == InvitationStatus.rejected
        with pytest.raises(ApiError) as exc_info:
            accept_connection_invitation(db_session, tutor.user_id, invite.id)
        assert exc_info.value.code == ApiErrorCode.E_INVITE_NOT_PENDING
        assert list_connections(db_session, student.user_id) == []

    def test_inviter_cannot_accept_own_invitation(self, db_session: Session):
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session)
        invite = create_connection_invitation(db_session, student.user_id, tutor.user_id)

        with pytest.raises(ApiError) as exc_info:
            accept_connection_invitation(db_session, student.user_id, invite.id)

        assert exc_info.value.code == ApiErrorCode.E_INVITE_NOT_FOUND

    def test_list_shows_sent_and_received(self, db_session: Session):
        student = create_test_student(db_session)
        tutor_a = create_test_tutor(db_session)
        tutor_b = create_test_tutor(db_session)
        sent = create_connection_invitation(db_session, student.user_id, tutor_a.user_id)
        received = create_connection_invitation(db_session, tutor_b.user_id, student.user_id)

        ids = {i.id for i in list_connection_invitations(db_session, student.user_id)}

        assert ids == {sent.id, received.id}
        assert list_connection_invitations(
            db_session, student.user_id, status=InvitationStatus.accepted
        ) == []


class TestConnectionRoutes:
    def test_invite_and_accept(self, auth_client, db_session: Session):
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session)

        invited = auth_client.post(
            "/connection-invitations",
            json={"invitee_id": str(tutor.user_id)},
            headers=auth_headers(student.user_id),
        )
        invite_id = invited.json()["data"]["id"]
        accepted = auth_client.post(
            f"/connection-invitations/{invite_id}/accept", headers=auth_headers(tutor.user_id)
        )
        connections = auth_client.get("/connections", headers=auth_headers(student.user_id))

        assert invited.status_code == 201
        assert accepted.status_code == 200
        assert connections.json()["data"][0]["tutor_id"] == str(tutor.user_id)
