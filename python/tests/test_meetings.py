"""Tests for meeting requests and the meeting status state machine.

The legal transition set is:

    pending  -> accepted | rejected | cancelled
    accepted -> completed | cancelled

Everything else, including self-transitions and leaving a terminal state,
is rejected with E_INVALID_TRANSITION.
"""

from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from tests.factories import create_test_student, create_test_tutor, meeting_window
from tests.helpers import auth_headers
from tutorlink.db.models import Meeting, MeetingStatus
from tutorlink.errors import ApiError, ApiErrorCode
from tutorlink.realtime.channels import meetings_channel
from tutorlink.realtime.hub import RealtimeHub
from tutorlink.services.meetings import (
    ALLOWED_TRANSITIONS,
    get_user_meetings,
    request_meeting,
    update_meeting_status,
)

LEGAL = {
    (MeetingStatus.pending, MeetingStatus.accepted),
    (MeetingStatus.pending, MeetingStatus.rejected),
    (MeetingStatus.pending, MeetingStatus.cancelled),
    (MeetingStatus.accepted, MeetingStatus.completed),
    (MeetingStatus.accepted, MeetingStatus.cancelled),
}


def _meeting_in_state(db: Session, student, tutor, status: MeetingStatus) -> Meeting:
    start, end = meeting_window()
    meeting = Meeting(
        student_id=student.user_id,
        student_username=student.username,
        tutor_id=tutor.user_id,
        tutor_username=tutor.username,
        subject="Math",
        start_time=start,
        end_time=end,
        status=status.value,
    )
    db.add(meeting)
    db.commit()
    return meeting


@pytest.fixture
def parties(db_session: Session):
    return create_test_student(db_session), create_test_tutor(db_session)


class TestTransitionTable:
    def test_table_matches_documented_set(self):
        table = {
            (current, target)
            for current, targets in ALLOWED_TRANSITIONS.items()
            for target in targets
        }
        assert table == LEGAL

    @pytest.mark.parametrize("current", list(MeetingStatus))
    @pytest.mark.parametrize("target", list(MeetingStatus))
    def test_every_pair(self, db_session: Session, parties, current, target):
        student, tutor = parties
        meeting = _meeting_in_state(db_session, student, tutor, current)

        if (current, target) in LEGAL:
            out = update_meeting_status(db_session, tutor.user_id, meeting.id, target)
            assert out.status == target
        else:
            with pytest.raises(ApiError) as exc_info:
                update_meeting_status(db_session, tutor.user_id, meeting.id, target)
            assert exc_info.value.code == ApiErrorCode.E_INVALID_TRANSITION
            db_session.refresh(meeting)
            assert meeting.status == current.value


class TestActorRules:
    @pytest.mark.parametrize("target", [MeetingStatus.accepted, MeetingStatus.rejected])
    def test_student_cannot_accept_or_reject(self, db_session: Session, parties, target):
        student, tutor = parties
        meeting = _meeting_in_state(db_session, student, tutor, MeetingStatus.pending)

        with pytest.raises(ApiError) as exc_info:
            update_meeting_status(db_session, student.user_id, meeting.id, target)

        assert exc_info.value.code == ApiErrorCode.E_FORBIDDEN

    def test_student_can_cancel(self, db_session: Session, parties):
        student, tutor = parties
        meeting = _meeting_in_state(db_session, student, tutor, MeetingStatus.pending)

        out = update_meeting_status(
            db_session, student.user_id, meeting.id, MeetingStatus.cancelled
        )

        assert out.status == MeetingStatus.cancelled

    def test_outsider_sees_not_found(self, db_session: Session, parties):
        student, tutor = parties
        outsider = create_test_tutor(db_session)
        meeting = _meeting_in_state(db_session, student, tutor, MeetingStatus.pending)

        with pytest.raises(ApiError) as exc_info:
            update_meeting_status(
                db_session, outsider.user_id, meeting.id, MeetingStatus.accepted
            )

        assert exc_info.value.code == ApiErrorCode.E_MEETING_NOT_FOUND


class TestRequestMeeting:
    def test_request_creates_pending_meeting_and_notifies(
        self, db_session: Session, parties, hub: RealtimeHub
    ):
        student, tutor = parties
        received = []
        hub.subscribe(meetings_channel(tutor.user_id), received.append)
        start, end = meeting_window()

        out = request_meeting(
            db_session, student.user_id, tutor.user_id, "Math", start, end, notes="Ch. 3",
            hub=hub,
        )

        assert out.status == MeetingStatus.pending
        assert out.tutor_username == tutor.username
        assert [e.record["id"] for e in received] == [str(out.id)]

    def test_start_must_precede_end(self, db_session: Session, parties):
        student, tutor = parties
        start, _ = meeting_window()

        with pytest.raises(ApiError) as exc_info:
            request_meeting(db_session, student.user_id, tutor.user_id, "Math", start, start)

        assert exc_info.value.code == ApiErrorCode.E_INVALID_TIME_RANGE

    def test_only_students_request_and_only_with_tutors(self, db_session: Session, parties):
        student, tutor = parties
        other_student = create_test_student(db_session)
        start, end = meeting_window()

        for requester, counterpart in ((tutor, student), (student, other_student)):
            with pytest.raises(ApiError) as exc_info:
                request_meeting(
                    db_session, requester.user_id, counterpart.user_id, "Math", start, end
                )
            assert exc_info.value.code == ApiErrorCode.E_INVALID_ROLE

    def test_unknown_tutor(self, db_session: Session, parties):
        student, _ = parties
        start, end = meeting_window()

        with pytest.raises(ApiError) as exc_info:
            request_meeting(db_session, student.user_id, uuid4(), "Math", start, end)

        assert exc_info.value.code == ApiErrorCode.E_PROFILE_NOT_FOUND

    def test_user_meetings_ordered_by_start(self, db_session: Session, parties):
        student, tutor = parties
        later = request_meeting(
            db_session, student.user_id, tutor.user_id, "Math", *meeting_window(48)
        )
        sooner = request_meeting(
            db_session, student.user_id, tutor.user_id, "Math", *meeting_window(2)
        )

        for user in (student, tutor):
            assert [m.id for m in get_user_meetings(db_session, user.user_id)] == [
                sooner.id,
                later.id,
            ]


class TestMeetingRoutes:
    def test_request_accept_complete(self, auth_client, db_session: Session):
        student = create_test_student(db_session)
        tutor = create_test_tutor(db_session)
        start, end = meeting_window()

        created = auth_client.post(
            "/meetings",
            json={
                "tutor_id": str(tutor.user_id),
                "subject": "Math",
                "start_time": start.isoformat(),
                "end_time": end.isoformat(),
            },
            headers=auth_headers(student.user_id),
        )
        meeting_id = created.json()["data"]["id"]
        accepted = auth_client.patch(
            f"/meetings/{meeting_id}",
            json={"status": "accepted"},
            headers=auth_headers(tutor.user_id),
        )
        back_to_pending = auth_client.patch(
            f"/meetings/{meeting_id}",
            json={"status": "pending"},
            headers=auth_headers(tutor.user_id),
        )

        assert created.status_code == 201
        assert accepted.json()["data"]["status"] == "accepted"
        assert back_to_pending.status_code == 409
        assert back_to_pending.json()["error"]["code"] == "E_INVALID_TRANSITION"

    def test_unknown_status_value_rejected(self, auth_client, db_session: Session):
        student = create_test_student(db_session)

        response = auth_client.patch(
            f"/meetings/{uuid4()}",
            json={"status": "postponed"},
            headers=auth_headers(student.user_id),
        )

        assert response.status_code == 400
