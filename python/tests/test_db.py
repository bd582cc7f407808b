"""Database smoke tests.

Verifies connectivity, the transaction helper, and the constraints the
services rely on.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tests.factories import create_test_student
from tutorlink.db import Profile, ProfileRole, transaction


class TestDatabaseConnectivity:
    def test_session_opens_and_executes_query(self, db_session: Session):
        row = db_session.execute(text("SELECT 1 AS value")).fetchone()

        assert row is not None
        assert row[0] == 1


class TestTransaction:
    """transaction() commits on success and rolls back on any exception."""

    def _profile(self) -> Profile:
        user_id = uuid4()
        return Profile(
            user_id=user_id,
            username=f"u_{user_id.hex[:8]}",
            email=f"{user_id.hex[:8]}@example.test",
            role=ProfileRole.student.value,
            specialties=[],
            struggles=[],
        )

    def test_commit(self, db_session: Session):
        profile = self._profile()

        with transaction(db_session):
            db_session.add(profile)

        stored = db_session.scalars(
            select(Profile).where(Profile.user_id == profile.user_id)
        ).one_or_none()
        assert stored is not None

    def test_rollback_reraises(self, db_session: Session):
        profile = self._profile()

        with pytest.raises(RuntimeError):
            with transaction(db_session):
                db_session.add(profile)
                db_session.flush()
                raise RuntimeError("abort")

        found = db_session.scalars(
            select(Profile).where(Profile.user_id == profile.user_id)
        ).one_or_none()
        assert found is None


class TestConstraints:
    def test_usernames_are_unique(self, db_session: Session):
        create_test_student(db_session, username="sam")

        with pytest.raises(IntegrityError):
            create_test_student(db_session, username="sam")
        db_session.rollback()


class TestTimestamps:
    def test_read_back_as_aware_utc(self, db_session: Session):
        profile = create_test_student(db_session)
        created = profile.created_at

        reloaded = db_session.scalars(
            select(Profile)
            .where(Profile.user_id == profile.user_id)
            .execution_options(populate_existing=True)
        ).one()

        assert reloaded.created_at.tzinfo is not None
        assert reloaded.created_at.utcoffset() == timedelta(0)
        assert reloaded.created_at == created

    def test_naive_values_are_stored_as_utc(self, db_session: Session):
        profile = create_test_student(db_session)
        naive = datetime(2026, 1, 2, 3, 4, 5)

        with transaction(db_session):
            profile.updated_at = naive

        reloaded = db_session.scalars(
            select(Profile)
            .where(Profile.user_id == profile.user_id)
            .execution_options(populate_existing=True)
        ).one()
        assert reloaded.updated_at == naive.replace(tzinfo=UTC)
