#!/usr/bin/env python
"""Seed development database with demo accounts.

Creates a demo student, a demo tutor (Math, Computer Science) and one open
Math ticket from the student, for local UI testing.

Constraints:
- Refuses to run in staging or prod (TUTORLINK_ENV check)
- Idempotent via ON CONFLICT DO NOTHING
- Never runs automatically (manual invocation only)

Usage:
    cd python && DATABASE_URL=... uv run python ../scripts/seed_dev.py
"""

import json
import os
import sys


def main():
    # 1. Environment check (hard fail in staging/prod)
    tutorlink_env = os.getenv("TUTORLINK_ENV", "local")
    if tutorlink_env not in ("local", "test"):
        print(f"ERROR: seed_dev.py refuses to run in TUTORLINK_ENV={tutorlink_env}")
        sys.exit(1)

    # 2. Check DATABASE_URL
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL environment variable must be set")
        sys.exit(1)

    # 3. Import fixture data (single source of truth)
    from tests.fixtures import (
        FIXTURE_STUDENT_EMAIL,
        FIXTURE_STUDENT_ID,
        FIXTURE_STUDENT_USERNAME,
        FIXTURE_TICKET_DESCRIPTION,
        FIXTURE_TICKET_ID,
        FIXTURE_TICKET_SUBJECT,
        FIXTURE_TICKET_TOPIC,
        FIXTURE_TUTOR_EMAIL,
        FIXTURE_TUTOR_ID,
        FIXTURE_TUTOR_SUBJECTS,
        FIXTURE_TUTOR_USERNAME,
    )

    from sqlalchemy import create_engine, text

    engine = create_engine(database_url)

    insert_profile = text("""
        INSERT INTO profiles (user_id, username, email, role, hourly_rate, specialties)
        VALUES (:user_id, :username, :email, :role, :hourly_rate, CAST(:specialties AS jsonb))
        ON CONFLICT (user_id) DO NOTHING
        RETURNING id
    """)

    with engine.connect() as conn:
        # 4. Idempotent seeding
        student_created = (
            conn.execute(
                insert_profile,
                {
                    "user_id": FIXTURE_STUDENT_ID,
                    "username": FIXTURE_STUDENT_USERNAME,
                    "email": FIXTURE_STUDENT_EMAIL,
                    "role": "student",
                    "hourly_rate": None,
                    "specialties": "[]",
                },
            ).fetchone()
            is not None
        )

        tutor_created = (
            conn.execute(
                insert_profile,
                {
                    "user_id": FIXTURE_TUTOR_ID,
                    "username": FIXTURE_TUTOR_USERNAME,
                    "email": FIXTURE_TUTOR_EMAIL,
                    "role": "tutor",
                    "hourly_rate": 40.0,
                    "specialties": json.dumps(FIXTURE_TUTOR_SUBJECTS),
                },
            ).fetchone()
            is not None
        )

        for subject in FIXTURE_TUTOR_SUBJECTS:
            conn.execute(
                text("""
                    INSERT INTO tutor_subjects (tutor_id, subject)
                    VALUES (:tutor_id, :subject)
                    ON CONFLICT DO NOTHING
                """),
                {"tutor_id": FIXTURE_TUTOR_ID, "subject": subject},
            )

        ticket_created = (
            conn.execute(
                text("""
                    INSERT INTO tickets (id, student_id, student_username, subject, topic,
                                         description)
                    VALUES (:id, :student_id, :student_username, :subject, :topic,
                            :description)
                    ON CONFLICT (id) DO NOTHING
                    RETURNING id
                """),
                {
                    "id": FIXTURE_TICKET_ID,
                    "student_id": FIXTURE_STUDENT_ID,
                    "student_username": FIXTURE_STUDENT_USERNAME,
                    "subject": FIXTURE_TICKET_SUBJECT,
                    "topic": FIXTURE_TICKET_TOPIC,
                    "description": FIXTURE_TICKET_DESCRIPTION,
                },
            ).fetchone()
            is not None
        )

        conn.commit()

    # 5. Report
    db_display = database_url.split("@")[1] if "@" in database_url else database_url
    print(f"Database: {db_display}")
    print(f"TUTORLINK_ENV: {tutorlink_env}")
    print()
    print(f"{'✓ Created' if student_created else '• Exists'}: student {FIXTURE_STUDENT_ID}")
    print(f"{'✓ Created' if tutor_created else '• Exists'}: tutor {FIXTURE_TUTOR_ID}")
    print(f"{'✓ Created' if ticket_created else '• Exists'}: ticket {FIXTURE_TICKET_ID}")
    print()
    print("Sign in with a Supabase user whose id matches one of the profiles above.")


if __name__ == "__main__":
    main()
