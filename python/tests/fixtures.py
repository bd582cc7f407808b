"""Fixture data shared by tests and scripts/seed_dev.py.

Single source of truth for the demo accounts.
"""

from uuid import UUID

FIXTURE_STUDENT_ID = UUID("00000000-0000-4000-8000-0000000000a1")
FIXTURE_STUDENT_USERNAME = "demo_student"
FIXTURE_STUDENT_EMAIL = "student@tutorlink.test"

FIXTURE_TUTOR_ID = UUID("00000000-0000-4000-8000-0000000000b1")
FIXTURE_TUTOR_USERNAME = "demo_tutor"
FIXTURE_TUTOR_EMAIL = "tutor@tutorlink.test"
FIXTURE_TUTOR_SUBJECTS = ["Math", "Computer Science"]

FIXTURE_TICKET_ID = UUID("00000000-0000-4000-8000-0000000000c1")
FIXTURE_TICKET_SUBJECT = "Math"
FIXTURE_TICKET_TOPIC = "Integration by parts"
FIXTURE_TICKET_DESCRIPTION = "I keep picking the wrong u. How do I choose?"
