"""Dashboard statistics schemas."""

from uuid import UUID

from pydantic import BaseModel


class CounterpartCount(BaseModel):
    user_id: UUID
    username: str
    count: int


class SubjectCount(BaseModel):
    subject: str
    count: int


class StudentStatisticsOut(BaseModel):
    total_tickets: int
    top_tutors: list[CounterpartCount]
    subjects: list[SubjectCount]


class TutorStatisticsOut(BaseModel):
    total_responses: int
    top_students: list[CounterpartCount]
    subjects: list[SubjectCount]
