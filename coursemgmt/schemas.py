"""Pydantic request schemas used by the API.

Schemas keep API input shapes stable and provide validation for
controller handlers and tests.
"""

from pydantic import BaseModel, Field
from typing import Optional


class RegisterIn(BaseModel):
    """Payload for lecturer registration."""
    email: str
    password: str = Field(min_length=1)


class LoginIn(BaseModel):
    """Login payload. A missing or blank password asks for first-time setup."""
    email: str
    password: Optional[str] = None


class SetupPasswordIn(BaseModel):
    """First-time password setup for a student account.

    Both fields are optional here so a missing one is reported by the
    service with the same 400 as a blank one.
    """
    email: Optional[str] = None
    password: Optional[str] = None


class StudentIn(BaseModel):
    """Create/update payload for a student."""
    first_name: str
    last_name: str
    email: str
    phone_number: str
    student_id: str


class CourseIn(BaseModel):
    """Create/update payload for a course.

    A missing `status` means ACTIVE on create and "keep the current one"
    on update.
    """
    course_code: str
    course_name: str
    description: str
    credits: int = Field(ge=0)
    instructor: str
    max_students: int = Field(ge=0)
    status: Optional[str] = None


class EnrollmentIn(BaseModel):
    student_id: int
    course_id: int


class GradeIn(BaseModel):
    grade: Optional[float] = None


class ResultIn(BaseModel):
    """Final result recorded for a student in a course."""
    grade: Optional[float] = None
    grade_letter: Optional[str] = None
    comments: Optional[str] = None
