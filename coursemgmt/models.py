"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table; students and courses are linked through
`Enrollment` rows.
"""

from typing import Optional
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime, timezone
from typing import List

ROLE_STUDENT = "student"
ROLE_LECTURER = "lecturer"

COURSE_ACTIVE = "ACTIVE"

ENROLLED = "ENROLLED"
DROPPED = "DROPPED"
COMPLETED = "COMPLETED"


class User(SQLModel, table=True):
    """A login account.

    Fields:
    - `email`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    - `role`: `student` or `lecturer`
    - `first_login`: a student must set a password before logging in normally
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    role: str = Field(default=ROLE_LECTURER)
    first_login: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Student(SQLModel, table=True):
    """A student record. Deleting a student deletes its enrollments."""
    id: Optional[int] = Field(default=None, primary_key=True)
    first_name: str
    last_name: str
    email: str = Field(index=True, nullable=False, unique=True)
    phone_number: str
    student_id: str = Field(index=True, nullable=False, unique=True)
    enrollments: List['Enrollment'] = Relationship(
        back_populates='student',
        sa_relationship_kwargs={'cascade': 'all, delete-orphan'},
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Course(SQLModel, table=True):
    """A course offering with a seat limit (`max_students`)."""
    id: Optional[int] = Field(default=None, primary_key=True)
    course_code: str = Field(index=True, nullable=False, unique=True)
    course_name: str
    description: str
    credits: int
    instructor: str = Field(index=True)
    max_students: int
    status: str = Field(default=COURSE_ACTIVE)
    enrollments: List['Enrollment'] = Relationship(back_populates='course')


class Enrollment(SQLModel, table=True):
    """Links one `Student` to one `Course`.

    `status` is one of ENROLLED, DROPPED or COMPLETED. Only ENROLLED rows
    count against the course's seat limit. A (student, course) pair can
    appear at most once.
    """
    __table_args__ = (UniqueConstraint('student_id', 'course_id', name='uq_enrollment_student_course'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key='student.id', index=True)
    course_id: int = Field(foreign_key='course.id', index=True)
    enrollment_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: str = Field(default=ENROLLED, index=True)
    grade: Optional[float] = None
    grade_letter: Optional[str] = None
    comments: Optional[str] = None
    student: Optional[Student] = Relationship(back_populates='enrollments')
    course: Optional[Course] = Relationship(back_populates='enrollments')
