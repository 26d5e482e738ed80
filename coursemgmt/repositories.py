"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
students, courses, enrollments). Repositories return SQLModel objects
and perform commits/refreshes where appropriate; business rules live in
`services`.
"""

from typing import List, Optional
from sqlmodel import Session, select, col
from sqlalchemy import func, or_
from . import models


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def save(self, user: models.User) -> models.User:
        """Write back changes made to an already persisted user."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)


class StudentRepository:
    """CRUD and lookup helpers for `Student` records."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, student: models.Student) -> models.Student:
        """Insert or update `student` and return the refreshed instance."""
        self.session.add(student)
        self.session.commit()
        self.session.refresh(student)
        return student

    def create_with_account(self, student: models.Student, account: Optional[models.User]) -> models.Student:
        """Insert a student and, when given, its login account in one commit."""
        self.session.add(student)
        if account is not None:
            self.session.add(account)
        self.session.commit()
        self.session.refresh(student)
        return student

    def get(self, student_pk: int) -> Optional[models.Student]:
        return self.session.get(models.Student, student_pk)

    def list_all(self) -> List[models.Student]:
        return self.session.exec(select(models.Student).order_by(models.Student.id)).all()

    def search_by_name(self, fragment: str) -> List[models.Student]:
        """Case-insensitive match of `fragment` against first or last name.

        `%` and `_` in the fragment are matched literally.
        """
        stmt = select(models.Student).where(
            or_(
                col(models.Student.first_name).icontains(fragment, autoescape=True),
                col(models.Student.last_name).icontains(fragment, autoescape=True)
            )
        ).order_by(models.Student.id)
        return self.session.exec(stmt).all()

    def exists_by_email(self, email: str) -> bool:
        stmt = select(models.Student.id).where(models.Student.email == email)
        return self.session.exec(stmt).first() is not None

    def exists_by_student_id(self, student_id: str) -> bool:
        """Return True if the institutional student id is already taken."""
        stmt = select(models.Student.id).where(models.Student.student_id == student_id)
        return self.session.exec(stmt).first() is not None

    def delete(self, student: models.Student) -> None:
        self.session.delete(student)
        self.session.commit()


class CourseRepository:
    """CRUD and lookup helpers for `Course` records."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, course: models.Course) -> models.Course:
        self.session.add(course)
        self.session.commit()
        self.session.refresh(course)
        return course

    def get(self, course_pk: int) -> Optional[models.Course]:
        return self.session.get(models.Course, course_pk)

    def list_all(self, instructor: Optional[str] = None, name: Optional[str] = None) -> List[models.Course]:
        """List courses, optionally filtered by instructor and a name fragment."""
        stmt = select(models.Course)
        if instructor:
            stmt = stmt.where(models.Course.instructor == instructor)
        if name:
            stmt = stmt.where(col(models.Course.course_name).icontains(name, autoescape=True))
        return self.session.exec(stmt.order_by(models.Course.id)).all()

    def exists_by_code(self, course_code: str) -> bool:
        stmt = select(models.Course.id).where(models.Course.course_code == course_code)
        return self.session.exec(stmt).first() is not None

    def delete(self, course: models.Course) -> None:
        self.session.delete(course)
        self.session.commit()


class EnrollmentRepository:
    """Persistence and queries for `Enrollment` join rows."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, enrollment: models.Enrollment) -> models.Enrollment:
        self.session.add(enrollment)
        self.session.commit()
        self.session.refresh(enrollment)
        return enrollment

    def get(self, enrollment_id: int) -> Optional[models.Enrollment]:
        return self.session.get(models.Enrollment, enrollment_id)

    def get_for_pair(self, student_pk: int, course_pk: int) -> Optional[models.Enrollment]:
        """Return the enrollment of `student_pk` in `course_pk`, if any."""
        stmt = select(models.Enrollment).where(
            models.Enrollment.student_id == student_pk,
            models.Enrollment.course_id == course_pk
        )
        return self.session.exec(stmt).first()

    def exists_for_pair(self, student_pk: int, course_pk: int) -> bool:
        stmt = select(models.Enrollment.id).where(
            models.Enrollment.student_id == student_pk,
            models.Enrollment.course_id == course_pk
        )
        return self.session.exec(stmt).first() is not None

    def exists_for_course(self, course_pk: int) -> bool:
        """Return True if any enrollment, whatever its status, references the course."""
        stmt = select(models.Enrollment.id).where(models.Enrollment.course_id == course_pk)
        return self.session.exec(stmt).first() is not None

    def list_for_student(self, student_pk: int) -> List[models.Enrollment]:
        stmt = select(models.Enrollment).where(models.Enrollment.student_id == student_pk).order_by(models.Enrollment.id)
        return self.session.exec(stmt).all()

    def list_for_course(self, course_pk: int) -> List[models.Enrollment]:
        stmt = select(models.Enrollment).where(models.Enrollment.course_id == course_pk).order_by(models.Enrollment.id)
        return self.session.exec(stmt).all()

    def count_active_for_course(self, course_pk: int) -> int:
        """Count ENROLLED rows for a course (the seats currently taken)."""
        stmt = select(func.count(models.Enrollment.id)).where(
            models.Enrollment.course_id == course_pk,
            models.Enrollment.status == models.ENROLLED
        )
        return self.session.exec(stmt).one()
