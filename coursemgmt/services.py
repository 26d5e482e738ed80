"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories.
Services are intentionally thin: they perform validation, execute the
domain rules (uniqueness, seat limits, first-login state) and persist
aggregates via repositories.

Failures are raised as `ValueError` subclasses carrying a readable
message; controllers translate them to HTTP status codes.
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import List, Optional

from passlib.context import CryptContext
import jwt
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from . import models, repositories
from .config import settings

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
JWT_SECRET = settings.JWT_SECRET
JWT_ALGORITHM = settings.JWT_ALGORITHM
JWT_EXPIRE_HOURS = settings.JWT_EXPIRE_HOURS

logger = logging.getLogger("coursemgmt.services")


class NotFoundError(ValueError):
    """A referenced student, course, enrollment or user does not exist."""


class DuplicateEnrollment(ValueError):
    """The student already has an enrollment row for the course."""


class CourseFull(ValueError):
    """The course has no free seats left."""


def user_to_dict(user: models.User) -> dict:
    return {
        'id': user.id,
        'email': user.email,
        'role': user.role,
        'first_login': user.first_login,
    }


def enrollment_to_dict(enrollment: models.Enrollment) -> dict:
    """Flatten an enrollment with the student and course names it links."""
    return {
        'id': enrollment.id,
        'student_id': enrollment.student_id,
        'student_name': enrollment.student.full_name,
        'course_id': enrollment.course_id,
        'course_name': enrollment.course.course_name,
        'course_code': enrollment.course.course_code,
        'enrollment_date': enrollment.enrollment_date.isoformat(),
        'status': enrollment.status,
        'grade': enrollment.grade,
        'grade_letter': enrollment.grade_letter,
        'comments': enrollment.comments,
    }


def student_to_dict(student: models.Student) -> dict:
    return {
        'id': student.id,
        'first_name': student.first_name,
        'last_name': student.last_name,
        'email': student.email,
        'phone_number': student.phone_number,
        'student_id': student.student_id,
        'enrollments': [enrollment_to_dict(e) for e in student.enrollments],
    }


def course_to_dict(course: models.Course) -> dict:
    return {
        'id': course.id,
        'course_code': course.course_code,
        'course_name': course.course_name,
        'description': course.description,
        'credits': course.credits,
        'instructor': course.instructor,
        'max_students': course.max_students,
        'status': course.status,
        'enrollments': [enrollment_to_dict(e) for e in course.enrollments],
    }


class AuthService:
    """Lecturer registration, login and the student first-login flow.

    A student account starts with `first_login=True` and its student id as
    password. Until the student sets a password through
    `set_student_password`, login only reports that setup is needed.
    """
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register_lecturer(self, email: str, password: str) -> models.User:
        """Create a lecturer account with a hashed password.

        Raises `ValueError` if any account already uses `email`.
        """
        if self.user_repo.get_by_email(email):
            raise ValueError("User already exists")
        u = models.User(email=email, password_hash=PWD_CTX.hash(password), role=models.ROLE_LECTURER, first_login=False)
        user = self.user_repo.create(u)
        logger.info("registered lecturer user_id=%s", user.id)
        return user

    def build_student_account(self, email: str, initial_password: str) -> Optional[models.User]:
        """Return an unsaved login account for a new student.

        Returns `None` if the email already has an account. The caller
        commits the account together with the student row.
        """
        if self.user_repo.get_by_email(email):
            return None
        return models.User(email=email, password_hash=PWD_CTX.hash(initial_password), role=models.ROLE_STUDENT, first_login=True)

    def authenticate(self, email: str, password: str) -> Optional[models.User]:
        """Return the user whose stored hash matches `password`, else `None`."""
        user = self.user_repo.get_by_email(email)
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        return user

    @staticmethod
    def needs_password_setup(user: models.User) -> bool:
        return user.role == models.ROLE_STUDENT and user.first_login

    def check_first_time_login(self, email: str) -> Optional[models.User]:
        """Return the user if it is a student still pending first-time setup."""
        user = self.user_repo.get_by_email(email)
        if user and self.needs_password_setup(user):
            return user
        return None

    def set_student_password(self, email: Optional[str], new_password: Optional[str]) -> models.User:
        """Replace the initial password and clear the first-login flag.

        Only valid once per student: a second call fails because the flag
        is already cleared.
        """
        if not email or not new_password or not new_password.strip():
            raise ValueError("Email and password are required")
        user = self.check_first_time_login(email)
        if not user:
            raise ValueError("Invalid user or not eligible for first-time setup")
        user.password_hash = PWD_CTX.hash(new_password)
        user.first_login = False
        user = self.user_repo.save(user)
        logger.info("student completed first-time setup user_id=%s", user.id)
        return user

    def create_token(self, user: models.User) -> str:
        """Return a signed JWT carrying the user's id, email and role."""
        expire = datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRE_HOURS)
        payload = {"user_id": user.id, "email": user.email, "role": user.role, "exp": int(expire.timestamp())}
        return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


class EnrollmentService:
    """Enrollment creation (uniqueness + seat limit) and later updates."""
    def __init__(self, session: Session):
        self.session = session
        self.student_repo = repositories.StudentRepository(session)
        self.course_repo = repositories.CourseRepository(session)
        self.enrollment_repo = repositories.EnrollmentRepository(session)

    def enroll(self, student_pk: int, course_pk: int) -> models.Enrollment:
        """Enroll a student in a course.

        Fails with `NotFoundError` if either side is missing,
        `DuplicateEnrollment` if the pair already has a row (whatever its
        status) and `CourseFull` once the ENROLLED count reaches
        `max_students`. The count and the insert are not isolated from
        concurrent requests.
        """
        student = self.student_repo.get(student_pk)
        if not student:
            raise NotFoundError(f"Student not found with id: {student_pk}")
        course = self.course_repo.get(course_pk)
        if not course:
            raise NotFoundError(f"Course not found with id: {course_pk}")
        if self.enrollment_repo.exists_for_pair(student_pk, course_pk):
            logger.info("duplicate enrollment rejected student=%s course=%s", student_pk, course_pk)
            raise DuplicateEnrollment("Student is already enrolled in this course")
        taken = self.enrollment_repo.count_active_for_course(course_pk)
        if taken >= course.max_students:
            logger.info("course full course=%s taken=%s max=%s", course_pk, taken, course.max_students)
            raise CourseFull("Course is full. Cannot enroll more students")
        enrollment = models.Enrollment(student_id=student_pk, course_id=course_pk, status=models.ENROLLED)
        try:
            return self.enrollment_repo.save(enrollment)
        except IntegrityError:
            # another request inserted the pair between the check and the insert
            self.session.rollback()
            logger.info("duplicate enrollment hit unique constraint student=%s course=%s", student_pk, course_pk)
            raise DuplicateEnrollment("Student is already enrolled in this course")

    def get(self, enrollment_id: int) -> models.Enrollment:
        enrollment = self.enrollment_repo.get(enrollment_id)
        if not enrollment:
            raise NotFoundError(f"Enrollment not found with id: {enrollment_id}")
        return enrollment

    def update_grade(self, enrollment_id: int, grade: Optional[float]) -> models.Enrollment:
        """Set the numeric grade only; status and letter are left alone."""
        enrollment = self.get(enrollment_id)
        enrollment.grade = grade
        return self.enrollment_repo.save(enrollment)

    def drop(self, enrollment_id: int) -> models.Enrollment:
        """Mark an ENROLLED row as DROPPED, freeing its seat."""
        enrollment = self.get(enrollment_id)
        if enrollment.status != models.ENROLLED:
            raise ValueError(f"Cannot drop an enrollment with status {enrollment.status}")
        enrollment.status = models.DROPPED
        return self.enrollment_repo.save(enrollment)


class StudentService:
    """Student CRUD with email / student id uniqueness checks."""
    def __init__(self, session: Session):
        self.session = session
        self.student_repo = repositories.StudentRepository(session)
        self.enrollment_repo = repositories.EnrollmentRepository(session)

    def create(self, first_name: str, last_name: str, email: str, phone_number: str, student_id: str) -> models.Student:
        """Persist a new student and open its login account.

        The account uses `student_id` as its initial password and starts in
        the first-login state.
        """
        self._check_unique(email, student_id)
        student = models.Student(
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone_number=phone_number,
            student_id=student_id
        )
        account = AuthService(self.session).build_student_account(email, student_id)
        try:
            return self.student_repo.create_with_account(student, account)
        except IntegrityError:
            self.session.rollback()
            raise ValueError(f"Student with email {email} or ID {student_id} already exists")

    def _check_unique(self, email: str, student_id: str, current: Optional[models.Student] = None):
        if (current is None or current.email != email) and self.student_repo.exists_by_email(email):
            raise ValueError(f"Student with email {email} already exists")
        if (current is None or current.student_id != student_id) and self.student_repo.exists_by_student_id(student_id):
            raise ValueError(f"Student with ID {student_id} already exists")

    def list_all(self, name: Optional[str] = None) -> List[models.Student]:
        if name:
            return self.student_repo.search_by_name(name)
        return self.student_repo.list_all()

    def get(self, student_pk: int) -> models.Student:
        student = self.student_repo.get(student_pk)
        if not student:
            raise NotFoundError(f"Student not found with id: {student_pk}")
        return student

    def update(self, student_pk: int, first_name: str, last_name: str, email: str, phone_number: str, student_id: str) -> models.Student:
        """Replace all editable fields of a student."""
        student = self.get(student_pk)
        self._check_unique(email, student_id, current=student)
        student.first_name = first_name
        student.last_name = last_name
        student.email = email
        student.phone_number = phone_number
        student.student_id = student_id
        try:
            return self.student_repo.save(student)
        except IntegrityError:
            self.session.rollback()
            raise ValueError(f"Student with email {email} or ID {student_id} already exists")

    def delete(self, student_pk: int) -> None:
        """Delete a student together with its enrollments."""
        student = self.get(student_pk)
        self.student_repo.delete(student)

    def enrollments(self, student_pk: int) -> List[models.Enrollment]:
        self.get(student_pk)
        return self.enrollment_repo.list_for_student(student_pk)

    def enroll(self, student_pk: int, course_pk: int) -> models.Enrollment:
        return EnrollmentService(self.session).enroll(student_pk, course_pk)


class CourseService:
    """Course CRUD, deletion guard and final results."""
    def __init__(self, session: Session):
        self.session = session
        self.course_repo = repositories.CourseRepository(session)
        self.enrollment_repo = repositories.EnrollmentRepository(session)

    def create(self, course_code: str, course_name: str, description: str, credits: int, instructor: str, max_students: int, status: Optional[str] = None) -> models.Course:
        """Create a course; `status` defaults to ACTIVE."""
        if self.course_repo.exists_by_code(course_code):
            raise ValueError(f"Course with code {course_code} already exists")
        course = models.Course(
            course_code=course_code,
            course_name=course_name,
            description=description,
            credits=credits,
            instructor=instructor,
            max_students=max_students,
            status=status or models.COURSE_ACTIVE
        )
        return self._save_unique(course)

    def _save_unique(self, course: models.Course) -> models.Course:
        course_code = course.course_code
        try:
            return self.course_repo.save(course)
        except IntegrityError:
            self.session.rollback()
            raise ValueError(f"Course with code {course_code} already exists")

    def list_all(self, instructor: Optional[str] = None, name: Optional[str] = None) -> List[models.Course]:
        return self.course_repo.list_all(instructor=instructor, name=name)

    def get(self, course_pk: int) -> models.Course:
        course = self.course_repo.get(course_pk)
        if not course:
            raise NotFoundError(f"Course not found with id: {course_pk}")
        return course

    def update(self, course_pk: int, course_code: str, course_name: str, description: str, credits: int, instructor: str, max_students: int, status: Optional[str] = None) -> models.Course:
        """Replace a course's fields. A `None` status keeps the current one."""
        course = self.get(course_pk)
        if course.course_code != course_code and self.course_repo.exists_by_code(course_code):
            raise ValueError(f"Course with code {course_code} already exists")
        course.course_code = course_code
        course.course_name = course_name
        course.description = description
        course.credits = credits
        course.instructor = instructor
        course.max_students = max_students
        course.status = status or course.status
        return self._save_unique(course)

    def delete(self, course_pk: int) -> None:
        """Delete a course that no enrollment references."""
        course = self.get(course_pk)
        if self.enrollment_repo.exists_for_course(course_pk):
            raise ValueError("Cannot delete course. There are students enrolled in this course.")
        self.course_repo.delete(course)

    def enrollments(self, course_pk: int) -> List[models.Enrollment]:
        self.get(course_pk)
        return self.enrollment_repo.list_for_course(course_pk)

    def add_result(self, course_pk: int, student_pk: int, grade: Optional[float], grade_letter: Optional[str], comments: Optional[str]) -> models.Enrollment:
        """Record the final result for a student and mark the enrollment COMPLETED."""
        enrollment = self.enrollment_repo.get_for_pair(student_pk, course_pk)
        if not enrollment:
            raise ValueError("Student is not enrolled in this course")
        enrollment.grade = grade
        enrollment.grade_letter = grade_letter
        enrollment.comments = comments
        enrollment.status = models.COMPLETED
        return self.enrollment_repo.save(enrollment)
