"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the course management
backend. Controllers are intentionally thin: they accept requests,
delegate to services, and turn service errors into HTTP status codes
(`NotFoundError` -> 404, any other `ValueError` -> 400).

Endpoints implemented:
- POST /api/users/register
- POST /api/users/login
- POST /api/users/setup-password
- GET /api/users/me
- POST, GET /api/students
- GET, PUT, DELETE /api/students/{id}
- GET /api/students/{id}/enrollments
- POST /api/students/{id}/enroll/{course_id}
- POST, GET /api/courses
- GET, PUT, DELETE /api/courses/{id}
- GET /api/courses/{id}/enrollments
- POST /api/courses/{id}/students/{student_id}/result
- POST /api/enrollments
- GET /api/enrollments/{id}
- PUT /api/enrollments/{id}/grade
- POST /api/enrollments/{id}/drop
- GET /health
"""

from typing import Optional
from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.responses import Response
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
import json
import logging
import time
import uuid
from .database import create_db_and_tables, get_session, check_connection
from . import services, models
from .auth import get_current_user
from .schemas import (
    RegisterIn, LoginIn, SetupPasswordIn,
    StudentIn, CourseIn, EnrollmentIn, GradeIn, ResultIn
)
from .config import settings

app = FastAPI(title="University Course Management API")
logger = logging.getLogger("coursemgmt.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    if request.url.path.startswith("/api"):
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
    return response


def _first_time_payload(email: str) -> dict:
    return {
        'first_time_login': True,
        'email': email,
        'message': 'First time login. Please set your password.',
    }


@app.post('/api/users/register')
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    """Register a lecturer account.

    Student accounts are never created here; they are opened when the
    student record is created.
    """
    auth = services.AuthService(db)
    try:
        user = auth.register_lecturer(payload.email, payload.password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Registration failed: {e}")
    return services.user_to_dict(user)


@app.post('/api/users/login')
def login(payload: LoginIn, db: Session = Depends(get_session)):
    """Log in with email and password.

    With no password, the endpoint only checks whether the email belongs
    to a student who still has to set a password. A student logging in
    with the initial password gets the same first-time response instead
    of a token.
    """
    auth = services.AuthService(db)
    if payload.password is None or not payload.password.strip():
        if not auth.check_first_time_login(payload.email):
            raise HTTPException(status_code=404, detail='User not found or not eligible for first-time setup')
        return _first_time_payload(payload.email)
    user = auth.authenticate(payload.email, payload.password)
    if not user:
        raise HTTPException(status_code=401, detail='Invalid credentials')
    if auth.needs_password_setup(user):
        return _first_time_payload(payload.email)
    out = services.user_to_dict(user)
    out['first_time_login'] = False
    out['access_token'] = auth.create_token(user)
    return out


@app.post('/api/users/setup-password')
def setup_password(payload: SetupPasswordIn, db: Session = Depends(get_session)):
    """Set the password of a student in the first-login state (once)."""
    auth = services.AuthService(db)
    try:
        user = auth.set_student_password(payload.email, payload.password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Password setup failed: {e}")
    return {'message': 'Password set successfully', 'user': services.user_to_dict(user)}


@app.get('/api/users/me')
def me(user: models.User = Depends(get_current_user)):
    """Return the account behind the bearer token."""
    return services.user_to_dict(user)


@app.post('/api/students', status_code=201)
def create_student(payload: StudentIn, db: Session = Depends(get_session)):
    """Create a student and its first-login account."""
    svc = services.StudentService(db)
    try:
        student = svc.create(**payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return services.student_to_dict(student)


@app.get('/api/students')
def list_students(name: Optional[str] = None, db: Session = Depends(get_session)):
    """List students; `name` filters on first or last name (case-insensitive)."""
    svc = services.StudentService(db)
    return [services.student_to_dict(s) for s in svc.list_all(name=name)]


@app.get('/api/students/{student_pk}')
def get_student(student_pk: int, db: Session = Depends(get_session)):
    svc = services.StudentService(db)
    try:
        student = svc.get(student_pk)
    except services.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return services.student_to_dict(student)


@app.put('/api/students/{student_pk}')
def update_student(student_pk: int, payload: StudentIn, db: Session = Depends(get_session)):
    svc = services.StudentService(db)
    try:
        student = svc.update(student_pk, **payload.model_dump())
    except services.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return services.student_to_dict(student)


@app.delete('/api/students/{student_pk}', status_code=204)
def delete_student(student_pk: int, db: Session = Depends(get_session)):
    """Delete a student and its enrollments."""
    svc = services.StudentService(db)
    try:
        svc.delete(student_pk)
    except services.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return Response(status_code=204)


@app.get('/api/students/{student_pk}/enrollments')
def student_enrollments(student_pk: int, db: Session = Depends(get_session)):
    svc = services.StudentService(db)
    try:
        enrollments = svc.enrollments(student_pk)
    except services.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return [services.enrollment_to_dict(e) for e in enrollments]


@app.post('/api/students/{student_pk}/enroll/{course_pk}', status_code=201)
def enroll_student(student_pk: int, course_pk: int, db: Session = Depends(get_session)):
    """Enroll a student, subject to the duplicate and seat-limit checks."""
    svc = services.StudentService(db)
    try:
        enrollment = svc.enroll(student_pk, course_pk)
    except services.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return services.enrollment_to_dict(enrollment)


@app.post('/api/courses', status_code=201)
def create_course(payload: CourseIn, db: Session = Depends(get_session)):
    svc = services.CourseService(db)
    try:
        course = svc.create(**payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return services.course_to_dict(course)


@app.get('/api/courses')
def list_courses(instructor: Optional[str] = None, name: Optional[str] = None, db: Session = Depends(get_session)):
    """List courses, optionally by exact instructor and/or a course name fragment."""
    svc = services.CourseService(db)
    return [services.course_to_dict(c) for c in svc.list_all(instructor=instructor, name=name)]


@app.get('/api/courses/{course_pk}')
def get_course(course_pk: int, db: Session = Depends(get_session)):
    svc = services.CourseService(db)
    try:
        course = svc.get(course_pk)
    except services.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return services.course_to_dict(course)


@app.put('/api/courses/{course_pk}')
def update_course(course_pk: int, payload: CourseIn, db: Session = Depends(get_session)):
    svc = services.CourseService(db)
    try:
        course = svc.update(course_pk, **payload.model_dump())
    except services.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return services.course_to_dict(course)


@app.delete('/api/courses/{course_pk}', status_code=204)
def delete_course(course_pk: int, db: Session = Depends(get_session)):
    """Delete a course; refused while any enrollment references it."""
    svc = services.CourseService(db)
    try:
        svc.delete(course_pk)
    except services.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return Response(status_code=204)


@app.get('/api/courses/{course_pk}/enrollments')
def course_enrollments(course_pk: int, db: Session = Depends(get_session)):
    svc = services.CourseService(db)
    try:
        enrollments = svc.enrollments(course_pk)
    except services.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return [services.enrollment_to_dict(e) for e in enrollments]


@app.post('/api/courses/{course_pk}/students/{student_pk}/result')
def add_result(course_pk: int, student_pk: int, payload: ResultIn, db: Session = Depends(get_session)):
    """Record a final grade/letter/comment and mark the enrollment COMPLETED."""
    svc = services.CourseService(db)
    try:
        enrollment = svc.add_result(course_pk, student_pk, payload.grade, payload.grade_letter, payload.comments)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return services.enrollment_to_dict(enrollment)


@app.post('/api/enrollments', status_code=201)
def create_enrollment(payload: EnrollmentIn, db: Session = Depends(get_session)):
    svc = services.EnrollmentService(db)
    try:
        enrollment = svc.enroll(payload.student_id, payload.course_id)
    except services.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return services.enrollment_to_dict(enrollment)


@app.get('/api/enrollments/{enrollment_id}')
def get_enrollment(enrollment_id: int, db: Session = Depends(get_session)):
    svc = services.EnrollmentService(db)
    try:
        enrollment = svc.get(enrollment_id)
    except services.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return services.enrollment_to_dict(enrollment)


@app.put('/api/enrollments/{enrollment_id}/grade')
def update_grade(enrollment_id: int, payload: GradeIn, db: Session = Depends(get_session)):
    svc = services.EnrollmentService(db)
    try:
        enrollment = svc.update_grade(enrollment_id, payload.grade)
    except services.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return services.enrollment_to_dict(enrollment)


@app.post('/api/enrollments/{enrollment_id}/drop')
def drop_enrollment(enrollment_id: int, db: Session = Depends(get_session)):
    """Drop an active enrollment so its seat can be reused."""
    svc = services.EnrollmentService(db)
    try:
        enrollment = svc.drop(enrollment_id)
    except services.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return services.enrollment_to_dict(enrollment)


@app.get("/health")
def health():
    """Health check reporting whether the database answers."""
    try:
        check_connection()
    except Exception as e:
        logger.warning("health check failed: %s", e)
        return {"status": "DOWN", "database": f"Disconnected: {e}"}
    return {"status": "UP", "database": "Connected"}
