import pytest
from coursemgmt import models, repositories, services


def _student(session, n=1):
    return services.StudentService(session).create(
        first_name='Sam', last_name=f'Student{n}', email=f's{n}@uni.edu',
        phone_number='555-0100', student_id=f'ID{n}'
    )


def _course(session, max_students=30, code='CS101'):
    return services.CourseService(session).create(
        course_code=code, course_name='Intro', description='Basics',
        credits=3, instructor='Dr. Smith', max_students=max_students
    )


def test_duplicate_enrollment_error(session):
    student, course = _student(session), _course(session)
    svc = services.EnrollmentService(session)
    svc.enroll(student.id, course.id)
    with pytest.raises(services.DuplicateEnrollment):
        svc.enroll(student.id, course.id)


def test_course_full_error(session):
    course = _course(session, max_students=1)
    a, b = _student(session, 1), _student(session, 2)
    svc = services.EnrollmentService(session)
    svc.enroll(a.id, course.id)
    with pytest.raises(services.CourseFull):
        svc.enroll(b.id, course.id)
    assert repositories.EnrollmentRepository(session).count_active_for_course(course.id) == 1


def test_completed_enrollment_releases_seat(session):
    course = _course(session, max_students=1)
    a, b = _student(session, 1), _student(session, 2)
    svc = services.EnrollmentService(session)
    svc.enroll(a.id, course.id)
    done = services.CourseService(session).add_result(course.id, a.id, 88.0, 'B+', None)
    assert done.status == models.COMPLETED
    assert svc.enroll(b.id, course.id).status == models.ENROLLED


def test_missing_references_raise_not_found(session):
    course = _course(session)
    with pytest.raises(services.NotFoundError):
        services.EnrollmentService(session).enroll(42, course.id)
    with pytest.raises(services.NotFoundError):
        services.CourseService(session).get(42)
    with pytest.raises(services.NotFoundError):
        services.StudentService(session).delete(42)


def test_student_account_uses_hashed_student_id(session):
    _student(session)
    user = repositories.UserRepository(session).get_by_email('s1@uni.edu')
    assert user.role == models.ROLE_STUDENT
    assert user.first_login is True
    assert user.password_hash != 'ID1'
    assert services.PWD_CTX.verify('ID1', user.password_hash)


def test_existing_account_is_not_overwritten(session):
    auth = services.AuthService(session)
    auth.register_lecturer('s1@uni.edu', 'lecturer-pass')
    _student(session)
    user = repositories.UserRepository(session).get_by_email('s1@uni.edu')
    assert user.role == models.ROLE_LECTURER
    assert auth.authenticate('s1@uni.edu', 'lecturer-pass') is not None


def test_set_password_transitions_once(session):
    _student(session)
    auth = services.AuthService(session)
    assert auth.check_first_time_login('s1@uni.edu') is not None
    user = auth.set_student_password('s1@uni.edu', 'fresh')
    assert user.first_login is False
    assert auth.check_first_time_login('s1@uni.edu') is None
    with pytest.raises(ValueError):
        auth.set_student_password('s1@uni.edu', 'again')


def test_token_round_trip(session):
    from coursemgmt.auth import decode_token
    auth = services.AuthService(session)
    user = auth.register_lecturer('prof@uni.edu', 'secret')
    payload = decode_token(auth.create_token(user))
    assert payload['user_id'] == user.id
    assert payload['role'] == models.ROLE_LECTURER


def test_exists_for_course(session):
    course = _course(session)
    repo = repositories.EnrollmentRepository(session)
    assert repo.exists_for_course(course.id) is False
    student = _student(session)
    enrollment = services.EnrollmentService(session).enroll(student.id, course.id)
    services.EnrollmentService(session).drop(enrollment.id)
    # a dropped row still references the course
    assert repo.exists_for_course(course.id) is True
    with pytest.raises(ValueError):
        services.CourseService(session).delete(course.id)


def test_student_and_account_commit_together(session, monkeypatch):
    services.AuthService(session).register_lecturer('s1@uni.edu', 'lecturer-pass')
    # the account insert now collides with the lecturer's email
    monkeypatch.setattr(repositories.UserRepository, 'get_by_email', lambda self, email: None)
    with pytest.raises(ValueError):
        _student(session)
    assert repositories.StudentRepository(session).list_all() == []


def test_setup_requires_email(session):
    with pytest.raises(ValueError):
        services.AuthService(session).set_student_password(None, 'pw')
