from datetime import datetime, timedelta, timezone
import jwt
from fastapi.testclient import TestClient
from sqlmodel import Session
from coursemgmt import repositories, services
from coursemgmt.config import settings
from coursemgmt.database import engine
from coursemgmt.main import app

client = TestClient(app)


def _create_student(email='ana@uni.edu', student_id='S1001'):
    r = client.post('/api/students', json={
        'first_name': 'Ana', 'last_name': 'Lopez', 'email': email,
        'phone_number': '555-0100', 'student_id': student_id,
    })
    assert r.status_code == 201
    return r.json()


def test_register_and_login_lecturer():
    r = client.post('/api/users/register', json={'email': 'prof@uni.edu', 'password': 'secret'})
    assert r.status_code == 200
    assert r.json()['role'] == 'lecturer'
    assert r.json()['first_login'] is False
    assert 'password' not in r.json() and 'password_hash' not in r.json()
    # duplicate registration is rejected
    r2 = client.post('/api/users/register', json={'email': 'prof@uni.edu', 'password': 'other'})
    assert r2.status_code == 400
    login = client.post('/api/users/login', json={'email': 'prof@uni.edu', 'password': 'secret'})
    assert login.status_code == 200
    body = login.json()
    assert body['first_time_login'] is False
    assert body['access_token']
    me = client.get('/api/users/me', headers={'Authorization': f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()['email'] == 'prof@uni.edu'


def test_login_wrong_password_is_rejected():
    client.post('/api/users/register', json={'email': 'prof@uni.edu', 'password': 'secret'})
    r = client.post('/api/users/login', json={'email': 'prof@uni.edu', 'password': 'nope'})
    assert r.status_code == 401
    r2 = client.post('/api/users/login', json={'email': 'ghost@uni.edu', 'password': 'secret'})
    assert r2.status_code == 401


def test_me_requires_valid_token():
    r = client.get('/api/users/me')
    assert r.status_code == 403 or r.status_code == 401
    r2 = client.get('/api/users/me', headers={'Authorization': 'Bearer not-a-token'})
    assert r2.status_code == 401


def test_student_first_time_login_flow():
    _create_student()
    # email only: the student is told to set a password
    r = client.post('/api/users/login', json={'email': 'ana@uni.edu'})
    assert r.status_code == 200
    assert r.json()['first_time_login'] is True
    # the initial password (student id) also only yields the setup signal
    r2 = client.post('/api/users/login', json={'email': 'ana@uni.edu', 'password': 'S1001'})
    assert r2.status_code == 200
    assert r2.json()['first_time_login'] is True
    assert 'access_token' not in r2.json()
    setup = client.post('/api/users/setup-password', json={'email': 'ana@uni.edu', 'password': 'n3w-pass'})
    assert setup.status_code == 200
    assert setup.json()['user']['first_login'] is False
    login = client.post('/api/users/login', json={'email': 'ana@uni.edu', 'password': 'n3w-pass'})
    assert login.status_code == 200
    assert login.json()['role'] == 'student'
    assert login.json()['access_token']
    # old password no longer works
    old = client.post('/api/users/login', json={'email': 'ana@uni.edu', 'password': 'S1001'})
    assert old.status_code == 401


def test_setup_password_only_works_once():
    _create_student()
    first = client.post('/api/users/setup-password', json={'email': 'ana@uni.edu', 'password': 'one'})
    assert first.status_code == 200
    second = client.post('/api/users/setup-password', json={'email': 'ana@uni.edu', 'password': 'two'})
    assert second.status_code == 400
    # no longer eligible for the email-only check either
    r = client.post('/api/users/login', json={'email': 'ana@uni.edu', 'password': ''})
    assert r.status_code == 404


def test_setup_password_rejects_lecturers_and_blank_passwords():
    client.post('/api/users/register', json={'email': 'prof@uni.edu', 'password': 'secret'})
    r = client.post('/api/users/setup-password', json={'email': 'prof@uni.edu', 'password': 'x'})
    assert r.status_code == 400
    _create_student()
    r2 = client.post('/api/users/setup-password', json={'email': 'ana@uni.edu', 'password': '   '})
    assert r2.status_code == 400
    r3 = client.post('/api/users/login', json={'email': 'prof@uni.edu'})
    assert r3.status_code == 404


def test_health():
    r = client.get('/health')
    assert r.status_code == 200
    assert r.json()['status'] == 'UP'
    assert 'X-Request-ID' in r.headers


def _token_for(user_id, role, email='ana@uni.edu'):
    expire = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {'user_id': user_id, 'email': email, 'role': role, 'exp': int(expire.timestamp())}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def test_active_student_token_reaches_me():
    _create_student()
    client.post('/api/users/setup-password', json={'email': 'ana@uni.edu', 'password': 'n3w-pass'})
    token = client.post('/api/users/login', json={'email': 'ana@uni.edu', 'password': 'n3w-pass'}).json()['access_token']
    r = client.get('/api/users/me', headers={'Authorization': f'Bearer {token}'})
    assert r.status_code == 200
    assert r.json()['role'] == 'student'


def test_token_role_must_match_account():
    _create_student()
    setup = client.post('/api/users/setup-password', json={'email': 'ana@uni.edu', 'password': 'n3w-pass'})
    user_id = setup.json()['user']['id']
    forged = _token_for(user_id, 'lecturer')
    r = client.get('/api/users/me', headers={'Authorization': f'Bearer {forged}'})
    assert r.status_code == 401
    assert 'role' in r.json()['detail']


def test_token_without_role_claim_is_rejected():
    client.post('/api/users/register', json={'email': 'prof@uni.edu', 'password': 'secret'})
    expire = datetime.now(timezone.utc) + timedelta(hours=1)
    token = jwt.encode({'user_id': 1, 'exp': int(expire.timestamp())}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    r = client.get('/api/users/me', headers={'Authorization': f'Bearer {token}'})
    assert r.status_code == 401


def test_pending_student_token_is_refused():
    _create_student()
    with Session(engine) as session:
        user = repositories.UserRepository(session).get_by_email('ana@uni.edu')
        token = services.AuthService(session).create_token(user)
    r = client.get('/api/users/me', headers={'Authorization': f'Bearer {token}'})
    assert r.status_code == 403


def test_setup_password_missing_email_is_400():
    r = client.post('/api/users/setup-password', json={'password': 'abc'})
    assert r.status_code == 400
    assert 'Email and password are required' in r.json()['detail']
