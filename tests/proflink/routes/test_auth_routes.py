import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from proflink.database import get_db
from proflink.main import app
from proflink.routes.auth_routes import LoginRequest, RegisterRequest
from proflink.services.side_effects import SideEffectQueue, get_side_effect_queue


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []
    monkeypatch.setattr(
        'proflink.services.identity.send_verification_email',
        lambda to_address, name, token: sent.append({'to': to_address, 'token': token}),
    )
    return sent


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_side_effect_queue] = lambda: SideEffectQueue(session_factory)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def register_payload(**overrides):
    payload = {
        'first_name': 'Ada',
        'last_name': 'Lovelace',
        'email': 'ada@example.edu',
        'password': 'secret123',
        'confirm_password': 'secret123',
        'role': 'student',
    }
    payload.update(overrides)
    return payload


def test_register_request_normalizes_fields() -> None:
    request = RegisterRequest(**register_payload(first_name='  Ada ', email=' ADA@Example.EDU '))

    assert request.first_name == 'Ada'
    assert request.email == 'ada@example.edu'


@pytest.mark.parametrize(
    ('overrides', 'message'),
    [
        ({'first_name': '   '}, 'Please fill in all fields'),
        ({'email': 'not-an-email'}, 'Please enter a valid email address'),
        ({'password': 'abc', 'confirm_password': 'abc'}, 'Password must be at least 6 characters long'),
        ({'confirm_password': 'different'}, 'Passwords do not match'),
        ({'role': 'admin'}, 'Input should be'),
    ],
)
def test_register_request_rejects_invalid_input(overrides, message) -> None:
    with pytest.raises(ValidationError) as exception_info:
        RegisterRequest(**register_payload(**overrides))

    assert message in str(exception_info.value)


def test_login_request_requires_role() -> None:
    with pytest.raises(ValidationError):
        LoginRequest(email='ada@example.edu', password='secret123')


def test_full_account_flow(client, sent_emails) -> None:
    register_response = client.post('/auth/register', json=register_payload())
    assert register_response.status_code == 201
    body = register_response.json()
    assert body['session_state'] == 'pending-verification'
    assert body['user']['code'] == 'STU-00001'
    assert body['user']['email_verified'] is False

    blocked = client.post('/auth/login', json={'email': 'ada@example.edu', 'password': 'secret123', 'role': 'student'})
    assert blocked.status_code == 403
    assert blocked.json()['detail'] == 'Please verify your email before logging in.'
    assert 'access_token' not in blocked.json()

    assert len(sent_emails) == 1
    verified = client.post('/auth/verify-email', json={'token': sent_emails[0]['token']})
    assert verified.status_code == 200
    assert verified.json()['email_verified'] is True

    wrong_role = client.post('/auth/login', json={'email': 'ada@example.edu', 'password': 'secret123', 'role': 'faculty'})
    assert wrong_role.status_code == 403
    assert wrong_role.json()['detail'] == 'This is a student account. Please select Student to login.'

    login_response = client.post('/auth/login', json={'email': 'ada@example.edu', 'password': 'secret123', 'role': 'student'})
    assert login_response.status_code == 200
    headers = {'Authorization': f"Bearer {login_response.json()['access_token']}"}

    session_response = client.get('/auth/session', headers=headers)
    assert session_response.json()['state'] == 'authenticated'
    assert session_response.json()['role'] == 'student'

    assert client.get('/dashboard/faculty', headers=headers).status_code == 403
    assert client.get('/profile', headers=headers).json()['profile']['academicInfo']['gpa'] == 0

    assert client.post('/auth/logout', headers=headers).status_code == 204
    assert client.get('/auth/me', headers=headers).status_code == 401
    assert client.get('/auth/session', headers=headers).json()['state'] == 'anonymous'


def test_register_duplicate_email_conflicts(client, sent_emails) -> None:
    assert client.post('/auth/register', json=register_payload()).status_code == 201

    duplicate = client.post('/auth/register', json=register_payload(email='ADA@example.edu'))

    assert duplicate.status_code == 409


def test_protected_routes_require_a_token(client) -> None:
    assert client.get('/auth/me').status_code in (401, 403)
    assert client.get('/appointments').status_code in (401, 403)
    assert client.get('/', headers={'Authorization': 'Bearer garbage'}).json()['links']['login'] == '/auth/login'


def test_pending_verification_is_reported_at_register_and_session_stays_anonymous(client, sent_emails) -> None:
    registered = client.post('/auth/register', json=register_payload(email='grace@example.edu'))
    assert registered.json()['session_state'] == 'pending-verification'

    blocked = client.post('/auth/login', json={'email': 'grace@example.edu', 'password': 'secret123', 'role': 'student'})
    session_response = client.get('/auth/session')

    assert blocked.status_code == 403
    assert session_response.json() == {'state': 'anonymous', 'role': None, 'user': None}
