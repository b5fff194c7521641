from dataclasses import replace

from fastapi.testclient import TestClient

from campus_core.app import create_app
from campus_core.cache import MemoryCache
from campus_core.database import Database
from campus_core.models import Role, User

from .conftest import PASSWORD, SUPER_ADMIN_EMAIL


def _login(client, email, password=PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


def _stored_user(database, user_id) -> User:
    with database.session() as session:
        user = session.get(User, user_id)
        session.expunge(user)
        return user


def test_seeded_super_admin_can_log_in(client):
    response = _login(client, SUPER_ADMIN_EMAIL)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["token_type"] == "Bearer"
    assert body["data"]["user"]["role"] == "SUPER_ADMIN"


def test_login_stores_refresh_token_and_last_login(client, database, admin):
    response = _login(client, admin.email.upper())

    assert response.status_code == 200
    stored = _stored_user(database, admin.user_id)
    assert stored.refresh_token == response.json()["data"]["refresh_token"]
    assert stored.last_login_at is not None


def test_login_with_wrong_password(client, admin):
    response = _login(client, admin.email, "WrongPass99")

    assert response.status_code == 401
    assert response.json()["code"] == "AUTH_001"


def test_login_with_unknown_email(client):
    response = _login(client, "nobody@campus.test")

    assert response.status_code == 401
    assert response.json()["code"] == "AUTH_001"


def test_login_refused_for_disabled_account(client, factory, school):
    disabled = factory.account(Role.TEACHER, school, is_active=False)

    response = _login(client, disabled.email)

    assert response.status_code == 403
    assert response.json()["code"] == "AUTH_007"


def test_login_requires_email_or_phone(client):
    response = client.post("/api/v1/auth/login", json={"password": PASSWORD})

    assert response.status_code == 400
    assert response.json()["code"] == "VAL_001"


def test_refresh_rotates_tokens(client, admin):
    first = _login(client, admin.email).json()["data"]["refresh_token"]

    response = client.post("/api/v1/auth/refresh-token", json={"refresh_token": first})
    assert response.status_code == 200
    second = response.json()["data"]["refresh_token"]
    assert second != first

    replayed = client.post("/api/v1/auth/refresh-token", json={"refresh_token": first})
    assert replayed.status_code == 401
    assert replayed.json()["code"] == "AUTH_006"


def test_logout_revokes_refresh_token(client, admin):
    tokens = _login(client, admin.email).json()["data"]
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    assert client.post("/api/v1/auth/logout", headers=headers).status_code == 200

    response = client.post("/api/v1/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 401
    assert response.json()["code"] == "AUTH_006"


def test_password_reset_flow_revokes_sessions(client, database, admin):
    refresh_token = _login(client, admin.email).json()["data"]["refresh_token"]

    response = client.post("/api/v1/auth/forgot-password", json={"email": admin.email})
    assert response.status_code == 200
    reset_token = _stored_user(database, admin.user_id).reset_token
    assert reset_token

    response = client.post("/api/v1/auth/reset-password", json={"token": reset_token, "new_password": "BrandNew123"})
    assert response.status_code == 200

    stale = client.post("/api/v1/auth/refresh-token", json={"refresh_token": refresh_token})
    assert stale.status_code == 401
    assert stale.json()["code"] == "AUTH_006"

    assert _login(client, admin.email).status_code == 401
    assert _login(client, admin.email, "BrandNew123").status_code == 200

    reused = client.post("/api/v1/auth/reset-password", json={"token": reset_token, "new_password": "Another123"})
    assert reused.status_code == 400
    assert reused.json()["code"] == "AUTH_010"


def test_forgot_password_answers_the_same_for_unknown_email(client, admin):
    known = client.post("/api/v1/auth/forgot-password", json={"email": admin.email})
    unknown = client.post("/api/v1/auth/forgot-password", json={"email": "ghost@campus.test"})

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert unknown.json()["message"] == "If the email exists, a password reset link has been sent"


def test_reset_with_garbage_token(client):
    response = client.post("/api/v1/auth/reset-password", json={"token": "garbage", "new_password": "BrandNew123"})

    assert response.status_code == 400
    assert response.json()["code"] == "AUTH_010"


def test_change_password(client, admin):
    wrong = client.post(
        "/api/v1/auth/change-password",
        json={"old_password": "NotMine123", "new_password": "Changed123"},
        headers=admin.headers,
    )
    assert wrong.status_code == 401

    response = client.post(
        "/api/v1/auth/change-password",
        json={"old_password": PASSWORD, "new_password": "Changed123"},
        headers=admin.headers,
    )
    assert response.status_code == 200
    assert _login(client, admin.email, "Changed123").status_code == 200


def test_me_returns_profile(client, admin, school):
    response = client.get("/api/v1/auth/me", headers=admin.headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["email"] == admin.email
    assert data["profile"]["institution_id"] == str(school)


def test_register_creates_user_in_admin_tenant(client, admin, school):
    payload = {
        "email": "new.teacher@campus.test",
        "password": PASSWORD,
        "first_name": "Nadia",
        "last_name": "Reyes",
        "role": "TEACHER",
    }

    response = client.post("/api/v1/auth/register", json=payload, headers=admin.headers)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["role"] == "TEACHER"
    assert data["profile"]["institution_id"] == str(school)


def test_admin_cannot_register_super_admin(client, admin):
    payload = {
        "email": "sneaky@campus.test",
        "password": PASSWORD,
        "first_name": "Sam",
        "last_name": "Sneak",
        "role": "SUPER_ADMIN",
    }

    response = client.post("/api/v1/auth/register", json=payload, headers=admin.headers)

    assert response.status_code == 403
    assert response.json()["code"] == "AUTHZ_004"


def test_auth_endpoints_are_rate_limited(settings):
    limited = replace(settings, auth_rate_limit_requests=2, auth_rate_limit_window_seconds=60)
    app = create_app(limited, database=Database("sqlite://"), cache=MemoryCache())

    with TestClient(app) as client:
        statuses = [_login(client, "nobody@campus.test").status_code for _ in range(3)]
        assert statuses == [401, 401, 429]

        blocked = _login(client, "nobody@campus.test")
        assert blocked.json()["code"] == "SYS_005"
        assert blocked.headers["Retry-After"] == "60"
