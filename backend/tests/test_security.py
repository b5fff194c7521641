import uuid
from datetime import timedelta
from types import SimpleNamespace

import jwt
import pytest

from campus_core.errors import AppError
from campus_core.models import Role
from campus_core.security import TokenManager, hash_password, verify_password


def _user(role=Role.TEACHER, institution_id=None):
    return SimpleNamespace(
        id=uuid.uuid4(),
        email="teacher@campus.test",
        role=role,
        institution_id=institution_id or uuid.uuid4(),
    )


@pytest.fixture
def tokens():
    return TokenManager("unit-secret", issuer="campus-core")


def test_password_hash_round_trip():
    hashed = hash_password("Sup3rSecret")
    assert hashed != "Sup3rSecret"
    assert verify_password("Sup3rSecret", hashed)
    assert not verify_password("wrong-password", hashed)


def test_verify_password_rejects_malformed_hash():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_access_token_carries_identity_and_tenant(tokens):
    user = _user()
    token, expires_at = tokens.issue_access(user, {"TIMETABLE_VIEW"})

    claims = tokens.validate_access(token)

    assert claims.user_id == user.id
    assert claims.role == "TEACHER"
    assert claims.institution_id == user.institution_id
    assert claims.permissions == frozenset({"TIMETABLE_VIEW"})
    assert claims.expires_at == expires_at.replace(microsecond=0)


def test_expired_access_token_is_rejected():
    tokens = TokenManager("unit-secret", access_ttl=timedelta(seconds=-5))
    token, _ = tokens.issue_access(_user(), set())

    with pytest.raises(AppError) as exc:
        tokens.validate_access(token)
    assert exc.value.code == "AUTH_002"


def test_access_token_signed_with_other_secret_is_invalid(tokens):
    foreign = TokenManager("another-secret")
    token, _ = foreign.issue_access(_user(), set())

    with pytest.raises(AppError) as exc:
        tokens.validate_access(token)
    assert exc.value.code == "AUTH_003"


def test_refresh_token_is_not_an_access_token(tokens):
    token, _ = tokens.issue_refresh(_user())

    with pytest.raises(AppError) as exc:
        tokens.validate_access(token)
    assert exc.value.code == "AUTH_003"


def test_access_token_is_not_a_refresh_token(tokens):
    token, _ = tokens.issue_access(_user(), set())

    with pytest.raises(AppError) as exc:
        tokens.validate_refresh(token)
    assert exc.value.code == "AUTH_006"


def test_reset_token_uses_its_own_issuer(tokens):
    user = _user()
    reset_token, _ = tokens.issue_reset(user)

    assert jwt.decode(reset_token, options={"verify_signature": False})["iss"] == "campus-core-reset"
    assert tokens.validate_reset(reset_token) == user.id

    with pytest.raises(AppError) as exc:
        tokens.validate_access(reset_token)
    assert exc.value.code == "AUTH_003"

    access_token, _ = tokens.issue_access(user, set())
    with pytest.raises(AppError) as exc:
        tokens.validate_reset(access_token)
    assert exc.value.code == "AUTH_010"


def test_expired_refresh_and_reset_tokens():
    tokens = TokenManager("unit-secret", refresh_ttl=timedelta(seconds=-5), reset_ttl=timedelta(seconds=-5))
    user = _user()

    with pytest.raises(AppError) as exc:
        tokens.validate_refresh(tokens.issue_refresh(user)[0])
    assert exc.value.code == "AUTH_005"

    with pytest.raises(AppError) as exc:
        tokens.validate_reset(tokens.issue_reset(user)[0])
    assert exc.value.code == "AUTH_011"


def test_refresh_tokens_are_unique_per_issue(tokens):
    user = _user()
    assert tokens.issue_refresh(user)[0] != tokens.issue_refresh(user)[0]
