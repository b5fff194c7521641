import uuid
from dataclasses import dataclass
from datetime import date

import pytest
from fastapi.testclient import TestClient

from campus_core.app import create_app
from campus_core.cache import MemoryCache
from campus_core.config import Settings
from campus_core.database import Database
from campus_core.models import Accountant, Institution, Parent, Role, Student, Teacher, User, UserProfile
from campus_core.permissions import permissions_for
from campus_core.security import hash_password

PASSWORD = "Passw0rd!"
PASSWORD_HASH = hash_password(PASSWORD)

SUPER_ADMIN_EMAIL = "root@campus.test"


@dataclass
class Account:
    user_id: uuid.UUID
    record_id: uuid.UUID | None
    email: str
    institution_id: uuid.UUID | None
    headers: dict


class Factory:
    """Writes fixture rows straight to storage and mints tokens for them.

    Each call uses its own committed session so request handlers always see
    the data.
    """

    def __init__(self, database: Database, tokens) -> None:
        self.database = database
        self.tokens = tokens
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def institution(self, code: str | None = None, *, is_active: bool = True) -> uuid.UUID:
        n = self._next()
        with self.database.session() as db:
            institution = Institution(name=f"School {n}", code=code or f"SCH{n}", is_active=is_active)
            db.add(institution)
            db.commit()
            return institution.id

    def account(
        self,
        role: Role,
        institution_id: uuid.UUID | None = None,
        *,
        email: str | None = None,
        is_active: bool = True,
        **record_fields,
    ) -> Account:
        n = self._next()
        email = email or f"{role.value.lower()}{n}@campus.test"
        with self.database.session() as db:
            user = User(email=email, password_hash=PASSWORD_HASH, role=role, is_active=is_active)
            profile = UserProfile(user=user, institution_id=institution_id, first_name=f"First{n}", last_name=f"Last{n}")
            db.add_all([user, profile])
            db.flush()

            record = None
            if role == Role.TEACHER:
                record = Teacher(institution_id=institution_id, user_id=user.id, joining_date=date(2024, 1, 1), **record_fields)
            elif role == Role.STUDENT:
                record = Student(institution_id=institution_id, user_id=user.id, admission_date=date(2024, 1, 1), **record_fields)
            elif role == Role.PARENT:
                record = Parent(institution_id=institution_id, user_id=user.id, **record_fields)
            elif role == Role.ACCOUNTANT:
                record = Accountant(institution_id=institution_id, user_id=user.id, **record_fields)
            if record is not None:
                db.add(record)
            db.commit()

            token, _ = self.tokens.issue_access(user, permissions_for(role))
            return Account(
                user_id=user.id,
                record_id=record.id if record is not None else None,
                email=email,
                institution_id=institution_id,
                headers={"Authorization": f"Bearer {token}"},
            )


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        jwt_secret="test-secret",
        rate_limit_requests=0,
        auth_rate_limit_requests=0,
        super_admin_email=SUPER_ADMIN_EMAIL,
        super_admin_password=PASSWORD,
        log_level="WARNING",
    )


@pytest.fixture
def database(settings):
    database = Database(settings.database_url)
    database.create_all()
    return database


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def app(settings, database, cache):
    return create_app(settings, database=database, cache=cache)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def factory(app, database):
    return Factory(database, app.state.tokens)


@pytest.fixture
def school(factory):
    return factory.institution("GREEN")


@pytest.fixture
def other_school(factory):
    return factory.institution("BLUE")


@pytest.fixture
def admin(factory, school):
    return factory.account(Role.ADMIN, school)


@pytest.fixture
def super_admin(factory):
    return factory.account(Role.SUPER_ADMIN, email="owner@campus.test")


@pytest.fixture
def db(database):
    with database.session() as session:
        yield session
