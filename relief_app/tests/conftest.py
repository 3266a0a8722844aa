import os

# settings are read on first import; point them at throwaway values
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# FORCE model registration
import relief_app.models  # noqa

from relief_app.core.security import create_access_token
from relief_app.db.base import Base
from relief_app.db.session import get_db
from relief_app.models.enums import UserRole
from relief_app.models.user import User
from relief_app.policies.rbac import Principal
from relief_app.services.case_lifecycle import CaseLifecycle


COMPLETE_FAMILY = {
    "familyName": "Haddad",
    "headOfHousehold": "Ali Haddad",
    "phoneNumber": "+961 3 123 456",
    "numberOfMembers": 5,
    "childrenCount": 2,
    "village": "Bint Jbeil",
    "currentAddress": "Tyre, Hosh district",
    "originalAddress": "Bint Jbeil, old souk road",
    "destructionDate": "2024-10-02",
    "destructionPercentage": 80,
    "damageDescription": "Roof and two outer walls collapsed after shelling.",
}

IDENTITY_ONLY = {
    "familyName": "Haddad",
    "headOfHousehold": "Ali Haddad",
    "phoneNumber": "+961 3 123 456",
}


class FakeClock:
    """Deterministic clock: every call advances one minute."""

    def __init__(self, start=None):
        self.now = start or datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.now = self.now + timedelta(minutes=1)
        return self.now


def make_principal(role: UserRole, user_id=None, email=None) -> Principal:
    uid = str(user_id or uuid.uuid4())
    return Principal(
        user_id=uid,
        role=role,
        display_name=f"{role.value} user",
        email=email or f"{role.value}-{uid[:8]}@example.org",
    )


def make_user(role: UserRole, *, active: bool = True, email=None) -> User:
    uid = uuid.uuid4()
    return User(
        id=uid,
        email=email or f"{role.value}-{uid.hex[:8]}@example.org",
        first_name=role.value.title(),
        last_name="Tester",
        role=role.value,
        password_hash="not-a-real-hash",
        is_active=active,
        creation_method="system_created",
    )


def principal_of(user: User) -> Principal:
    return Principal(
        user_id=str(user.id),
        role=UserRole(user.role),
        display_name=user.display_name,
        email=user.email,
    )


def bearer(principal: Principal) -> dict:
    return {"Authorization": f"Bearer {create_access_token(principal)}"}


# ─────────────────────────────────────────────
# Pure lifecycle fixtures (no database)
# ─────────────────────────────────────────────

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def checkers():
    """id -> User registry used as the lifecycle's checker lookup."""
    return {}


@pytest.fixture
def lifecycle(clock, checkers):
    return CaseLifecycle(checker_lookup=checkers.get, clock=clock)


@pytest.fixture
def family():
    return make_principal(UserRole.FAMILY)


@pytest.fixture
def admin():
    return make_principal(UserRole.ADMIN)


@pytest.fixture
def donor():
    return make_principal(UserRole.DONOR)


@pytest.fixture
def checker_user(checkers):
    u = make_user(UserRole.CHECKER)
    checkers[u.id] = u
    return u


@pytest.fixture
def checker(checker_user):
    return principal_of(checker_user)


# ─────────────────────────────────────────────
# Database fixtures (fresh in-memory sqlite per test)
# ─────────────────────────────────────────────

@pytest.fixture(scope="function")
def engine():
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(eng)
        eng.dispose()


@pytest.fixture(scope="function")
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def add_user(db):
    def _add(role: UserRole, **kwargs) -> User:
        u = make_user(role, **kwargs)
        db.add(u)
        db.commit()
        return u

    return _add


@pytest.fixture
def client(db):
    from relief_app.api.v1.cases import get_case_service
    from relief_app.main import create_app
    from relief_app.services.case_service import CaseService

    app = create_app()
    api_clock = FakeClock()

    def _override_db():
        yield db

    app.dependency_overrides[get_db] = _override_db
    # distinct case ids across quick successive creates
    app.dependency_overrides[get_case_service] = lambda: CaseService(clock=api_clock)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
