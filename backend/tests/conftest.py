"""Shared test fixtures.

Each test gets its own in-memory SQLite database, so tests never pollute
each other. Services commit for real; the database is thrown away afterwards.
"""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from backend.app.core.database import Base, get_db
from backend.app.core.security import get_password_hash, pwd_context
from backend.app.main import app
from backend.app.models.app_config import AppConfig  # noqa: F401
from backend.app.models.audit import AuditLog  # noqa: F401
from backend.app.models.login_attempt import LoginAttempt  # noqa: F401
from backend.app.models.login_session import LoginSession  # noqa: F401
from backend.app.models.password_reset import PasswordReset  # noqa: F401
from backend.app.models.user import RoleEnum, User
from backend.app.services.session_authority import open_session

# Minimum bcrypt cost keeps the suite fast
pwd_context.update(bcrypt__default_rounds=4)

ADMIN_PASSWORD = "adminpass"
USER_PASSWORD = "userpass1"


# ─── DB session on a throwaway database ──────────────────────────────────────


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture()
def db(engine: Engine) -> Generator[Session, None, None]:
    session = Session(bind=engine, autoflush=False)
    yield session
    session.close()


@pytest.fixture()
def client(db: Session) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to the test session."""

    def _override_get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ─── Accounts ────────────────────────────────────────────────────────────────


def make_user(
    db: Session,
    email: str,
    password: str = USER_PASSWORD,
    role: RoleEnum = RoleEnum.USER,
    is_blocked: bool = False,
) -> User:
    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        role=role,
        is_blocked=is_blocked,
        session_epoch=0,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def admin_user(db: Session) -> User:
    return make_user(db, "admin@example.com", ADMIN_PASSWORD, RoleEnum.ADMIN)


@pytest.fixture()
def regular_user(db: Session) -> User:
    return make_user(db, "viewer@example.com")


@pytest.fixture()
def other_user(db: Session) -> User:
    return make_user(db, "second@example.com")


@pytest.fixture()
def admin_token(db: Session, admin_user: User) -> str:
    token = open_session(db, admin_user, ip_address="10.0.0.1", user_agent="pytest")
    assert token is not None
    return token


@pytest.fixture()
def user_token(db: Session, regular_user: User) -> str:
    token = open_session(db, regular_user, ip_address="10.0.0.2", user_agent="pytest")
    assert token is not None
    return token


@pytest.fixture()
def other_token(db: Session, other_user: User) -> str:
    token = open_session(db, other_user, ip_address="10.0.0.3", user_agent="pytest")
    assert token is not None
    return token


def auth(token: str) -> dict[str, str]:
    """Return Authorization header dict."""
    return {"Authorization": f"Bearer {token}"}
