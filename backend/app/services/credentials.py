"""Email + password verification."""

from __future__ import annotations

from sqlalchemy.orm import Session

from backend.app.core.security import dummy_verify, verify_password
from backend.app.models.user import User


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def authenticate(db: Session, email: str, password: str) -> User | None:
    """Return the account only if it exists, is not blocked, and the password matches.

    Every failure looks the same to the caller.
    """
    user = get_user_by_email(db, email)
    if user is None:
        dummy_verify()
        return None
    password_ok = verify_password(password, user.hashed_password)
    if user.is_blocked or not password_ok:
        return None
    return user
