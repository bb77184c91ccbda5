"""Session authority: the per-account session epoch and token re-validation.

A token is valid only while the epoch it captured equals the account's
current ``session_epoch`` and the account is not blocked. Revoking every
session of an account is therefore a single increment; there is no store of
issued tokens.

Epoch increments are always issued as ``UPDATE ... SET session_epoch =
session_epoch + 1`` so concurrent block/kick/login calls cannot lose updates.
Functions here flush but do not commit unless stated otherwise.
"""

from __future__ import annotations

import logging
import secrets
from uuid import UUID

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.database import utcnow
from backend.app.core.errors import AuthorizationFailure, SessionInvalid
from backend.app.core.security import create_access_token, decode_access_token
from backend.app.models.login_session import LoginSession
from backend.app.models.user import RoleEnum, User

logger = logging.getLogger(__name__)


def bump_session_epoch(db: Session, user_id: UUID, **values: object) -> int | None:
    """Atomically advance one account's epoch, optionally setting other columns.

    Returns the new epoch, or None if the account does not exist.
    """
    stmt = (
        update(User)
        .where(User.id == user_id)
        .values(session_epoch=User.session_epoch + 1, **values)
        .returning(User.session_epoch)
    )
    return db.execute(stmt).scalar_one_or_none()


def bump_session_epoch_for_role(db: Session, role: RoleEnum) -> int:
    """Advance the epoch of every account holding *role* in one statement.

    Returns the number of accounts affected.
    """
    result = db.execute(
        update(User)
        .where(User.role == role)
        .values(session_epoch=User.session_epoch + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def clear_login_session(db: Session, user_id: UUID) -> None:
    db.execute(delete(LoginSession).where(LoginSession.user_id == user_id))


def open_session(
    db: Session,
    user: User,
    *,
    ip_address: str | None,
    user_agent: str | None,
    verified_hash: str | None = None,
) -> str | None:
    """LOGIN transition: advance the epoch and mint a token that captures it.

    Commits. Returns None when the account was blocked, or its password
    replaced, between credential verification and this call. The increment
    is conditional on ``is_blocked = false`` and on the stored hash still
    being ``verified_hash`` (the hash the password was checked against), so
    a concurrent block or password change always wins.
    """
    user_id = user.id
    role = user.role
    if verified_hash is None:
        verified_hash = user.hashed_password
    new_epoch = db.execute(
        update(User)
        .where(
            User.id == user_id,
            User.is_blocked.is_(False),
            User.hashed_password == verified_hash,
        )
        .values(
            session_epoch=User.session_epoch + 1,
            last_login_at=utcnow(),
            last_login_ip=ip_address,
        )
        .returning(User.session_epoch)
    ).scalar_one_or_none()
    if new_epoch is None:
        db.rollback()
        return None
    db.commit()

    session_id = secrets.token_hex(16)
    _remember_login_session(
        db, user_id, session_id=session_id, ip_address=ip_address, user_agent=user_agent
    )
    return create_access_token(
        str(user_id),
        role=role.value,
        session_epoch=new_epoch,
        session_id=session_id,
    )


def _remember_login_session(
    db: Session,
    user_id: UUID,
    *,
    session_id: str,
    ip_address: str | None,
    user_agent: str | None,
) -> None:
    try:
        row = db.get(LoginSession, user_id)
        if row is None:
            db.add(
                LoginSession(
                    user_id=user_id,
                    session_id=session_id,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            )
        else:
            row.session_id = session_id
            row.ip_address = ip_address
            row.user_agent = user_agent
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to store login session for %s", user_id)


def validate_session_token(db: Session, token: str) -> User:
    """Re-validate a token against current account state.

    Returns the account (whose ``role`` is the live value, not the token's
    snapshot). Raises ``SessionInvalid`` on any mismatch.
    """
    claims = decode_access_token(token)
    if claims is None:
        raise SessionInvalid("Invalid or expired token")

    subject = claims.get("sub")
    captured_epoch = claims.get("sv")
    if not isinstance(subject, str) or not isinstance(captured_epoch, int):
        raise SessionInvalid("Malformed token")
    try:
        user_id = UUID(subject)
    except ValueError:
        raise SessionInvalid("Malformed token")

    user = (
        db.query(User)
        .filter(User.id == user_id)
        .populate_existing()
        .first()
    )
    if user is None:
        raise SessionInvalid("Account no longer exists")
    if user.is_blocked:
        raise SessionInvalid("Account is blocked")
    if user.session_epoch != captured_epoch:
        raise SessionInvalid("Session has been revoked")
    return user


def require_admin(user: User) -> User:
    """Raise ``AuthorizationFailure`` unless the live role is ADMIN."""
    if user.role != RoleEnum.ADMIN:
        raise AuthorizationFailure("Admin privileges required")
    return user
