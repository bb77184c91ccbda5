"""Account management: signup, admin transitions and own-password changes.

Every transition that must revoke sessions goes through
``bump_session_epoch``. State changes are committed before the audit entry
is written, so a failed audit write can never undo them.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.core.errors import AccountNotFound, ValidationError
from backend.app.core.security import (
    get_password_hash,
    validate_password_strength,
    verify_password,
)
from backend.app.models.login_session import LoginSession
from backend.app.models.user import RoleEnum, User
from backend.app.services.audit import RequestContext, record_audit
from backend.app.services.credentials import get_user_by_email, normalize_email
from backend.app.services.session_authority import (
    bump_session_epoch,
    clear_login_session,
)

logger = logging.getLogger(__name__)


def _check_password(password: str) -> None:
    error = validate_password_strength(password)
    if error:
        raise ValidationError("TOO_SHORT", error)


def _require_user(db: Session, user_id: UUID) -> User:
    user = db.query(User).filter(User.id == user_id).populate_existing().first()
    if user is None:
        raise AccountNotFound()
    return user


def list_users(db: Session) -> list[tuple[User, LoginSession | None]]:
    """All accounts, newest first, each with its latest login session if any."""
    return (
        db.query(User, LoginSession)
        .outerjoin(LoginSession, LoginSession.user_id == User.id)
        .order_by(User.created_at.desc())
        .all()
    )


def create_user(
    db: Session,
    *,
    email: str,
    password: str,
    name: str | None = None,
    ctx: RequestContext | None = None,
) -> User:
    """Self-service signup. New accounts are USER, unblocked, epoch 0."""
    email = normalize_email(email)
    if not email or "@" not in email:
        raise ValidationError("INVALID_EMAIL", "A valid email is required")
    _check_password(password)
    if get_user_by_email(db, email) is not None:
        raise ValidationError("EMAIL_TAKEN", "Email already registered")

    user = User(
        email=email,
        name=(name or "").strip() or None,
        hashed_password=get_password_hash(password),
        role=RoleEnum.USER,
        is_blocked=False,
        session_epoch=0,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("EMAIL_TAKEN", "Email already registered")
    db.refresh(user)

    record_audit(
        db,
        ctx=replace(ctx or RequestContext(), actor_id=user.id, actor_email=email),
        action="USER_SIGNUP",
        target_id=str(user.id),
        target=email,
    )
    return user


def set_blocked(
    db: Session,
    *,
    user_id: UUID,
    blocked: bool,
    ctx: RequestContext,
) -> User:
    """BLOCK / UNBLOCK. The epoch advances even if the flag does not change."""
    if blocked and user_id == ctx.actor_id:
        raise ValidationError("SELF_BLOCK", "Cannot block yourself")
    user = _require_user(db, user_id)
    email = user.email

    if bump_session_epoch(db, user_id, is_blocked=blocked) is None:
        db.rollback()
        raise AccountNotFound()
    db.commit()

    record_audit(
        db,
        ctx=ctx,
        action="USER_BLOCK" if blocked else "USER_UNBLOCK",
        target_id=str(user_id),
        target=email,
        meta={"is_blocked": blocked},
    )
    return _require_user(db, user_id)


def kick_user(db: Session, *, user_id: UUID, ctx: RequestContext) -> User:
    """KICK: revoke every session without touching role or blocked flag."""
    user = _require_user(db, user_id)
    email = user.email

    if bump_session_epoch(db, user_id) is None:
        db.rollback()
        raise AccountNotFound()
    clear_login_session(db, user_id)
    db.commit()

    record_audit(
        db, ctx=ctx, action="USER_KICK", target_id=str(user_id), target=email, meta={}
    )
    return _require_user(db, user_id)


def reset_password(
    db: Session,
    *,
    user_id: UUID,
    new_password: str,
    ctx: RequestContext,
) -> User:
    """Admin sets a user's password; all of that user's sessions are revoked."""
    _check_password(new_password)
    user = _require_user(db, user_id)
    email = user.email

    new_hash = get_password_hash(new_password)
    if bump_session_epoch(db, user_id, hashed_password=new_hash) is None:
        db.rollback()
        raise AccountNotFound()
    clear_login_session(db, user_id)
    db.commit()

    record_audit(
        db,
        ctx=ctx,
        action="USER_PASSWORD_RESET",
        target_id=str(user_id),
        target=email,
        meta={"reset_by": str(ctx.actor_id) if ctx.actor_id else None},
    )
    return _require_user(db, user_id)


def set_role(
    db: Session,
    *,
    user_id: UUID,
    role: RoleEnum,
    ctx: RequestContext,
) -> User:
    """Change a role. No epoch change: validation always reads the live role.

    An admin may not demote their own account.
    """
    if user_id == ctx.actor_id and role != RoleEnum.ADMIN:
        raise ValidationError("SELF_DEMOTION", "Cannot remove your own ADMIN role")
    user = _require_user(db, user_id)

    old_role = user.role
    user.role = role
    db.commit()

    record_audit(
        db,
        ctx=ctx,
        action="USER_ROLE_CHANGE",
        target_id=str(user_id),
        target=user.email,
        meta={"old": old_role.value, "role": role.value},
    )
    return user


def change_own_password(
    db: Session,
    *,
    user_id: UUID,
    current_password: str,
    new_password: str,
    ctx: RequestContext | None = None,
) -> User:
    """Change the caller's own password. Revokes the caller's sessions too."""
    _check_password(new_password)
    user = _require_user(db, user_id)
    if not verify_password(current_password, user.hashed_password):
        raise ValidationError("WRONG_CURRENT", "Current password is incorrect")

    if bump_session_epoch(
        db, user_id, hashed_password=get_password_hash(new_password)
    ) is None:
        db.rollback()
        raise AccountNotFound()
    db.commit()

    record_audit(
        db,
        ctx=ctx or RequestContext(actor_id=user_id, actor_email=user.email),
        action="USER_PASSWORD_CHANGED",
        target_id=str(user_id),
        target=user.email,
    )
    return _require_user(db, user_id)
