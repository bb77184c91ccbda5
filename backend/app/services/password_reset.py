"""Forgot / reset password flow.

Only the sha256 of a reset token is stored. Requesting a new token replaces
any earlier ones for that email. Completing a reset revokes every session of
the account.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import timedelta
from urllib.parse import quote

from sqlalchemy import delete
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.database import as_utc, utcnow
from backend.app.core.errors import AccountNotFound, ValidationError
from backend.app.core.security import (
    generate_reset_token,
    get_password_hash,
    hash_reset_token,
    validate_password_strength,
)
from backend.app.models.password_reset import PasswordReset
from backend.app.services.audit import RequestContext, record_audit
from backend.app.services.credentials import get_user_by_email, normalize_email
from backend.app.services.email_service import EmailService
from backend.app.services.session_authority import bump_session_epoch

logger = logging.getLogger(__name__)


def build_reset_url(email: str, token: str) -> str:
    base = settings.PUBLIC_BASE_URL.rstrip("/")
    return f"{base}/reset?token={token}&email={quote(email)}"


def request_password_reset(
    db: Session,
    email: str,
    *,
    email_service: EmailService | None = None,
) -> str | None:
    """Issue a reset token for *email*.

    Returns the raw token, or None when no account exists for the email. The
    API answers both cases identically.
    """
    email = normalize_email(email)
    if not email:
        raise ValidationError("INVALID_EMAIL", "Email is required")

    user = get_user_by_email(db, email)
    if user is None:
        logger.info("Password reset requested for unknown email %s", email)
        return None

    token = generate_reset_token()
    db.execute(delete(PasswordReset).where(PasswordReset.email == email))
    db.add(
        PasswordReset(
            email=email,
            token_hash=hash_reset_token(token),
            expires_at=utcnow()
            + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
        )
    )
    db.commit()

    (email_service or EmailService()).send_password_reset(
        email,
        build_reset_url(email, token),
        settings.PASSWORD_RESET_EXPIRE_MINUTES,
    )
    return token


def complete_password_reset(
    db: Session,
    *,
    email: str,
    token: str,
    new_password: str,
    ctx: RequestContext | None = None,
) -> None:
    """Verify the token and set the new password. Raises ValidationError on a bad token."""
    email = normalize_email(email)
    token = token.strip()
    if not email or not token or not new_password:
        raise ValidationError("INCOMPLETE", "Email, token and new password are required")
    error = validate_password_strength(new_password)
    if error:
        raise ValidationError("TOO_SHORT", error)

    row = (
        db.query(PasswordReset)
        .filter(
            PasswordReset.email == email,
            PasswordReset.token_hash == hash_reset_token(token),
        )
        .first()
    )
    if row is None:
        raise ValidationError("INVALID_TOKEN", "Invalid reset token")
    if as_utc(row.expires_at) < utcnow():
        raise ValidationError("EXPIRED_TOKEN", "Reset token has expired")

    user = get_user_by_email(db, email)
    if user is None:
        raise AccountNotFound()
    user_id = user.id

    bump_session_epoch(db, user_id, hashed_password=get_password_hash(new_password))
    db.execute(delete(PasswordReset).where(PasswordReset.email == email))
    db.commit()

    record_audit(
        db,
        ctx=replace(ctx or RequestContext(), actor_id=user_id, actor_email=email),
        action="PASSWORD_RESET_COMPLETED",
        target_id=str(user_id),
        target=email,
    )
