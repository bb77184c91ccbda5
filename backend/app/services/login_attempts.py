"""Login attempt ledger and the failure-count rate limiter built on it.

The ledger lives in the database so every server process sees the same
counts.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.database import utcnow
from backend.app.models.login_attempt import LoginAttempt

logger = logging.getLogger(__name__)


def record_attempt(
    db: Session, *, email: str, ip_address: str | None, ok: bool
) -> None:
    """Append one attempt and commit. Storage errors are logged, never raised."""
    try:
        db.add(LoginAttempt(email=email, ip_address=ip_address, ok=ok))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to record login attempt for %s", email)


def window_start(now: datetime | None = None) -> datetime:
    return (now or utcnow()) - timedelta(minutes=settings.LOGIN_WINDOW_MINUTES)


def count_failures_by_email(db: Session, email: str, since: datetime) -> int:
    return (
        db.query(func.count(LoginAttempt.id))
        .filter(
            LoginAttempt.email == email,
            LoginAttempt.ok.is_(False),
            LoginAttempt.created_at >= since,
        )
        .scalar()
        or 0
    )


def count_failures_by_ip(db: Session, ip_address: str, since: datetime) -> int:
    return (
        db.query(func.count(LoginAttempt.id))
        .filter(
            LoginAttempt.ip_address == ip_address,
            LoginAttempt.ok.is_(False),
            LoginAttempt.created_at >= since,
        )
        .scalar()
        or 0
    )


def is_rate_limited(
    db: Session,
    *,
    email: str,
    ip_address: str | None,
    now: datetime | None = None,
) -> bool:
    """True when either the email or the source address has too many recent failures."""
    since = window_start(now)
    if count_failures_by_email(db, email, since) >= settings.MAX_FAILURES_PER_EMAIL:
        return True
    if ip_address is None:
        return False
    return count_failures_by_ip(db, ip_address, since) >= settings.MAX_FAILURES_PER_IP
