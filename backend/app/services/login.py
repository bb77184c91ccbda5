"""Login orchestration.

Order of checks: maintenance gate, rate limiter, credentials, then the
session authority mints a token. Maintenance lockouts are not recorded in
the attempt ledger; every other rejection is recorded as a failure,
including rate-limited attempts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from backend.app.core.errors import LoginRejection
from backend.app.models.user import User
from backend.app.services import maintenance
from backend.app.services.credentials import (
    authenticate,
    get_user_by_email,
    normalize_email,
)
from backend.app.services.login_attempts import is_rate_limited, record_attempt
from backend.app.services.session_authority import open_session

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    token: str | None = None
    user: User | None = None
    rejection: LoginRejection | None = None

    @property
    def ok(self) -> bool:
        return self.token is not None


def login(
    db: Session,
    *,
    email: str,
    password: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> LoginResult:
    email = normalize_email(email or "")
    if not email or not password:
        return LoginResult(rejection=LoginRejection.BAD_CREDENTIALS)

    candidate = get_user_by_email(db, email)

    if maintenance.blocks_login(db, candidate):
        logger.info("Login for %s refused: maintenance active", email)
        return LoginResult(rejection=LoginRejection.MAINTENANCE)

    if is_rate_limited(db, email=email, ip_address=ip_address):
        logger.warning("Login for %s from %s refused: rate limited", email, ip_address)
        record_attempt(db, email=email, ip_address=ip_address, ok=False)
        return LoginResult(rejection=LoginRejection.RATE_LIMITED)

    user = authenticate(db, email, password)
    if user is None:
        record_attempt(db, email=email, ip_address=ip_address, ok=False)
        if candidate is not None and candidate.is_blocked:
            return LoginResult(rejection=LoginRejection.BLOCKED)
        return LoginResult(rejection=LoginRejection.BAD_CREDENTIALS)

    verified_hash = user.hashed_password
    token = open_session(
        db,
        user,
        ip_address=ip_address,
        user_agent=user_agent,
        verified_hash=verified_hash,
    )
    if token is None:
        # Blocked or password changed after verification; nothing was minted
        record_attempt(db, email=email, ip_address=ip_address, ok=False)
        current = get_user_by_email(db, email)
        if current is not None and current.is_blocked:
            return LoginResult(rejection=LoginRejection.BLOCKED)
        logger.info("Login for %s refused: password changed during login", email)
        return LoginResult(rejection=LoginRejection.BAD_CREDENTIALS)

    record_attempt(db, email=email, ip_address=ip_address, ok=True)
    logger.info("Login succeeded for %s", email)
    return LoginResult(token=token, user=user)
