from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.database import get_db
from backend.app.core.errors import AuthorizationFailure, SessionInvalid
from backend.app.models.user import User
from backend.app.services.audit import RequestContext
from backend.app.services.session_authority import (
    require_admin,
    validate_session_token,
)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login/access-token")


def client_ip(request: Request) -> str | None:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer.

    The headers are client-controlled unless a proxy overwrites them, so they
    are ignored unless ``TRUST_PROXY_HEADERS`` is set.
    """
    if not settings.TRUST_PROXY_HEADERS:
        return request.client.host if request.client else None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def request_context(request: Request, actor: User | None = None) -> RequestContext:
    return RequestContext(
        actor_id=actor.id if actor else None,
        actor_email=actor.email if actor else None,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


def get_current_user(
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> User:
    """Re-validate the bearer token on every request.

    A 401 here means the session is gone (revoked, blocked, expired); the
    client must discard its token.
    """
    try:
        return validate_session_token(db, token)
    except SessionInvalid as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e) or "Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_current_active_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    """Admin-only guard. The role comes from the account row, not the token."""
    try:
        return require_admin(current_user)
    except AuthorizationFailure as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
