from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import (
    get_current_active_admin,
    get_current_user,
    request_context,
)
from backend.app.core.database import get_db
from backend.app.core.errors import AccountNotFound, ValidationError
from backend.app.models.user import RoleEnum, User
from backend.app.services.user_management import (
    change_own_password,
    kick_user,
    list_users,
    reset_password,
    set_blocked,
    set_role,
)

router = APIRouter()


# ─── Schemas ─────────────────────────────────────────────────────────────────


class UserOut(BaseModel):
    id: UUID
    email: str
    name: str | None = None
    role: RoleEnum
    is_blocked: bool
    last_login_at: datetime | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class MeOut(UserOut):
    session_epoch: int


class AdminUserOut(UserOut):
    last_login_ip: str | None = None
    session_ip: str | None = None
    session_user_agent: str | None = None
    session_updated_at: datetime | None = None


class BlockIn(BaseModel):
    blocked: bool


class SetPasswordIn(BaseModel):
    new_password: str = Field(..., max_length=128)


class SetRoleIn(BaseModel):
    role: RoleEnum


class ChangePasswordIn(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., max_length=128)


class MessageOut(BaseModel):
    detail: str


def _http_error(e: ValueError) -> HTTPException:
    if isinstance(e, AccountNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    code = e.code if isinstance(e, ValidationError) else None
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"code": code, "message": str(e)} if code else str(e),
    )


# ─── Self-service ────────────────────────────────────────────────────────────


@router.get("/me", response_model=MeOut)
def read_current_user(current_user: User = Depends(get_current_user)) -> User:
    return current_user


@router.post("/change-password", response_model=MessageOut)
def change_my_password(
    body: ChangePasswordIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict[str, str]:
    """Change own password. All of the caller's sessions, this one included, end."""
    try:
        change_own_password(
            db,
            user_id=current_user.id,
            current_password=body.current_password,
            new_password=body.new_password,
            ctx=request_context(request, current_user),
        )
    except ValueError as e:
        raise _http_error(e)
    return {"detail": "Password changed successfully, please log in again"}


# ─── Admin ───────────────────────────────────────────────────────────────────


@router.get("", response_model=list[AdminUserOut])
def list_all_users(
    db: Session = Depends(get_db),
    _admin: User = Depends(get_current_active_admin),
) -> list[AdminUserOut]:
    rows = []
    for user, login_session in list_users(db):
        out = AdminUserOut.model_validate(user)
        out.last_login_ip = user.last_login_ip
        if login_session is not None:
            out.session_ip = login_session.ip_address
            out.session_user_agent = login_session.user_agent
            out.session_updated_at = login_session.updated_at
        rows.append(out)
    return rows


@router.post("/{user_id}/block", response_model=UserOut)
def block_user(
    user_id: UUID,
    body: BlockIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_admin),
) -> User:
    """Block or unblock. Either way the user's current sessions end."""
    try:
        return set_blocked(
            db,
            user_id=user_id,
            blocked=body.blocked,
            ctx=request_context(request, current_user),
        )
    except ValueError as e:
        raise _http_error(e)


@router.post("/{user_id}/kick", response_model=UserOut)
def kick(
    user_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_admin),
) -> User:
    try:
        return kick_user(db, user_id=user_id, ctx=request_context(request, current_user))
    except ValueError as e:
        raise _http_error(e)


@router.post("/{user_id}/set-password", response_model=MessageOut)
def admin_set_password(
    user_id: UUID,
    body: SetPasswordIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_admin),
) -> dict[str, str]:
    try:
        reset_password(
            db,
            user_id=user_id,
            new_password=body.new_password,
            ctx=request_context(request, current_user),
        )
    except ValueError as e:
        raise _http_error(e)
    return {"detail": "Password reset successfully"}


@router.post("/{user_id}/role", response_model=UserOut)
def change_role(
    user_id: UUID,
    body: SetRoleIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_admin),
) -> User:
    try:
        return set_role(
            db,
            user_id=user_id,
            role=body.role,
            ctx=request_context(request, current_user),
        )
    except ValueError as e:
        raise _http_error(e)
