from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import client_ip, request_context
from backend.app.core.config import settings
from backend.app.core.database import get_db
from backend.app.core.errors import LoginRejection, ValidationError
from backend.app.services import maintenance
from backend.app.services.login import login
from backend.app.services.password_reset import (
    complete_password_reset,
    request_password_reset,
)
from backend.app.services.user_management import create_user

router = APIRouter()

GENERIC_LOGIN_FAILURE = "Incorrect email or password"


# ─── Schemas ─────────────────────────────────────────────────────────────────


class SignupIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., max_length=128)
    name: str | None = Field(None, max_length=150)


class ForgotPasswordIn(BaseModel):
    email: str = Field(..., min_length=1, max_length=255)


class ResetPasswordIn(BaseModel):
    email: str = Field(..., min_length=1, max_length=255)
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., max_length=128)


class MessageOut(BaseModel):
    detail: str


# ─── Login ───────────────────────────────────────────────────────────────────


@router.post("/login/access-token")
def login_access_token(
    request: Request,
    db: Session = Depends(get_db),
    form_data: OAuth2PasswordRequestForm = Depends(),
) -> dict[str, str]:
    """Exchange email (as ``username``) and password for a bearer token.

    Unknown email, wrong password, blocked account and rate limiting all
    produce the same 401. Maintenance is reported separately as 503.
    """
    result = login(
        db,
        email=form_data.username,
        password=form_data.password,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )

    if result.rejection == LoginRejection.MAINTENANCE:
        message = maintenance.get_status(db).message or settings.DEFAULT_MAINTENANCE_MESSAGE
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": LoginRejection.MAINTENANCE.value, "message": message},
        )
    if not result.ok:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=GENERIC_LOGIN_FAILURE,
            headers={"WWW-Authenticate": "Bearer"},
        )

    return {"access_token": result.token, "token_type": "bearer"}


# ─── Signup ──────────────────────────────────────────────────────────────────


@router.post("/signup", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def signup(
    body: SignupIn,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, str]:
    try:
        user = create_user(
            db,
            email=body.email,
            password=body.password,
            name=body.name,
            ctx=request_context(request),
        )
    except ValidationError as e:
        if e.code == "EMAIL_TAKEN":
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        )
    return {"detail": f"Account created for {user.email}"}


# ─── Forgot / reset password ─────────────────────────────────────────────────


@router.post("/password/forgot", response_model=MessageOut)
def forgot_password(
    body: ForgotPasswordIn,
    db: Session = Depends(get_db),
) -> dict[str, str]:
    """Always answers the same way so callers cannot probe for accounts."""
    try:
        request_password_reset(db, body.email)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"detail": "If the account exists, a reset link has been sent"}


@router.post("/password/reset", response_model=MessageOut)
def reset_password(
    body: ResetPasswordIn,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, str]:
    try:
        complete_password_reset(
            db,
            email=body.email,
            token=body.token,
            new_password=body.new_password,
            ctx=request_context(request),
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"detail": "Password reset successfully"}
