from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_active_admin, request_context
from backend.app.core.database import get_db
from backend.app.models.user import User
from backend.app.services import maintenance

router = APIRouter()


class MaintenanceOut(BaseModel):
    active: bool
    message: str
    updated_at: datetime | None


class MaintenanceIn(BaseModel):
    active: bool
    message: str = Field("", max_length=2000)


class LogoutAllIn(BaseModel):
    message: str = Field("", max_length=2000)
    activate: bool = True


class LogoutAllOut(BaseModel):
    kicked: int


def _out(s: maintenance.MaintenanceStatus) -> MaintenanceOut:
    return MaintenanceOut(active=s.active, message=s.message, updated_at=s.updated_at)


@router.get("", response_model=MaintenanceOut)
def read_status(db: Session = Depends(get_db)) -> MaintenanceOut:
    """Public: no token required."""
    return _out(maintenance.get_status(db))


@router.put("", response_model=MaintenanceOut)
def update_status(
    body: MaintenanceIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_admin),
) -> MaintenanceOut:
    """Toggle maintenance. Switching it on ends every USER session."""
    return _out(
        maintenance.set_maintenance(
            db,
            active=body.active,
            message=body.message,
            ctx=request_context(request, current_user),
        )
    )


@router.post("/logout-all", response_model=LogoutAllOut)
def logout_all(
    body: LogoutAllIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_admin),
) -> LogoutAllOut:
    kicked = maintenance.logout_all(
        db,
        message=body.message,
        activate=body.activate,
        ctx=request_context(request, current_user),
    )
    return LogoutAllOut(kicked=kicked)
