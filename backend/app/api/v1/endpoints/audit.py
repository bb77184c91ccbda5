from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_active_admin
from backend.app.core.database import get_db
from backend.app.models.user import User
from backend.app.services.audit import MAX_AUDIT_PAGE, list_audit_logs

router = APIRouter()


class AuditLogOut(BaseModel):
    id: UUID
    actor_id: UUID | None
    actor_email: str | None
    action: str
    target_id: str | None
    target: str | None
    meta: dict[str, Any] | None
    ip_address: str | None
    user_agent: str | None
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("", response_model=list[AuditLogOut])
def read_audit_logs(
    q: str | None = Query(None, description="Search actor email, target, action and metadata"),
    action: str | None = Query(None, description="Exact action, e.g. USER_BLOCK, USER_KICK"),
    limit: int = Query(100, ge=1, le=MAX_AUDIT_PAGE),
    db: Session = Depends(get_db),
    _admin: User = Depends(get_current_active_admin),
) -> list:
    return list_audit_logs(db, q=q, action=action, limit=limit)
