"""Audit recorder for privileged actions.

Audit writes are best-effort: they run after the action they describe has
been committed, and a failed write is logged and discarded rather than
propagated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import String, cast, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.models.audit import AuditLog

logger = logging.getLogger(__name__)

MAX_AUDIT_PAGE = 300


@dataclass(frozen=True)
class RequestContext:
    """Who is acting and from where."""

    actor_id: UUID | None = None
    actor_email: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


def record_audit(
    db: Session,
    *,
    ctx: RequestContext,
    action: str,
    target_id: str | None = None,
    target: str | None = None,
    meta: dict[str, Any] | None = None,
) -> bool:
    """Append one audit row and commit it. Returns ``False`` if the write failed."""
    try:
        db.add(
            AuditLog(
                actor_id=ctx.actor_id,
                actor_email=ctx.actor_email,
                action=action,
                target_id=target_id,
                target=target,
                meta=meta,
                ip_address=ctx.ip_address,
                user_agent=ctx.user_agent,
            )
        )
        db.commit()
        return True
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to record audit action %s on %s", action, target_id)
        return False


def _escape_like(text: str) -> str:
    """Make ``%`` and ``_`` match literally in a LIKE pattern."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def list_audit_logs(
    db: Session,
    *,
    q: str | None = None,
    action: str | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    """Newest-first audit rows, optionally filtered.

    ``q`` is a case-insensitive substring match against the actor email,
    target, action and serialized metadata.
    """
    query = db.query(AuditLog)
    if action:
        query = query.filter(AuditLog.action == action)
    if q:
        pattern = f"%{_escape_like(q.strip().lower())}%"
        query = query.filter(
            or_(
                AuditLog.actor_email.ilike(pattern, escape="\\"),
                AuditLog.target.ilike(pattern, escape="\\"),
                AuditLog.action.ilike(pattern, escape="\\"),
                cast(AuditLog.meta, String).ilike(pattern, escape="\\"),
            )
        )
    return (
        query.order_by(AuditLog.created_at.desc())
        .limit(min(limit, MAX_AUDIT_PAGE))
        .all()
    )
