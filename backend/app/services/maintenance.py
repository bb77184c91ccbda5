"""Site-wide maintenance mode.

While maintenance is active only ADMIN accounts may log in. Switching it on
also revokes every USER session in one set-based update; admin sessions are
left alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.models.app_config import APP_CONFIG_ID, AppConfig
from backend.app.models.user import RoleEnum, User
from backend.app.services.audit import RequestContext, record_audit
from backend.app.services.session_authority import bump_session_epoch_for_role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaintenanceStatus:
    active: bool
    message: str
    updated_at: datetime | None


def _get_config(db: Session) -> AppConfig | None:
    return db.get(AppConfig, APP_CONFIG_ID, populate_existing=True)


def get_status(db: Session) -> MaintenanceStatus:
    """Public read. A missing config row reads as inactive."""
    cfg = _get_config(db)
    if cfg is None:
        return MaintenanceStatus(active=False, message="", updated_at=None)
    return MaintenanceStatus(
        active=bool(cfg.maintenance_active),
        message=cfg.maintenance_message or "",
        updated_at=cfg.updated_at,
    )


def blocks_login(db: Session, user: User | None) -> bool:
    """True if maintenance keeps *user* out. Unknown emails are kept out too."""
    if not get_status(db).active:
        return False
    return user is None or user.role != RoleEnum.ADMIN


def _write_config(db: Session, *, active: bool, message: str) -> bool:
    """Upsert the config row. Returns True if maintenance was previously off."""
    cfg = _get_config(db)
    if cfg is None:
        cfg = AppConfig(id=APP_CONFIG_ID)
        db.add(cfg)
        was_active = False
    else:
        was_active = bool(cfg.maintenance_active)
    cfg.maintenance_active = active
    cfg.maintenance_message = message
    db.flush()
    return not was_active


def set_maintenance(
    db: Session,
    *,
    active: bool,
    message: str,
    ctx: RequestContext,
) -> MaintenanceStatus:
    """Admin toggle. Activation (off -> on) evicts every USER session.

    Commits, then records the audit entry.
    """
    message = message.strip()
    was_off = _write_config(db, active=active, message=message)
    kicked = 0
    if active and was_off:
        kicked = bump_session_epoch_for_role(db, RoleEnum.USER)
    db.commit()

    if kicked:
        logger.info("Maintenance activated; revoked sessions of %d users", kicked)
    record_audit(
        db,
        ctx=ctx,
        action="MAINTENANCE_SET",
        target="app_config",
        meta={"active": active, "message": message, "kicked": kicked},
    )
    return get_status(db)


def logout_all(
    db: Session,
    *,
    message: str = "",
    activate: bool = True,
    ctx: RequestContext,
) -> int:
    """Set maintenance (on by default) and unconditionally evict every USER session.

    Returns the number of accounts whose sessions were revoked.
    """
    message = message.strip() or settings.DEFAULT_MAINTENANCE_MESSAGE
    _write_config(db, active=activate, message=message)
    kicked = bump_session_epoch_for_role(db, RoleEnum.USER)
    db.commit()

    logger.info("Logout-all revoked sessions of %d users", kicked)
    record_audit(
        db,
        ctx=ctx,
        action="LOGOUT_ALL",
        target="app_config",
        meta={"active": activate, "message": message, "kicked": kicked},
    )
    return kicked
