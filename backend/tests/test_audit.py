"""Audit recorder: best-effort writes and the admin listing."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from backend.app.core.database import utcnow
from backend.app.core.errors import SessionInvalid
from backend.app.models.audit import AuditLog
from backend.app.models.user import User
from backend.app.services import audit
from backend.app.services.audit import RequestContext, list_audit_logs, record_audit
from backend.app.services.session_authority import validate_session_token
from backend.app.services.user_management import kick_user


def _row(db: Session, action: str, *, minutes_ago: int = 0, **kwargs: object) -> None:
    db.add(AuditLog(action=action, created_at=utcnow() - timedelta(minutes=minutes_ago), **kwargs))
    db.commit()


class TestRecordAudit:
    def test_writes_row(self, db: Session, admin_user: User) -> None:
        ctx = RequestContext(
            actor_id=admin_user.id,
            actor_email=admin_user.email,
            ip_address="10.0.0.1",
            user_agent="pytest",
        )
        assert record_audit(db, ctx=ctx, action="USER_KICK", target_id="x", meta={"a": 1})
        row = db.query(AuditLog).one()
        assert row.actor_id == admin_user.id
        assert row.ip_address == "10.0.0.1"
        assert row.user_agent == "pytest"
        assert row.meta == {"a": 1}

    def test_storage_failure_is_swallowed(
        self, db: Session, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def broken(**kwargs: object) -> AuditLog:
            raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk full"))

        monkeypatch.setattr(audit, "AuditLog", broken)
        assert record_audit(db, ctx=RequestContext(), action="USER_KICK") is False

    def test_failed_audit_does_not_undo_kick(
        self,
        db: Session,
        admin_user: User,
        regular_user: User,
        user_token: str,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def broken(**kwargs: object) -> AuditLog:
            raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk full"))

        monkeypatch.setattr(audit, "AuditLog", broken)
        kick_user(
            db,
            user_id=regular_user.id,
            ctx=RequestContext(actor_id=admin_user.id, actor_email=admin_user.email),
        )
        with pytest.raises(SessionInvalid):
            validate_session_token(db, user_token)
        assert db.query(AuditLog).count() == 0


class TestListAuditLogs:
    def test_newest_first(self, db: Session) -> None:
        _row(db, "USER_BLOCK", minutes_ago=5)
        _row(db, "USER_KICK", minutes_ago=1)
        _row(db, "USER_ROLE_CHANGE", minutes_ago=3)
        actions = [r.action for r in list_audit_logs(db)]
        assert actions == ["USER_KICK", "USER_ROLE_CHANGE", "USER_BLOCK"]

    def test_action_filter(self, db: Session) -> None:
        _row(db, "USER_BLOCK")
        _row(db, "USER_KICK")
        rows = list_audit_logs(db, action="USER_KICK")
        assert [r.action for r in rows] == ["USER_KICK"]

    def test_search_is_case_insensitive(self, db: Session) -> None:
        _row(db, "USER_BLOCK", actor_email="boss@example.com", target="alice@example.com")
        _row(db, "USER_KICK", actor_email="boss@example.com", target="bob@example.com")
        assert [r.target for r in list_audit_logs(db, q="ALICE")] == ["alice@example.com"]
        assert len(list_audit_logs(db, q="boss@")) == 2
        assert len(list_audit_logs(db, q="kick")) == 1

    def test_search_matches_metadata(self, db: Session) -> None:
        _row(db, "MAINTENANCE_SET", meta={"message": "Nightly upgrade"})
        _row(db, "USER_KICK")
        rows = list_audit_logs(db, q="nightly")
        assert [r.action for r in rows] == ["MAINTENANCE_SET"]

    def test_wildcards_in_search_match_literally(self, db: Session) -> None:
        _row(db, "USER_KICK", target="50% off")
        _row(db, "USER_KICK", target="50 dollars off")
        _row(db, "USER_BLOCK", target="tv_box@example.com")
        _row(db, "USER_BLOCK", target="tvxbox@example.com")
        assert [r.target for r in list_audit_logs(db, q="50%")] == ["50% off"]
        assert [r.target for r in list_audit_logs(db, q="tv_box")] == ["tv_box@example.com"]

    def test_limit_is_capped(self, db: Session) -> None:
        for i in range(5):
            _row(db, "USER_KICK", minutes_ago=i)
        assert len(list_audit_logs(db, limit=2)) == 2
        assert len(list_audit_logs(db, limit=10_000)) == 5
