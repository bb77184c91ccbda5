"""Admin endpoints: user management, maintenance and audit listing."""

from __future__ import annotations

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.models.user import RoleEnum, User
from backend.tests.conftest import USER_PASSWORD, auth

USERS = "/api/v1/users"
MAINTENANCE = "/api/v1/maintenance"
AUDIT = "/api/v1/audit-logs"


def _me(client: TestClient, token: str) -> int:
    return client.get(f"{USERS}/me", headers=auth(token)).status_code


# ─── Guards ──────────────────────────────────────────────────────────────────


class TestAdminGuard:
    def test_user_gets_403(self, client: TestClient, user_token: str, other_user: User) -> None:
        for method, url, body in (
            ("get", USERS, None),
            ("post", f"{USERS}/{other_user.id}/kick", None),
            ("post", f"{USERS}/{other_user.id}/block", {"blocked": True}),
            ("post", f"{USERS}/{other_user.id}/role", {"role": "ADMIN"}),
            ("put", MAINTENANCE, {"active": True, "message": ""}),
            ("post", f"{MAINTENANCE}/logout-all", {}),
            ("get", AUDIT, None),
        ):
            resp = client.request(method, url, json=body, headers=auth(user_token))
            assert resp.status_code == 403, url

    def test_no_token_gets_401(self, client: TestClient) -> None:
        assert client.get(USERS).status_code == 401
        assert client.get(AUDIT).status_code == 401

    def test_demoted_admin_loses_access_immediately(
        self, client: TestClient, db: Session, admin_token: str, admin_user: User
    ) -> None:
        assert client.get(USERS, headers=auth(admin_token)).status_code == 200
        admin_user.role = RoleEnum.USER
        db.commit()
        assert client.get(USERS, headers=auth(admin_token)).status_code == 403
        assert _me(client, admin_token) == 200


# ─── User management ─────────────────────────────────────────────────────────


class TestUserManagement:
    def test_list_users(
        self, client: TestClient, admin_token: str, user_token: str, regular_user: User
    ) -> None:
        resp = client.get(USERS, headers=auth(admin_token))
        assert resp.status_code == 200
        rows = {r["email"]: r for r in resp.json()}
        assert set(rows) == {"admin@example.com", "viewer@example.com"}
        viewer = rows["viewer@example.com"]
        assert viewer["role"] == "USER"
        assert viewer["last_login_ip"] == "10.0.0.2"
        assert viewer["session_user_agent"] == "pytest"
        assert "hashed_password" not in viewer

    def test_block_and_unblock(
        self, client: TestClient, admin_token: str, user_token: str, regular_user: User
    ) -> None:
        resp = client.post(
            f"{USERS}/{regular_user.id}/block", json={"blocked": True}, headers=auth(admin_token)
        )
        assert resp.status_code == 200
        assert resp.json()["is_blocked"] is True
        assert _me(client, user_token) == 401

        login = client.post(
            "/api/v1/auth/login/access-token",
            data={"username": regular_user.email, "password": USER_PASSWORD},
        )
        assert login.status_code == 401

        resp = client.post(
            f"{USERS}/{regular_user.id}/block", json={"blocked": False}, headers=auth(admin_token)
        )
        assert resp.json()["is_blocked"] is False
        # Unblocking does not resurrect the old token
        assert _me(client, user_token) == 401

    def test_cannot_block_self(
        self, client: TestClient, admin_token: str, admin_user: User
    ) -> None:
        resp = client.post(
            f"{USERS}/{admin_user.id}/block", json={"blocked": True}, headers=auth(admin_token)
        )
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "SELF_BLOCK"
        assert _me(client, admin_token) == 200

    def test_kick(
        self,
        client: TestClient,
        admin_token: str,
        user_token: str,
        other_token: str,
        regular_user: User,
    ) -> None:
        resp = client.post(f"{USERS}/{regular_user.id}/kick", headers=auth(admin_token))
        assert resp.status_code == 200
        assert resp.json()["is_blocked"] is False
        assert _me(client, user_token) == 401
        assert _me(client, other_token) == 200

    def test_set_password(
        self, client: TestClient, admin_token: str, user_token: str, regular_user: User
    ) -> None:
        resp = client.post(
            f"{USERS}/{regular_user.id}/set-password",
            json={"new_password": "assigned1"},
            headers=auth(admin_token),
        )
        assert resp.status_code == 200
        assert _me(client, user_token) == 401
        login = client.post(
            "/api/v1/auth/login/access-token",
            data={"username": regular_user.email, "password": "assigned1"},
        )
        assert login.status_code == 200

    def test_set_password_too_short(
        self, client: TestClient, admin_token: str, regular_user: User
    ) -> None:
        resp = client.post(
            f"{USERS}/{regular_user.id}/set-password",
            json={"new_password": "abc"},
            headers=auth(admin_token),
        )
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "TOO_SHORT"

    def test_promote_takes_effect_without_relogin(
        self, client: TestClient, admin_token: str, user_token: str, regular_user: User
    ) -> None:
        assert client.get(USERS, headers=auth(user_token)).status_code == 403
        resp = client.post(
            f"{USERS}/{regular_user.id}/role", json={"role": "ADMIN"}, headers=auth(admin_token)
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "ADMIN"
        assert client.get(USERS, headers=auth(user_token)).status_code == 200

    def test_cannot_demote_self(
        self, client: TestClient, admin_token: str, admin_user: User
    ) -> None:
        resp = client.post(
            f"{USERS}/{admin_user.id}/role", json={"role": "USER"}, headers=auth(admin_token)
        )
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "SELF_DEMOTION"
        assert client.get(USERS, headers=auth(admin_token)).status_code == 200

    def test_unknown_user_is_404(self, client: TestClient, admin_token: str) -> None:
        missing = uuid.uuid4()
        assert client.post(f"{USERS}/{missing}/kick", headers=auth(admin_token)).status_code == 404
        assert client.post(
            f"{USERS}/{missing}/block", json={"blocked": True}, headers=auth(admin_token)
        ).status_code == 404
        assert client.post(
            f"{USERS}/{missing}/role", json={"role": "ADMIN"}, headers=auth(admin_token)
        ).status_code == 404

    def test_invalid_role_is_422(
        self, client: TestClient, admin_token: str, regular_user: User
    ) -> None:
        resp = client.post(
            f"{USERS}/{regular_user.id}/role", json={"role": "ROOT"}, headers=auth(admin_token)
        )
        assert resp.status_code == 422


# ─── Maintenance ─────────────────────────────────────────────────────────────


class TestMaintenanceEndpoints:
    def test_status_is_public(self, client: TestClient) -> None:
        resp = client.get(MAINTENANCE)
        assert resp.status_code == 200
        assert resp.json()["active"] is False

    def test_activate_kicks_users(
        self, client: TestClient, admin_token: str, user_token: str
    ) -> None:
        resp = client.put(
            MAINTENANCE, json={"active": True, "message": "Upgrade"}, headers=auth(admin_token)
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "Upgrade"
        assert _me(client, user_token) == 401
        assert _me(client, admin_token) == 200
        assert client.get(MAINTENANCE).json()["active"] is True

    def test_logout_all(
        self, client: TestClient, admin_token: str, user_token: str, other_token: str
    ) -> None:
        resp = client.post(
            f"{MAINTENANCE}/logout-all", json={"message": ""}, headers=auth(admin_token)
        )
        assert resp.status_code == 200
        assert resp.json() == {"kicked": 2}
        assert _me(client, user_token) == 401
        assert _me(client, other_token) == 401
        assert _me(client, admin_token) == 200


# ─── Audit ───────────────────────────────────────────────────────────────────


class TestAuditEndpoint:
    def test_actions_show_up(
        self,
        client: TestClient,
        admin_token: str,
        regular_user: User,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(settings, "TRUST_PROXY_HEADERS", True)
        client.post(f"{USERS}/{regular_user.id}/kick", headers=auth(admin_token))
        client.post(
            f"{USERS}/{regular_user.id}/block",
            json={"blocked": True},
            headers={**auth(admin_token), "X-Real-IP": "198.51.100.4"},
        )

        resp = client.get(AUDIT, headers=auth(admin_token))
        assert resp.status_code == 200
        actions = sorted(r["action"] for r in resp.json())
        assert actions == ["USER_BLOCK", "USER_KICK"]

        block = client.get(AUDIT, params={"action": "USER_BLOCK"}, headers=auth(admin_token)).json()
        assert len(block) == 1
        assert block[0]["actor_email"] == "admin@example.com"
        assert block[0]["target"] == regular_user.email
        assert block[0]["ip_address"] == "198.51.100.4"

    def test_search(self, client: TestClient, admin_token: str, regular_user: User) -> None:
        client.post(f"{USERS}/{regular_user.id}/kick", headers=auth(admin_token))
        hits = client.get(AUDIT, params={"q": "VIEWER"}, headers=auth(admin_token)).json()
        assert len(hits) == 1
        misses = client.get(AUDIT, params={"q": "nobody"}, headers=auth(admin_token)).json()
        assert misses == []

    def test_limit_bounds(self, client: TestClient, admin_token: str) -> None:
        assert client.get(AUDIT, params={"limit": 0}, headers=auth(admin_token)).status_code == 422
        assert client.get(AUDIT, params={"limit": 301}, headers=auth(admin_token)).status_code == 422
        assert client.get(AUDIT, params={"limit": 300}, headers=auth(admin_token)).status_code == 200
