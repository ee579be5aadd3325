"""
tests/test_api_routes.py -- Integration tests for the AccessGate HTTP API.

These tests exercise the full stack: FastAPI routing -> auth dependency injection
-> Authenticator / AccessDecisionEngine / stores -> response model serialization
-> the error envelope handlers in api/main.py.

Coverage:
  - Auth: login success/failure, identical 401 bodies, no-store caching, /auth/me
  - Login: email case is ignored, password whitespace is significant
  - Authorization: 401 without a token, 403 for a non-admin on admin routes
  - Access: public verify endpoint, 400 on blank UID, 500 envelope on store failure
  - Logs: admin pagination and filters, 400 on inverted date range, 422 on bad limit
  - Users and cards: create, conflict, patch rules, delete rules, card CRUD

Fixtures used (from conftest.py):
  - api_client: (client, token, uid) -- TestClient with an admin session token.
    The admin is admin@example.com with password "testpass123".
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from access.store import AccessTransaction

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "testpass123"


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _create_user(client: TestClient, token: str, **overrides) -> dict:
    body = {"name": "Student", "email": "student@example.com", "password": "studentpass1", "role": "student"}
    body.update(overrides)
    resp = client.post("/api/v1/users", json=body, headers=_auth(token))
    assert resp.status_code == 201, resp.text
    return resp.json()


def _login(client: TestClient, email: str, password: str) -> str:
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()["access_token"]


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class TestAuthRoutes:
    def test_login_success(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, uid = api_client
        resp = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        assert resp.status_code == 200
        assert resp.headers["Cache-Control"] == "no-store"
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["access_token"].count(".") == 2
        assert data["user"] == {"id": uid, "name": "Test Admin", "email": ADMIN_EMAIL, "role": "admin"}
        assert "password_hash" not in resp.text

    def test_login_failures_are_indistinguishable(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        wrong = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": "nope-nope"})
        unknown = client.post("/api/v1/auth/login", json={"email": "ghost@example.com", "password": "nope-nope"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()["error"]["code"] == "unauthenticated"
        assert wrong.headers["Cache-Control"] == "no-store"

    def test_login_missing_fields_is_422(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_password_whitespace_is_part_of_the_secret(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        _create_user(client, token, email="padded@example.com", password="  padded-pass  ")
        assert client.post(
            "/api/v1/auth/login", json={"email": "padded@example.com", "password": "padded-pass"}
        ).status_code == 401
        _login(client, "padded@example.com", "  padded-pass  ")

    def test_login_email_ignores_case(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        created = _create_user(client, token, email="Mixed.Case@Example.COM")
        assert created["email"] == "mixed.case@example.com"
        _login(client, "mixed.case@example.com", "studentpass1")
        _login(client, "Mixed.Case@Example.COM", "studentpass1")
        _login(client, "  MIXED.CASE@example.com ", "studentpass1")

    def test_email_differing_only_in_case_is_409(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        body = {"name": "Admin Shout", "email": ADMIN_EMAIL.upper(), "password": "whatever1"}
        resp = client.post("/api/v1/users", json=body, headers=_auth(token))
        assert resp.status_code == 409

    def test_me(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, uid = api_client
        resp = client.get("/api/v1/auth/me", headers=_auth(token))
        assert resp.status_code == 200
        data = resp.json()
        assert data["user_id"] == uid
        assert data["role"] == "admin"
        assert data["expires_at"] - data["issued_at"] == 86400

    @pytest.mark.parametrize(
        "headers",
        [
            {},
            {"Authorization": "Bearer"},
            {"Authorization": "Bearer not.a.token"},
            {"Authorization": "Token abc.def.ghi"},
        ],
    )
    def test_me_rejects_bad_credentials(self, api_client: tuple[TestClient, str, int], headers) -> None:
        client, _token, _uid = api_client
        resp = client.get("/api/v1/auth/me", headers=headers)
        assert resp.status_code == 401
        assert resp.headers["WWW-Authenticate"] == "Bearer"
        assert resp.json()["error"] == {"code": "unauthenticated", "message": "Invalid or expired token"}


# ---------------------------------------------------------------------------
# Door verification
# ---------------------------------------------------------------------------


class TestAccessVerify:
    def test_registered_card_is_granted(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        user = _create_user(client, token, email="door@example.com", card_uid="DOOR01")
        resp = client.post("/api/v1/access/verify", json={"card_uid": "DOOR01"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["access_granted"] is True
        assert data["reason"] == "Access granted"
        assert data["user"] == {"id": user["id"], "name": "Student", "role": "student"}

    def test_unknown_card_is_denied_with_200(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/v1/access/verify", json={"card_uid": "UNKNOWN"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["access_granted"] is False
        assert data["reason"] == "Card not registered"
        assert data["user"] is None

    @pytest.mark.parametrize("body", [{}, {"card_uid": ""}, {"card_uid": "   "}, {"card_uid": None}])
    def test_blank_uid_is_400(self, api_client: tuple[TestClient, str, int], body) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/v1/access/verify", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_store_failure_is_opaque_500(self, api_client: tuple[TestClient, str, int], monkeypatch) -> None:
        client, _token, _uid = api_client

        def boom(self, **kwargs):
            raise OperationalError("INSERT INTO access_logs", {}, Exception("database is locked"))

        monkeypatch.setattr(AccessTransaction, "insert_access_log", boom)
        resp = client.post("/api/v1/access/verify", json={"card_uid": "ANY"})
        assert resp.status_code == 500
        assert resp.json()["error"] == {"code": "store_error", "message": "Failed to verify access"}
        assert "locked" not in resp.text


# ---------------------------------------------------------------------------
# Access logs
# ---------------------------------------------------------------------------


class TestAccessLogs:
    def test_requires_auth(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        assert client.get("/api/v1/access/logs").status_code == 401

    def test_non_admin_is_forbidden(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        _create_user(client, token, email="reader@example.com")
        student_token = _login(client, "reader@example.com", "studentpass1")
        resp = client.get("/api/v1/access/logs", headers=_auth(student_token))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_admin_sees_paginated_logs(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        for _ in range(3):
            client.post("/api/v1/access/verify", json={"card_uid": "PAGE01"})
        resp = client.get("/api/v1/access/logs", params={"card_uid": "PAGE01", "limit": 2}, headers=_auth(token))
        assert resp.status_code == 200
        data = resp.json()
        assert len(data["data"]) == 2
        assert data["pagination"] == {"total": 3, "page": 1, "limit": 2, "total_pages": 2}
        assert all(e["failure_reason"] == "Card not registered" for e in data["data"])

    def test_filter_by_outcome(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        resp = client.get("/api/v1/access/logs", params={"access_granted": "false"}, headers=_auth(token))
        assert resp.status_code == 200
        assert all(e["access_granted"] is False for e in resp.json()["data"])

    def test_inverted_date_range_is_400(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        resp = client.get(
            "/api/v1/access/logs",
            params={"start_date": "2024-02-01", "end_date": "2024-01-01"},
            headers=_auth(token),
        )
        assert resp.status_code == 400

    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 101}, {"page": 0}, {"start_date": "yesterday"}])
    def test_bad_query_is_422(self, api_client: tuple[TestClient, str, int], params) -> None:
        client, token, _uid = api_client
        resp = client.get("/api/v1/access/logs", params=params, headers=_auth(token))
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Users and cards
# ---------------------------------------------------------------------------


class TestUserRoutes:
    def test_create_and_list(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        created = _create_user(client, token, name="Zed Listed", email="listed@example.com", card_uid="LIST01")
        assert created["status"] == "active"
        assert "password" not in created and "password_hash" not in created

        resp = client.get("/api/v1/users", headers=_auth(token))
        assert resp.status_code == 200
        listed = {u["email"]: u for u in resp.json()}
        assert listed["listed@example.com"]["card_count"] == 1

    def test_duplicate_email_is_409(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        body = {"name": "Admin Clone", "email": ADMIN_EMAIL, "password": "whatever1"}
        resp = client.post("/api/v1/users", json=body, headers=_auth(token))
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"

    def test_duplicate_card_is_409_and_creates_nothing(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        _create_user(client, token, email="cardholder@example.com", card_uid="TAKEN1")
        body = {"name": "Late", "email": "late@example.com", "password": "latepass1", "card_uid": "TAKEN1"}
        assert client.post("/api/v1/users", json=body, headers=_auth(token)).status_code == 409
        emails = [u["email"] for u in client.get("/api/v1/users", headers=_auth(token)).json()]
        assert "late@example.com" not in emails

    @pytest.mark.parametrize(
        "body",
        [
            {"name": "Bad", "email": "not-an-email", "password": "longenough"},
            {"name": "Short", "email": "short@example.com", "password": "short"},
            {"name": "", "email": "noname@example.com", "password": "longenough"},
        ],
    )
    def test_invalid_create_is_422(self, api_client: tuple[TestClient, str, int], body) -> None:
        client, token, _uid = api_client
        assert client.post("/api/v1/users", json=body, headers=_auth(token)).status_code == 422

    def test_student_cannot_list_users(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        _create_user(client, token, email="nosy@example.com")
        student_token = _login(client, "nosy@example.com", "studentpass1")
        assert client.get("/api/v1/users", headers=_auth(student_token)).status_code == 403

    def test_student_updates_self_but_not_role(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        me = _create_user(client, token, email="self@example.com")
        student_token = _login(client, "self@example.com", "studentpass1")
        resp = client.patch(
            f"/api/v1/users/{me['id']}",
            json={"name": "Renamed", "role": "admin", "status": "active"},
            headers=_auth(student_token),
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Renamed"
        assert resp.json()["role"] == "student"

    def test_student_cannot_update_others(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, uid = api_client
        _create_user(client, token, email="meddler@example.com")
        student_token = _login(client, "meddler@example.com", "studentpass1")
        resp = client.patch(f"/api/v1/users/{uid}", json={"name": "Hacked"}, headers=_auth(student_token))
        assert resp.status_code == 403

    def test_admin_suspends_user_and_door_denies(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        user = _create_user(client, token, email="suspend@example.com", card_uid="SUSP01")
        resp = client.patch(f"/api/v1/users/{user['id']}", json={"status": "suspended"}, headers=_auth(token))
        assert resp.status_code == 200
        assert resp.json()["status"] == "suspended"
        verdict = client.post("/api/v1/access/verify", json={"card_uid": "SUSP01"}).json()
        assert verdict["access_granted"] is False
        assert verdict["reason"] == "User account is suspended"

    def test_password_change_takes_effect(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        user = _create_user(client, token, email="rotate@example.com")
        resp = client.patch(f"/api/v1/users/{user['id']}", json={"password": "rotated-pass"}, headers=_auth(token))
        assert resp.status_code == 200
        _login(client, "rotate@example.com", "rotated-pass")

    def test_empty_patch_is_400(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, uid = api_client
        assert client.patch(f"/api/v1/users/{uid}", json={}, headers=_auth(token)).status_code == 400

    def test_patch_missing_user_is_404(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        assert client.patch("/api/v1/users/99999", json={"name": "X"}, headers=_auth(token)).status_code == 404

    def test_admin_cannot_delete_self(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, uid = api_client
        assert client.delete(f"/api/v1/users/{uid}", headers=_auth(token)).status_code == 400

    def test_delete_user(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        user = _create_user(client, token, email="leaving@example.com", card_uid="GONE01")
        assert client.delete(f"/api/v1/users/{user['id']}", headers=_auth(token)).status_code == 204
        assert client.delete(f"/api/v1/users/{user['id']}", headers=_auth(token)).status_code == 404
        verdict = client.post("/api/v1/access/verify", json={"card_uid": "GONE01"}).json()
        assert verdict["reason"] == "Card not registered"


class TestCardRoutes:
    def test_card_lifecycle(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        user = _create_user(client, token, email="cards@example.com")
        base = f"/api/v1/users/{user['id']}/cards"

        resp = client.post(base, json={"card_uid": "LIFE01", "notes": "front desk"}, headers=_auth(token))
        assert resp.status_code == 201
        card = resp.json()
        assert card["is_active"] is True
        assert card["last_used_at"] is None

        assert client.post("/api/v1/access/verify", json={"card_uid": "LIFE01"}).json()["access_granted"] is True
        listed = client.get(base, headers=_auth(token)).json()
        assert listed[0]["last_used_at"] is not None

        resp = client.patch(f"{base}/{card['id']}", json={"is_active": False}, headers=_auth(token))
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False
        verdict = client.post("/api/v1/access/verify", json={"card_uid": "LIFE01"}).json()
        assert verdict["reason"] == "Card is inactive"

        assert client.delete(f"{base}/{card['id']}", headers=_auth(token)).status_code == 204
        assert client.delete(f"{base}/{card['id']}", headers=_auth(token)).status_code == 404

    def test_duplicate_card_uid_is_409(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        user = _create_user(client, token, email="dupcard@example.com", card_uid="DUPC01")
        resp = client.post(f"/api/v1/users/{user['id']}/cards", json={"card_uid": "DUPC01"}, headers=_auth(token))
        assert resp.status_code == 409

    def test_card_of_other_user_is_404(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, uid = api_client
        owner = _create_user(client, token, email="owner@example.com")
        card = client.post(
            f"/api/v1/users/{owner['id']}/cards", json={"card_uid": "OWNED1"}, headers=_auth(token)
        ).json()
        resp = client.patch(f"/api/v1/users/{uid}/cards/{card['id']}", json={"notes": "x"}, headers=_auth(token))
        assert resp.status_code == 404

    def test_cards_for_missing_user_is_404(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        assert client.get("/api/v1/users/99999/cards", headers=_auth(token)).status_code == 404
