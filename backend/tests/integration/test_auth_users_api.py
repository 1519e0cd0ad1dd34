"""Integration tests for registration, login, user administration, the
audit log and the health check endpoints"""

import pytest

from contractflow.auth.roles import UserRole, UserStatus
from contractflow.models import AuditLog, User

from tests.conftest import TEST_PASSWORD

pytestmark = pytest.mark.integration


class TestRegistration:
    def test_register_creates_pending_user(self, client, db_session, org):
        response = client.post("/api/v1/auth/register", json={
            "org_slug": org.slug,
            "username": "newhire",
            "password": "longenough",
            "email": "NewHire@BlueLagoon.com",
        })

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Registration successful. Your account is pending admin approval."
        assert body["user"]["status"] == "pending"
        assert body["user"]["role"] is None
        assert body["user"]["email"] == "newhire@bluelagoon.com"

        audit = db_session.query(AuditLog).filter(AuditLog.action == "USER_REGISTERED").one()
        assert audit.org_id == org.id

    def test_short_password(self, client, org):
        response = client.post("/api/v1/auth/register", json={
            "org_slug": org.slug, "username": "x", "password": "12345",
        })
        assert response.status_code == 400

    def test_unknown_org(self, client, org):
        response = client.post("/api/v1/auth/register", json={
            "org_slug": "nowhere", "username": "x", "password": "123456",
        })
        assert response.status_code == 404
        assert response.json()["detail"] == "Organization not found"

    def test_duplicate_username_and_email(self, client, org, admin_user):
        response = client.post("/api/v1/auth/register", json={
            "org_slug": org.slug, "username": "admin", "password": "123456",
        })
        assert response.status_code == 409
        assert response.json()["detail"] == "Username already exists"

        response = client.post("/api/v1/auth/register", json={
            "org_slug": org.slug, "username": "other", "password": "123456",
            "email": "ADMIN@bluelagoon.com",
        })
        assert response.status_code == 409
        assert response.json()["detail"] == "Email already registered"

    def test_invalid_email(self, client, org):
        response = client.post("/api/v1/auth/register", json={
            "org_slug": org.slug, "username": "x", "password": "123456", "email": "not-an-email",
        })
        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"


class TestLogin:
    def test_login_returns_token(self, client, db_session, org, admin_user):
        response = client.post("/api/v1/auth/login", json={
            "org_slug": org.slug, "username": "admin", "password": TEST_PASSWORD,
        })

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["expires_in"] == 3600
        assert body["user"]["username"] == "admin"
        assert body["user"]["last_login_at"] is not None

        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.status_code == 200
        assert me.json()["user"]["id"] == str(admin_user.id)

    def test_wrong_password_is_audited(self, client, db_session, org, admin_user):
        response = client.post("/api/v1/auth/login", json={
            "org_slug": org.slug, "username": "admin", "password": "wrong-password",
        })

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid username or password"
        assert db_session.query(AuditLog).filter(AuditLog.action == "LOGIN_FAILED").count() == 1

    def test_unknown_org(self, client, admin_user):
        response = client.post("/api/v1/auth/login", json={
            "org_slug": "nowhere", "username": "admin", "password": TEST_PASSWORD,
        })
        assert response.status_code == 401

    @pytest.mark.parametrize(
        "status, detail",
        [
            (UserStatus.PENDING, "Account pending approval"),
            (UserStatus.SUSPENDED, "Account suspended"),
        ],
    )
    def test_inactive_accounts(self, client, org, make_user, status, detail):
        make_user(role=None, status=status, username="waiting")

        response = client.post("/api/v1/auth/login", json={
            "org_slug": org.slug, "username": "waiting", "password": TEST_PASSWORD,
        })

        assert response.status_code == 403
        assert response.json()["detail"] == detail

    def test_me_requires_token(self, client):
        assert client.get("/api/v1/auth/me").status_code in (401, 403)

    def test_bad_token(self, client):
        response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_suspended_user_token_is_rejected(self, client_for, db_session, admin_user):
        admin_client = client_for(admin_user)
        admin_user.status = UserStatus.SUSPENDED.value
        db_session.commit()

        response = admin_client.get("/api/v1/auth/me")
        assert response.status_code == 403
        assert response.json()["detail"] == "User account is suspended"


class TestUserAdministration:
    def test_list_and_filter(self, admin_client, make_user):
        make_user(role=None, status=UserStatus.PENDING, username="pending1")

        response = admin_client.get("/api/v1/users", params={"status": "pending"})

        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["users"][0]["username"] == "pending1"

    def test_approve_user_logs_role_change(self, admin_client, db_session, make_user):
        pending = make_user(role=None, status=UserStatus.PENDING, username="pending1")

        response = admin_client.patch(f"/api/v1/users/{pending.id}", json={
            "role": "contract_manager", "status": "active",
        })

        assert response.status_code == 200
        assert response.json()["role"] == "contract_manager"
        assert response.json()["status"] == "active"
        actions = {a.action for a in db_session.query(AuditLog).all()}
        assert {"USER_UPDATED", "USER_ROLE_CHANGED"} <= actions

    def test_cannot_suspend_self(self, admin_client, admin_user):
        response = admin_client.patch(f"/api/v1/users/{admin_user.id}", json={"status": "suspended"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot change the status of your own account"

    def test_email_clash(self, admin_client, manager_user, viewer_user):
        response = admin_client.patch(f"/api/v1/users/{viewer_user.id}", json={"email": manager_user.email})
        assert response.status_code == 409

    def test_reset_password(self, admin_client, client, org, viewer_user):
        response = admin_client.post(
            f"/api/v1/users/{viewer_user.id}/reset-password", json={"new_password": "brand-new-pass"}
        )
        assert response.json() == {"success": True}

        login = client.post("/api/v1/auth/login", json={
            "org_slug": org.slug, "username": "viewer", "password": "brand-new-pass",
        })
        assert login.status_code == 200

    def test_delete_suspends(self, admin_client, db_session, viewer_user, admin_user):
        assert admin_client.delete(f"/api/v1/users/{viewer_user.id}").json() == {"success": True}
        db_session.refresh(viewer_user)
        assert viewer_user.status == "suspended"

        response = admin_client.delete(f"/api/v1/users/{admin_user.id}")
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot delete your own account"

    def test_other_org_users_are_invisible(self, admin_client, make_user, other_org):
        stranger = make_user(UserRole.VIEWER, username="stranger", user_org=other_org)
        assert admin_client.get(f"/api/v1/users/{stranger.id}").status_code == 404

    def test_non_admin_is_forbidden(self, client_for, manager_user):
        response = client_for(manager_user).get("/api/v1/users")
        assert response.status_code == 403
        assert response.json()["detail"] == "Insufficient permissions. Required role: admin"


class TestVendorProfile:
    def test_vendor_reads_and_edits_own_record(self, client_for, vendor_user, vendor):
        vendor_client = client_for(vendor_user)

        response = vendor_client.get("/api/v1/users/vendor")
        assert response.status_code == 200
        assert response.json()["id"] == str(vendor.id)

        response = vendor_client.patch("/api/v1/users/vendor", json={"phone": "512-555-0199"})
        assert response.status_code == 200
        assert response.json()["phone"] == "512-555-0199"
        assert response.json()["name"] == "Pool Pros Tile"

    def test_staff_have_no_vendor_profile(self, admin_client):
        response = admin_client.get("/api/v1/users/vendor")
        assert response.status_code == 403
        assert response.json()["detail"] == "Only vendor users can access their vendor profile"

    def test_vendor_without_matching_record(self, client_for, make_user, vendor):
        lost = make_user(UserRole.VENDOR, username="lost", email="lost@nowhere.com")
        response = client_for(lost).get("/api/v1/users/vendor")
        assert response.status_code == 404
        assert response.json()["detail"] == "Vendor profile not found for this user"


def test_audit_log_lists_org_events(admin_client, client, org, admin_user):
    client.post("/api/v1/auth/login", json={
        "org_slug": org.slug, "username": "admin", "password": "nope-nope",
    })

    response = admin_client.get("/api/v1/audit", params={"action": "LOGIN_FAILED"})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["page"] == 1
    assert body["entries"][0]["metadata"]["reason"] == "invalid_credentials"


class TestHealthChecks:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_ready(self, client):
        assert client.get("/ready").json() == {"status": "ready"}

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "contractflow" in response.text

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_request_id_is_generated(self, client):
        assert client.get("/health").headers.get("X-Request-ID")
