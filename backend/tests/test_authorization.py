"""
Route guard tests.

Verifies:
- Protected endpoints return 401 without a credential
- Permission, page and legacy guards return 403 with the shared shape
- The legacy manager fallback grants Clients Delete
- Denials are written to the security event log
"""

import pytest

from dashboard.models import Client, SecurityEvent
from dashboard.services import permission_service


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout"),
            ("POST", "/api/auth/change-password"),
            ("GET", "/api/roles"),
            ("POST", "/api/roles"),
            ("GET", "/api/roles/schema"),
            ("DELETE", "/api/roles/1"),
            ("GET", "/api/users"),
            ("POST", "/api/users"),
            ("GET", "/api/users/1"),
            ("PUT", "/api/users/1/managers"),
            ("GET", "/api/users/team"),
            ("GET", "/api/clients"),
            ("POST", "/api/clients"),
            ("DELETE", "/api/clients/1"),
            ("POST", "/api/clients/1/assign"),
            ("DELETE", "/api/clients/1/assign/2"),
            ("GET", "/api/clients/assignment/managers"),
            ("GET", "/api/system/role-migration"),
            ("GET", "/api/system/security-events"),
        ],
    )
    def test_requires_auth(self, client, db_session, assert_rejection, method, path):
        resp = getattr(client, method.lower())(path)
        assert_rejection(resp, 401, "AUTH_TOKEN_MISSING")

    def test_public_endpoints(self, client, db_session):
        assert client.get("/api/system/health").status_code == 200
        assert client.get("/api/auth/legacy-roles").get_json()["legacy_roles"] == [
            "superadmin", "admin", "manager", "employee", "telecaller",
        ]


# =============================================================================
# PERMISSION GUARDS - 403
# =============================================================================


class TestRequirePermission:
    """require_permission(module, action)."""

    def test_denied_message_names_action_and_module(self, client, make_user, clients_reader_role, headers_for, assert_rejection):
        reader = make_user(role=clients_reader_role)
        resp = client.post("/api/clients", headers=headers_for(reader), json={"name": "Acme"})

        body = assert_rejection(resp, 403, "AUTH_INSUFFICIENT_PERMISSIONS")
        assert body["error"]["message"] == "You do not have permission to create clients"

    def test_granted(self, client, team_manager, headers_for):
        resp = client.post("/api/clients", headers=headers_for(team_manager), json={"name": "Acme"})
        assert resp.status_code == 201
        assert resp.get_json()["client"]["created_by_id"] == team_manager.id

    def test_role_edit_applies_on_next_request(self, client, make_role, make_user, headers_for, db_session, assert_rejection):
        role = make_role("Growing", permissions={"Clients": {"Read": True}})
        user = make_user(role=role)
        headers = headers_for(user)

        assert_rejection(client.post("/api/clients", headers=headers, json={"name": "Acme"}), 403, "AUTH_INSUFFICIENT_PERMISSIONS")

        role.permissions = {**role.permissions, "Clients": {"Read": True, "Create": True, "Update": False, "Delete": False}}
        db_session.commit()

        assert client.post("/api/clients", headers=headers, json={"name": "Acme"}).status_code == 201


class TestLegacyManagerFallback:
    """A legacy manager (no Role) keeps Clients Delete through the fallback table."""

    def test_legacy_manager_can_delete_client(self, client, make_user, make_client, headers_for, db_session):
        manager = make_user(legacy_role="manager")
        record = make_client("Acme", created_by=manager)

        resp = client.delete(f"/api/clients/{record.id}", headers=headers_for(manager))
        assert resp.status_code == 200

        db_session.expire_all()
        assert db_session.get(Client, record.id).is_active is False

    def test_legacy_employee_cannot_delete_client(self, client, make_user, make_client, headers_for, assert_rejection):
        employee = make_user(legacy_role="employee")
        record = make_client("Acme", assigned_to=[employee])

        resp = client.delete(f"/api/clients/{record.id}", headers=headers_for(employee))
        body = assert_rejection(resp, 403, "AUTH_INSUFFICIENT_PERMISSIONS")
        assert body["error"]["message"] == "You do not have permission to delete clients"


class TestLegacyAuthorize:
    """authorize("manager") on GET /api/users/team."""

    def test_legacy_manager_allowed(self, client, make_user, headers_for):
        manager = make_user(legacy_role="manager")
        report = make_user(managers=[manager])

        resp = client.get("/api/users/team", headers=headers_for(manager))
        assert resp.status_code == 200
        assert [u["id"] for u in resp.get_json()["users"]] == [report.id]

    def test_full_access_allowed(self, client, admin_user, headers_for):
        assert client.get("/api/users/team", headers=headers_for(admin_user)).status_code == 200

    def test_other_tags_denied(self, client, make_user, headers_for, assert_rejection):
        employee = make_user(legacy_role="employee")
        body = assert_rejection(client.get("/api/users/team", headers=headers_for(employee)), 403, "AUTH_INSUFFICIENT_PERMISSIONS")
        assert body["error"]["message"] == "Insufficient permissions"


class TestPageAccess:
    """require_page_access on GET /api/system/security-events."""

    def test_denied_without_page(self, client, make_user, basic_role, headers_for, assert_rejection):
        user = make_user(role=basic_role)
        body = assert_rejection(
            client.get("/api/system/security-events", headers=headers_for(user)),
            403, "AUTH_PAGE_ACCESS_DENIED",
        )
        assert body["error"]["message"] == "You do not have access to the Activities page"

    def test_page_holder_sees_only_own_events(self, client, make_role, make_user, basic_role, headers_for):
        role = make_role("Auditor", permissions={"Pages": {"Activities": True}})
        auditor = make_user(role=role)
        other = make_user(role=basic_role)
        client.get("/api/system/role-migration", headers=headers_for(auditor))
        client.get("/api/system/role-migration", headers=headers_for(other))

        resp = client.get("/api/system/security-events", headers=headers_for(auditor))
        assert resp.status_code == 200
        events = resp.get_json()["events"]
        assert events
        assert {e["user_id"] for e in events} == {auditor.id}

    def test_legacy_manager_has_activities_page(self, client, make_user, headers_for):
        manager = make_user(legacy_role="manager")
        assert client.get("/api/system/security-events", headers=headers_for(manager)).status_code == 200


# =============================================================================
# AUDIT TRAIL
# =============================================================================


class TestDenialAudit:
    """Every guard failure leaves a SecurityEvent row."""

    def test_permission_denied_event(self, client, make_user, clients_reader_role, headers_for, db_session):
        reader = make_user(role=clients_reader_role)
        client.post("/api/clients", headers=headers_for(reader), json={"name": "Acme"})

        event = db_session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").one()
        assert event.user_id == reader.id
        assert event.success is False
        assert event.resource == "/api/clients"
        assert "Clients:Create" in event.action

    def test_management_denied_event(self, client, team_manager, make_user, headers_for, db_session):
        stranger = make_user()
        client.get(f"/api/users/{stranger.id}", headers=headers_for(team_manager))

        event = db_session.query(SecurityEvent).filter_by(event_type="MANAGEMENT_DENIED").one()
        assert event.user_id == team_manager.id
        assert "CANNOT_MANAGE_USER" in event.reason
        assert f"target={stranger.id}" in event.reason

    def test_missing_token_event(self, client, db_session):
        client.get("/api/clients")

        event = db_session.query(SecurityEvent).filter_by(event_type="AUTH_REJECTED").one()
        assert event.user_id is None
        assert event.reason == "AUTH_TOKEN_MISSING"


class TestAuditFailure:
    """A failed audit write still answers with the shared error shape."""

    @pytest.fixture
    def audit_unavailable(self, monkeypatch):
        def unavailable(**kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(permission_service, "log_security_event", unavailable)

    def test_permission_guard(self, client, make_user, clients_reader_role, headers_for, assert_rejection, audit_unavailable):
        reader = make_user(role=clients_reader_role)
        resp = client.post("/api/clients", headers=headers_for(reader), json={"name": "Acme"})
        assert_rejection(resp, 500, "SERVER_ERROR")

    def test_management_guard(self, client, team_manager, make_user, headers_for, assert_rejection, audit_unavailable):
        stranger = make_user()
        resp = client.get(f"/api/users/{stranger.id}", headers=headers_for(team_manager))
        assert_rejection(resp, 500, "SERVER_ERROR")
