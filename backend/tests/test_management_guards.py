"""
Hierarchical management guard tests.

Verifies:
- can_manage_user: self, Users Update, Users Read within the subtree
- Client assignment rules for full-access and team-manager actors
- Self-unassignment is always blocked for non-full-access actors
- Management relation edits reject cycles
- The owner account cannot be deactivated or demoted
"""

import pytest

from dashboard.models import User, ClientAssignment
from dashboard.services import management_service, permission_service
from dashboard.services.management_service import ManagementError


# =============================================================================
# USER MANAGEMENT
# =============================================================================


class TestCanManageUser:
    """Per-target user guard."""

    def test_self_always_allowed(self, make_user, basic_role):
        user = make_user(role=basic_role)
        assert management_service.can_manage_user(user, user.id) is user

    def test_users_update_manages_anyone(self, make_role, make_user):
        role = make_role("User Admin", permissions={"Users": {"Read": True, "Update": True}})
        actor = make_user(role=role)
        stranger = make_user()

        assert management_service.can_manage_user(actor, str(stranger.id)).id == stranger.id

    def test_users_read_limited_to_subtree(self, team_manager, make_user):
        mine = make_user(managers=[team_manager])
        stranger = make_user()

        assert management_service.can_manage_user(team_manager, mine.id).id == mine.id
        with pytest.raises(ManagementError) as exc_info:
            management_service.can_manage_user(team_manager, stranger.id)
        assert exc_info.value.code == "CANNOT_MANAGE_USER"
        assert exc_info.value.status == 403

    def test_missing_target(self, admin_user):
        with pytest.raises(ManagementError) as exc_info:
            management_service.can_manage_user(admin_user, 9999)
        assert exc_info.value.code == "USER_NOT_FOUND"
        assert exc_info.value.status == 404

    @pytest.mark.parametrize("raw", ["abc", None, 0, -3, True])
    def test_invalid_id(self, admin_user, raw):
        with pytest.raises(ManagementError) as exc_info:
            management_service.can_manage_user(admin_user, raw)
        assert exc_info.value.code == "INVALID_USER_ID"
        assert exc_info.value.status == 400

    def test_user_detail_route(self, client, team_manager, make_user, headers_for, assert_rejection):
        mine = make_user(created_by=team_manager)
        stranger = make_user()
        headers = headers_for(team_manager)

        assert client.get(f"/api/users/{mine.id}", headers=headers).status_code == 200
        assert client.get(f"/api/users/{team_manager.id}", headers=headers).status_code == 200
        body = assert_rejection(client.get(f"/api/users/{stranger.id}", headers=headers), 403, "CANNOT_MANAGE_USER")
        assert body["error"]["message"] == "You do not have permission to manage this user"


class TestUpdateUser:
    """PUT /api/users/<id>."""

    def test_self_may_rename(self, client, make_user, basic_role, headers_for):
        user = make_user(role=basic_role)
        resp = client.put(f"/api/users/{user.id}", headers=headers_for(user), json={"name": "Renamed"})

        assert resp.status_code == 200
        assert resp.get_json()["user"]["name"] == "Renamed"

    def test_self_may_not_change_own_access(self, client, make_user, basic_role, team_manager_role, headers_for, assert_rejection):
        user = make_user(role=basic_role)
        resp = client.put(f"/api/users/{user.id}", headers=headers_for(user), json={"role_id": team_manager_role.id})
        assert_rejection(resp, 403, "AUTH_INSUFFICIENT_PERMISSIONS")

    def test_read_only_manager_cannot_update_report(self, client, team_manager, make_user, headers_for, assert_rejection):
        report = make_user(created_by=team_manager)
        resp = client.put(f"/api/users/{report.id}", headers=headers_for(team_manager), json={"name": "Changed"})
        assert_rejection(resp, 403, "AUTH_INSUFFICIENT_PERMISSIONS")

    def test_access_change_revokes_target_sessions(self, client, admin_user, make_user, basic_role, team_manager_role, headers_for, assert_rejection):
        target = make_user(role=basic_role)
        target_headers = headers_for(target)

        resp = client.put(f"/api/users/{target.id}", headers=headers_for(admin_user), json={"role_id": team_manager_role.id})
        assert resp.status_code == 200
        assert resp.get_json()["user"]["role_id"] == team_manager_role.id

        assert_rejection(client.get("/api/auth/me", headers=target_headers), 401, "AUTH_TOKEN_REVOKED")

    def test_non_full_access_cannot_grant_full_access_role(self, client, make_role, make_user, full_access_role, headers_for, assert_rejection):
        role = make_role("User Admin", permissions={"Users": {"Read": True, "Update": True}})
        actor = make_user(role=role)
        target = make_user()

        resp = client.put(f"/api/users/{target.id}", headers=headers_for(actor), json={"role_id": full_access_role.id})
        assert_rejection(resp, 403, "AUTH_INSUFFICIENT_PERMISSIONS")

    def test_non_full_access_cannot_expose_admin_legacy_tag(self, client, make_role, make_user, basic_role, headers_for, assert_rejection, db_session):
        role = make_role("User Admin", permissions={"Users": {"Read": True, "Update": True}})
        actor = make_user(role=role)
        target = make_user(legacy_role="admin", role=basic_role, created_by=actor)

        resp = client.put(f"/api/users/{target.id}", headers=headers_for(actor), json={"role_id": None})
        body = assert_rejection(resp, 403, "AUTH_INSUFFICIENT_PERMISSIONS")
        assert body["error"]["message"] == "Only full-access users can grant full access"

        db_session.expire_all()
        stored = db_session.get(User, target.id)
        assert stored.role_id == basic_role.id
        assert permission_service.has_full_access(stored) is False

    def test_full_access_may_clear_role_over_admin_legacy_tag(self, client, admin_user, make_user, basic_role, headers_for, db_session):
        target = make_user(legacy_role="admin", role=basic_role)

        resp = client.put(f"/api/users/{target.id}", headers=headers_for(admin_user), json={"role_id": None})
        assert resp.status_code == 200

        db_session.expire_all()
        assert permission_service.has_full_access(db_session.get(User, target.id)) is True


class TestCreateUser:
    """POST /api/users."""

    def test_non_full_access_creator_becomes_manager(self, client, make_role, make_user, basic_role, headers_for, db_session):
        role = make_role("Recruiter", permissions={"Users": {"Create": True, "Read": True}})
        actor = make_user(role=role)

        resp = client.post("/api/users", headers=headers_for(actor), json={
            "name": "New Hire",
            "email": "new.hire@example.com",
            "password": "Password123!",
            "role_id": basic_role.id,
        })
        assert resp.status_code == 201
        data = resp.get_json()["user"]
        assert data["created_by_id"] == actor.id
        assert data["manager_ids"] == [actor.id]
        assert data["legacy_role"] == "employee"

    def test_requires_users_create(self, client, team_manager, headers_for, assert_rejection):
        resp = client.post("/api/users", headers=headers_for(team_manager), json={
            "name": "Nope",
            "email": "nope@example.com",
            "password": "Password123!",
        })
        body = assert_rejection(resp, 403, "AUTH_INSUFFICIENT_PERMISSIONS")
        assert body["error"]["message"] == "You do not have permission to create users"

    def test_only_one_superadmin(self, client, admin_user, make_user, headers_for, assert_rejection):
        make_user(legacy_role="superadmin")
        resp = client.post("/api/users", headers=headers_for(admin_user), json={
            "name": "Second Owner",
            "email": "second@example.com",
            "password": "Password123!",
            "legacy_role": "superadmin",
        })
        assert_rejection(resp, 400, "MAX_SUPERADMINS_REACHED")


# =============================================================================
# MANAGEMENT RELATION
# =============================================================================


class TestSetUserManagers:
    """Editing the direct management relation."""

    def test_replace_managers(self, admin_user, make_user, db_session):
        first = make_user()
        second = make_user()
        target = make_user(managers=[first])

        management_service.set_user_managers(admin_user, target, [second.id])
        db_session.commit()

        assert [m.id for m in target.managers] == [second.id]

    def test_self_management_rejected(self, admin_user, make_user):
        target = make_user()
        with pytest.raises(ManagementError) as exc_info:
            management_service.set_user_managers(admin_user, target, [target.id])
        assert exc_info.value.code == "MANAGEMENT_CYCLE"
        assert exc_info.value.status == 400

    def test_cycle_rejected(self, admin_user, make_user):
        top = make_user()
        middle = make_user(managers=[top])
        bottom = make_user(managers=[middle])

        with pytest.raises(ManagementError) as exc_info:
            management_service.set_user_managers(admin_user, top, [bottom.id])
        assert exc_info.value.code == "MANAGEMENT_CYCLE"

    def test_managers_route(self, client, admin_user, make_user, headers_for, assert_rejection):
        manager = make_user()
        target = make_user()
        headers = headers_for(admin_user)

        resp = client.put(f"/api/users/{target.id}/managers", headers=headers, json={"manager_ids": [manager.id]})
        assert resp.status_code == 200
        assert resp.get_json()["user"]["manager_ids"] == [manager.id]

        resp = client.put(f"/api/users/{manager.id}/managers", headers=headers, json={"manager_ids": [target.id]})
        assert_rejection(resp, 400, "MANAGEMENT_CYCLE")

        resp = client.put(f"/api/users/{target.id}/managers", headers=headers, json={"manager_ids": "nope"})
        assert_rejection(resp, 400, "VALIDATION_ERROR")


class TestOwnerProtection:
    """The oldest superadmin keeps its access."""

    @pytest.fixture
    def owner(self, make_user, full_access_role):
        return make_user(name="Owner", legacy_role="superadmin", role=full_access_role)

    @pytest.mark.parametrize("changes", [
        {"is_active": False},
        {"legacy_role": "admin"},
        {"role_id": None},
    ])
    def test_owner_changes_blocked(self, client, owner, admin_user, headers_for, assert_rejection, changes):
        resp = client.put(f"/api/users/{owner.id}", headers=headers_for(admin_user), json=changes)
        assert_rejection(resp, 403, "OWNER_PROTECTED")

    def test_owner_can_be_renamed(self, client, owner, admin_user, headers_for):
        resp = client.put(f"/api/users/{owner.id}", headers=headers_for(admin_user), json={"name": "Founder"})
        assert resp.status_code == 200


# =============================================================================
# CLIENT ASSIGNMENT
# =============================================================================


class TestAssignClient:
    """POST /api/clients/<id>/assign."""

    def test_team_manager_assigns_to_own_report(self, client, team_manager, make_user, make_client, headers_for):
        report = make_user(created_by=team_manager)
        record = make_client("Acme", created_by=team_manager)

        resp = client.post(f"/api/clients/{record.id}/assign", headers=headers_for(team_manager), json={"user_id": report.id})
        assert resp.status_code == 201
        assert resp.get_json()["assignment"]["user_id"] == report.id

    def test_team_manager_cannot_assign_outside_team(self, client, team_manager, make_user, make_client, headers_for, assert_rejection):
        stranger = make_user()
        record = make_client("Acme", created_by=team_manager)

        resp = client.post(f"/api/clients/{record.id}/assign", headers=headers_for(team_manager), json={"user_id": stranger.id})
        body = assert_rejection(resp, 403, "CANNOT_MANAGE_CLIENTS")
        assert "team members" in body["error"]["message"]

    def test_team_manager_cannot_assign_inaccessible_client(self, client, team_manager, make_user, make_client, headers_for, assert_rejection):
        report = make_user(created_by=team_manager)
        record = make_client("Not Theirs")

        resp = client.post(f"/api/clients/{record.id}/assign", headers=headers_for(team_manager), json={"user_id": report.id})
        body = assert_rejection(resp, 403, "CLIENT_ACCESS_DENIED")
        assert body["error"]["message"] == "You can only assign clients that are assigned to you"

    def test_creator_needs_no_clients_read(self, client, make_role, make_user, make_client, headers_for):
        role = make_role("Account Lead", is_team_manager=True, permissions={"Clients": {"Update": True}})
        actor = make_user(role=role)
        report = make_user(created_by=actor)
        record = make_client("Acme", created_by=actor)

        resp = client.post(f"/api/clients/{record.id}/assign", headers=headers_for(actor), json={"user_id": report.id})
        assert resp.status_code == 201

        resp = client.delete(f"/api/clients/{record.id}/assign/{report.id}", headers=headers_for(actor))
        assert resp.status_code == 200

    def test_reassign_is_upsert(self, client, admin_user, make_user, make_client, basic_role, headers_for, db_session):
        target = make_user(role=basic_role)
        record = make_client("Acme")
        headers = headers_for(admin_user)

        first = client.post(f"/api/clients/{record.id}/assign", headers=headers, json={"user_id": target.id})
        second = client.post(f"/api/clients/{record.id}/assign", headers=headers, json={"user_id": target.id})

        assert first.status_code == 201
        assert second.status_code == 200
        assert db_session.query(ClientAssignment).filter_by(client_id=record.id).count() == 1

    def test_full_access_target_needs_role(self, client, admin_user, make_user, make_client, headers_for, assert_rejection):
        target = make_user(legacy_role="employee")
        record = make_client("Acme")

        resp = client.post(f"/api/clients/{record.id}/assign", headers=headers_for(admin_user), json={"user_id": target.id})
        assert_rejection(resp, 400, "INVALID_ASSIGNMENT_TARGET")

    def test_full_access_target_must_be_active(self, client, admin_user, make_user, make_client, basic_role, headers_for, assert_rejection):
        target = make_user(role=basic_role, is_active=False)
        record = make_client("Acme")

        resp = client.post(f"/api/clients/{record.id}/assign", headers=headers_for(admin_user), json={"user_id": target.id})
        assert_rejection(resp, 400, "INVALID_ASSIGNMENT_TARGET")

    def test_requires_client_management(self, client, clients_reader_role, make_user, make_client, headers_for, assert_rejection):
        reader = make_user(role=clients_reader_role)
        record = make_client("Acme", created_by=reader)

        resp = client.post(f"/api/clients/{record.id}/assign", headers=headers_for(reader), json={"user_id": reader.id})
        body = assert_rejection(resp, 403, "CANNOT_MANAGE_CLIENTS")
        assert body["error"]["message"] == "You do not have permission to manage clients"

    def test_bad_identifiers(self, client, admin_user, make_client, headers_for, assert_rejection):
        record = make_client("Acme")
        headers = headers_for(admin_user)

        assert_rejection(
            client.post(f"/api/clients/{record.id}/assign", headers=headers, json={"user_id": "x"}),
            400, "INVALID_USER_ID",
        )
        assert_rejection(
            client.post(f"/api/clients/{record.id}/assign", headers=headers, json={"user_id": 9999}),
            404, "USER_NOT_FOUND",
        )
        assert_rejection(
            client.post("/api/clients/9999/assign", headers=headers, json={"user_id": admin_user.id}),
            404, "CLIENT_NOT_FOUND",
        )


class TestUnassignClient:
    """DELETE /api/clients/<id>/assign/<user_id>."""

    def test_self_unassign_blocked(self, client, team_manager, make_client, headers_for, assert_rejection):
        record = make_client("Acme", created_by=team_manager, assigned_to=[team_manager])

        resp = client.delete(f"/api/clients/{record.id}/assign/{team_manager.id}", headers=headers_for(team_manager))
        body = assert_rejection(resp, 403, "CANNOT_UNASSIGN_SELF")
        assert body["error"]["message"] == "You cannot unassign yourself from a client"

    def test_self_unassign_blocked_before_lookup(self, team_manager):
        with pytest.raises(ManagementError) as exc_info:
            management_service.unassign_client(team_manager, 9999, team_manager.id)
        assert exc_info.value.code == "CANNOT_UNASSIGN_SELF"

    def test_team_manager_unassigns_report(self, client, team_manager, make_user, make_client, headers_for, db_session):
        report = make_user(created_by=team_manager)
        record = make_client("Acme", created_by=team_manager, assigned_to=[report])

        resp = client.delete(f"/api/clients/{record.id}/assign/{report.id}", headers=headers_for(team_manager))
        assert resp.status_code == 200
        assert db_session.query(ClientAssignment).filter_by(client_id=record.id, user_id=report.id).first() is None

    def test_full_access_may_unassign_self(self, client, admin_user, make_client, headers_for):
        record = make_client("Acme", assigned_to=[admin_user])

        resp = client.delete(f"/api/clients/{record.id}/assign/{admin_user.id}", headers=headers_for(admin_user))
        assert resp.status_code == 200

    def test_missing_assignment(self, client, admin_user, make_user, make_client, headers_for, assert_rejection):
        target = make_user()
        record = make_client("Acme")

        resp = client.delete(f"/api/clients/{record.id}/assign/{target.id}", headers=headers_for(admin_user))
        assert_rejection(resp, 404, "ASSIGNMENT_NOT_FOUND")
