"""Tests for role management and assignment endpoints."""

from church_platform.core.permissions import PERMISSION_VOCABULARY


class TestRoleReads:
    def test_permission_list(self, client, admin, headers_for):
        body = client.get("/api/roles/permissions/list", headers=headers_for(admin)).json()
        assert body["permissions"]["all"] == list(PERMISSION_VOCABULARY)
        assert "manage:donations" in body["permissions"]["grouped"]["broad"]

    def test_list_and_get(self, client, roles, admin, headers_for):
        headers = headers_for(admin)
        body = client.get("/api/roles", headers=headers).json()
        assert body["count"] == 7
        assert {r["name"] for r in body["roles"]} >= {"admin", "member", "bishop", "worship_team"}

        role = client.get(f"/api/roles/{roles['pastor'].id}", headers=headers).json()["role"]
        assert role["permissions"] == ["manage:sermons", "manage:events", "view:analytics"]
        assert role["is_system_role"] is False

    def test_members_and_user_lookup_allowed_for_user_managers(self, client, roles, make_user, headers_for):
        bishop = make_user("bishop@church.test", "bishop")
        member = make_user("member@church.test")
        headers = headers_for(bishop)

        members = client.get(f"/api/roles/{roles['member'].id}/members", headers=headers).json()
        assert [u["email"] for u in members["users"]] == ["member@church.test"]

        user = client.get(f"/api/roles/user/{member.id}", headers=headers).json()["user"]
        assert user["role"] == "member"
        assert user["permissions"] == []

    def test_unknown_role_is_404(self, client, admin, headers_for):
        resp = client.get("/api/roles/999", headers=headers_for(admin))
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "message": "Role not found"}


class TestRoleWrites:
    def test_create_normalizes_name(self, client, admin, headers_for):
        resp = client.post(
            "/api/roles",
            json={"name": "  Choir_Lead ", "description": "Choir", "permissions": ["manage:events"]},
            headers=headers_for(admin),
        )
        assert resp.status_code == 201
        assert resp.json()["role"]["name"] == "choir_lead"

    def test_create_rejects_unknown_permission(self, client, admin, headers_for):
        resp = client.post(
            "/api/roles",
            json={"name": "elder", "permissions": ["manage:events", "manage:everything"]},
            headers=headers_for(admin),
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid permissions: manage:everything"

    def test_duplicate_name_conflicts(self, client, admin, headers_for):
        resp = client.post("/api/roles", json={"name": "Pastor"}, headers=headers_for(admin))
        assert resp.status_code == 409

    def test_system_role_cannot_be_renamed_or_deleted(self, client, roles, admin, headers_for):
        headers = headers_for(admin)
        member_id = roles["member"].id
        rename = client.patch(f"/api/roles/{member_id}", json={"name": "congregant"}, headers=headers)
        assert rename.status_code == 400
        assert client.delete(f"/api/roles/{member_id}", headers=headers).status_code == 403

    def test_role_in_use_cannot_be_deleted(self, client, roles, admin, make_user, headers_for):
        make_user("usher@church.test", "usher")
        resp = client.delete(f"/api/roles/{roles['usher'].id}", headers=headers_for(admin))
        assert resp.status_code == 409
        assert "1 user(s) still assigned" in resp.json()["message"]

    def test_unused_custom_role_deleted(self, client, roles, admin, headers_for):
        resp = client.delete(f"/api/roles/{roles['usher'].id}", headers=headers_for(admin))
        assert resp.status_code == 200


class TestAssignment:
    def test_assign_writes_role_change_entry(self, client, roles, admin, member, headers_for, audit_entries):
        resp = client.patch(
            "/api/roles/assign-user",
            json={"user_id": member.id, "role_id": roles["pastor"].id},
            headers=headers_for(admin),
        )
        assert resp.status_code == 200

        (entry,) = audit_entries(action="user.role.change")
        assert entry.actor_id == admin.id
        assert entry.resource_id == str(member.id)
        assert entry.changes == {"old_value": {"role": "member"}, "new_value": {"role": "pastor"}}

    def test_bulk_assign(self, client, db, roles, admin, make_user, headers_for, audit_entries):
        users = [make_user(f"u{i}@church.test", role_name=None) for i in range(3)]
        resp = client.post(
            "/api/roles/bulk-assign",
            json={"user_ids": [u.id for u in users], "role_id": roles["volunteer"].id},
            headers=headers_for(admin),
        )
        assert resp.status_code == 200
        assert resp.json()["modifiedCount"] == 3

        db.expire_all()
        assert all(u.role.name == "volunteer" for u in users)
        (entry,) = audit_entries(action="user.bulk.update")
        assert entry.request_metadata["modified_count"] == 3

    def test_bulk_assign_requires_users(self, client, roles, admin, headers_for):
        resp = client.post(
            "/api/roles/bulk-assign",
            json={"user_ids": [], "role_id": roles["volunteer"].id},
            headers=headers_for(admin),
        )
        assert resp.status_code == 422

    def test_assign_unknown_user(self, client, roles, admin, headers_for):
        resp = client.patch(
            "/api/roles/assign-user",
            json={"user_id": 999, "role_id": roles["pastor"].id},
            headers=headers_for(admin),
        )
        assert resp.status_code == 404
