"""
Auth and user management endpoints.
Run: pytest crm_backend/tests/test_api_auth_users.py -v
"""

import pytest

from crm_backend.tests.conftest import PASSWORD, auth_h, insert_user, insert_task


# ═══════════════════════════════════════════════════════════════
# 1. AUTH
# ═══════════════════════════════════════════════════════════════

class TestAuth:
    @pytest.mark.asyncio
    async def test_register_creates_agent(self, client):
        r = await client.post("/api/auth/register", json={
            "name": "New Person", "email": "New.Person@Acme.io", "password": "secret123",
        })
        assert r.status_code == 201
        body = r.json()
        assert body["success"] is True
        assert body["data"]["token"]
        assert body["data"]["user"]["role"] == "agent"
        assert body["data"]["user"]["email"] == "new.person@acme.io"
        assert "password" not in body["data"]["user"]

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, client, agent):
        r = await client.post("/api/auth/register", json={
            "name": "Copy", "email": agent["email"], "password": "secret123",
        })
        assert r.status_code == 400
        assert r.json()["errors"][0]["field"] == "email"

    @pytest.mark.asyncio
    async def test_register_validation_errors(self, client):
        r = await client.post("/api/auth/register", json={"name": "", "email": "nope", "password": "123"})
        assert r.status_code == 400
        body = r.json()
        assert body["success"] is False
        fields = {e["field"] for e in body["errors"]}
        assert {"name", "email", "password"} <= fields

    @pytest.mark.asyncio
    async def test_login(self, client, agent):
        r = await client.post("/api/auth/login", json={"email": agent["email"], "password": PASSWORD})
        assert r.status_code == 200
        token = r.json()["data"]["token"]

        me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["data"]["id"] == agent["id"]

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, client, agent):
        r = await client.post("/api/auth/login", json={"email": agent["email"], "password": "wrong-pass"})
        assert r.status_code == 401
        assert r.json() == {"success": False, "message": "Invalid credentials"}

    @pytest.mark.asyncio
    async def test_missing_and_bad_token(self, client):
        assert (await client.get("/api/auth/me")).status_code == 401
        r = await client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert r.status_code == 401

    @pytest.mark.asyncio
    async def test_deactivated_account(self, client, db):
        retired = await insert_user(db, "Retired Agent", "agent", active=False)
        r = await client.get("/api/auth/me", headers=auth_h(retired))
        assert r.status_code == 403


# ═══════════════════════════════════════════════════════════════
# 2. USER MANAGEMENT
# ═══════════════════════════════════════════════════════════════

class TestUsers:
    @pytest.mark.asyncio
    async def test_list_requires_admin_or_manager(self, client, agent, manager):
        assert (await client.get("/api/users", headers=auth_h(agent))).status_code == 403

        r = await client.get("/api/users", headers=auth_h(manager))
        assert r.status_code == 200
        assert r.json()["count"] == 2
        assert all("password" not in u for u in r.json()["data"])

    @pytest.mark.asyncio
    async def test_create_is_admin_only(self, client, admin, manager):
        payload = {"name": "Mia Manager", "email": "mia@acme.io", "password": "secret123", "role": "manager"}

        assert (await client.post("/api/users", json=payload, headers=auth_h(manager))).status_code == 403

        r = await client.post("/api/users", json=payload, headers=auth_h(admin))
        assert r.status_code == 201
        assert r.json()["data"]["role"] == "manager"
        assert set(r.json()["data"]) == {"id", "name", "email", "role", "active", "createdAt", "updatedAt"}

    @pytest.mark.asyncio
    async def test_self_update_but_not_role(self, client, agent, other_agent):
        h = auth_h(agent)

        r = await client.put(f"/api/users/{agent['id']}", json={"name": "Alice A."}, headers=h)
        assert r.status_code == 200
        assert r.json()["data"]["name"] == "Alice A."

        r = await client.put(f"/api/users/{agent['id']}", json={"role": "admin"}, headers=h)
        assert r.status_code == 403

        r = await client.put(f"/api/users/{other_agent['id']}", json={"name": "Hacked"}, headers=h)
        assert r.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_changes_role(self, client, admin, agent):
        r = await client.put(
            f"/api/users/{agent['id']}", json={"role": "manager", "active": False}, headers=auth_h(admin)
        )
        assert r.status_code == 200
        assert r.json()["data"]["role"] == "manager"
        assert r.json()["data"]["active"] is False

    @pytest.mark.asyncio
    async def test_get_missing_user(self, client, admin):
        r = await client.get("/api/users/nope", headers=auth_h(admin))
        assert r.status_code == 404
        assert r.json() == {"success": False, "message": "User not found"}

    @pytest.mark.asyncio
    async def test_change_password(self, client, agent):
        h = auth_h(agent)

        r = await client.put("/api/users/change-password",
                             json={"currentPassword": "wrong", "newPassword": "another1"}, headers=h)
        assert r.status_code == 400

        r = await client.put("/api/users/change-password",
                             json={"currentPassword": PASSWORD, "newPassword": "another1"}, headers=h)
        assert r.status_code == 200

        r = await client.post("/api/auth/login", json={"email": agent["email"], "password": "another1"})
        assert r.status_code == 200

    @pytest.mark.asyncio
    async def test_delete_user_releases_open_tasks(self, client, db, admin, agent):
        open_task = await insert_task(db, "open", agent["id"], "pending")
        done_task = await insert_task(db, "done", agent["id"], "completed")

        r = await client.delete(f"/api/users/{agent['id']}", headers=auth_h(admin))
        assert r.status_code == 200
        assert r.json()["data"]["releasedTasks"] == 1

        assert await db.users.find_one({"id": agent["id"]}) is None
        assert (await db.tasks.find_one({"id": open_task["id"]}))["assignedTo"] is None
        assert (await db.tasks.find_one({"id": done_task["id"]}))["assignedTo"] == agent["id"]

    @pytest.mark.asyncio
    async def test_admin_cannot_delete_self(self, client, admin):
        r = await client.delete(f"/api/users/{admin['id']}", headers=auth_h(admin))
        assert r.status_code == 400

    @pytest.mark.asyncio
    async def test_activity_logs(self, client, agent, manager):
        await client.post("/api/auth/login", json={"email": agent["email"], "password": PASSWORD})

        r = await client.get("/api/users/activity-logs", params={"action": "login"}, headers=auth_h(manager))
        assert r.status_code == 200
        body = r.json()
        assert body["pagination"]["total"] == 1
        assert body["data"][0]["actor"]["id"] == agent["id"]
        assert body["data"][0]["automated"] is False

        r = await client.get("/api/users/activity-logs", params={"actorId": agent["id"], "automated": "true"},
                             headers=auth_h(manager))
        assert r.json()["pagination"]["total"] == 0

        r = await client.get("/api/users/activity-logs", params={"action": "bogus"}, headers=auth_h(manager))
        assert r.status_code == 400
        assert r.json()["errors"][0]["field"] == "action"

        assert (await client.get("/api/users/activity-logs", headers=auth_h(agent))).status_code == 403
