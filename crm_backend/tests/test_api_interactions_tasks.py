"""
Interaction and task endpoints.
Run: pytest crm_backend/tests/test_api_interactions_tasks.py -v
"""

from datetime import datetime, timezone, timedelta

import pytest

from crm_backend.config import to_iso
from crm_backend.tests.conftest import (
    auth_h, days_ago, insert_customer, insert_interaction, insert_task,
)

DUE = "2030-01-01T10:00:00Z"


def from_now(days: int) -> str:
    return to_iso(datetime.now(timezone.utc) + timedelta(days=days))


# ═══════════════════════════════════════════════════════════════
# 1. INTERACTIONS
# ═══════════════════════════════════════════════════════════════

class TestInteractions:
    @pytest.mark.asyncio
    async def test_create_refreshes_last_contact(self, client, db, agent):
        customer = await insert_customer(db, "Acme", "lead", agent["id"], lastContact=days_ago(90))

        r = await client.post("/api/interactions", json={
            "customer": customer["id"], "type": "call", "summary": "Intro call",
            "date": "2024-06-10T09:30:00Z", "outcome": "positive", "duration": 15,
        }, headers=auth_h(agent))
        assert r.status_code == 201
        data = r.json()["data"]
        assert data["customer"]["name"] == "Acme"
        assert data["createdBy"]["id"] == agent["id"]
        assert data["date"] == "2024-06-10T09:30:00+00:00"

        stored = await db.customers.find_one({"id": customer["id"]})
        assert stored["lastContact"] == "2024-06-10T09:30:00+00:00"
        # interactions never move the status themselves
        assert stored["status"] == "lead"

    @pytest.mark.asyncio
    async def test_create_requires_existing_accessible_customer(self, client, db, agent, other_agent):
        theirs = await insert_customer(db, "Theirs", "lead", other_agent["id"])
        payload = {"type": "email", "summary": "hello"}

        r = await client.post("/api/interactions", json={**payload, "customer": "missing"},
                              headers=auth_h(agent))
        assert r.status_code == 404

        r = await client.post("/api/interactions", json={**payload, "customer": theirs["id"]},
                              headers=auth_h(agent))
        assert r.status_code == 403

    @pytest.mark.asyncio
    async def test_invalid_type(self, client, db, agent):
        customer = await insert_customer(db, "Acme", "lead", agent["id"])
        r = await client.post("/api/interactions", json={
            "customer": customer["id"], "type": "fax", "summary": "x",
        }, headers=auth_h(agent))
        assert r.status_code == 400
        assert r.json()["errors"][0]["field"] == "type"

    @pytest.mark.asyncio
    async def test_agent_lists_only_own_customers_interactions(self, client, db, agent, other_agent):
        mine = await insert_customer(db, "Mine", "lead", agent["id"])
        theirs = await insert_customer(db, "Theirs", "lead", other_agent["id"])
        await insert_interaction(db, mine["id"], days_ago(1))
        await insert_interaction(db, mine["id"], days_ago(2), "positive")
        await insert_interaction(db, theirs["id"], days_ago(1))

        r = await client.get("/api/interactions", headers=auth_h(agent))
        assert r.json()["count"] == 2

        r = await client.get("/api/interactions", params={"customerId": theirs["id"]}, headers=auth_h(agent))
        assert r.json()["count"] == 0

        r = await client.get("/api/interactions", params={"outcome": "positive"}, headers=auth_h(agent))
        assert r.json()["count"] == 1

    @pytest.mark.asyncio
    async def test_update_and_delete_rules(self, client, db, agent, other_agent, manager):
        mine = await insert_customer(db, "Mine", "lead", agent["id"])
        # logged by someone else on my customer
        foreign = await insert_interaction(db, mine["id"], days_ago(1), created_by=other_agent["id"])

        r = await client.put(f"/api/interactions/{foreign['id']}", json={"outcome": "negative"},
                             headers=auth_h(agent))
        assert r.status_code == 200
        assert r.json()["data"]["outcome"] == "negative"
        assert r.json()["data"]["summary"] == foreign["summary"]

        r = await client.delete(f"/api/interactions/{foreign['id']}", headers=auth_h(agent))
        assert r.status_code == 403

        r = await client.delete(f"/api/interactions/{foreign['id']}", headers=auth_h(manager))
        assert r.status_code == 200
        assert await db.interactions.find_one({"id": foreign["id"]}) is None

    @pytest.mark.asyncio
    async def test_pdf_export(self, client, db, agent):
        customer = await insert_customer(db, "Acme", "lead", agent["id"])
        interaction = await insert_interaction(db, customer["id"], days_ago(1), created_by=agent["id"])

        r = await client.get("/api/interactions/export/pdf", headers=auth_h(agent))
        assert r.status_code == 200
        assert r.content.startswith(b"%PDF")

        r = await client.get("/api/interactions/export/pdf", params={"interactionId": interaction["id"]},
                             headers=auth_h(agent))
        assert r.headers["content-disposition"].endswith(f"interaction-{interaction['id']}.pdf")

        r = await client.get("/api/interactions/export/pdf", params={"type": "meeting"},
                             headers=auth_h(agent))
        assert r.status_code == 404


# ═══════════════════════════════════════════════════════════════
# 2. TASKS
# ═══════════════════════════════════════════════════════════════

class TestTasks:
    @pytest.mark.asyncio
    async def test_agent_create_defaults_to_self(self, client, agent, other_agent):
        r = await client.post("/api/tasks", json={"title": "Follow up", "dueDate": DUE},
                              headers=auth_h(agent))
        assert r.status_code == 201
        task = r.json()["data"]
        assert task["assignedTo"]["id"] == agent["id"]
        assert task["status"] == "pending"
        assert task["priority"] == "medium"
        assert task["completedAt"] is None
        assert task["dueDate"] == "2030-01-01T10:00:00+00:00"

        r = await client.post("/api/tasks", json={
            "title": "Follow up", "dueDate": DUE, "assignedTo": other_agent["id"],
        }, headers=auth_h(agent))
        assert r.status_code == 403

    @pytest.mark.asyncio
    async def test_manager_may_leave_unassigned(self, client, db, manager):
        r = await client.post("/api/tasks", json={"title": "Pool task", "dueDate": DUE},
                              headers=auth_h(manager))
        assert r.status_code == 201
        assert r.json()["data"]["assignedTo"] is None

    @pytest.mark.asyncio
    async def test_create_checks_customer(self, client, db, agent, other_agent):
        theirs = await insert_customer(db, "Theirs", "lead", other_agent["id"])

        r = await client.post("/api/tasks", json={"title": "x", "dueDate": DUE, "customer": "missing"},
                              headers=auth_h(agent))
        assert r.status_code == 404

        r = await client.post("/api/tasks", json={"title": "x", "dueDate": DUE, "customer": theirs["id"]},
                              headers=auth_h(agent))
        assert r.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_due_date(self, client, agent):
        r = await client.post("/api/tasks", json={"title": "x"}, headers=auth_h(agent))
        assert r.status_code == 400
        assert r.json()["errors"][0]["field"] == "dueDate"

    @pytest.mark.asyncio
    async def test_completed_at_follows_status(self, client, db, agent):
        task = await insert_task(db, "Call", agent["id"])
        h = auth_h(agent)

        r = await client.put(f"/api/tasks/{task['id']}", json={"status": "completed"}, headers=h)
        completed_at = r.json()["data"]["completedAt"]
        assert completed_at

        # staying completed keeps the first stamp
        r = await client.put(f"/api/tasks/{task['id']}", json={"status": "completed"}, headers=h)
        assert r.json()["data"]["completedAt"] == completed_at

        r = await client.put(f"/api/tasks/{task['id']}", json={"status": "pending"}, headers=h)
        assert r.json()["data"]["completedAt"] is None

        r = await client.put(f"/api/tasks/{task['id']}", json={"priority": "high"}, headers=h)
        assert r.json()["data"]["priority"] == "high"
        assert r.json()["data"]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_null_required_field_rejected(self, client, db, agent):
        task = await insert_task(db, "Call", agent["id"])
        r = await client.put(f"/api/tasks/{task['id']}", json={"dueDate": None}, headers=auth_h(agent))
        assert r.status_code == 400

    @pytest.mark.asyncio
    async def test_agent_cannot_reassign_or_touch_others(self, client, db, agent, other_agent, manager):
        mine = await insert_task(db, "Mine", agent["id"])
        theirs = await insert_task(db, "Theirs", other_agent["id"])

        r = await client.put(f"/api/tasks/{mine['id']}", json={"assignedTo": other_agent["id"]},
                             headers=auth_h(agent))
        assert r.status_code == 403

        assert (await client.get(f"/api/tasks/{theirs['id']}", headers=auth_h(agent))).status_code == 403

        r = await client.put(f"/api/tasks/{mine['id']}", json={"assignedTo": other_agent["id"]},
                             headers=auth_h(manager))
        assert r.status_code == 200
        assert r.json()["data"]["assignedTo"]["id"] == other_agent["id"]

    @pytest.mark.asyncio
    async def test_agent_deletes_only_what_they_created(self, client, db, agent, manager):
        own = await insert_task(db, "Own", agent["id"])
        handed = await insert_task(db, "Handed over", agent["id"], createdBy=manager["id"])

        assert (await client.delete(f"/api/tasks/{handed['id']}", headers=auth_h(agent))).status_code == 403
        assert (await client.delete(f"/api/tasks/{own['id']}", headers=auth_h(agent))).status_code == 200

    @pytest.mark.asyncio
    async def test_list_scope_and_overdue(self, client, db, agent, other_agent):
        await insert_task(db, "Late", agent["id"], due_date=from_now(-2))
        await insert_task(db, "Late but done", agent["id"], "completed", due_date=from_now(-2))
        await insert_task(db, "Upcoming", agent["id"], due_date=from_now(5))
        await insert_task(db, "Not mine", other_agent["id"], due_date=from_now(-2))

        r = await client.get("/api/tasks", headers=auth_h(agent))
        body = r.json()
        assert body["count"] == 3
        # earliest due first
        assert body["data"][-1]["title"] == "Upcoming"

        r = await client.get("/api/tasks", params={"overdue": "true"}, headers=auth_h(agent))
        assert [t["title"] for t in r.json()["data"]] == ["Late"]

    @pytest.mark.asyncio
    async def test_pdf_export(self, client, db, agent):
        task = await insert_task(db, "Call", agent["id"])

        r = await client.get("/api/tasks/export/pdf", params={"taskId": task["id"]}, headers=auth_h(agent))
        assert r.status_code == 200
        assert r.content.startswith(b"%PDF")
        assert r.headers["content-disposition"] == f"attachment; filename=task-{task['id']}.pdf"

        r = await client.get("/api/tasks/export/pdf", params={"status": "cancelled"}, headers=auth_h(agent))
        assert r.status_code == 404
