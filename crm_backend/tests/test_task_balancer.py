"""
Task auto-assignment: greedy least-loaded-first.
Run: pytest crm_backend/tests/test_task_balancer.py -v
"""

import pytest

from crm_backend.services.task_balancer import (
    plan_assignments,
    get_agent_workloads,
    rebalance_unassigned_tasks,
)
from crm_backend.tests.conftest import NOW, days_ago, insert_user, insert_task


class TestPlanAssignments:
    def test_two_tasks_go_to_the_two_least_loaded(self):
        plan, counts = plan_assignments(["t1", "t2"], [("a", 3), ("b", 1), ("c", 1)])

        assert sorted(agent for _, agent in plan) == ["b", "c"]
        assert counts == {"a": 3, "b": 2, "c": 2}

    def test_ties_keep_given_order(self):
        plan, _ = plan_assignments(["t1"], [("x", 0), ("y", 0)])
        assert plan == [("t1", "x")]

    def test_always_picks_current_minimum(self):
        plan, counts = plan_assignments(["t1", "t2", "t3", "t4"], [("a", 0), ("b", 2)])

        assert [agent for _, agent in plan] == ["a", "a", "a", "b"]
        assert counts == {"a": 3, "b": 3}

    def test_no_agents(self):
        assert plan_assignments(["t1"], []) == ([], {})


class TestRebalance:
    @pytest.mark.asyncio
    async def test_workloads_count_only_active_tasks(self, db):
        agent = await insert_user(db, "Wendy Worker", "agent")
        await insert_task(db, "open", agent["id"], "pending")
        await insert_task(db, "doing", agent["id"], "in-progress")
        await insert_task(db, "done", agent["id"], "completed")
        await insert_task(db, "dropped", agent["id"], "cancelled")

        assert await get_agent_workloads(db) == [(agent["id"], 2)]

    @pytest.mark.asyncio
    async def test_inactive_agents_and_other_roles_are_skipped(self, db):
        active = await insert_user(db, "Active Agent", "agent")
        await insert_user(db, "Retired Agent", "agent", active=False)
        await insert_user(db, "Some Manager", "manager")

        workloads = await get_agent_workloads(db)
        assert [agent_id for agent_id, _ in workloads] == [active["id"]]

    @pytest.mark.asyncio
    async def test_rebalance_matches_greedy_plan(self, db):
        busy = await insert_user(db, "Busy Agent", "agent", created_at=days_ago(3))
        free_1 = await insert_user(db, "Free One", "agent", created_at=days_ago(2))
        free_2 = await insert_user(db, "Free Two", "agent", created_at=days_ago(1))
        for i in range(3):
            await insert_task(db, f"busy {i}", busy["id"])
        await insert_task(db, "free one task", free_1["id"])
        await insert_task(db, "free two task", free_2["id"])
        t1 = await insert_task(db, "unassigned 1", None, due_date=days_ago(-1))
        t2 = await insert_task(db, "unassigned 2", None, due_date=days_ago(-2))

        summary = await rebalance_unassigned_tasks(db, NOW)

        assert summary == {"unassigned": 2, "assigned": 2, "failed": 0}
        assignees = {
            (await db.tasks.find_one({"id": t["id"]}))["assignedTo"] for t in (t1, t2)
        }
        assert assignees == {free_1["id"], free_2["id"]}
        counts = dict(await get_agent_workloads(db))
        assert counts == {busy["id"]: 3, free_1["id"]: 2, free_2["id"]: 2}

    @pytest.mark.asyncio
    async def test_auto_assigned_tasks_are_stamped(self, db):
        agent = await insert_user(db, "Solo Agent", "agent")
        task = await insert_task(db, "orphan", None)

        await rebalance_unassigned_tasks(db, NOW)

        stored = await db.tasks.find_one({"id": task["id"]})
        assert stored["assignedTo"] == agent["id"]
        assert stored["autoAssignedAt"] == days_ago(0)

    @pytest.mark.asyncio
    async def test_closed_and_archived_tasks_are_not_handed_out(self, db):
        await insert_user(db, "Solo Agent", "agent")
        done = await insert_task(db, "done", None, "completed")
        archived = await insert_task(db, "old", None, "pending", archived=True)

        summary = await rebalance_unassigned_tasks(db, NOW)

        assert summary["unassigned"] == 0
        assert (await db.tasks.find_one({"id": done["id"]}))["assignedTo"] is None
        assert (await db.tasks.find_one({"id": archived["id"]}))["assignedTo"] is None

    @pytest.mark.asyncio
    async def test_no_agents_leaves_tasks_unassigned(self, db):
        task = await insert_task(db, "orphan", None)

        summary = await rebalance_unassigned_tasks(db, NOW)

        assert summary["assigned"] == 0
        assert (await db.tasks.find_one({"id": task["id"]}))["assignedTo"] is None

    @pytest.mark.asyncio
    async def test_each_assignment_is_audited_without_actor(self, db):
        agent = await insert_user(db, "Solo Agent", "agent")
        task = await insert_task(db, "orphan", None)

        await rebalance_unassigned_tasks(db, NOW)

        entries = await db.activity_logs.find({"action": "auto_assign"}, {"_id": 0}).to_list(None)
        assert len(entries) == 1
        assert entries[0]["entityId"] == task["id"]
        assert entries[0]["entityName"] == "orphan"
        assert entries[0]["actor"] is None
        assert entries[0]["automated"] is True
        assert entries[0]["details"] == {"assignedTo": agent["id"]}
        assert entries[0]["createdAt"] == days_ago(0)
