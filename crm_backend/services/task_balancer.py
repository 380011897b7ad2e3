"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Task auto-assignment                                                  ║
║                                                                              ║
║  Greedy least-loaded-first:                                                  ║
║  - workload = count of pending/in-progress tasks per active agent            ║
║  - each unassigned task goes to the agent with the lowest count              ║
║  - the count is bumped in memory and agents are re-sorted                    ║
║  Ties keep the agent order given (stable sort).                              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from datetime import datetime, timezone
from typing import List, Tuple, Dict, Optional

from crm_backend.config import to_iso
from crm_backend.models.activity import ActivityAction, EntityType
from crm_backend.models.task import ACTIVE_TASK_STATUSES
from crm_backend.services.activity_logger import log_system_activity

logger = logging.getLogger("task_balancer")


def plan_assignments(
    task_ids: List[str],
    workloads: List[Tuple[str, int]]
) -> Tuple[List[Tuple[str, str]], Dict[str, int]]:
    """
    Pure planner.

    Args:
        task_ids: unassigned tasks, in the order they should be handed out
        workloads: (agent_id, active task count) pairs

    Returns:
        ([(task_id, agent_id)], final counts per agent)
    """
    if not workloads:
        return [], {}

    loads = sorted(([agent_id, count] for agent_id, count in workloads), key=lambda w: w[1])
    plan = []

    for task_id in task_ids:
        least_loaded = loads[0]
        plan.append((task_id, least_loaded[0]))
        least_loaded[1] += 1
        loads.sort(key=lambda w: w[1])

    return plan, {agent_id: count for agent_id, count in loads}


async def get_agent_workloads(db) -> List[Tuple[str, int]]:
    agents = await db.users.find(
        {"role": "agent", "active": True}, {"_id": 0, "id": 1}
    ).sort("createdAt", 1).to_list(None)

    workloads = []
    for agent in agents:
        count = await db.tasks.count_documents({
            "assignedTo": agent["id"],
            "status": {"$in": ACTIVE_TASK_STATUSES}
        })
        workloads.append((agent["id"], count))
    return workloads


UNASSIGNED_QUERY = {
    "assignedTo": None,
    "status": {"$in": ACTIVE_TASK_STATUSES},
    "archived": {"$ne": True},
}


async def rebalance_unassigned_tasks(db, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Hand out every unassigned open task. A failed write is logged and
    skipped; the next run retries it since it is still unassigned.
    """
    now = now or datetime.now(timezone.utc)
    results = {"unassigned": 0, "assigned": 0, "failed": 0}

    tasks = await db.tasks.find(
        UNASSIGNED_QUERY, {"_id": 0, "id": 1, "title": 1}
    ).sort("dueDate", 1).to_list(None)
    results["unassigned"] = len(tasks)

    if not tasks:
        return results

    workloads = await get_agent_workloads(db)
    if not workloads:
        logger.warning(f"[TASK_BALANCER] {len(tasks)} unassigned tasks but no active agent")
        return results

    plan, final_counts = plan_assignments([t["id"] for t in tasks], workloads)
    titles = {t["id"]: t.get("title") for t in tasks}

    for task_id, agent_id in plan:
        try:
            result = await db.tasks.update_one(
                {"id": task_id, "assignedTo": None},
                {"$set": {
                    "assignedTo": agent_id,
                    "autoAssignedAt": to_iso(now),
                    "updatedAt": to_iso(now),
                }}
            )
            if result.modified_count:
                results["assigned"] += 1
                await log_system_activity(
                    db, ActivityAction.AUTO_ASSIGN, EntityType.TASK, task_id,
                    titles.get(task_id), {"assignedTo": agent_id}, now
                )
        except Exception as e:
            results["failed"] += 1
            logger.error(f"[TASK_BALANCER] Assignment of task {task_id} to {agent_id} failed: {e}")

    logger.info(
        f"[TASK_BALANCER] unassigned={results['unassigned']} assigned={results['assigned']} "
        f"failed={results['failed']} loads={final_counts}"
    )
    return results
