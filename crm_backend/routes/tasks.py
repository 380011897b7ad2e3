"""
CRM - Routes Tasks
completedAt is stamped when a task enters "completed" and cleared when it
leaves it. Tasks created without an assignee wait for the rebalancer.
"""

import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from crm_backend.config import get_db, new_id, to_iso
from crm_backend.models.task import TaskCreate, TaskUpdate, TaskStatus
from crm_backend.models.activity import ActivityAction, EntityType
from crm_backend.services.activity_logger import log_activity
from crm_backend.services.csv_export import export_filename
from crm_backend.services.pdf_export import build_tasks_pdf
from crm_backend.services.permissions import (
    AuthContext, ensure, can_access_customer, can_access_task, scope_task_query,
)
from crm_backend.services.query_filters import TaskFilters, TaskExportFilters
from crm_backend.services.references import populate, populate_one
from crm_backend.routes.auth import get_current_user
from crm_backend.routes.common import bad_request, not_found, list_response, attachment

logger = logging.getLogger("tasks")

router = APIRouter(prefix="/tasks", tags=["Tasks"])

POPULATE = {"user_fields": ("assignedTo", "createdBy"), "customer_fields": ("customer",)}
DATE_FIELDS = ("dueDate", "reminderDate")


def completion_fields(old_status: str, new_status: str, now: datetime) -> dict:
    """completedAt change implied by a status move, if any."""
    if new_status == TaskStatus.COMPLETED.value and old_status != TaskStatus.COMPLETED.value:
        return {"completedAt": to_iso(now)}
    if new_status != TaskStatus.COMPLETED.value:
        return {"completedAt": None}
    return {}


async def _check_customer(db, customer_id: str, auth: AuthContext):
    customer = await db.customers.find_one({"id": customer_id}, {"_id": 0})
    if not customer:
        not_found("Customer")
    ensure(can_access_customer(auth, customer), "Not authorized to create tasks for this customer", auth)


async def _check_assignee(db, user_id: str):
    if user_id and not await db.users.find_one({"id": user_id}, {"_id": 0, "id": 1}):
        bad_request("assignedTo", "Invalid user ID")


async def load_task(db, task_id: str, auth: AuthContext, action: str = "access") -> dict:
    task = await db.tasks.find_one({"id": task_id}, {"_id": 0})
    if not task:
        not_found("Task")
    ensure(can_access_task(auth, task), f"Not authorized to {action} this task", auth)
    return task


# ==================== LIST / EXPORT ====================

@router.get("")
async def list_tasks(
    filters: Annotated[TaskFilters, Query()],
    auth: AuthContext = Depends(get_current_user),
    db=Depends(get_db)
):
    query = scope_task_query(filters.to_query(), auth)
    sort_field, direction = filters.sort_spec()

    total = await db.tasks.count_documents(query)
    tasks = await db.tasks.find(query, {"_id": 0}) \
        .sort(sort_field, direction) \
        .skip(filters.skip) \
        .limit(filters.limit) \
        .to_list(filters.limit)

    await populate(db, tasks, **POPULATE)
    return list_response(tasks, filters, total)


@router.get("/export/pdf")
async def export_tasks_pdf(
    filters: Annotated[TaskExportFilters, Query()],
    auth: AuthContext = Depends(get_current_user),
    db=Depends(get_db)
):
    if filters.taskId:
        query = {"id": filters.taskId}
    else:
        query = filters.to_query()
    query = scope_task_query(query, auth)

    tasks = await db.tasks.find(query, {"_id": 0}).sort("dueDate", 1).to_list(None)
    if not tasks:
        not_found("Task", "No tasks found matching the criteria")

    await populate(db, tasks, **POPULATE)
    pdf = build_tasks_pdf(tasks, detail=bool(filters.taskId))

    if filters.taskId:
        filename = f"task-{filters.taskId}.pdf"
    else:
        filename = export_filename("tasks", "pdf")
    return attachment(pdf, "application/pdf", filename)


# ==================== SINGLE TASK ====================

@router.get("/{task_id}")
async def get_task(task_id: str, auth: AuthContext = Depends(get_current_user), db=Depends(get_db)):
    task = await load_task(db, task_id, auth)
    await populate_one(db, task, **POPULATE)
    return {"success": True, "data": task}


@router.post("", status_code=201)
async def create_task(data: TaskCreate, auth: AuthContext = Depends(get_current_user), db=Depends(get_db)):
    if data.customer:
        await _check_customer(db, data.customer, auth)

    assignee = data.assignedTo
    if auth.is_agent:
        assignee = assignee or auth.user_id
        ensure(assignee == auth.user_id, "Agents can only assign tasks to themselves", auth)
    await _check_assignee(db, assignee)

    now = datetime.now(timezone.utc)
    task = data.model_dump(mode="json")
    for field in DATE_FIELDS:
        value = getattr(data, field)
        task[field] = to_iso(value) if value else None
    task.update({
        "id": new_id(),
        "assignedTo": assignee,
        "createdBy": auth.user_id,
        "completedAt": to_iso(now) if data.status == TaskStatus.COMPLETED else None,
        "archived": False,
        "createdAt": to_iso(now),
        "updatedAt": to_iso(now),
    })

    await db.tasks.insert_one(task)
    task.pop("_id", None)

    await log_activity(
        db, auth.as_actor(), ActivityAction.CREATE, EntityType.TASK, task["id"], task["title"],
        {"assignedTo": assignee, "priority": task["priority"]}
    )
    if assignee is None:
        logger.info(f"[TASKS] Task {task['id']} created unassigned, waiting for rebalance")

    await populate_one(db, task, **POPULATE)
    return {"success": True, "data": task}


@router.put("/{task_id}")
async def update_task(
    task_id: str,
    data: TaskUpdate,
    auth: AuthContext = Depends(get_current_user),
    db=Depends(get_db)
):
    task = await load_task(db, task_id, auth, "update")

    changes = data.model_dump(mode="json", exclude_unset=True)
    for field in ("title", "dueDate", "status", "priority"):
        if field in changes and changes[field] is None:
            bad_request(field, f"{field} cannot be empty")
    for field in DATE_FIELDS:
        if field in changes and changes[field] is not None:
            changes[field] = to_iso(getattr(data, field))

    if "assignedTo" in changes and changes["assignedTo"] != task.get("assignedTo"):
        ensure(not auth.is_agent, "Agents cannot reassign tasks", auth)
        await _check_assignee(db, changes["assignedTo"])
    if changes.get("customer"):
        await _check_customer(db, changes["customer"], auth)

    now = datetime.now(timezone.utc)
    if "status" in changes:
        changes.update(completion_fields(task.get("status"), changes["status"], now))

    if changes:
        changes["updatedAt"] = to_iso(now)
        await db.tasks.update_one({"id": task_id}, {"$set": changes})
        await log_activity(
            db, auth.as_actor(), ActivityAction.UPDATE, EntityType.TASK, task_id, changes.get("title", task.get("title")),
            {"fields": sorted(k for k in changes if k != "updatedAt")}
        )

    updated = await db.tasks.find_one({"id": task_id}, {"_id": 0})
    await populate_one(db, updated, **POPULATE)
    return {"success": True, "data": updated}


@router.delete("/{task_id}")
async def delete_task(task_id: str, auth: AuthContext = Depends(get_current_user), db=Depends(get_db)):
    task = await db.tasks.find_one({"id": task_id}, {"_id": 0})
    if not task:
        not_found("Task")

    if auth.is_agent:
        ensure(task.get("createdBy") == auth.user_id, "Not authorized to delete this task", auth)

    await db.tasks.delete_one({"id": task_id})
    await log_activity(db, auth.as_actor(), ActivityAction.DELETE, EntityType.TASK, task_id, task.get("title"))
    return {"success": True, "data": {}}
