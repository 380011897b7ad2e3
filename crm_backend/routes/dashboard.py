"""
CRM - Routes Dashboard
Aggregated counts, recent activity, chart series, conversion and automation
statistics, CSV downloads. Every figure is computed inside the caller's scope.
"""

import logging
from datetime import datetime, timezone, timedelta
from typing import Optional, List, Tuple, Dict, Any

from fastapi import APIRouter, Depends

from crm_backend.config import get_db, to_iso, parse_iso
from crm_backend.models.customer import CustomerStatus, VALID_CUSTOMER_STATUSES
from crm_backend.models.interaction import InteractionType
from crm_backend.services.csv_export import customers_csv, interactions_csv
from crm_backend.services.permissions import (
    AuthContext, scope_customer_query, scope_task_query, scope_interaction_query,
)
from crm_backend.services.references import populate
from crm_backend.services.task_balancer import get_agent_workloads
from crm_backend.routes.auth import get_current_user
from crm_backend.routes.common import attachment

logger = logging.getLogger("dashboard")

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])

RECENT_LIMIT = 5
ACTIVITY_LIMIT = 20
AUTOMATION_WINDOW_DAYS = 30


async def scoped_queries(db, auth: AuthContext) -> Tuple[dict, dict, dict]:
    """(customer, interaction, task) base queries for the caller"""
    return (
        scope_customer_query({}, auth),
        await scope_interaction_query(db, {}, auth),
        scope_task_query({}, auth),
    )


def month_windows(now: datetime, count: int = 6) -> List[Tuple[datetime, datetime]]:
    """[start, next start) of the last ``count`` calendar months, oldest first."""
    windows = []
    for i in range(count - 1, -1, -1):
        y, m = divmod(now.month - 1 - i, 12)
        ny, nm = divmod(now.month - i, 12)
        windows.append((
            datetime(now.year + y, m + 1, 1, tzinfo=timezone.utc),
            datetime(now.year + ny, nm + 1, 1, tzinfo=timezone.utc),
        ))
    return windows


def month_label(start: datetime) -> str:
    return start.strftime("%b %Y")


def _in_window(value: Optional[str], start: datetime, end: datetime) -> bool:
    return bool(value) and to_iso(start) <= value < to_iso(end)


# ==================== PURE AGGREGATES ====================

def conversion_stats(customers: List[dict], now: datetime) -> Dict[str, Any]:
    """Conversion figures from customer docs (status, statusHistory, createdAt)."""
    total_leads = sum(1 for c in customers if c.get("status") == "lead")
    total_customers = sum(1 for c in customers if c.get("status") == "customer")

    rate = 0
    if total_leads > 0:
        rate = round(total_customers / (total_leads + total_customers) * 100, 2)

    total_days = 0
    converted = 0
    for c in customers:
        if c.get("status") != "customer":
            continue
        history = c.get("statusHistory") or []
        lead_dates = [h["date"] for h in history if h.get("status") == "lead" and h.get("date")]
        customer_dates = [h["date"] for h in history if h.get("status") == "customer" and h.get("date")]
        if not lead_dates or not customer_dates:
            continue
        lead_at = parse_iso(max(lead_dates))
        customer_at = parse_iso(min(customer_dates))
        if customer_at > lead_at:
            total_days += round((customer_at - lead_at).total_seconds() / 86400)
            converted += 1

    monthly = []
    for start, end in month_windows(now):
        new_customers = sum(
            1 for c in customers
            if c.get("status") == "customer" and any(
                h.get("status") == "customer" and _in_window(h.get("date"), start, end)
                for h in c.get("statusHistory") or []
            )
        )
        new_leads = sum(
            1 for c in customers
            if c.get("status") == "lead" and _in_window(c.get("createdAt"), start, end)
        )
        monthly_rate = 0
        if new_leads > 0:
            monthly_rate = round(new_customers / (new_leads + new_customers) * 100, 2)
        monthly.append({
            "month": month_label(start),
            "rate": monthly_rate,
            "leads": new_leads,
            "customers": new_customers,
        })

    return {
        "conversionRate": rate,
        "avgDaysToConvert": round(total_days / converted) if converted else 0,
        "monthlyConversions": monthly,
        "totalLeads": total_leads,
        "totalCustomers": total_customers,
    }


def automated_status_changes(customers: List[dict], since: str) -> List[Dict[str, Any]]:
    """History entries without an actor since ``since``, counted per status."""
    counts: Dict[str, int] = {}
    for c in customers:
        for entry in c.get("statusHistory") or []:
            if entry.get("updatedBy") is None and (entry.get("date") or "") >= since:
                counts[entry["status"]] = counts.get(entry["status"], 0) + 1
    return [{"_id": status, "count": counts[status]} for status in sorted(counts)]


def merge_activity(customers: List[dict], interactions: List[dict], tasks: List[dict]) -> List[dict]:
    activity = [
        {"type": "customer", "action": "created", "date": c.get("createdAt"), "data": c}
        for c in customers
    ]
    activity += [
        {"type": "interaction", "action": "logged", "date": i.get("date"), "data": i}
        for i in interactions
    ]
    for t in tasks:
        completed = t.get("status") == "completed"
        activity.append({
            "type": "task",
            "action": "completed" if completed else "created",
            "date": t.get("completedAt") if completed else t.get("createdAt"),
            "data": t,
        })
    activity.sort(key=lambda a: a["date"] or "", reverse=True)
    return activity[:ACTIVITY_LIMIT]


# ==================== ROUTES ====================

@router.get("/stats")
async def get_stats(auth: AuthContext = Depends(get_current_user), db=Depends(get_db)):
    customer_q, interaction_q, task_q = await scoped_queries(db, auth)
    now = to_iso(datetime.now(timezone.utc))

    customers = {s: await db.customers.count_documents({**customer_q, "status": s})
                 for s in VALID_CUSTOMER_STATUSES}
    tasks = {
        "pending": await db.tasks.count_documents({**task_q, "status": "pending"}),
        "inProgress": await db.tasks.count_documents({**task_q, "status": "in-progress"}),
        "completed": await db.tasks.count_documents({**task_q, "status": "completed"}),
    }
    interactions = {t: await db.interactions.count_documents({**interaction_q, "type": t})
                    for t in ("email", "call", "meeting")}

    recent_customers = await db.customers.find(customer_q, {"_id": 0, "statusHistory": 0}) \
        .sort("createdAt", -1).limit(RECENT_LIMIT).to_list(RECENT_LIMIT)
    recent_interactions = await db.interactions.find(interaction_q, {"_id": 0}) \
        .sort("date", -1).limit(RECENT_LIMIT).to_list(RECENT_LIMIT)
    upcoming = await db.tasks.find(
        {**task_q, "status": {"$ne": "completed"}, "dueDate": {"$gte": now}}, {"_id": 0}
    ).sort("dueDate", 1).limit(RECENT_LIMIT).to_list(RECENT_LIMIT)
    overdue = await db.tasks.find(
        {**task_q, "status": {"$ne": "completed"}, "dueDate": {"$lt": now}}, {"_id": 0}
    ).sort("dueDate", 1).limit(RECENT_LIMIT).to_list(RECENT_LIMIT)

    await populate(db, recent_customers, user_fields=("assignedTo",))
    await populate(db, recent_interactions, user_fields=("createdBy",), customer_fields=("customer",))
    await populate(db, upcoming + overdue, user_fields=("assignedTo",), customer_fields=("customer",))

    return {
        "success": True,
        "data": {
            "counts": {
                "customers": {"total": sum(customers.values()), **customers},
                "tasks": {"total": sum(tasks.values()), **tasks},
                "interactions": {"total": sum(interactions.values()), **interactions},
            },
            "recent": {
                "customers": recent_customers,
                "interactions": recent_interactions,
                "upcomingTasks": upcoming,
                "overdueTasks": overdue,
            }
        }
    }


@router.get("/activity")
async def get_activity(auth: AuthContext = Depends(get_current_user), db=Depends(get_db)):
    customer_q, interaction_q, task_q = await scoped_queries(db, auth)

    customers = await db.customers.find(customer_q, {"_id": 0, "statusHistory": 0}) \
        .sort("createdAt", -1).limit(10).to_list(10)
    interactions = await db.interactions.find(interaction_q, {"_id": 0}) \
        .sort("date", -1).limit(10).to_list(10)
    tasks = await db.tasks.find(task_q, {"_id": 0}).sort("createdAt", -1).limit(10).to_list(10)

    await populate(db, customers)
    await populate(db, interactions, user_fields=("createdBy",), customer_fields=("customer",))
    await populate(db, tasks, customer_fields=("customer",))

    return {"success": True, "data": merge_activity(customers, interactions, tasks)}


@router.get("/charts")
async def get_charts(auth: AuthContext = Depends(get_current_user), db=Depends(get_db)):
    customer_q, interaction_q, _ = await scoped_queries(db, auth)
    now = datetime.now(timezone.utc)

    customer_status = [
        {"status": s, "count": await db.customers.count_documents({**customer_q, "status": s})}
        for s in VALID_CUSTOMER_STATUSES
    ]
    interaction_types = [
        {"type": t.value, "count": await db.interactions.count_documents({**interaction_q, "type": t.value})}
        for t in InteractionType
    ]

    monthly = []
    for start, end in month_windows(now):
        count = await db.interactions.count_documents({
            **interaction_q, "date": {"$gte": to_iso(start), "$lt": to_iso(end)}
        })
        monthly.append({"month": month_label(start), "count": count})

    # Leads grouped by creation month, oldest six months that have any
    leads = await db.customers.find(
        {**customer_q, "status": CustomerStatus.LEAD.value}, {"_id": 0, "createdAt": 1}
    ).to_list(None)
    per_month: Dict[str, int] = {}
    for lead in leads:
        key = (lead.get("createdAt") or "")[:7]
        if key:
            per_month[key] = per_month.get(key, 0) + 1
    lead_distribution = [
        {"month": month_label(datetime.strptime(key, "%Y-%m")), "count": per_month[key]}
        for key in sorted(per_month)[:6]
    ]

    return {
        "success": True,
        "data": {
            "customerStatus": customer_status,
            "interactionTypes": interaction_types,
            "monthlyInteractions": monthly,
            "leadDistribution": lead_distribution,
        }
    }


@router.get("/conversion-stats")
async def get_conversion_stats(auth: AuthContext = Depends(get_current_user), db=Depends(get_db)):
    customer_q = scope_customer_query({}, auth)
    customers = await db.customers.find(
        customer_q, {"_id": 0, "status": 1, "statusHistory": 1, "createdAt": 1}
    ).to_list(None)
    return {"success": True, "data": conversion_stats(customers, datetime.now(timezone.utc))}


@router.get("/automation-stats")
async def get_automation_stats(auth: AuthContext = Depends(get_current_user), db=Depends(get_db)):
    customer_q, _, task_q = await scoped_queries(db, auth)
    since = to_iso(datetime.now(timezone.utc) - timedelta(days=AUTOMATION_WINDOW_DAYS))

    auto_assigned = await db.tasks.count_documents({**task_q, "autoAssignedAt": {"$gte": since}})
    archived = await db.tasks.count_documents({**task_q, "archived": True})

    customers = await db.customers.find(customer_q, {"_id": 0, "statusHistory": 1}).to_list(None)

    workloads = await get_agent_workloads(db)
    if auth.is_agent:
        workloads = [w for w in workloads if w[0] == auth.user_id]
    agents = await db.users.find(
        {"id": {"$in": [agent_id for agent_id, _ in workloads]}}, {"_id": 0, "id": 1, "name": 1}
    ).to_list(None)
    names = {a["id"]: a.get("name", "") for a in agents}

    return {
        "success": True,
        "data": {
            "autoAssignedTasks": auto_assigned,
            "archivedTasks": archived,
            "automatedStatusChanges": automated_status_changes(customers, since),
            "workloadDistribution": [
                {"agentName": names.get(agent_id, "Unknown"), "taskCount": count}
                for agent_id, count in workloads
            ],
        }
    }


# ==================== CSV ====================

@router.get("/export/customers")
async def export_customers_csv(
    status: Optional[CustomerStatus] = None,
    auth: AuthContext = Depends(get_current_user),
    db=Depends(get_db)
):
    query = {"status": status.value} if status else {}
    query = scope_customer_query(query, auth)

    customers = await db.customers.find(query, {"_id": 0}).to_list(None)
    await populate(db, customers, user_fields=("assignedTo",))
    return attachment(customers_csv(customers), "text/csv", "customers.csv")


@router.get("/export/interactions")
async def export_interactions_csv(
    customerId: Optional[str] = None,
    type: Optional[InteractionType] = None,
    startDate: Optional[datetime] = None,
    endDate: Optional[datetime] = None,
    auth: AuthContext = Depends(get_current_user),
    db=Depends(get_db)
):
    query: Dict[str, Any] = {}
    if customerId:
        query["customer"] = customerId
    if type:
        query["type"] = type.value
    if startDate or endDate:
        query["date"] = {}
        if startDate:
            query["date"]["$gte"] = to_iso(startDate)
        if endDate:
            query["date"]["$lte"] = to_iso(endDate)
    query = await scope_interaction_query(db, query, auth)

    interactions = await db.interactions.find(query, {"_id": 0}).sort("date", -1).to_list(None)
    await populate(db, interactions, user_fields=("createdBy",), customer_fields=("customer",))
    return attachment(interactions_csv(interactions), "text/csv", "interactions.csv")
