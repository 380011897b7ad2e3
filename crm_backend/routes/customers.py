"""
CRM - Routes Customers
CRUD, status history and PDF export. Status only changes through
customer_lifecycle.record_status_change.
"""

import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from crm_backend.config import get_db, new_id, to_iso
from crm_backend.models.auth import UserRole
from crm_backend.models.customer import CustomerCreate, CustomerUpdate
from crm_backend.models.activity import ActivityAction, EntityType
from crm_backend.services.activity_logger import log_activity
from crm_backend.services.customer_lifecycle import (
    initial_status_fields,
    record_status_change,
    current_status,
)
from crm_backend.services.pdf_export import build_customers_pdf
from crm_backend.services.csv_export import export_filename
from crm_backend.services.permissions import (
    AuthContext, require_roles, ensure, can_access_customer, scope_customer_query,
)
from crm_backend.services.query_filters import CustomerFilters, CustomerExportFilters
from crm_backend.services.references import populate, populate_one
from crm_backend.routes.auth import get_current_user
from crm_backend.routes.common import bad_request, not_found, list_response, attachment

logger = logging.getLogger("customers")

router = APIRouter(prefix="/customers", tags=["Customers"])

admin_or_manager = require_roles(UserRole.ADMIN, UserRole.MANAGER)


async def _check_assignee(db, user_id: str):
    if user_id and not await db.users.find_one({"id": user_id}, {"_id": 0, "id": 1}):
        bad_request("assignedTo", "Invalid user ID")


async def load_customer(db, customer_id: str, auth: AuthContext, action: str = "access") -> dict:
    """Customer by id; 404 when missing, 403 when outside the caller's scope."""
    customer = await db.customers.find_one({"id": customer_id}, {"_id": 0})
    if not customer:
        not_found("Customer")
    ensure(can_access_customer(auth, customer), f"Not authorized to {action} this customer", auth)
    return customer


# ==================== LIST / EXPORT ====================

@router.get("")
async def list_customers(
    filters: Annotated[CustomerFilters, Query()],
    auth: AuthContext = Depends(get_current_user),
    db=Depends(get_db)
):
    query = scope_customer_query(filters.to_query(), auth)
    sort_field, direction = filters.sort_spec()

    total = await db.customers.count_documents(query)
    customers = await db.customers.find(query, {"_id": 0}) \
        .sort(sort_field, direction) \
        .skip(filters.skip) \
        .limit(filters.limit) \
        .to_list(filters.limit)

    await populate(db, customers, user_fields=("assignedTo",))
    return list_response(customers, filters, total)


@router.get("/export/pdf")
async def export_customers_pdf(
    filters: Annotated[CustomerExportFilters, Query()],
    auth: AuthContext = Depends(get_current_user),
    db=Depends(get_db)
):
    """List report, or a one-customer detail report when customerId is given."""
    if filters.customerId:
        query = {"id": filters.customerId}
    else:
        query = filters.to_query()
    query = scope_customer_query(query, auth)

    customers = await db.customers.find(query, {"_id": 0}).sort("createdAt", -1).to_list(None)
    if not customers:
        not_found("Customer", "No customers found matching the criteria")

    await populate(db, customers)
    pdf = build_customers_pdf(customers, detail=bool(filters.customerId))

    if filters.customerId:
        filename = f"customer-{filters.customerId}.pdf"
    else:
        filename = export_filename("customers", "pdf")
    return attachment(pdf, "application/pdf", filename)


# ==================== SINGLE CUSTOMER ====================

@router.get("/{customer_id}")
async def get_customer(customer_id: str, auth: AuthContext = Depends(get_current_user), db=Depends(get_db)):
    customer = await load_customer(db, customer_id, auth)
    await populate_one(db, customer)
    return {"success": True, "data": customer}


@router.get("/{customer_id}/history")
async def get_status_history(customer_id: str, auth: AuthContext = Depends(get_current_user), db=Depends(get_db)):
    customer = await load_customer(db, customer_id, auth)
    history = customer.get("statusHistory") or []
    await populate(db, history, user_fields=("updatedBy",))
    return {
        "success": True,
        "data": {"status": current_status(customer), "statusHistory": history},
    }


@router.post("", status_code=201)
async def create_customer(data: CustomerCreate, auth: AuthContext = Depends(get_current_user), db=Depends(get_db)):
    assignee = data.assignedTo or auth.user_id
    if auth.is_agent:
        ensure(assignee == auth.user_id, "Agents can only create customers assigned to themselves", auth)
    await _check_assignee(db, assignee)

    now = datetime.now(timezone.utc)
    customer = data.model_dump(mode="json")
    customer.update({
        "id": new_id(),
        "assignedTo": assignee,
        "createdBy": auth.user_id,
        "lastContact": to_iso(now),
        "createdAt": to_iso(now),
        "updatedAt": to_iso(now),
    })
    customer.update(initial_status_fields(data.status.value, auth.user_id, now))

    await db.customers.insert_one(customer)
    customer.pop("_id", None)

    await log_activity(
        db, auth.as_actor(), ActivityAction.CREATE, EntityType.CUSTOMER, customer["id"], customer["name"],
        {"status": customer["status"]}
    )
    return {"success": True, "data": customer}


@router.put("/{customer_id}")
async def update_customer(
    customer_id: str,
    data: CustomerUpdate,
    auth: AuthContext = Depends(get_current_user),
    db=Depends(get_db)
):
    """Partial update. A status change appends one history entry in the same write."""
    customer = await load_customer(db, customer_id, auth, "update")

    changes = data.model_dump(mode="json", exclude_unset=True)
    new_status = changes.pop("status", None)
    status_notes = changes.pop("statusNotes", None)

    if "assignedTo" in changes and changes["assignedTo"] != customer.get("assignedTo"):
        ensure(not auth.is_agent, "Agents cannot reassign customers", auth)
        await _check_assignee(db, changes["assignedTo"])
    if "name" in changes and changes["name"] is None:
        bad_request("name", "Name cannot be empty")
    if "email" in changes and changes["email"] is None:
        bad_request("email", "Please include a valid email")

    now = datetime.now(timezone.utc)

    if new_status and new_status != current_status(customer):
        await record_status_change(
            db, customer, new_status, auth.user_id,
            note=status_notes, extra_set=changes, now=now
        )
        await log_activity(
            db, auth.as_actor(), ActivityAction.STATUS_CHANGE, EntityType.CUSTOMER, customer_id, customer.get("name"),
            {"from": current_status(customer), "to": new_status}
        )
    elif changes:
        changes["updatedAt"] = to_iso(now)
        await db.customers.update_one({"id": customer_id}, {"$set": changes})

    if changes:
        await log_activity(
            db, auth.as_actor(), ActivityAction.UPDATE, EntityType.CUSTOMER, customer_id, customer.get("name"),
            {"fields": sorted(k for k in changes if k != "updatedAt")}
        )

    updated = await db.customers.find_one({"id": customer_id}, {"_id": 0})
    await populate_one(db, updated, user_fields=("assignedTo",))
    return {"success": True, "data": updated}


@router.delete("/{customer_id}")
async def delete_customer(customer_id: str, auth: AuthContext = Depends(admin_or_manager), db=Depends(get_db)):
    """Removes the customer only; its interactions and tasks are left in place."""
    customer = await db.customers.find_one({"id": customer_id}, {"_id": 0})
    if not customer:
        not_found("Customer")

    await db.customers.delete_one({"id": customer_id})
    await log_activity(db, auth.as_actor(), ActivityAction.DELETE, EntityType.CUSTOMER, customer_id, customer.get("name"))
    return {"success": True, "data": {}}
