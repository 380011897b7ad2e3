"""
CRM - Routes Interactions
Logged contacts with a customer. Creating one refreshes the customer's
lastContact; interactions never change a customer's status directly.
"""

import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from crm_backend.config import get_db, new_id, to_iso, now_iso
from crm_backend.models.interaction import InteractionCreate, InteractionUpdate
from crm_backend.models.activity import ActivityAction, EntityType
from crm_backend.services.activity_logger import log_activity
from crm_backend.services.csv_export import export_filename
from crm_backend.services.pdf_export import build_interactions_pdf
from crm_backend.services.permissions import (
    AuthContext, ensure, can_access_customer, scope_interaction_query,
)
from crm_backend.services.query_filters import InteractionFilters, InteractionExportFilters
from crm_backend.services.references import populate, populate_one
from crm_backend.routes.auth import get_current_user
from crm_backend.routes.common import bad_request, not_found, list_response, attachment

logger = logging.getLogger("interactions")

router = APIRouter(prefix="/interactions", tags=["Interactions"])

POPULATE = {"user_fields": ("createdBy",), "customer_fields": ("customer",)}


async def _customer_of(db, interaction: dict) -> dict:
    return await db.customers.find_one({"id": interaction.get("customer")}, {"_id": 0}) or {}


async def load_interaction(db, interaction_id: str, auth: AuthContext) -> dict:
    """Interaction by id; agents only reach those of their own customers."""
    interaction = await db.interactions.find_one({"id": interaction_id}, {"_id": 0})
    if not interaction:
        not_found("Interaction")
    if auth.is_agent:
        customer = await _customer_of(db, interaction)
        ensure(
            customer.get("assignedTo") == auth.user_id,
            "Not authorized to access this interaction", auth
        )
    return interaction


# ==================== LIST / EXPORT ====================

@router.get("")
async def list_interactions(
    filters: Annotated[InteractionFilters, Query()],
    auth: AuthContext = Depends(get_current_user),
    db=Depends(get_db)
):
    query = await scope_interaction_query(db, filters.to_query(), auth)
    sort_field, direction = filters.sort_spec()

    total = await db.interactions.count_documents(query)
    interactions = await db.interactions.find(query, {"_id": 0}) \
        .sort(sort_field, direction) \
        .skip(filters.skip) \
        .limit(filters.limit) \
        .to_list(filters.limit)

    await populate(db, interactions, **POPULATE)
    return list_response(interactions, filters, total)


@router.get("/export/pdf")
async def export_interactions_pdf(
    filters: Annotated[InteractionExportFilters, Query()],
    auth: AuthContext = Depends(get_current_user),
    db=Depends(get_db)
):
    if filters.interactionId:
        query = {"id": filters.interactionId}
    else:
        query = filters.to_query()
    query = await scope_interaction_query(db, query, auth)

    interactions = await db.interactions.find(query, {"_id": 0}).sort("date", -1).to_list(None)
    if not interactions:
        not_found("Interaction", "No interactions found matching the criteria")

    await populate(db, interactions, **POPULATE)
    pdf = build_interactions_pdf(interactions, detail=bool(filters.interactionId))

    if filters.interactionId:
        filename = f"interaction-{filters.interactionId}.pdf"
    else:
        filename = export_filename("interactions", "pdf")
    return attachment(pdf, "application/pdf", filename)


# ==================== SINGLE INTERACTION ====================

@router.get("/{interaction_id}")
async def get_interaction(interaction_id: str, auth: AuthContext = Depends(get_current_user), db=Depends(get_db)):
    interaction = await load_interaction(db, interaction_id, auth)
    await populate_one(db, interaction, **POPULATE)
    return {"success": True, "data": interaction}


@router.post("", status_code=201)
async def create_interaction(
    data: InteractionCreate,
    auth: AuthContext = Depends(get_current_user),
    db=Depends(get_db)
):
    customer = await db.customers.find_one({"id": data.customer}, {"_id": 0})
    if not customer:
        not_found("Customer")
    ensure(
        can_access_customer(auth, customer),
        "Not authorized to add interaction for this customer", auth
    )

    now = datetime.now(timezone.utc)
    interaction = data.model_dump(mode="json")
    interaction.update({
        "id": new_id(),
        "date": to_iso(data.date or now),
        "createdBy": auth.user_id,
        "createdAt": to_iso(now),
        "updatedAt": to_iso(now),
    })

    await db.interactions.insert_one(interaction)
    interaction.pop("_id", None)

    await db.customers.update_one(
        {"id": customer["id"]},
        {"$set": {"lastContact": interaction["date"]}}
    )

    await log_activity(
        db, auth.as_actor(), ActivityAction.CREATE, EntityType.INTERACTION, interaction["id"], interaction["summary"],
        {"customer": customer["id"], "type": interaction["type"], "outcome": interaction["outcome"]}
    )

    await populate_one(db, interaction, **POPULATE)
    return {"success": True, "data": interaction}


@router.put("/{interaction_id}")
async def update_interaction(
    interaction_id: str,
    data: InteractionUpdate,
    auth: AuthContext = Depends(get_current_user),
    db=Depends(get_db)
):
    interaction = await db.interactions.find_one({"id": interaction_id}, {"_id": 0})
    if not interaction:
        not_found("Interaction")

    # Agents: their own interactions, or any on a customer assigned to them
    if auth.is_agent and interaction.get("createdBy") != auth.user_id:
        customer = await _customer_of(db, interaction)
        ensure(
            customer.get("assignedTo") == auth.user_id,
            "Not authorized to update this interaction", auth
        )

    changes = data.model_dump(mode="json", exclude_unset=True)
    for field in ("type", "summary", "outcome"):
        if field in changes and changes[field] is None:
            bad_request(field, f"{field} cannot be empty")
    if "date" in changes and data.date is not None:
        changes["date"] = to_iso(data.date)

    if changes:
        changes["updatedAt"] = now_iso()
        await db.interactions.update_one({"id": interaction_id}, {"$set": changes})
        await log_activity(
            db, auth.as_actor(), ActivityAction.UPDATE, EntityType.INTERACTION, interaction_id,
            changes.get("summary", interaction.get("summary")),
            {"fields": sorted(k for k in changes if k != "updatedAt")}
        )

    updated = await db.interactions.find_one({"id": interaction_id}, {"_id": 0})
    await populate_one(db, updated, **POPULATE)
    return {"success": True, "data": updated}


@router.delete("/{interaction_id}")
async def delete_interaction(interaction_id: str, auth: AuthContext = Depends(get_current_user), db=Depends(get_db)):
    interaction = await db.interactions.find_one({"id": interaction_id}, {"_id": 0})
    if not interaction:
        not_found("Interaction")

    if auth.is_agent:
        ensure(
            interaction.get("createdBy") == auth.user_id,
            "Not authorized to delete this interaction", auth
        )

    await db.interactions.delete_one({"id": interaction_id})
    await log_activity(
        db, auth.as_actor(), ActivityAction.DELETE, EntityType.INTERACTION, interaction_id, interaction.get("summary")
    )
    return {"success": True, "data": {}}
