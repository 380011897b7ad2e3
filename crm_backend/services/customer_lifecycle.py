"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Customer Lifecycle                                                    ║
║                                                                              ║
║  States: lead, customer, inactive. No terminal state.                        ║
║                                                                              ║
║  ONLY THIS MODULE writes customer.status                                     ║
║  - status and the new statusHistory entry go out in ONE update_one           ║
║  - statusHistory is append-only ($push), never rewritten                     ║
║                                                                              ║
║  Automated rules (system actor, updatedBy=None):                             ║
║  - lead with >= 2 positive interactions since creation -> customer           ║
║  - customer with no interaction in 30 days (or none at all) -> inactive      ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any

from crm_backend.config import (
    to_iso,
    INACTIVITY_DAYS,
    LEAD_CONVERSION_POSITIVE_INTERACTIONS,
)
from crm_backend.models.activity import ActivityAction, EntityType
from crm_backend.models.customer import VALID_CUSTOMER_STATUSES
from crm_backend.services.activity_logger import log_system_activity

logger = logging.getLogger("customer_lifecycle")

INITIAL_STATUS_NOTE = "Initial status"
AUTO_CONVERTED_NOTE = "Automatically converted to customer due to positive interactions"
AUTO_INACTIVE_NOTE = f"Automatically marked inactive due to no interaction in {INACTIVITY_DAYS} days"

# Statuses the automated sweep looks at
SWEEP_STATUSES = ["lead", "customer"]

# Manual moves that refresh lastContact
CONTACT_STATUSES = ("lead", "customer")


class InvalidStatusError(ValueError):
    """Raised for a status outside lead/customer/inactive"""
    pass


def validate_status(status: str) -> str:
    if status not in VALID_CUSTOMER_STATUSES:
        raise InvalidStatusError(
            f"Invalid status '{status}'. Valid statuses: {VALID_CUSTOMER_STATUSES}"
        )
    return status


def build_history_entry(
    status: str,
    actor_id: Optional[str],
    note: Optional[str],
    now: datetime
) -> Dict[str, Any]:
    return {
        "status": validate_status(status),
        "date": to_iso(now),
        "updatedBy": actor_id,
        "notes": note,
    }


def initial_status_fields(status: str, creator_id: str, now: datetime) -> Dict[str, Any]:
    """status + first history entry for a newly created customer."""
    return {
        "status": validate_status(status),
        "statusHistory": [build_history_entry(status, creator_id, INITIAL_STATUS_NOTE, now)],
    }


def current_status(customer: dict) -> str:
    """The status of the latest history entry; legacy docs fall back to status."""
    history = customer.get("statusHistory") or []
    if history:
        return history[-1]["status"]
    return customer.get("status", "lead")


def describe_change(old_status: str, new_status: str) -> str:
    return f"Status changed from {old_status} to {new_status}"


# ════════════════════════════════════════════════════════════════════════════
# THE ONLY WRITE PATH FOR status
# ════════════════════════════════════════════════════════════════════════════

async def record_status_change(
    db,
    customer: dict,
    new_status: str,
    actor_id: Optional[str],
    note: Optional[str] = None,
    extra_set: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
    expected_status: Optional[str] = None,
) -> bool:
    """
    Append one history entry and set status in a single document update.

    Args:
        customer: the customer document as currently loaded
        new_status: target status
        actor_id: acting user id, None for automated transitions
        note: history note, generated from the transition when absent
        extra_set: other fields to merge in the same write (partial update)
        expected_status: when given, the write only applies if the stored
            status still equals it (the automated sweep uses this)

    Returns:
        True if the document was written
    """
    validate_status(new_status)
    now = now or datetime.now(timezone.utc)
    old_status = current_status(customer)

    entry = build_history_entry(
        new_status,
        actor_id,
        note or describe_change(old_status, new_status),
        now
    )

    set_fields = dict(extra_set or {})
    set_fields["status"] = new_status
    set_fields["updatedAt"] = to_iso(now)
    if new_status in CONTACT_STATUSES and actor_id is not None:
        set_fields["lastContact"] = to_iso(now)

    match = {"id": customer["id"]}
    if expected_status is not None:
        match["status"] = expected_status

    result = await db.customers.update_one(
        match,
        {"$set": set_fields, "$push": {"statusHistory": entry}}
    )

    if result.matched_count == 0:
        return False

    logger.info(
        f"[LIFECYCLE] Customer {customer['id']} {old_status} -> {new_status} "
        f"by={actor_id or 'system'}"
    )
    return True


# ════════════════════════════════════════════════════════════════════════════
# AUTOMATED RULES
# ════════════════════════════════════════════════════════════════════════════

async def should_convert_lead(db, customer: dict) -> bool:
    """>= 2 positive interactions dated at or after the customer's creation."""
    query = {"customer": customer["id"], "outcome": "positive"}
    created_at = customer.get("createdAt")
    if created_at:
        query["date"] = {"$gte": created_at}
    positive = await db.interactions.count_documents(query)
    return positive >= LEAD_CONVERSION_POSITIVE_INTERACTIONS


def _automated_conversion_date(customer: dict) -> Optional[str]:
    history = customer.get("statusHistory") or []
    if history:
        last = history[-1]
        if last.get("status") == "customer" and last.get("updatedBy") is None:
            return last.get("date")
    return None


async def should_mark_inactive(db, customer: dict, now: datetime) -> bool:
    """
    Latest interaction older than the inactivity window, or none at all.
    A customer converted by the sweep gets a fresh window from its conversion.
    """
    cutoff = to_iso(now - timedelta(days=INACTIVITY_DAYS))

    converted_at = _automated_conversion_date(customer)
    if converted_at and converted_at >= cutoff:
        return False

    latest = await db.interactions.find(
        {"customer": customer["id"]}, {"_id": 0, "date": 1}
    ).sort("date", -1).limit(1).to_list(1)

    if not latest or not latest[0].get("date"):
        return True

    return latest[0]["date"] < cutoff


async def evaluate_automated_transitions(db, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    One sweep over lead/customer records. Each customer is handled on its
    own: a failure is logged and the sweep moves on; the next scheduled run
    picks up whatever was left.
    """
    now = now or datetime.now(timezone.utc)
    results = {"evaluated": 0, "converted": 0, "inactivated": 0, "failed": 0}

    customers = await db.customers.find(
        {"status": {"$in": SWEEP_STATUSES}}, {"_id": 0}
    ).to_list(None)

    for customer in customers:
        results["evaluated"] += 1
        try:
            status = customer.get("status")

            if status == "lead" and await should_convert_lead(db, customer):
                if await record_status_change(
                    db, customer, "customer", None,
                    note=AUTO_CONVERTED_NOTE, now=now, expected_status="lead"
                ):
                    results["converted"] += 1
                    await log_system_activity(
                        db, ActivityAction.STATUS_CHANGE, EntityType.CUSTOMER, customer["id"],
                        customer.get("name"), {"from": "lead", "to": "customer"}, now
                    )

            elif status == "customer" and await should_mark_inactive(db, customer, now):
                if await record_status_change(
                    db, customer, "inactive", None,
                    note=AUTO_INACTIVE_NOTE, now=now, expected_status="customer"
                ):
                    results["inactivated"] += 1
                    await log_system_activity(
                        db, ActivityAction.STATUS_CHANGE, EntityType.CUSTOMER, customer["id"],
                        customer.get("name"), {"from": "customer", "to": "inactive"}, now
                    )

        except Exception as e:
            results["failed"] += 1
            logger.error(f"[LIFECYCLE] Sweep failed for customer {customer.get('id')}: {e}")

    logger.info(
        f"[LIFECYCLE] Sweep done: evaluated={results['evaluated']} "
        f"converted={results['converted']} inactivated={results['inactivated']} "
        f"failed={results['failed']}"
    )
    return results
