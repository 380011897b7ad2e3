"""
Audit trail

One document per user or scheduler action on a CRM record:
    {id, action, entityType, entityId, entityName, actor, automated, details, createdAt}
actor is {id, name, email} for a request, None for an automated change.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple, List

from crm_backend.config import new_id, to_iso
from crm_backend.models.activity import ActivityAction, EntityType

logger = logging.getLogger("activity_logger")


def build_entry(
    actor: Optional[dict],
    action: ActivityAction,
    entity_type: EntityType,
    entity_id: Optional[str] = None,
    entity_name: Optional[str] = None,
    details: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Audit document; raises ValueError for an unknown action or entity type."""
    action = ActivityAction(action)
    entity_type = EntityType(entity_type)
    summary = None
    if actor:
        summary = {"id": actor.get("id"), "name": actor.get("name", ""), "email": actor.get("email", "")}

    return {
        "id": new_id(),
        "action": action.value,
        "entityType": entity_type.value,
        "entityId": entity_id,
        "entityName": entity_name,
        "actor": summary,
        "automated": actor is None,
        "details": details or {},
        "createdAt": to_iso(now or datetime.now(timezone.utc)),
    }


async def log_activity(db, actor, action, entity_type, entity_id=None, entity_name=None, details=None):
    entry = build_entry(actor, action, entity_type, entity_id, entity_name, details)
    await db.activity_logs.insert_one(entry)
    entry.pop("_id", None)
    return entry


async def log_system_activity(db, action, entity_type, entity_id=None, entity_name=None,
                              details=None, now=None) -> Optional[dict]:
    """
    Entry for a scheduler-driven change. The change is already stored when
    this runs, so a failed audit write is logged and not raised.
    """
    entry = build_entry(None, action, entity_type, entity_id, entity_name, details, now)
    try:
        await db.activity_logs.insert_one(entry)
    except Exception as e:
        logger.error(f"[AUDIT] Could not record {entry['action']} on {entity_type} {entity_id}: {e}")
        return None
    entry.pop("_id", None)
    return entry


async def get_activity_logs(db, filters) -> Tuple[List[dict], int]:
    """(page of entries, total) for an ActivityLogFilters."""
    query = filters.to_query()
    total = await db.activity_logs.count_documents(query)
    logs = await db.activity_logs.find(query, {"_id": 0}) \
        .sort("createdAt", filters.direction) \
        .skip(filters.skip) \
        .limit(filters.limit) \
        .to_list(filters.limit)
    return logs, total
