"""
Weekly data maintenance
- archive completed tasks older than ~6 months
- drop duplicate customer tags
"""

import logging
from datetime import datetime, timezone, timedelta
from typing import Dict, List, Optional

from crm_backend.config import to_iso, TASK_ARCHIVE_DAYS

logger = logging.getLogger("maintenance")


def unique_tags(tags: List[str]) -> List[str]:
    """Duplicates removed, first occurrence order kept."""
    seen = set()
    result = []
    for tag in tags:
        if tag not in seen:
            seen.add(tag)
            result.append(tag)
    return result


async def archive_completed_tasks(db, now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    cutoff = to_iso(now - timedelta(days=TASK_ARCHIVE_DAYS))
    result = await db.tasks.update_many(
        {
            "status": "completed",
            "completedAt": {"$lt": cutoff},
            "archived": {"$ne": True},
        },
        {"$set": {"archived": True, "archivedAt": to_iso(now)}}
    )
    return result.modified_count


async def dedupe_customer_tags(db) -> int:
    customers = await db.customers.find(
        {"tags": {"$exists": True, "$ne": []}}, {"_id": 0, "id": 1, "tags": 1}
    ).to_list(None)

    cleaned = 0
    for customer in customers:
        tags = customer.get("tags") or []
        deduped = unique_tags(tags)
        if len(deduped) != len(tags):
            try:
                await db.customers.update_one({"id": customer["id"]}, {"$set": {"tags": deduped}})
                cleaned += 1
            except Exception as e:
                logger.error(f"[MAINTENANCE] Tag cleanup failed for customer {customer['id']}: {e}")
    return cleaned


async def perform_data_maintenance(db, now: Optional[datetime] = None) -> Dict[str, int]:
    results = {"archived_tasks": 0, "deduped_customers": 0}

    try:
        results["archived_tasks"] = await archive_completed_tasks(db, now)
    except Exception as e:
        logger.error(f"[MAINTENANCE] Task archiving failed: {e}")

    try:
        results["deduped_customers"] = await dedupe_customer_tags(db)
    except Exception as e:
        logger.error(f"[MAINTENANCE] Tag cleanup failed: {e}")

    logger.info(
        f"[MAINTENANCE] archived_tasks={results['archived_tasks']} "
        f"deduped_customers={results['deduped_customers']}"
    )
    return results
