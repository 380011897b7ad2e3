"""
Brahmand CRM - Seed data (dev/staging only)
Creates the initial admin account and, on request, a few sample customers,
interactions and tasks assigned to it.
Run: python -m crm_backend.scripts.seed_data
Samples: python -m crm_backend.scripts.seed_data --samples
Reset: python -m crm_backend.scripts.seed_data --reset
"""

import asyncio
import sys
from datetime import datetime, timezone, timedelta

from crm_backend.config import client, db as default_db, hash_password, new_id, to_iso
from crm_backend.services.customer_lifecycle import initial_status_fields

ADMIN_EMAIL = "admin@brahmand-crm.com"
ADMIN_PASSWORD = "admin123"

SAMPLE_CUSTOMERS = [
    {
        "name": "Acme Corporation", "email": "contact@acme.com", "phone": "555-123-4567",
        "company": "Acme Corp", "status": "customer", "notes": "Large enterprise client",
        "tags": ["enterprise", "priority"],
    },
    {
        "name": "John Smith", "email": "john@example.com", "phone": "555-987-6543",
        "company": "Smith Consulting", "status": "lead", "notes": "Interested in premium plan",
        "tags": ["consulting", "new"],
    },
    {
        "name": "Global Tech Industries", "email": "info@globaltech.com", "phone": "555-789-0123",
        "company": "Global Tech", "status": "customer", "notes": "Multinational client",
        "tags": ["tech", "enterprise"],
    },
]

# (customer index, type, summary, details, days ago, duration, outcome)
SAMPLE_INTERACTIONS = [
    (0, "call", "Discussed new service requirements",
     "Client is interested in our premium support package", 7, 45, "positive"),
    (1, "email", "Sent pricing information",
     "Detailed pricing breakdown of our services", 3, None, "neutral"),
    (2, "meeting", "Quarterly review meeting",
     "Discussed current projects and future roadmap", 14, 120, "positive"),
]

# (customer index, title, description, due in days, status, priority)
SAMPLE_TASKS = [
    (0, "Follow up with Acme Corp", "Call to discuss implementation timeline", 2, "pending", "high"),
    (1, "Send proposal to John Smith", "Prepare and send detailed service proposal", 5, "in-progress", "medium"),
    (2, "Prepare quarterly report", "Create performance report for Global Tech", 10, "pending", "medium"),
]


async def reset(db):
    """Delete the seeded admin and everything created by it"""
    admin = await db.users.find_one({"email": ADMIN_EMAIL}, {"_id": 0, "id": 1})
    if not admin:
        print("Nothing to reset")
        return
    for name in ("customers", "interactions", "tasks"):
        result = await db[name].delete_many({"createdBy": admin["id"]})
        print(f"Deleted {result.deleted_count} {name}")
    await db.users.delete_one({"id": admin["id"]})
    print(f"Deleted {ADMIN_EMAIL}")


async def seed_admin(db) -> dict:
    """Create the admin account unless it exists; returns it"""
    existing = await db.users.find_one({"email": ADMIN_EMAIL}, {"_id": 0})
    if existing:
        print(f"  Exists: {ADMIN_EMAIL}")
        return existing

    now = to_iso(datetime.now(timezone.utc))
    admin = {
        "id": new_id(),
        "name": "Admin User",
        "email": ADMIN_EMAIL,
        "password": hash_password(ADMIN_PASSWORD),
        "role": "admin",
        "active": True,
        "createdAt": now,
        "updatedAt": now,
    }
    await db.users.insert_one(admin)
    admin.pop("_id", None)
    print(f"  Created: {ADMIN_EMAIL} (password: {ADMIN_PASSWORD}, change it after first login)")
    return admin


async def seed_samples(db, admin: dict, now: datetime = None) -> int:
    """Sample customers/interactions/tasks. Skipped when customers already exist."""
    if await db.customers.count_documents({}) > 0:
        print("  Customers already present, samples skipped")
        return 0

    now = now or datetime.now(timezone.utc)
    customer_ids = []

    for sample in SAMPLE_CUSTOMERS:
        customer = {
            **sample,
            "id": new_id(),
            "assignedTo": admin["id"],
            "createdBy": admin["id"],
            "lastContact": to_iso(now),
            "createdAt": to_iso(now),
            "updatedAt": to_iso(now),
        }
        customer.update(initial_status_fields(sample["status"], admin["id"], now))
        await db.customers.insert_one(customer)
        customer_ids.append(customer["id"])

    for index, type_, summary, details, days, duration, outcome in SAMPLE_INTERACTIONS:
        date = to_iso(now - timedelta(days=days))
        await db.interactions.insert_one({
            "id": new_id(),
            "customer": customer_ids[index],
            "type": type_,
            "summary": summary,
            "details": details,
            "date": date,
            "duration": duration,
            "outcome": outcome,
            "createdBy": admin["id"],
            "createdAt": to_iso(now),
            "updatedAt": to_iso(now),
        })

    for index, title, description, due_in, status, priority in SAMPLE_TASKS:
        await db.tasks.insert_one({
            "id": new_id(),
            "title": title,
            "description": description,
            "dueDate": to_iso(now + timedelta(days=due_in)),
            "status": status,
            "priority": priority,
            "customer": customer_ids[index],
            "assignedTo": admin["id"],
            "createdBy": admin["id"],
            "completedAt": None,
            "archived": False,
            "createdAt": to_iso(now),
            "updatedAt": to_iso(now),
        })

    print(f"  Created {len(SAMPLE_CUSTOMERS)} customers, "
          f"{len(SAMPLE_INTERACTIONS)} interactions, {len(SAMPLE_TASKS)} tasks")
    return len(SAMPLE_CUSTOMERS)


async def main(argv):
    if "--reset" in argv:
        await reset(default_db)
        print("Reset complete. Run without --reset to re-seed.")
    else:
        admin = await seed_admin(default_db)
        if "--samples" in argv:
            await seed_samples(default_db, admin)
        print("\nSeed complete.")

    client.close()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1:]))
