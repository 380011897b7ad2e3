"""
Shared fixtures: in-memory Mongo (mongomock-motor), an httpx client bound to
the app with get_db overridden, and users of every role with their tokens.
"""

from datetime import datetime, timezone, timedelta

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from mongomock_motor import AsyncMongoMockClient

from crm_backend.config import get_db, hash_password, create_access_token, new_id, to_iso
from crm_backend.server import app

PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def days_ago(days: int, now: datetime = NOW) -> str:
    return to_iso(now - timedelta(days=days))


async def insert_user(db, name: str, role: str, active: bool = True, created_at: str = None) -> dict:
    user = {
        "id": new_id(),
        "name": name,
        "email": f"{name.lower().replace(' ', '.')}@acme.io",
        "password": PASSWORD_HASH,
        "role": role,
        "active": active,
        "createdAt": created_at or to_iso(datetime.now(timezone.utc)),
        "updatedAt": to_iso(datetime.now(timezone.utc)),
    }
    await db.users.insert_one(user)
    user.pop("_id", None)
    return user


async def insert_customer(db, name: str, status: str = "lead", assigned_to: str = None,
                          created_at: str = None, **fields) -> dict:
    created_at = created_at or days_ago(60)
    customer = {
        "id": new_id(),
        "name": name,
        "email": f"{name.lower().replace(' ', '.')}@client.io",
        "status": status,
        "statusHistory": [
            {"status": status, "date": created_at, "updatedBy": assigned_to, "notes": "Initial status"}
        ],
        "tags": [],
        "assignedTo": assigned_to,
        "createdBy": assigned_to,
        "createdAt": created_at,
        "updatedAt": created_at,
    }
    customer.update(fields)
    await db.customers.insert_one(customer)
    customer.pop("_id", None)
    return customer


async def insert_interaction(db, customer_id: str, date: str, outcome: str = "neutral",
                             created_by: str = None, type: str = "call") -> dict:
    interaction = {
        "id": new_id(),
        "customer": customer_id,
        "type": type,
        "summary": f"{type} with customer",
        "date": date,
        "outcome": outcome,
        "createdBy": created_by,
        "createdAt": date,
        "updatedAt": date,
    }
    await db.interactions.insert_one(interaction)
    interaction.pop("_id", None)
    return interaction


async def insert_task(db, title: str, assigned_to: str = None, status: str = "pending",
                      due_date: str = None, **fields) -> dict:
    task = {
        "id": new_id(),
        "title": title,
        "status": status,
        "priority": "medium",
        "dueDate": due_date or days_ago(-7),
        "assignedTo": assigned_to,
        "createdBy": assigned_to,
        "customer": None,
        "completedAt": None,
        "archived": False,
        "createdAt": days_ago(10),
        "updatedAt": days_ago(10),
    }
    task.update(fields)
    await db.tasks.insert_one(task)
    task.pop("_id", None)
    return task


def auth_h(user: dict) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user['id'], user['role'])}"}


@pytest_asyncio.fixture
async def db():
    client = AsyncMongoMockClient()
    yield client["crm_test"]


@pytest_asyncio.fixture
async def client(db):
    app.dependency_overrides[get_db] = lambda: db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin(db):
    return await insert_user(db, "Ada Admin", "admin")


@pytest_asyncio.fixture
async def manager(db):
    return await insert_user(db, "Max Manager", "manager")


@pytest_asyncio.fixture
async def agent(db):
    return await insert_user(db, "Alice Agent", "agent")


@pytest_asyncio.fixture
async def other_agent(db):
    return await insert_user(db, "Bob Agent", "agent")
