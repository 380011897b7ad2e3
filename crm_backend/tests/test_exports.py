"""
PDF / CSV exports and weekly maintenance.
Run: pytest crm_backend/tests/test_exports.py -v
"""

import csv
import io

import pytest

from crm_backend.services.csv_export import customers_csv, interactions_csv, CUSTOMER_COLUMNS
from crm_backend.services.maintenance import (
    unique_tags, archive_completed_tasks, dedupe_customer_tags, perform_data_maintenance,
)
from crm_backend.services.pdf_export import (
    build_customers_pdf, build_interactions_pdf, build_tasks_pdf, format_date,
)
from crm_backend.tests.conftest import NOW, days_ago, insert_customer, insert_task

ALICE = {"id": "u1", "name": "Alice Agent", "email": "alice@acme.io"}

CUSTOMER = {
    "id": "c1",
    "name": "Acme & Sons <Ltd>",
    "email": "hello@acme.io",
    "phone": "555-0100",
    "company": "Acme",
    "status": "customer",
    "notes": 'Prefers "email", not calls',
    "tags": ["vip"],
    "assignedTo": ALICE,
    "createdBy": ALICE,
    "createdAt": "2024-01-10T09:00:00+00:00",
    "address": {"city": "Springfield", "country": "US"},
    "statusHistory": [
        {"status": "lead", "date": "2024-01-10T09:00:00+00:00", "updatedBy": "u1", "notes": "Initial status"},
        {"status": "customer", "date": "2024-02-01T09:00:00+00:00", "updatedBy": None, "notes": None},
    ],
}

INTERACTION = {
    "id": "i1",
    "customer": {"id": "c1", "name": "Acme & Sons", "company": "Acme"},
    "type": "meeting",
    "summary": "Quarterly review",
    "date": "2024-03-05T14:30:00+00:00",
    "outcome": "positive",
    "duration": 45,
    "createdBy": ALICE,
}

TASK = {
    "id": "t1",
    "title": "Send proposal",
    "status": "pending",
    "priority": "high",
    "dueDate": "2024-03-10T00:00:00+00:00",
    "assignedTo": None,
    "createdBy": ALICE,
    "customer": {"id": "c1", "name": "Acme & Sons"},
}


class TestPdf:
    def test_customer_list_and_detail(self):
        for detail in (False, True):
            pdf = build_customers_pdf([CUSTOMER], detail=detail)
            assert pdf.startswith(b"%PDF")

    def test_many_rows_span_pages(self):
        pdf = build_customers_pdf([CUSTOMER] * 120)
        assert pdf.startswith(b"%PDF")
        # page objects plus the page tree node
        assert pdf.count(b"/Type /Page") >= 3

    def test_interactions_and_tasks(self):
        assert build_interactions_pdf([INTERACTION]).startswith(b"%PDF")
        assert build_interactions_pdf([INTERACTION], detail=True).startswith(b"%PDF")
        assert build_tasks_pdf([TASK]).startswith(b"%PDF")
        assert build_tasks_pdf([TASK], detail=True).startswith(b"%PDF")

    def test_format_date(self):
        assert format_date("2024-03-05T14:30:00+00:00") == "2024-03-05 14:30"
        assert format_date("2024-03-05T14:30:00+00:00", with_time=False) == "2024-03-05"
        assert format_date(None) == "Not set"
        assert format_date("garbage", default="N/A") == "N/A"


class TestCsv:
    def test_customers_csv(self):
        rows = list(csv.reader(io.StringIO(customers_csv([CUSTOMER, {"name": "Bare", "email": "b@acme.io"}]))))
        assert rows[0] == CUSTOMER_COLUMNS
        assert rows[1] == [
            "Acme & Sons <Ltd>", "hello@acme.io", "555-0100", "Acme", "customer",
            'Prefers "email", not calls', "Alice Agent",
        ]
        assert rows[2][-1] == "Unassigned"

    def test_interactions_csv(self):
        rows = list(csv.reader(io.StringIO(interactions_csv([INTERACTION]))))
        assert rows[0] == ["Date", "Customer", "Type", "Summary", "Outcome", "Created By"]
        assert rows[1] == ["2024-03-05", "Acme & Sons", "meeting", "Quarterly review", "positive", "Alice Agent"]


class TestMaintenance:
    def test_unique_tags_keeps_first_occurrence(self):
        assert unique_tags(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]

    @pytest.mark.asyncio
    async def test_archive_completed_tasks(self, db):
        old = await insert_task(db, "old", "u1", "completed", completedAt=days_ago(200))
        recent = await insert_task(db, "recent", "u1", "completed", completedAt=days_ago(30))
        open_task = await insert_task(db, "open", "u1", "pending")

        assert await archive_completed_tasks(db, NOW) == 1

        assert (await db.tasks.find_one({"id": old["id"]}))["archived"] is True
        assert (await db.tasks.find_one({"id": recent["id"]}))["archived"] is False
        assert (await db.tasks.find_one({"id": open_task["id"]}))["archived"] is False

    @pytest.mark.asyncio
    async def test_dedupe_customer_tags(self, db):
        dup = await insert_customer(db, "Dup Co", tags=["vip", "gold", "vip"])
        clean = await insert_customer(db, "Clean Co", tags=["vip"])

        assert await dedupe_customer_tags(db) == 1

        assert (await db.customers.find_one({"id": dup["id"]}))["tags"] == ["vip", "gold"]
        assert (await db.customers.find_one({"id": clean["id"]}))["tags"] == ["vip"]

    @pytest.mark.asyncio
    async def test_perform_data_maintenance(self, db):
        await insert_task(db, "old", "u1", "completed", completedAt=days_ago(400))
        await insert_customer(db, "Dup Co", tags=["a", "a"])

        assert await perform_data_maintenance(db, NOW) == {"archived_tasks": 1, "deduped_customers": 1}
