"""
Audit trail entries: vocabulary, actor summary, scheduler entries.
Run: pytest crm_backend/tests/test_activity_logger.py -v
"""

import pytest

from crm_backend.models.activity import ActivityAction, EntityType
from crm_backend.services.activity_logger import build_entry, log_activity, log_system_activity
from crm_backend.tests.conftest import NOW, days_ago


class BrokenCollection:
    async def insert_one(self, doc):
        raise RuntimeError("write refused")


class BrokenDb:
    activity_logs = BrokenCollection()


class TestBuildEntry:
    def test_actor_is_summarised(self):
        actor = {"id": "u1", "name": "Alice", "email": "alice@acme.io", "password": "hash"}
        entry = build_entry(actor, ActivityAction.UPDATE, EntityType.TASK, "t1", "Call back", {"fields": ["title"]}, NOW)

        assert entry["actor"] == {"id": "u1", "name": "Alice", "email": "alice@acme.io"}
        assert entry["automated"] is False
        assert entry["action"] == "update"
        assert entry["entityType"] == "task"
        assert entry["createdAt"] == days_ago(0)

    def test_plain_strings_are_accepted(self):
        entry = build_entry(None, "auto_assign", "task", now=NOW)
        assert entry["action"] == "auto_assign"
        assert entry["automated"] is True
        assert entry["details"] == {}

    def test_unknown_vocabulary_rejected(self):
        with pytest.raises(ValueError):
            build_entry(None, "archive", EntityType.TASK)
        with pytest.raises(ValueError):
            build_entry(None, ActivityAction.CREATE, "invoice")


class TestLogging:
    @pytest.mark.asyncio
    async def test_log_activity_stores_entry(self, db):
        entry = await log_activity(db, {"id": "u1"}, ActivityAction.LOGIN, EntityType.USER, "u1", "a@acme.io")

        stored = await db.activity_logs.find_one({"id": entry["id"]}, {"_id": 0})
        assert stored == entry

    @pytest.mark.asyncio
    async def test_failed_system_entry_is_not_raised(self):
        entry = await log_system_activity(BrokenDb(), ActivityAction.STATUS_CHANGE, EntityType.CUSTOMER, "c1", now=NOW)
        assert entry is None
