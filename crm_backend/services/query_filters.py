"""
Typed list filters -> Mongo queries

One filter model per entity. Values are validated by pydantic, searchable
and sortable fields are whitelisted, and free text is regex-escaped before
it reaches the store.
"""

import math
import re
from datetime import datetime, timezone, timedelta
from typing import Optional, List, Dict, Any, Tuple

from pydantic import BaseModel, Field

from crm_backend.config import to_iso
from crm_backend.models.activity import ActivityAction, EntityType
from crm_backend.models.customer import CustomerStatus
from crm_backend.models.interaction import InteractionType, InteractionOutcome
from crm_backend.models.task import TaskStatus, TaskPriority


class InvalidSearchError(ValueError):
    """Unknown search or sort field"""
    pass


# Plain search runs over these
CUSTOMER_TEXT_FIELDS = ["name", "email", "company", "phone", "notes"]

# field:value search may target these
CUSTOMER_SEARCH_FIELDS = {
    "name", "email", "company", "phone", "notes", "status", "tags",
    "address.street", "address.city", "address.state", "address.zipCode", "address.country",
}

CUSTOMER_SORT_FIELDS = {"createdAt", "updatedAt", "name", "email", "company", "status", "lastContact"}
INTERACTION_SORT_FIELDS = {"date", "createdAt", "type", "outcome"}
TASK_SORT_FIELDS = {"dueDate", "createdAt", "priority", "status", "title", "completedAt"}


def _icontains(value: str) -> Dict[str, str]:
    return {"$regex": re.escape(value.strip()), "$options": "i"}


def parse_advanced_search(search: str) -> List[Dict[str, Any]]:
    """
    "email:acme.io,name:john" -> [{"email": ~acme.io}, {"name": ~john}]
    Pairs without a field or value are ignored.
    """
    conditions = []
    for part in search.split(","):
        field, sep, value = part.partition(":")
        field = field.strip()
        value = value.strip()
        if not sep or not field or not value:
            continue
        if field not in CUSTOMER_SEARCH_FIELDS:
            raise InvalidSearchError(
                f"Unknown search field '{field}'. Allowed: {sorted(CUSTOMER_SEARCH_FIELDS)}"
            )
        conditions.append({field: _icontains(value)})
    return conditions


def is_advanced_search(search: str) -> bool:
    """field:value syntax only when the text before the first colon is a searchable field."""
    field, sep, _ = search.partition(":")
    return bool(sep) and field.strip() in CUSTOMER_SEARCH_FIELDS


def build_text_search(search: str) -> Dict[str, Any]:
    if is_advanced_search(search):
        conditions = parse_advanced_search(search)
        if not conditions:
            return {}
        return {"$or": conditions}
    return {"$or": [{field: _icontains(search)} for field in CUSTOMER_TEXT_FIELDS]}


def _date_range(start: Optional[datetime], end: Optional[datetime]) -> Dict[str, str]:
    rng = {}
    if start:
        rng["$gte"] = to_iso(start)
    if end:
        rng["$lte"] = to_iso(end)
    return rng


def _sort_spec(sort: str, order: str, allowed: set) -> Tuple[str, int]:
    if sort not in allowed:
        raise InvalidSearchError(f"Cannot sort by '{sort}'. Allowed: {sorted(allowed)}")
    return sort, 1 if order == "asc" else -1


class Pagination(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=1000)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def describe(self, total: int) -> Dict[str, int]:
        return {
            "total": total,
            "page": self.page,
            "pages": math.ceil(total / self.limit) if total else 0,
        }


# ==================== CUSTOMERS ====================

class CustomerFilters(Pagination):
    status: Optional[CustomerStatus] = None
    search: Optional[str] = None
    company: Optional[str] = None
    tags: Optional[str] = None  # comma separated
    dateFrom: Optional[datetime] = None
    dateTo: Optional[datetime] = None
    assignedTo: Optional[str] = None
    sort: str = "createdAt"
    order: str = Field("desc", pattern="^(asc|desc)$")

    def to_query(self) -> Dict[str, Any]:
        query: Dict[str, Any] = {}

        if self.status:
            query["status"] = self.status.value
        if self.company:
            query["company"] = _icontains(self.company)
        if self.tags:
            tag_list = [t.strip() for t in self.tags.split(",") if t.strip()]
            if tag_list:
                query["tags"] = {"$in": tag_list}
        created = _date_range(self.dateFrom, self.dateTo)
        if created:
            query["createdAt"] = created
        if self.assignedTo:
            query["assignedTo"] = self.assignedTo
        if self.search and self.search.strip():
            text = build_text_search(self.search)
            if text:
                query["$and"] = [text]

        return query

    def sort_spec(self) -> Tuple[str, int]:
        return _sort_spec(self.sort, self.order, CUSTOMER_SORT_FIELDS)


class CustomerExportFilters(CustomerFilters):
    customerId: Optional[str] = None


# ==================== INTERACTIONS ====================

class InteractionFilters(Pagination):
    limit: int = Field(50, ge=1, le=1000)
    customerId: Optional[str] = None
    type: Optional[InteractionType] = None
    outcome: Optional[InteractionOutcome] = None
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    sort: str = "date"
    order: str = Field("desc", pattern="^(asc|desc)$")

    def to_query(self) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if self.customerId:
            query["customer"] = self.customerId
        if self.type:
            query["type"] = self.type.value
        if self.outcome:
            query["outcome"] = self.outcome.value
        dates = _date_range(self.startDate, self.endDate)
        if dates:
            query["date"] = dates
        return query

    def sort_spec(self) -> Tuple[str, int]:
        return _sort_spec(self.sort, self.order, INTERACTION_SORT_FIELDS)


class InteractionExportFilters(InteractionFilters):
    interactionId: Optional[str] = None


# ==================== TASKS ====================

def _day_bounds(day: datetime) -> Tuple[datetime, datetime]:
    if day.tzinfo is None:
        day = day.replace(tzinfo=timezone.utc)
    start = day.replace(hour=0, minute=0, second=0, microsecond=0)
    end = day.replace(hour=23, minute=59, second=59, microsecond=999999)
    return start, end


class TaskFilters(Pagination):
    limit: int = Field(50, ge=1, le=1000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    customerId: Optional[str] = None
    assignedTo: Optional[str] = None
    dueDate: Optional[datetime] = None
    dueBefore: Optional[datetime] = None
    dueAfter: Optional[datetime] = None
    overdue: bool = False
    dueToday: bool = False
    dueThisWeek: bool = False
    sort: str = "dueDate"
    order: str = Field("asc", pattern="^(asc|desc)$")

    def to_query(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        query: Dict[str, Any] = {}

        if self.status:
            query["status"] = self.status.value
        if self.priority:
            query["priority"] = self.priority.value
        if self.customerId:
            query["customer"] = self.customerId
        if self.assignedTo:
            query["assignedTo"] = self.assignedTo

        # A specific day wins over the shortcut flags, which win over the range
        if self.dueDate:
            start, end = _day_bounds(self.dueDate)
            query["dueDate"] = _date_range(start, end)
        elif self.overdue:
            query["dueDate"] = {"$lt": to_iso(now)}
            query["status"] = {"$nin": ["completed", "cancelled"]}
        elif self.dueToday:
            start, end = _day_bounds(now)
            query["dueDate"] = _date_range(start, end)
        elif self.dueThisWeek:
            start, _ = _day_bounds(now)
            # through the coming Sunday
            _, end = _day_bounds(now + timedelta(days=6 - now.weekday()))
            query["dueDate"] = _date_range(start, end)
        elif self.dueBefore or self.dueAfter:
            query["dueDate"] = _date_range(self.dueAfter, self.dueBefore)

        return query

    def sort_spec(self) -> Tuple[str, int]:
        return _sort_spec(self.sort, self.order, TASK_SORT_FIELDS)


class TaskExportFilters(TaskFilters):
    taskId: Optional[str] = None


# ==================== ACTIVITY LOG ====================

class ActivityLogFilters(Pagination):
    limit: int = Field(100, ge=1, le=500)
    actorId: Optional[str] = None
    action: Optional[ActivityAction] = None
    entityType: Optional[EntityType] = None
    entityId: Optional[str] = None
    automated: Optional[bool] = None
    dateFrom: Optional[datetime] = None
    dateTo: Optional[datetime] = None
    order: str = Field("desc", pattern="^(asc|desc)$")

    def to_query(self) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if self.actorId:
            query["actor.id"] = self.actorId
        if self.action:
            query["action"] = self.action.value
        if self.entityType:
            query["entityType"] = self.entityType.value
        if self.entityId:
            query["entityId"] = self.entityId
        if self.automated is not None:
            query["automated"] = self.automated
        created = _date_range(self.dateFrom, self.dateTo)
        if created:
            query["createdAt"] = created
        return query

    @property
    def direction(self) -> int:
        return 1 if self.order == "asc" else -1
