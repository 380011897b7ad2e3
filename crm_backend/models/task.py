"""
CRM - Task model
completedAt is set exactly when status enters "completed" and cleared when it
leaves it. Tasks without an assignee are picked up by the rebalancer.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# Statuses that count towards an agent's workload
ACTIVE_TASK_STATUSES = [TaskStatus.PENDING.value, TaskStatus.IN_PROGRESS.value]


class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    dueDate: datetime
    reminderDate: Optional[datetime] = None
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    customer: Optional[str] = None
    assignedTo: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        return v


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    dueDate: Optional[datetime] = None
    reminderDate: Optional[datetime] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    customer: Optional[str] = None
    assignedTo: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_not_empty(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Title cannot be empty")
        return v.strip() if v else v
