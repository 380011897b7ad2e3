"""
CRM - Audit trail vocabulary
Every entry names what happened (action) to which kind of record (entity type).
Entries without an actor come from the scheduler jobs.
"""

from enum import Enum


class ActivityAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    LOGIN = "login"
    CHANGE_PASSWORD = "change_password"
    STATUS_CHANGE = "status_change"
    AUTO_ASSIGN = "auto_assign"
    RUN_JOB = "run_job"


class EntityType(str, Enum):
    USER = "user"
    CUSTOMER = "customer"
    INTERACTION = "interaction"
    TASK = "task"
    AUTOMATION = "automation"
