"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Models Package                                                        ║
║                                                                              ║
║  Re-exports every request model and enum                                     ║
║  from crm_backend.models import CustomerCreate, TaskStatus, etc.             ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Users / auth
from .auth import (
    UserRole,
    UserLogin,
    UserRegister,
    UserCreate,
    UserUpdate,
    PasswordChange,
    UserResponse,
)

# Audit trail
from .activity import (
    ActivityAction,
    EntityType,
)

# Customers
from .customer import (
    CustomerStatus,
    VALID_CUSTOMER_STATUSES,
    Address,
    CustomerCreate,
    CustomerUpdate,
)

# Interactions
from .interaction import (
    InteractionType,
    InteractionOutcome,
    InteractionCreate,
    InteractionUpdate,
)

# Tasks
from .task import (
    TaskStatus,
    TaskPriority,
    ACTIVE_TASK_STATUSES,
    TaskCreate,
    TaskUpdate,
)

# Scoring endpoints
from .ai import (
    SentimentRequest,
    ChatbotRequest,
    EmailResponseRequest,
)

__all__ = [
    # Users
    "UserRole",
    "UserLogin",
    "UserRegister",
    "UserCreate",
    "UserUpdate",
    "PasswordChange",
    "UserResponse",
    # Audit trail
    "ActivityAction",
    "EntityType",
    # Customers
    "CustomerStatus",
    "VALID_CUSTOMER_STATUSES",
    "Address",
    "CustomerCreate",
    "CustomerUpdate",
    # Interactions
    "InteractionType",
    "InteractionOutcome",
    "InteractionCreate",
    "InteractionUpdate",
    # Tasks
    "TaskStatus",
    "TaskPriority",
    "ACTIVE_TASK_STATUSES",
    "TaskCreate",
    "TaskUpdate",
    # Scoring
    "SentimentRequest",
    "ChatbotRequest",
    "EmailResponseRequest",
]
