"""
CRM - Role scoping
Admins and managers see everything. Agents only see records assigned to them;
the scope is applied on top of whatever filters the caller supplied.
"""

import logging
from typing import Optional, List

from fastapi import Depends, HTTPException
from pydantic import BaseModel, ConfigDict

from crm_backend.models.auth import UserRole

logger = logging.getLogger("permissions")


class AuthContext(BaseModel):
    """Current caller, resolved once per request by the auth dependency."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    role: UserRole
    email: str = ""
    name: str = ""

    @property
    def is_agent(self) -> bool:
        return self.role == UserRole.AGENT

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def as_actor(self) -> dict:
        return {"id": self.user_id, "email": self.email, "name": self.name}


# ════════════════════════════════════════════════════════════════════════
# QUERY SCOPING
# ════════════════════════════════════════════════════════════════════════

def scope_customer_query(query: dict, auth: AuthContext) -> dict:
    """Force assignedTo = caller for agents."""
    if auth.is_agent:
        query = dict(query)
        query["assignedTo"] = auth.user_id
    return query


def scope_task_query(query: dict, auth: AuthContext) -> dict:
    if auth.is_agent:
        query = dict(query)
        query["assignedTo"] = auth.user_id
    return query


async def agent_customer_ids(db, auth: AuthContext) -> List[str]:
    docs = await db.customers.find(
        {"assignedTo": auth.user_id}, {"_id": 0, "id": 1}
    ).to_list(None)
    return [d["id"] for d in docs]


async def scope_interaction_query(db, query: dict, auth: AuthContext) -> dict:
    """
    Agents only see interactions of their own customers. A customer filter
    supplied by an agent is intersected with that set.
    """
    if not auth.is_agent:
        return query
    query = dict(query)
    allowed = await agent_customer_ids(db, auth)
    requested = query.get("customer")
    if isinstance(requested, str):
        allowed = [cid for cid in allowed if cid == requested]
    query["customer"] = {"$in": allowed}
    return query


# ════════════════════════════════════════════════════════════════════════
# PER-RECORD ACCESS
# ════════════════════════════════════════════════════════════════════════

def can_access_customer(auth: AuthContext, customer: dict) -> bool:
    if not auth.is_agent:
        return True
    return customer.get("assignedTo") == auth.user_id


def can_access_task(auth: AuthContext, task: dict) -> bool:
    if not auth.is_agent:
        return True
    return task.get("assignedTo") == auth.user_id


def ensure(allowed: bool, message: str, auth: Optional[AuthContext] = None):
    """Raise 403 when ``allowed`` is false."""
    if not allowed:
        if auth is not None:
            logger.warning(f"[PERMISSION_DENIED] user={auth.email} role={auth.role.value} {message}")
        raise HTTPException(status_code=403, detail=message)


# ════════════════════════════════════════════════════════════════════════
# FASTAPI DEPENDENCIES
# ════════════════════════════════════════════════════════════════════════

def require_roles(*roles: UserRole):
    """
    FastAPI dependency factory.
    Usage: auth: AuthContext = Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER))
    """
    from crm_backend.routes.auth import get_current_user

    allowed = {r.value for r in roles}

    async def _check(auth: AuthContext = Depends(get_current_user)):
        if auth.role.value not in allowed:
            logger.warning(
                f"[PERMISSION_DENIED] user={auth.email} "
                f"role={auth.role.value} required={sorted(allowed)}"
            )
            raise HTTPException(
                status_code=403,
                detail=f"User role {auth.role.value} is not authorized to access this route"
            )
        return auth

    return _check
