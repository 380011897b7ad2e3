"""
CRM - Routes Users
Admin/manager user management, self-service profile and password change,
activity log consultation.
"""

import logging
from typing import Optional, Annotated

from fastapi import APIRouter, HTTPException, Depends, Query

from crm_backend.config import get_db, hash_password, verify_password, new_id, now_iso
from crm_backend.models.activity import ActivityAction, EntityType
from crm_backend.models.auth import UserCreate, UserUpdate, PasswordChange, UserRole
from crm_backend.models.task import ACTIVE_TASK_STATUSES
from crm_backend.services.activity_logger import log_activity, get_activity_logs
from crm_backend.services.permissions import AuthContext, require_roles, ensure
from crm_backend.services.query_filters import ActivityLogFilters
from crm_backend.routes.auth import get_current_user
from crm_backend.routes.common import bad_request, not_found, list_response, public_user

logger = logging.getLogger("users")

router = APIRouter(prefix="/users", tags=["Users"])

admin_only = require_roles(UserRole.ADMIN)
admin_or_manager = require_roles(UserRole.ADMIN, UserRole.MANAGER)

USER_PROJECTION = {"_id": 0, "password": 0}


# ==================== LIST / CREATE ====================

@router.get("")
async def list_users(
    role: Optional[UserRole] = None,
    active: Optional[bool] = None,
    auth: AuthContext = Depends(admin_or_manager),
    db=Depends(get_db)
):
    query = {}
    if role:
        query["role"] = role.value
    if active is not None:
        query["active"] = active

    users = await db.users.find(query, USER_PROJECTION).sort("createdAt", -1).to_list(1000)
    return {"success": True, "count": len(users), "data": users}


@router.post("", status_code=201)
async def create_user(data: UserCreate, auth: AuthContext = Depends(admin_only), db=Depends(get_db)):
    email = data.email.lower()
    if await db.users.find_one({"email": email}):
        bad_request("email", "User already exists")

    now = now_iso()
    user = {
        "id": new_id(),
        "name": data.name,
        "email": email,
        "password": hash_password(data.password),
        "role": data.role.value,
        "active": data.active,
        "createdAt": now,
        "updatedAt": now,
    }
    await db.users.insert_one(user)

    await log_activity(
        db, auth.as_actor(), ActivityAction.CREATE, EntityType.USER, user["id"], email, {"role": user["role"]}
    )
    return {"success": True, "data": public_user(user)}


# ==================== SELF SERVICE ====================

@router.put("/change-password")
async def change_password(
    data: PasswordChange,
    auth: AuthContext = Depends(get_current_user),
    db=Depends(get_db)
):
    user = await db.users.find_one({"id": auth.user_id}, {"_id": 0})
    if not user:
        not_found("User")

    if not verify_password(data.currentPassword, user.get("password")):
        bad_request("currentPassword", "Current password is incorrect")

    await db.users.update_one(
        {"id": auth.user_id},
        {"$set": {"password": hash_password(data.newPassword), "updatedAt": now_iso()}}
    )
    await log_activity(db, auth.as_actor(), ActivityAction.CHANGE_PASSWORD, EntityType.USER, auth.user_id, auth.email)
    return {"success": True, "message": "Password updated"}


@router.get("/activity-logs")
async def list_activity_logs(
    filters: Annotated[ActivityLogFilters, Query()],
    auth: AuthContext = Depends(admin_or_manager),
    db=Depends(get_db)
):
    """Audit trail, newest first. automated=true keeps only scheduler entries."""
    logs, total = await get_activity_logs(db, filters)
    return list_response(logs, filters, total)


# ==================== SINGLE USER ====================

@router.get("/{user_id}")
async def get_user(user_id: str, auth: AuthContext = Depends(admin_or_manager), db=Depends(get_db)):
    user = await db.users.find_one({"id": user_id}, USER_PROJECTION)
    if not user:
        not_found("User")
    return {"success": True, "data": user}


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    data: UserUpdate,
    auth: AuthContext = Depends(get_current_user),
    db=Depends(get_db)
):
    """Users edit their own profile; admins edit anyone, role and active included."""
    ensure(auth.is_admin or auth.user_id == user_id, "Not authorized to update this user", auth)

    target = await db.users.find_one({"id": user_id}, USER_PROJECTION)
    if not target:
        not_found("User")

    update = data.model_dump(exclude_unset=True)
    if not auth.is_admin and ("role" in update or "active" in update):
        ensure(False, "Only admins can change role or active status", auth)

    if "email" in update and update["email"]:
        update["email"] = update["email"].lower()
        clash = await db.users.find_one({"email": update["email"], "id": {"$ne": user_id}})
        if clash:
            bad_request("email", "Email already in use")
    if "role" in update and update["role"] is not None:
        update["role"] = update["role"].value

    update = {k: v for k, v in update.items() if v is not None}
    if not update:
        return {"success": True, "data": target}

    update["updatedAt"] = now_iso()
    await db.users.update_one({"id": user_id}, {"$set": update})

    updated = await db.users.find_one({"id": user_id}, USER_PROJECTION)
    await log_activity(
        db, auth.as_actor(), ActivityAction.UPDATE, EntityType.USER, user_id, updated.get("email"),
        {"fields": sorted(k for k in update if k != "updatedAt")}
    )
    return {"success": True, "data": updated}


@router.delete("/{user_id}")
async def delete_user(user_id: str, auth: AuthContext = Depends(admin_only), db=Depends(get_db)):
    if user_id == auth.user_id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    target = await db.users.find_one({"id": user_id}, USER_PROJECTION)
    if not target:
        not_found("User")

    await db.users.delete_one({"id": user_id})

    # Open tasks go back to the pool for the rebalancer
    released = await db.tasks.update_many(
        {"assignedTo": user_id, "status": {"$in": ACTIVE_TASK_STATUSES}},
        {"$set": {"assignedTo": None, "updatedAt": now_iso()}}
    )

    await log_activity(
        db, auth.as_actor(), ActivityAction.DELETE, EntityType.USER, user_id, target.get("email"),
        {"released_tasks": released.modified_count}
    )
    logger.info(f"[USERS] Deleted {target.get('email')}, released {released.modified_count} tasks")
    return {"success": True, "message": "User removed", "data": {"releasedTasks": released.modified_count}}
