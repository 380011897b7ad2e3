"""
CRM - Routes Auth
Register / Login / Me. Bearer JWT; the dependency below resolves it to an
AuthContext for every protected route.
"""

import logging

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from crm_backend.config import (
    get_db, hash_password, verify_password, create_access_token,
    decode_access_token, new_id, now_iso,
)
from crm_backend.models.auth import UserLogin, UserRegister, UserRole
from crm_backend.models.activity import ActivityAction, EntityType
from crm_backend.services.activity_logger import log_activity
from crm_backend.services.permissions import AuthContext
from crm_backend.routes.common import bad_request, public_user

logger = logging.getLogger("auth")

router = APIRouter(prefix="/auth", tags=["Auth"])
security = HTTPBearer(auto_error=False)


# ==================== HELPERS ====================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db=Depends(get_db)
) -> AuthContext:
    """Resolve the bearer token to the calling user."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authorized, no token")

    payload = decode_access_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Not authorized, token failed")

    user = await db.users.find_one({"id": payload["sub"]}, {"_id": 0, "password": 0})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if not user.get("active", True):
        raise HTTPException(status_code=403, detail="Account is deactivated")

    return AuthContext(
        user_id=user["id"],
        role=user.get("role", UserRole.AGENT.value),
        email=user.get("email", ""),
        name=user.get("name", ""),
    )


def token_response(user: dict) -> dict:
    return {
        "success": True,
        "data": {
            "token": create_access_token(user["id"], user["role"]),
            "user": public_user(user),
        }
    }


# ==================== REGISTER / LOGIN ====================

@router.post("/register", status_code=201)
async def register(data: UserRegister, db=Depends(get_db)):
    """Self sign-up. New accounts are always agents."""
    email = data.email.lower()
    if await db.users.find_one({"email": email}):
        bad_request("email", "User already exists")

    now = now_iso()
    user = {
        "id": new_id(),
        "name": data.name,
        "email": email,
        "password": hash_password(data.password),
        "role": UserRole.AGENT.value,
        "active": True,
        "createdAt": now,
        "updatedAt": now,
    }
    await db.users.insert_one(user)
    user.pop("_id", None)

    await log_activity(db, user, ActivityAction.CREATE, EntityType.USER, user["id"], user["email"], {"via": "register"})
    logger.info(f"[AUTH] Registered {email}")
    return token_response(user)


@router.post("/login")
async def login(data: UserLogin, db=Depends(get_db)):
    user = await db.users.find_one({"email": data.email.lower()}, {"_id": 0})

    if not user or not verify_password(data.password, user.get("password")):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if not user.get("active", True):
        raise HTTPException(status_code=403, detail="Account is deactivated")

    await log_activity(db, user, ActivityAction.LOGIN, EntityType.USER, user["id"], user["email"])
    return token_response(user)


@router.get("/me")
async def get_me(auth: AuthContext = Depends(get_current_user), db=Depends(get_db)):
    user = await db.users.find_one({"id": auth.user_id}, {"_id": 0, "password": 0})
    return {"success": True, "data": user}
