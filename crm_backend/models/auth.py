"""
CRM - User & auth models
Roles: admin, manager, agent. An agent only sees records assigned to them.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    AGENT = "agent"


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserRegister(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class UserCreate(UserRegister):
    role: UserRole = UserRole.AGENT
    active: bool = True


class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Name cannot be empty")
        return v.strip() if v else v


class PasswordChange(BaseModel):
    currentPassword: str
    newPassword: str = Field(min_length=6)


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: UserRole = UserRole.AGENT
    active: bool = True
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
