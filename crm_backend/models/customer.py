"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Customer model                                                        ║
║                                                                              ║
║  Lifecycle: lead -> customer -> inactive (any manual move allowed)           ║
║  statusHistory is append-only; status == status of the last entry            ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, EmailStr, field_validator


class CustomerStatus(str, Enum):
    LEAD = "lead"
    CUSTOMER = "customer"
    INACTIVE = "inactive"


VALID_CUSTOMER_STATUSES = [s.value for s in CustomerStatus]


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipCode: Optional[str] = None
    country: Optional[str] = None


def _clean_tags(tags):
    if tags is None:
        return tags
    cleaned = []
    for tag in tags:
        tag = tag.strip()
        if tag:
            cleaned.append(tag)
    return cleaned


class CustomerCreate(BaseModel):
    name: str
    email: EmailStr
    phone: Optional[str] = None
    company: Optional[str] = None
    status: CustomerStatus = CustomerStatus.LEAD
    notes: Optional[str] = None
    tags: List[str] = []
    assignedTo: Optional[str] = None
    address: Optional[Address] = None

    @field_validator("name")
    @classmethod
    def name_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower()

    @field_validator("phone", "company", "notes")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if v else v

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v):
        return _clean_tags(v)


class CustomerUpdate(BaseModel):
    """Partial update: only the fields sent are merged into the document."""
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    status: Optional[CustomerStatus] = None
    statusNotes: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    assignedTo: Optional[str] = None
    address: Optional[Address] = None

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Name cannot be empty")
        return v.strip() if v else v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower() if v else v

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v):
        return _clean_tags(v)
