"""
CRM - Interaction model
An interaction is always tied to one customer; creating one refreshes the
customer's lastContact.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class InteractionType(str, Enum):
    EMAIL = "email"
    CALL = "call"
    MEETING = "meeting"
    NOTE = "note"
    OTHER = "other"


class InteractionOutcome(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    PENDING = "pending"


class InteractionCreate(BaseModel):
    customer: str
    type: InteractionType
    summary: str
    details: Optional[str] = None
    date: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, ge=0)  # minutes
    outcome: InteractionOutcome = InteractionOutcome.NEUTRAL
    nextAction: Optional[str] = None

    @field_validator("summary")
    @classmethod
    def summary_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Summary is required")
        return v

    @field_validator("customer")
    @classmethod
    def customer_required(cls, v):
        if not v.strip():
            raise ValueError("Customer ID is required")
        return v.strip()


class InteractionUpdate(BaseModel):
    type: Optional[InteractionType] = None
    summary: Optional[str] = None
    details: Optional[str] = None
    date: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, ge=0)
    outcome: Optional[InteractionOutcome] = None
    nextAction: Optional[str] = None

    @field_validator("summary")
    @classmethod
    def summary_not_empty(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Summary cannot be empty")
        return v.strip() if v else v
