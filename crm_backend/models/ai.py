"""
CRM - Request bodies of the heuristic scoring endpoints
"""

from typing import Optional

from pydantic import BaseModel, Field


class SentimentRequest(BaseModel):
    text: str = Field(min_length=1)
    customerId: Optional[str] = None
    source: Optional[str] = None


class ChatbotRequest(BaseModel):
    message: str = ""


class EmailResponseRequest(BaseModel):
    interaction: Optional[dict] = None
