"""
Email notification schemas
"""
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    """Kinds of scheduled game notifications."""

    REMINDER = "reminder"
    GAME_UPDATE = "game_update"
    WAITLIST_SPOT = "waitlist_spot"


class EmailMessage(BaseModel):
    """A rendered email ready for the dispatcher."""

    subject: str = Field(..., description="Email subject line")
    html: str = Field(..., description="HTML body")
    text: str = Field(..., description="Plain text body")


class SendEmailResult(BaseModel):
    """Outcome of a single send attempt."""

    success: bool = Field(..., description="Whether the provider accepted the message")
    message_id: Optional[str] = Field(None, description="Provider message ID if successful")
    error: Optional[str] = Field(None, description="Error message on failure")
