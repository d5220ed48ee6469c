"""Support ticket schemas."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

TicketStatus = Literal["open", "in_progress", "resolved", "closed"]
TicketPriority = Literal["low", "medium", "high", "urgent"]


class TicketCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=10000)
    priority: TicketPriority = "medium"


class TicketUpdate(BaseModel):
    """Append a message; staff may also change workflow fields."""

    message: Optional[str] = Field(default=None, min_length=1, max_length=10000)
    is_internal: bool = False
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    assigned_to: Optional[str] = None
