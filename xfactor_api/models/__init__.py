"""SQLAlchemy models for the XFactor Daily API."""

from xfactor_api.models.user import User
from xfactor_api.models.lesson import Lesson
from xfactor_api.models.support import SupportTicket

__all__ = [
    "User",
    "Lesson",
    "SupportTicket",
]
