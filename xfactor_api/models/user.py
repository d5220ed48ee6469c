"""User model with embedded learning progress."""

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from xfactor_api.core.database import Base

ROLES = ("learner", "manager", "support", "admin")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """User model.

    ``lesson_progress`` maps lesson id (str) to a progress record; the
    gamification aggregates live next to it so a completion is one row write.
    ``version`` is bumped on every progress write (optimistic concurrency).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="learner")
    company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    team: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timezone: Mapped[str] = mapped_column(String(50), default="Asia/Jerusalem")

    # Progress & gamification
    lesson_progress: Mapped[dict] = mapped_column(JSONB, default=dict, nullable=False)
    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_activity_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    total_lessons_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    badges_earned: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    preferences: Mapped[dict] = mapped_column(
        JSONB,
        default=lambda: {"program_type": "full_access", "chat_terms_accepted": False},
        nullable=False,
    )

    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        CheckConstraint(f"role IN {ROLES}", name="ck_users_role"),
        CheckConstraint("current_streak >= 0", name="ck_users_current_streak"),
        CheckConstraint("longest_streak >= current_streak", name="ck_users_longest_streak"),
        Index("ix_users_email", "email"),
        Index("ix_users_role", "role"),
        Index("ix_users_is_active", "is_active"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
