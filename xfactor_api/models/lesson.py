"""Lesson content model."""

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from xfactor_api.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Lesson(Base):
    """Lesson model.

    ``support_materials`` is an ordered list of link or file materials,
    see ``xfactor_api.schemas.material``.
    """

    __tablename__ = "lessons"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    vimeo_video_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    video_duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="seconds")
    thumbnail_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    tags: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list)
    lesson_topics: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list)
    key_points: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list)
    support_materials: Mapped[list[dict]] = mapped_column(JSONB, default=list, nullable=False)
    chapter_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lesson_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    scheduled_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_lessons_category", "category"),
        Index("ix_lessons_scheduled_date", "scheduled_date"),
        Index("ix_lessons_is_published", "is_published"),
        Index("ix_lessons_chapter_lesson", "chapter_order", "lesson_number"),
    )
