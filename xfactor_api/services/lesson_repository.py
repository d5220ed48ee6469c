"""Lesson persistence and client formatting."""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from xfactor_api.core.errors import AuthorizationError, NotFoundError, UpstreamError
from xfactor_api.models.lesson import Lesson

logger = logging.getLogger(__name__)

DEFAULT_PROGRESS = {
    "status": "not_started",
    "last_watched_position": 0,
    "total_watch_time": 0,
    "completion_percentage": 0,
}

# keys never sent to clients
_PRIVATE_MATERIAL_KEYS = {"storageRef"}


class LessonRepository:
    """Thin async repository over the ``lessons`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, lesson_id: uuid.UUID) -> Optional[Lesson]:
        try:
            result = await self.db.execute(select(Lesson).where(Lesson.id == lesson_id))
        except SQLAlchemyError as e:
            logger.error("Failed to fetch lesson %s: %s", lesson_id, e)
            raise UpstreamError("Failed to fetch lesson") from e
        return result.scalar_one_or_none()

    async def recent(self, limit: int = 10, published_only: bool = True) -> Sequence[Lesson]:
        stmt = select(Lesson).order_by(Lesson.created_at.desc()).limit(limit)
        if published_only:
            stmt = stmt.where(Lesson.is_published.is_(True))
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to fetch recent lessons: %s", e)
            raise UpstreamError("Failed to fetch lessons") from e
        return result.scalars().all()

    async def add(self, lesson: Lesson) -> Lesson:
        self.db.add(lesson)
        return await self.save(lesson)

    async def save(self, lesson: Lesson) -> Lesson:
        try:
            await self.db.commit()
            await self.db.refresh(lesson)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to save lesson: %s", e)
            raise UpstreamError("Failed to save lesson") from e
        return lesson


async def get_lesson_or_404(lessons: LessonRepository, lesson_id: uuid.UUID) -> Lesson:
    lesson = await lessons.get(lesson_id)
    if lesson is None:
        raise NotFoundError("The requested lesson does not exist", details={"resource": "lesson"})
    return lesson


async def get_visible_lesson(lessons: LessonRepository, lesson_id: uuid.UUID, user: dict) -> Lesson:
    """Load a lesson the requester may see: published, or requester is admin.

    Evaluated on every call; the decision is never cached.
    """
    lesson = await get_lesson_or_404(lessons, lesson_id)
    if not lesson.is_published and user.get("role") != "admin":
        raise AuthorizationError("This lesson is not yet published")
    return lesson


def public_material(material: dict) -> dict:
    return {k: v for k, v in material.items() if k not in _PRIVATE_MATERIAL_KEYS}


def format_lesson(lesson: Lesson, progress: Optional[dict] = None) -> dict:
    """Client view of a lesson with the requesting user's progress."""
    return {
        "id": str(lesson.id),
        "title": lesson.title,
        "description": lesson.description,
        "duration": round(lesson.video_duration / 60) if lesson.video_duration else None,
        "category": lesson.category,
        "thumbnail": lesson.thumbnail_url,
        "vimeoId": lesson.vimeo_video_id,
        "videoUrl": f"https://vimeo.com/{lesson.vimeo_video_id}" if lesson.vimeo_video_id else None,
        "tags": list(lesson.lesson_topics or []),
        "keyPoints": list(lesson.key_points or []),
        "supportMaterials": [public_material(m) for m in (lesson.support_materials or [])],
        "scheduledDate": lesson.scheduled_date.isoformat() if lesson.scheduled_date else None,
        "isPublished": bool(lesson.is_published),
        "createdAt": lesson.created_at.isoformat() if lesson.created_at else None,
        "updatedAt": lesson.updated_at.isoformat() if lesson.updated_at else None,
        "userProgress": public_progress(progress),
    }


def public_progress(progress: Optional[dict]) -> dict:
    if not progress:
        return dict(DEFAULT_PROGRESS)
    return {k: v for k, v in progress.items() if k != "watch_sessions"}
