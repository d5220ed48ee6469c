"""Progress store: per-user lesson progress map plus gamification aggregates.

Reads return a detached snapshot; writes are conditional on the snapshot's
``version`` so two concurrent read-merge-write cycles cannot silently
overwrite each other. A lost race surfaces as ``StaleProgressError``.
"""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from xfactor_api.core.errors import NotFoundError, UpstreamError
from xfactor_api.models.user import User
from xfactor_api.services.gamification import UserStats

logger = logging.getLogger(__name__)


class StaleProgressError(Exception):
    """The user row changed between read and write."""


@dataclass
class ProgressSnapshot:
    user_id: uuid.UUID
    lesson_progress: dict[str, dict]
    stats: UserStats
    version: int

    def record(self, lesson_id: str) -> dict:
        return copy.deepcopy(self.lesson_progress.get(lesson_id) or {})


class ProgressStore:
    """SQLAlchemy-backed progress store keyed by user id."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: uuid.UUID) -> ProgressSnapshot:
        stmt = select(
            User.id,
            User.lesson_progress,
            User.current_streak,
            User.longest_streak,
            User.total_lessons_completed,
            User.last_activity_date,
            User.badges_earned,
            User.version,
        ).where(User.id == user_id)
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to fetch progress for user %s: %s", user_id, e)
            raise UpstreamError("Failed to fetch user progress") from e

        row = result.one_or_none()
        if row is None:
            raise NotFoundError("User not found")

        return ProgressSnapshot(
            user_id=row.id,
            lesson_progress=copy.deepcopy(row.lesson_progress or {}),
            stats=UserStats(
                current_streak=row.current_streak or 0,
                longest_streak=row.longest_streak or 0,
                total_lessons_completed=row.total_lessons_completed or 0,
                last_activity_date=row.last_activity_date,
                badges_earned=tuple(dict.fromkeys(row.badges_earned or [])),
            ),
            version=row.version or 0,
        )

    async def save(self, snapshot: ProgressSnapshot) -> None:
        stats = snapshot.stats
        stmt = (
            update(User)
            .where(User.id == snapshot.user_id, User.version == snapshot.version)
            .values(
                lesson_progress=snapshot.lesson_progress,
                current_streak=stats.current_streak,
                longest_streak=stats.longest_streak,
                total_lessons_completed=stats.total_lessons_completed,
                last_activity_date=stats.last_activity_date,
                badges_earned=list(stats.badges_earned),
                version=User.version + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
            if result.rowcount == 0:
                await self.db.rollback()
                raise StaleProgressError(str(snapshot.user_id))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to save progress for user %s: %s", snapshot.user_id, e)
            raise UpstreamError("Failed to save user progress") from e
        snapshot.version += 1
