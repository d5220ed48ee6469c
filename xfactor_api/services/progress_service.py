"""Lesson lifecycle: start -> progress updates -> complete, plus resume reads.

Record transforms are pure functions over plain dicts (the JSON stored in
``users.lesson_progress``). ``ProgressService`` wraps them in a read-merge-write
cycle against the progress store, retrying when a concurrent write wins.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from xfactor_api.core.errors import ConflictError
from xfactor_api.schemas.progress import (
    CompleteLessonRequest,
    ProgressUpdateRequest,
    StartSessionRequest,
)
from xfactor_api.services.gamification import apply_completion
from xfactor_api.services.lesson_repository import LessonRepository, get_lesson_or_404
from xfactor_api.services.progress_store import ProgressSnapshot, ProgressStore, StaleProgressError

logger = logging.getLogger(__name__)

STATUS_NOT_STARTED = "not_started"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def is_finalized(record: dict) -> bool:
    """Completion side effects already ran for this record."""
    # a record pushed to "completed" by progress reports alone has no completed_at
    # and still earns credit on its first explicit completion
    return record.get("status") == STATUS_COMPLETED and bool(record.get("completed_at"))


def start_record(record: dict, session_id: str, device_info: str, now: datetime) -> tuple[dict, dict]:
    """Open a watch session. A completed record stays completed."""
    session = {
        "session_id": session_id,
        "started_at": _iso(now),
        "device_info": device_info,
        "events": [],
    }
    updated = dict(record)
    updated["status"] = STATUS_COMPLETED if record.get("status") == STATUS_COMPLETED else STATUS_IN_PROGRESS
    updated["started_at"] = record.get("started_at") or _iso(now)
    updated["last_watched_position"] = record.get("last_watched_position") or 0
    updated["total_watch_time"] = record.get("total_watch_time") or 0
    updated["completion_percentage"] = record.get("completion_percentage") or 0
    updated["watch_sessions"] = list(record.get("watch_sessions") or []) + [session]
    return updated, session


def upsert_session(sessions: list[dict], data: dict, now: datetime) -> list[dict]:
    """Merge ``data`` into the session with the same id, else append it."""
    sessions = [dict(s) for s in sessions]
    stamped = {**data, "updated_at": _iso(now)}
    for index, session in enumerate(sessions):
        if session.get("session_id") == data["session_id"]:
            sessions[index] = {**session, **stamped}
            return sessions
    sessions.append(stamped)
    return sessions


def merge_progress(record: dict, update: ProgressUpdateRequest, now: datetime) -> dict:
    """Monotonic-max merge of a progress report into a record."""
    incoming_pct = update.completion_percentage if update.completion_percentage is not None else 0
    percentage = min(max(incoming_pct, record.get("completion_percentage") or 0, 0), 100)

    updated = dict(record)
    updated["last_watched_position"] = max(update.last_watched_position, record.get("last_watched_position") or 0)
    updated["total_watch_time"] = max(update.total_watch_time, record.get("total_watch_time") or 0)
    updated["completion_percentage"] = percentage
    if record.get("status") == STATUS_COMPLETED or percentage >= 100:
        updated["status"] = STATUS_COMPLETED
    else:
        updated["status"] = STATUS_IN_PROGRESS
    updated["updated_at"] = _iso(now)

    if update.watch_session_data is not None:
        updated["watch_sessions"] = upsert_session(
            record.get("watch_sessions") or [],
            update.watch_session_data.model_dump(),
            now,
        )
    return updated


def finalize_record(record: dict, request: CompleteLessonRequest, now: datetime) -> dict:
    """Lock a record as completed. Fields set here are never overwritten."""
    if is_finalized(record):
        return record
    updated = dict(record)
    updated["status"] = STATUS_COMPLETED
    updated["completed_at"] = _iso(now)
    updated["final_watch_time"] = (
        request.final_watch_time
        if request.final_watch_time is not None
        else record.get("total_watch_time") or 0
    )
    updated["completion_percentage"] = 100
    if request.rating is not None:
        updated["rating"] = request.rating
    if request.feedback is not None:
        updated["feedback"] = request.feedback
    if request.session_summary is not None:
        updated["session_summary"] = request.session_summary
    return updated


def resume_view(lesson_id: str, record: dict) -> dict:
    last_position = record.get("last_watched_position") or 0
    return {
        "lesson_id": lesson_id,
        "last_position": last_position,
        "total_progress": record.get("completion_percentage") or 0,
        "status": record.get("status") or STATUS_NOT_STARTED,
        "total_watch_time": record.get("total_watch_time") or 0,
        "can_resume": last_position > 0,
    }


class ProgressService:
    """Applies the lesson lifecycle to a user's stored progress."""

    def __init__(
        self,
        store: ProgressStore,
        lessons: LessonRepository,
        *,
        retries: int = 3,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.lessons = lessons
        self.retries = max(retries, 1)
        self.clock = clock

    async def _mutate(self, user_id: uuid.UUID, apply: Callable[[ProgressSnapshot], dict]) -> dict:
        """Run ``apply`` on a fresh snapshot and save, retrying lost races."""
        for attempt in range(1, self.retries + 1):
            snapshot = await self.store.get(user_id)
            result = apply(snapshot)
            try:
                await self.store.save(snapshot)
                return result
            except StaleProgressError:
                logger.warning(
                    "Concurrent progress write for user %s (attempt %d/%d)",
                    user_id, attempt, self.retries,
                )
        raise ConflictError("Progress was updated concurrently, please retry")

    async def start(self, user_id: uuid.UUID, lesson_id: uuid.UUID, request: StartSessionRequest) -> dict:
        lesson = await get_lesson_or_404(self.lessons, lesson_id)
        key = str(lesson_id)
        session_id = request.session_id or new_session_id()

        def apply(snapshot: ProgressSnapshot) -> dict:
            record, session = start_record(snapshot.record(key), session_id, request.device_info, self.clock())
            snapshot.lesson_progress[key] = record
            return {
                "session_id": session["session_id"],
                "lesson_id": key,
                "lesson_title": lesson.title,
                "started_at": session["started_at"],
                "resume_position": record["last_watched_position"],
            }

        return await self._mutate(user_id, apply)

    async def update(self, user_id: uuid.UUID, lesson_id: uuid.UUID, request: ProgressUpdateRequest) -> dict:
        await get_lesson_or_404(self.lessons, lesson_id)
        key = str(lesson_id)

        def apply(snapshot: ProgressSnapshot) -> dict:
            record = merge_progress(snapshot.record(key), request, self.clock())
            snapshot.lesson_progress[key] = record
            return {
                "lesson_id": key,
                "status": record["status"],
                "last_watched_position": record["last_watched_position"],
                "total_watch_time": record["total_watch_time"],
                "completion_percentage": record["completion_percentage"],
                "updated_at": record["updated_at"],
            }

        return await self._mutate(user_id, apply)

    async def complete(self, user_id: uuid.UUID, lesson_id: uuid.UUID, request: CompleteLessonRequest) -> dict:
        await get_lesson_or_404(self.lessons, lesson_id)
        key = str(lesson_id)

        def apply(snapshot: ProgressSnapshot) -> dict:
            now = self.clock()
            before = snapshot.record(key)
            was_already_completed = is_finalized(before)

            outcome = apply_completion(
                snapshot.stats,
                snapshot.lesson_progress,
                key,
                was_already_completed,
                now.date(),
            )
            record = finalize_record(before, request, now)
            snapshot.lesson_progress[key] = record
            snapshot.stats = outcome.stats

            return {
                "completion": {
                    "lesson_id": key,
                    "completed_at": record.get("completed_at"),
                    "final_watch_time": record.get("final_watch_time"),
                    "completion_percentage": record.get("completion_percentage"),
                    "was_already_completed": was_already_completed,
                },
                "user_stats": outcome.stats.to_dict(),
                "new_badges": outcome.new_badges,
            }

        result = await self._mutate(user_id, apply)
        if result["new_badges"]:
            logger.info("User %s earned badges %s", user_id, result["new_badges"])
        return result

    async def resume(self, user_id: uuid.UUID, lesson_id: uuid.UUID) -> dict:
        snapshot = await self.store.get(user_id)
        key = str(lesson_id)
        return resume_view(key, snapshot.record(key))

    async def stats(self, user_id: uuid.UUID) -> dict:
        snapshot = await self.store.get(user_id)
        counts = {STATUS_IN_PROGRESS: 0, STATUS_COMPLETED: 0}
        for record in snapshot.lesson_progress.values():
            status = record.get("status")
            if status in counts:
                counts[status] += 1
        return {
            **snapshot.stats.to_dict(),
            "last_activity_date": (
                snapshot.stats.last_activity_date.isoformat() if snapshot.stats.last_activity_date else None
            ),
            "lessons_in_progress": counts[STATUS_IN_PROGRESS],
            "lessons_completed": counts[STATUS_COMPLETED],
        }
