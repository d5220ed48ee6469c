"""Lesson authoring and learner-facing lesson reads."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence, Union

from xfactor_api.core.config import settings
from xfactor_api.core.errors import NotFoundError, UpstreamError, ValidationError
from xfactor_api.models.lesson import Lesson
from xfactor_api.schemas.lesson import LessonCreate, LessonUpdate
from xfactor_api.schemas.material import FileMaterial, LinkMaterial
from xfactor_api.services.filenames import build_object_name, split_extension
from xfactor_api.services.lesson_repository import (
    LessonRepository,
    format_lesson,
    get_lesson_or_404,
    get_visible_lesson,
)
from xfactor_api.services.object_storage import ObjectStorage
from xfactor_api.services.progress_store import ProgressStore

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
MATERIAL_FIELD_PREFIX = "material_file_"
TODAY_CANDIDATES = 10


@dataclass
class IncomingFile:
    """One uploaded multipart file, already read into memory."""

    field_name: str
    file_name: str
    content_type: Optional[str]
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def validate_pdf(upload: IncomingFile) -> None:
    if upload.content_type != PDF_CONTENT_TYPE:
        raise ValidationError(
            "Only PDF files are allowed for support materials",
            details={"field": upload.field_name},
        )
    if upload.size > settings.MAX_UPLOAD_BYTES:
        raise ValidationError(
            f"File exceeds the {settings.MAX_UPLOAD_BYTES // (1024 * 1024)} MB limit",
            details={"field": upload.field_name},
        )


def validate_uploads(files: Sequence[IncomingFile]) -> None:
    if len(files) > settings.MAX_FILES_PER_REQUEST:
        raise ValidationError(f"At most {settings.MAX_FILES_PER_REQUEST} files per request")
    for upload in files:
        validate_pdf(upload)


def match_upload(
    material: FileMaterial,
    files: Sequence[IncomingFile],
    file_material_count: int,
    used: set[int],
) -> Optional[IncomingFile]:
    """Pick the uploaded file for ``material``.

    Field name ``material_file_<id>`` wins; otherwise a lone file pairs with a
    lone file material; otherwise the first unused file with the same extension.
    """
    candidates = [(i, f) for i, f in enumerate(files) if i not in used]
    if material.id:
        for index, upload in candidates:
            if upload.field_name == f"{MATERIAL_FIELD_PREFIX}{material.id}":
                used.add(index)
                return upload

    if len(files) == 1 and file_material_count == 1 and candidates:
        index, upload = candidates[0]
        used.add(index)
        return upload

    _, wanted_ext = split_extension(material.fileName)
    for index, upload in candidates:
        _, ext = split_extension(upload.file_name)
        if ext and ext == wanted_ext:
            used.add(index)
            return upload
    return None


class LessonService:
    """Create/update lessons (admin) and read them for learners."""

    def __init__(self, lessons: LessonRepository, storage: ObjectStorage, progress: ProgressStore):
        self.lessons = lessons
        self.storage = storage
        self.progress = progress

    async def today(self, user_id: uuid.UUID) -> dict:
        candidates = await self.lessons.recent(limit=TODAY_CANDIDATES, published_only=True)
        if not candidates:
            raise NotFoundError("No lessons are available yet", details={"resource": "lesson"})

        snapshot = await self.progress.get(user_id)
        selected = candidates[0]
        for lesson in candidates:
            record = snapshot.lesson_progress.get(str(lesson.id)) or {}
            if record.get("status") != "completed":
                selected = lesson
                break
        return format_lesson(selected, snapshot.lesson_progress.get(str(selected.id)))

    async def detail(self, user: dict, lesson_id: uuid.UUID) -> dict:
        lesson = await get_visible_lesson(self.lessons, lesson_id, user)
        snapshot = await self.progress.get(user["id"])
        return format_lesson(lesson, snapshot.lesson_progress.get(str(lesson.id)))

    async def create(self, data: LessonCreate, files: Sequence[IncomingFile]) -> dict:
        validate_uploads(files)
        values = data.model_dump(exclude={"support_materials"}, exclude_none=True)
        materials = await self.process_materials(data.support_materials or [], files)

        lesson = Lesson(**values, support_materials=materials)
        try:
            await self.lessons.add(lesson)
        except UpstreamError:
            await self.discard_uploads(materials)
            raise
        logger.info("Lesson %s created with %d materials", lesson.id, len(materials))
        return format_lesson(lesson)

    async def update(self, lesson_id: uuid.UUID, data: LessonUpdate, files: Sequence[IncomingFile]) -> dict:
        validate_uploads(files)
        lesson = await get_lesson_or_404(self.lessons, lesson_id)

        values = data.model_dump(exclude={"support_materials"}, exclude_unset=True)
        previous_materials = list(lesson.support_materials or [])
        materials = None
        if data.support_materials is not None:
            materials = await self.process_materials(
                data.support_materials, files, existing=lesson.support_materials or []
            )

        for field, value in values.items():
            setattr(lesson, field, value)
        if materials is not None:
            lesson.support_materials = materials
        lesson.updated_at = datetime.now(timezone.utc)
        try:
            await self.lessons.save(lesson)
        except UpstreamError:
            if materials is not None:
                await self.discard_uploads(materials, keep=previous_materials)
            raise
        logger.info("Lesson %s updated", lesson.id)
        return format_lesson(lesson)

    async def process_materials(
        self,
        materials: Sequence[Union[LinkMaterial, FileMaterial]],
        files: Sequence[IncomingFile],
        existing: Sequence[dict] = (),
    ) -> list[dict]:
        """Resolve the submitted material list into stored material records.

        Matched files are uploaded; file materials without an upload keep the
        storage reference already held for the same id. Any upload failure
        aborts the whole list and removes the objects uploaded so far.
        """
        now = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        stored_by_id = {str(m.get("id")): m for m in existing if m.get("type") == "file" and m.get("id")}
        file_material_count = sum(1 for m in materials if m.type == "file")
        used: set[int] = set()
        uploaded: list[str] = []
        processed: list[dict] = []

        try:
            for material in materials:
                material_id = material.id or uuid.uuid4().hex
                created_at = material.created_at or now

                if isinstance(material, LinkMaterial):
                    processed.append({
                        "id": material_id,
                        "type": "link",
                        "name": material.name,
                        "url": material.url,
                        "created_at": created_at,
                    })
                    continue

                upload = match_upload(material, files, file_material_count, used)
                if upload is not None:
                    object_name = build_object_name(material.fileName, settings.MATERIALS_PREFIX)
                    try:
                        await self.storage.upload_bytes(upload.data, object_name, PDF_CONTENT_TYPE)
                    except UpstreamError as e:
                        raise UpstreamError(f"Failed to upload file: {upload.file_name}") from e
                    uploaded.append(object_name)
                    processed.append({
                        "id": material_id,
                        "type": "file",
                        "name": material.name,
                        "fileName": material.fileName,
                        "fileSize": upload.size,
                        "fileType": upload.content_type,
                        "storageRef": object_name,
                        "created_at": created_at,
                    })
                    continue

                stored = stored_by_id.get(str(material.id)) if material.id else None
                if stored is not None and stored.get("storageRef"):
                    processed.append({**stored, "name": material.name})
                else:
                    logger.warning("File material %r has no uploaded file, skipping", material.name)
        except UpstreamError:
            for object_name in uploaded:
                await self.storage.delete(object_name)
            raise

        return processed

    async def discard_uploads(self, materials: Sequence[dict], keep: Sequence[dict] = ()) -> None:
        """Delete stored objects of file materials that were never persisted."""
        kept = {m.get("storageRef") for m in keep}
        for material in materials:
            object_name = material.get("storageRef")
            if material.get("type") == "file" and object_name and object_name not in kept:
                await self.storage.delete(object_name)
