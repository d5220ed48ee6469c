"""Lesson endpoints: learner reads, admin authoring, and the watch lifecycle."""

import uuid

from fastapi import APIRouter, Depends, Request
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile

from xfactor_api.api.deps import get_lesson_service, get_progress_service
from xfactor_api.core.auth import get_current_user, require_admin
from xfactor_api.core.config import settings
from xfactor_api.core.errors import ValidationError
from xfactor_api.schemas.common import success
from xfactor_api.schemas.lesson import LessonCreate, LessonUpdate
from xfactor_api.schemas.progress import CompleteLessonRequest, ProgressUpdateRequest, StartSessionRequest
from xfactor_api.services.lesson_service import IncomingFile, LessonService
from xfactor_api.services.progress_service import ProgressService

router = APIRouter(prefix="/lessons", tags=["lessons"])


async def read_upload(field_name: str, upload: UploadFile) -> IncomingFile:
    if upload.size is not None and upload.size > settings.MAX_UPLOAD_BYTES:
        raise ValidationError(
            f"File exceeds the {settings.MAX_UPLOAD_BYTES // (1024 * 1024)} MB limit",
            details={"field": field_name},
        )
    data = await upload.read()
    return IncomingFile(
        field_name=field_name,
        file_name=upload.filename or field_name,
        content_type=upload.content_type,
        data=data,
    )


async def parse_lesson_form(request: Request, model: type[BaseModel]):
    """Validate a JSON or multipart lesson body; returns (model, files)."""
    files: list[IncomingFile] = []
    if request.headers.get("content-type", "").startswith("application/json"):
        raw = await request.json()
    else:
        form = await request.form(max_files=settings.MAX_FILES_PER_REQUEST)
        raw = {}
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                files.append(await read_upload(key, value))
            else:
                raw[key] = value
    try:
        return model.model_validate(raw), files
    except PydanticValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))


@router.get("/today")
async def get_today_lesson(
    user: dict = Depends(get_current_user),
    service: LessonService = Depends(get_lesson_service),
) -> dict:
    return success(await service.today(user["id"]))


@router.get("/{lesson_id}")
async def get_lesson(
    lesson_id: uuid.UUID,
    user: dict = Depends(get_current_user),
    service: LessonService = Depends(get_lesson_service),
) -> dict:
    return success(await service.detail(user, lesson_id))


@router.post("", status_code=201)
async def create_lesson(
    request: Request,
    _admin: dict = Depends(require_admin),
    service: LessonService = Depends(get_lesson_service),
) -> dict:
    data, files = await parse_lesson_form(request, LessonCreate)
    return success(await service.create(data, files), "Lesson created successfully")


@router.put("/{lesson_id}")
async def update_lesson(
    lesson_id: uuid.UUID,
    request: Request,
    _admin: dict = Depends(require_admin),
    service: LessonService = Depends(get_lesson_service),
) -> dict:
    data, files = await parse_lesson_form(request, LessonUpdate)
    return success(await service.update(lesson_id, data, files), "Lesson updated successfully")


@router.post("/{lesson_id}/start")
async def start_lesson(
    lesson_id: uuid.UUID,
    payload: StartSessionRequest | None = None,
    user: dict = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service),
) -> dict:
    result = await service.start(user["id"], lesson_id, payload or StartSessionRequest())
    return success(result, "Lesson session started")


@router.put("/{lesson_id}/progress")
async def update_progress(
    lesson_id: uuid.UUID,
    payload: ProgressUpdateRequest,
    user: dict = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service),
) -> dict:
    return success(await service.update(user["id"], lesson_id, payload), "Progress updated")


@router.post("/{lesson_id}/complete")
async def complete_lesson(
    lesson_id: uuid.UUID,
    payload: CompleteLessonRequest | None = None,
    user: dict = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service),
) -> dict:
    result = await service.complete(user["id"], lesson_id, payload or CompleteLessonRequest())
    message = (
        "Lesson was already completed"
        if result["completion"]["was_already_completed"]
        else "Lesson completed successfully"
    )
    return success(result, message)


@router.get("/{lesson_id}/resume")
async def resume_lesson(
    lesson_id: uuid.UUID,
    user: dict = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service),
) -> dict:
    return success(await service.resume(user["id"], lesson_id))
