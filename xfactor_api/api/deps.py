"""Service factories used as FastAPI dependencies."""

from typing import Optional

import httpx
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from xfactor_api.core.config import settings
from xfactor_api.core.database import get_db
from xfactor_api.services.lesson_repository import LessonRepository
from xfactor_api.services.lesson_service import LessonService
from xfactor_api.services.material_access import MaterialAccessGateway
from xfactor_api.services.object_storage import ObjectStorage, get_object_storage
from xfactor_api.services.progress_service import ProgressService
from xfactor_api.services.progress_store import ProgressStore
from xfactor_api.services.support_service import SupportService


def get_lesson_repository(db: AsyncSession = Depends(get_db)) -> LessonRepository:
    return LessonRepository(db)


def get_progress_store(db: AsyncSession = Depends(get_db)) -> ProgressStore:
    return ProgressStore(db)


def get_storage() -> ObjectStorage:
    return get_object_storage()


def get_stream_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Transport for upstream PDF fetches; None selects httpx's default."""
    return None


def get_progress_service(
    store: ProgressStore = Depends(get_progress_store),
    lessons: LessonRepository = Depends(get_lesson_repository),
) -> ProgressService:
    return ProgressService(store, lessons, retries=settings.PROGRESS_WRITE_RETRIES)


def get_lesson_service(
    lessons: LessonRepository = Depends(get_lesson_repository),
    storage: ObjectStorage = Depends(get_storage),
    store: ProgressStore = Depends(get_progress_store),
) -> LessonService:
    return LessonService(lessons, storage, store)


def get_material_gateway(
    lessons: LessonRepository = Depends(get_lesson_repository),
    storage: ObjectStorage = Depends(get_storage),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_stream_transport),
) -> MaterialAccessGateway:
    return MaterialAccessGateway(lessons, storage, transport=transport)


def get_support_service(db: AsyncSession = Depends(get_db)) -> SupportService:
    return SupportService(db)
