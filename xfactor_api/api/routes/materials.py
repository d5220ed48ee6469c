"""Protected lesson material access: listing, signed viewer URLs, PDF proxy."""

import uuid

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from xfactor_api.api.deps import get_material_gateway
from xfactor_api.core.auth import get_current_user, get_current_user_from_header_or_query
from xfactor_api.schemas.common import success
from xfactor_api.services.material_access import PDF_MEDIA_TYPE, MaterialAccessGateway, pdf_stream_headers

router = APIRouter(prefix="/lessons", tags=["materials"])


@router.get("/{lesson_id}/materials")
async def list_materials(
    lesson_id: uuid.UUID,
    user: dict = Depends(get_current_user),
    gateway: MaterialAccessGateway = Depends(get_material_gateway),
) -> dict:
    return success(await gateway.list_materials(user, lesson_id))


@router.get("/{lesson_id}/materials/{material_id}/view")
async def view_material(
    lesson_id: uuid.UUID,
    material_id: str,
    user: dict = Depends(get_current_user),
    gateway: MaterialAccessGateway = Depends(get_material_gateway),
) -> dict:
    return success(await gateway.issue_viewer_url(user, lesson_id, material_id))


@router.get("/{lesson_id}/materials/{material_id}/stream")
async def stream_material(
    lesson_id: uuid.UUID,
    material_id: str,
    user: dict = Depends(get_current_user_from_header_or_query),
    gateway: MaterialAccessGateway = Depends(get_material_gateway),
) -> StreamingResponse:
    stream = await gateway.open_stream(user, lesson_id, material_id)
    return StreamingResponse(
        stream.iter_bytes(),
        media_type=PDF_MEDIA_TYPE,
        headers=pdf_stream_headers(stream.file_name),
        background=BackgroundTask(stream.aclose),
    )
