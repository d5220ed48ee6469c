"""Admin upload endpoints for standalone PDF materials."""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from xfactor_api.api.deps import get_material_gateway, get_storage
from xfactor_api.api.routes.lessons import read_upload
from xfactor_api.core.auth import require_admin
from xfactor_api.schemas.common import success
from xfactor_api.schemas.material import SignedUrlRequest
from xfactor_api.services.material_access import MaterialAccessGateway
from xfactor_api.services.object_storage import ObjectStorage
from xfactor_api.services.upload_service import upload_pdf

router = APIRouter(prefix="/upload", tags=["upload"])


@router.post("/pdf", status_code=201)
async def upload_pdf_file(
    file: UploadFile = File(...),
    materialName: Optional[str] = Form(default=None),
    _admin: dict = Depends(require_admin),
    storage: ObjectStorage = Depends(get_storage),
) -> dict:
    incoming = await read_upload("file", file)
    return success(await upload_pdf(storage, incoming, materialName), "File uploaded successfully")


@router.post("/signed-url")
async def reissue_signed_url(
    payload: SignedUrlRequest,
    _admin: dict = Depends(require_admin),
    gateway: MaterialAccessGateway = Depends(get_material_gateway),
) -> dict:
    return success(await gateway.reissue_signed_url(payload.storageRef, payload.expiresInHours))
