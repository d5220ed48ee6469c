"""Standalone PDF uploads (admin tooling outside the lesson form)."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from xfactor_api.core.config import settings
from xfactor_api.services.filenames import build_object_name
from xfactor_api.services.lesson_service import IncomingFile, validate_pdf
from xfactor_api.services.object_storage import ObjectStorage

logger = logging.getLogger(__name__)


async def upload_pdf(storage: ObjectStorage, upload: IncomingFile, material_name: Optional[str] = None) -> dict:
    validate_pdf(upload)
    object_name = build_object_name(upload.file_name, settings.MATERIALS_PREFIX)
    await storage.upload_bytes(upload.data, object_name, upload.content_type)

    ttl = timedelta(hours=settings.SIGNED_URL_TTL_HOURS)
    signed_url = await storage.presigned_url(object_name, ttl)
    expires_at = datetime.now(timezone.utc) + ttl
    logger.info("PDF uploaded: %s (%d bytes)", object_name, upload.size)
    return {
        "storageRef": object_name,
        "signedUrl": signed_url,
        "expiresAt": expires_at.isoformat().replace("+00:00", "Z"),
        "fileName": upload.file_name,
        "fileSize": upload.size,
        "fileType": upload.content_type,
        "materialName": material_name or upload.file_name,
    }
