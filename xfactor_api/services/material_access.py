"""Protected access to lesson PDF materials.

Every entry point re-loads the lesson and re-checks the publish gate; nothing
about an access decision is cached. Storage references stay on the server:
clients receive either a short-lived signed URL or the proxied bytes.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Optional
from urllib.parse import quote

import httpx

from xfactor_api.core.config import settings
from xfactor_api.core.errors import NotFoundError, UpstreamError, ValidationError
from xfactor_api.services.lesson_repository import LessonRepository, get_visible_lesson, public_material
from xfactor_api.services.object_storage import ObjectStorage

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def pdf_stream_headers(file_name: str) -> dict[str, str]:
    """Headers for an inline, non-cacheable PDF response.

    The filename uses the RFC 5987 ``filename*`` form so non-ASCII names survive.
    """
    return {
        "Content-Type": PDF_MEDIA_TYPE,
        "Content-Disposition": f"inline; filename*=UTF-8''{quote(file_name, safe='')}",
        "Cache-Control": "private, no-cache, no-store, must-revalidate",
        "Pragma": "no-cache",
        "Expires": "0",
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "SAMEORIGIN",
        "Content-Security-Policy": "frame-ancestors 'self'",
    }


def _audit(action: str, user: dict, lesson_id: uuid.UUID, material_id: str) -> None:
    logger.info(
        "PDF access granted: user %s %s material %s from lesson %s",
        user["id"], action, material_id, lesson_id,
        extra={"audit": {
            "action": action,
            "user_id": str(user["id"]),
            "role": user.get("role"),
            "lesson_id": str(lesson_id),
            "material_id": material_id,
        }},
    )


def find_material(lesson, material_id: str) -> dict:
    for material in lesson.support_materials or []:
        if str(material.get("id")) == material_id:
            return material
    raise NotFoundError("The requested support material does not exist", details={"resource": "material"})


@dataclass
class MaterialStream:
    """An open upstream response; the caller must ``aclose`` it."""

    file_name: str
    response: httpx.Response
    client: httpx.AsyncClient

    def iter_bytes(self) -> AsyncIterator[bytes]:
        return self.response.aiter_bytes()

    async def aclose(self) -> None:
        await self.response.aclose()
        await self.client.aclose()


class MaterialAccessGateway:
    """Signed URLs, byte-stream proxy and listings for lesson materials."""

    def __init__(
        self,
        lessons: LessonRepository,
        storage: ObjectStorage,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.lessons = lessons
        self.storage = storage
        self.transport = transport
        self.clock = clock

    async def issue_viewer_url(self, user: dict, lesson_id: uuid.UUID, material_id: str) -> dict:
        lesson = await get_visible_lesson(self.lessons, lesson_id, user)
        material = find_material(lesson, material_id)
        if material.get("type") != "file":
            raise ValidationError("This endpoint only handles file materials")
        storage_ref = self._storage_ref(material)

        ttl = timedelta(hours=settings.VIEWER_URL_TTL_HOURS)
        expires_at = self.clock() + ttl
        signed_url = await self.storage.presigned_url(storage_ref, ttl)

        _audit("view", user, lesson_id, material_id)
        return {
            "materialId": material_id,
            "materialName": material.get("name"),
            "fileName": material.get("fileName"),
            "signedUrl": signed_url,
            "expiresAt": _iso(expires_at),
            "expiresInMinutes": int(ttl.total_seconds() // 60),
        }

    async def open_stream(self, user: dict, lesson_id: uuid.UUID, material_id: str) -> MaterialStream:
        lesson = await get_visible_lesson(self.lessons, lesson_id, user)
        try:
            material = find_material(lesson, material_id)
        except NotFoundError:
            material = None
        if material is None or material.get("type") != "file" or not material.get("storageRef"):
            raise NotFoundError("The requested PDF file does not exist", details={"resource": "material"})

        signed_url = await self.storage.presigned_url(
            material["storageRef"], timedelta(minutes=settings.STREAM_URL_TTL_MINUTES)
        )

        client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.STREAM_FETCH_TIMEOUT_SECONDS),
            transport=self.transport,
        )
        try:
            response = await client.send(client.build_request("GET", signed_url), stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            logger.error("Error streaming material %s of lesson %s: %s", material_id, lesson_id, e)
            raise UpstreamError("Unable to load the PDF file") from e

        if response.status_code >= 400:
            await response.aclose()
            await client.aclose()
            logger.error(
                "Storage returned %d for material %s of lesson %s",
                response.status_code, material_id, lesson_id,
            )
            raise UpstreamError("Unable to load the PDF file")

        _audit("stream", user, lesson_id, material_id)
        file_name = material.get("fileName") or material.get("name") or "document.pdf"
        return MaterialStream(file_name=file_name, response=response, client=client)

    async def list_materials(self, user: dict, lesson_id: uuid.UUID) -> dict:
        lesson = await get_visible_lesson(self.lessons, lesson_id, user)
        base = f"{settings.API_PREFIX}/lessons/{lesson.id}/materials"

        materials = []
        for material in lesson.support_materials or []:
            item = public_material(material)
            if material.get("type") == "link":
                item["accessUrl"] = material.get("url")
                item["accessType"] = "direct"
            elif material.get("type") == "file":
                item["accessUrl"] = f"{base}/{material.get('id')}/stream"
                item["viewUrl"] = f"{base}/{material.get('id')}/view"
                item["accessType"] = "protected"
            materials.append(item)

        return {
            "lessonId": str(lesson.id),
            "lessonTitle": lesson.title,
            "materials": materials,
            "totalCount": len(materials),
        }

    async def reissue_signed_url(self, storage_ref: str, expires_in_hours: Optional[float] = None) -> dict:
        """Fresh signed URL for a stored object (admin tooling)."""
        if not storage_ref.startswith(f"{settings.MATERIALS_PREFIX.strip('/')}/") or ".." in storage_ref:
            raise ValidationError("Unknown storage reference")
        hours = expires_in_hours if expires_in_hours is not None else settings.SIGNED_URL_TTL_HOURS
        ttl = timedelta(hours=hours)
        signed_url = await self.storage.presigned_url(storage_ref, ttl)
        return {
            "signedUrl": signed_url,
            "expiresAt": _iso(self.clock() + ttl),
            "expiresInHours": hours,
        }

    @staticmethod
    def _storage_ref(material: dict) -> str:
        storage_ref = material.get("storageRef")
        if not storage_ref:
            raise NotFoundError("The requested PDF file is not available", details={"resource": "material"})
        return storage_ref
