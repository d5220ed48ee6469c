"""User endpoints."""

from fastapi import APIRouter, Depends

from xfactor_api.api.deps import get_progress_service
from xfactor_api.core.auth import get_current_user
from xfactor_api.schemas.common import success
from xfactor_api.services.progress_service import ProgressService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me/stats")
async def get_my_stats(
    user: dict = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service),
) -> dict:
    return success(await service.stats(user["id"]))
