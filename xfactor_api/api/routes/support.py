"""Support ticket endpoints."""

import uuid

from fastapi import APIRouter, Depends

from xfactor_api.api.deps import get_support_service
from xfactor_api.core.auth import get_current_user
from xfactor_api.schemas.common import success
from xfactor_api.schemas.support import TicketCreate, TicketUpdate
from xfactor_api.services.support_service import SupportService

router = APIRouter(prefix="/support", tags=["support"])


@router.get("/tickets")
async def list_tickets(
    user: dict = Depends(get_current_user),
    service: SupportService = Depends(get_support_service),
) -> dict:
    tickets = await service.list_tickets(user)
    return success({"tickets": tickets, "totalCount": len(tickets)})


@router.post("/tickets", status_code=201)
async def create_ticket(
    payload: TicketCreate,
    user: dict = Depends(get_current_user),
    service: SupportService = Depends(get_support_service),
) -> dict:
    return success(await service.create(user, payload), "Support ticket created")


@router.get("/tickets/{ticket_id}")
async def get_ticket(
    ticket_id: uuid.UUID,
    user: dict = Depends(get_current_user),
    service: SupportService = Depends(get_support_service),
) -> dict:
    return success(await service.get(user, ticket_id))


@router.put("/tickets/{ticket_id}")
async def update_ticket(
    ticket_id: uuid.UUID,
    payload: TicketUpdate,
    user: dict = Depends(get_current_user),
    service: SupportService = Depends(get_support_service),
) -> dict:
    return success(await service.update(user, ticket_id, payload), "Support ticket updated")
