"""Support tickets.

The conversation is stored on the ticket as a JSON list of messages. Staff
(support, admin) see every ticket and internal notes; owners see only their
own tickets and never the internal notes.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from xfactor_api.core.errors import AuthorizationError, NotFoundError, UpstreamError, ValidationError
from xfactor_api.models.support import SupportTicket
from xfactor_api.schemas.support import TicketCreate, TicketUpdate

logger = logging.getLogger(__name__)

STAFF_ROLES = frozenset({"support", "admin"})
OPEN_STATUSES = ("open", "in_progress")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def is_staff(user: dict) -> bool:
    return user.get("role") in STAFF_ROLES


def new_message(user: dict, text: str, is_internal: bool = False) -> dict:
    return {
        "id": uuid.uuid4().hex,
        "user_id": str(user["id"]),
        "author_role": user.get("role"),
        "message": text,
        "timestamp": _now_iso(),
        "attachments": [],
        "is_internal": is_internal,
    }


def format_ticket(ticket: SupportTicket, viewer: dict) -> dict:
    messages = list(ticket.messages or [])
    if not is_staff(viewer):
        messages = [m for m in messages if not m.get("is_internal")]
    return {
        "id": str(ticket.id),
        "user_id": str(ticket.user_id),
        "title": ticket.title,
        "description": ticket.description,
        "status": ticket.status,
        "priority": ticket.priority,
        "assigned_to": str(ticket.assigned_to) if ticket.assigned_to else None,
        "messages": messages,
        "created_at": ticket.created_at.isoformat() if ticket.created_at else None,
        "updated_at": ticket.updated_at.isoformat() if ticket.updated_at else None,
    }


class SupportService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _commit(self, ticket: SupportTicket) -> None:
        try:
            await self.db.commit()
            await self.db.refresh(ticket)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to save ticket: %s", e)
            raise UpstreamError("Failed to save support ticket") from e

    async def _get_visible(self, ticket_id: uuid.UUID, user: dict) -> SupportTicket:
        try:
            result = await self.db.execute(select(SupportTicket).where(SupportTicket.id == ticket_id))
        except SQLAlchemyError as e:
            logger.error("Failed to fetch ticket %s: %s", ticket_id, e)
            raise UpstreamError("Failed to fetch support ticket") from e
        ticket = result.scalar_one_or_none()
        # non-owners get the same answer as for a missing ticket
        if ticket is None or (ticket.user_id != user["id"] and not is_staff(user)):
            raise NotFoundError("Support ticket not found", details={"resource": "ticket"})
        return ticket

    async def create(self, user: dict, data: TicketCreate) -> dict:
        ticket = SupportTicket(
            user_id=user["id"],
            title=data.title,
            description=data.description,
            priority=data.priority,
            status="open",
            messages=[new_message(user, data.description)],
        )
        self.db.add(ticket)
        await self._commit(ticket)
        logger.info("Support ticket %s opened by %s", ticket.id, user["id"])
        return format_ticket(ticket, user)

    async def list_tickets(self, user: dict) -> list[dict]:
        stmt = select(SupportTicket).order_by(SupportTicket.updated_at.desc())
        if is_staff(user):
            stmt = stmt.where(
                or_(SupportTicket.status.in_(OPEN_STATUSES), SupportTicket.assigned_to == user["id"])
            )
        else:
            stmt = stmt.where(SupportTicket.user_id == user["id"])
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to list tickets: %s", e)
            raise UpstreamError("Failed to fetch support tickets") from e
        return [format_ticket(t, user) for t in result.scalars().all()]

    async def get(self, user: dict, ticket_id: uuid.UUID) -> dict:
        return format_ticket(await self._get_visible(ticket_id, user), user)

    async def update(self, user: dict, ticket_id: uuid.UUID, data: TicketUpdate) -> dict:
        ticket = await self._get_visible(ticket_id, user)
        staff = is_staff(user)

        workflow_change = any(
            v is not None for v in (data.status, data.priority, data.assigned_to)
        )
        if (workflow_change or data.is_internal) and not staff:
            raise AuthorizationError("Only support staff can change ticket workflow fields")
        if not workflow_change and data.message is None:
            raise ValidationError("Nothing to update")

        if data.status is not None:
            ticket.status = data.status
        if data.priority is not None:
            ticket.priority = data.priority
        if data.assigned_to is not None:
            ticket.assigned_to = self._parse_assignee(data.assigned_to)
        if data.message is not None:
            # reassign so the JSONB column is flagged dirty
            ticket.messages = list(ticket.messages or []) + [
                new_message(user, data.message, is_internal=data.is_internal)
            ]
        ticket.updated_at = datetime.now(timezone.utc)

        await self._commit(ticket)
        return format_ticket(ticket, user)

    @staticmethod
    def _parse_assignee(value: str) -> Optional[uuid.UUID]:
        if not value:
            return None
        try:
            return uuid.UUID(value)
        except ValueError:
            raise ValidationError("assigned_to must be a user id")
