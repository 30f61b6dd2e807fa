"""Message history and read-receipt routes for chat consultations."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from jadwa.container import Services
from jadwa.models import Identity, Message
from jadwa.web.dependencies import get_current_identity, get_services

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.get("/{consultation_id}", response_model=list[Message])
async def message_history(
    consultation_id: UUID,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    """Full backlog, oldest first. Live delivery goes through /ws."""
    return await services.relay.history(consultation_id, identity)


@router.get("/{consultation_id}/unread-count")
async def unread_count(
    consultation_id: UUID,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    count = await services.relay.unread_count(consultation_id, identity)
    return {"consultation_id": str(consultation_id), "unread": count}


@router.put("/{message_id}/read")
async def mark_message_read(
    message_id: UUID,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    await services.relay.mark_read(message_id, identity)
    return {"success": True}
