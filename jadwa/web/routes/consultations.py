"""Consultation booking, listing and status routes."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from jadwa.container import Services
from jadwa.models import BookingResult, Consultation, Identity
from jadwa.web.dependencies import get_current_identity, get_services
from jadwa.web.schemas import AssignConsultantRequest, BookConsultationRequest, UpdateStatusRequest

router = APIRouter(prefix="/api/consultations", tags=["consultations"])


@router.post("/book", response_model=BookingResult, status_code=status.HTTP_201_CREATED)
async def book_consultation(
    body: BookConsultationRequest,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    """Book a consultation; returns it together with its pending payment."""
    return await services.consultations.book(
        identity,
        body.type,
        body.price,
        duration_minutes=body.duration_minutes,
        consultant_id=body.consultant_id,
        scheduled_at=body.scheduled_at,
        notes=body.notes,
    )


@router.get("/my", response_model=list[Consultation])
async def my_consultations(
    type: str | None = None,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    return await services.consultations.list_mine(identity, type=type)


@router.get("/{consultation_id}", response_model=Consultation)
async def get_consultation(
    consultation_id: UUID,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    return await services.consultations.get(consultation_id, identity)


@router.put("/{consultation_id}/status", response_model=Consultation)
async def update_consultation_status(
    consultation_id: UUID,
    body: UpdateStatusRequest,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    return await services.consultations.update_status(
        consultation_id, body.status, identity, meeting_link=body.meeting_link
    )


@router.put("/{consultation_id}/assign-consultant", response_model=Consultation)
async def assign_consultant(
    consultation_id: UUID,
    body: AssignConsultantRequest,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    """Admin only. Requires a confirmed payment."""
    return await services.consultations.assign_consultant(
        consultation_id, body.consultant_id, identity
    )
