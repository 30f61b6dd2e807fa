"""Admin console routes: consultation queue and approval."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Body, Depends

from jadwa.container import Services
from jadwa.models import AdminConsultationRow, Consultation, Identity
from jadwa.web.dependencies import get_current_identity, get_services
from jadwa.web.schemas import ApproveConsultationRequest

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/consultations", response_model=list[AdminConsultationRow])
async def list_consultations(
    view: str = "all",
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    """view=requests (pending), active (confirmed onwards) or all."""
    return await services.consultations.admin_list(identity, view)


@router.put("/consultations/{consultation_id}/approve", response_model=Consultation)
async def approve_consultation(
    consultation_id: UUID,
    body: ApproveConsultationRequest | None = Body(default=None),
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    consultant_id = body.consultant_id if body else None
    return await services.consultations.approve_or_assign(
        consultation_id, identity, consultant_id=consultant_id
    )
