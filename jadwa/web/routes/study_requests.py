"""Study request routes: submit, quote, approve, complete, reject."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Body, Depends, status

from jadwa.container import Services
from jadwa.models import Identity, StudyRequest
from jadwa.web.dependencies import get_current_identity, get_services
from jadwa.web.schemas import (
    CompleteStudyRequest,
    CreateStudyRequest,
    QuoteStudyRequest,
    RejectStudyRequest,
)

router = APIRouter(prefix="/api/study-requests", tags=["study-requests"])


@router.post("", response_model=StudyRequest, status_code=status.HTTP_201_CREATED)
async def create_study_request(
    body: CreateStudyRequest,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    return await services.studies.create(
        identity,
        body.type,
        body.title,
        body.description,
        details=body.details,
        attachments=body.attachments,
    )


@router.get("/my", response_model=list[StudyRequest])
async def my_study_requests(
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    return await services.studies.list_mine(identity)


@router.get("/{request_id}", response_model=StudyRequest)
async def get_study_request(
    request_id: UUID,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    return await services.studies.get(request_id, identity)


@router.put("/{request_id}/quote", response_model=StudyRequest)
async def quote_study_request(
    request_id: UUID,
    body: QuoteStudyRequest,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    """Consultant (or admin) prices the request; an unbound request is claimed by the quoting consultant."""
    return await services.studies.quote(request_id, body.price, body.duration_days, identity)


@router.put("/{request_id}/approve", response_model=StudyRequest)
async def approve_study_request(
    request_id: UUID,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    return await services.studies.approve(request_id, identity)


@router.put("/{request_id}/complete", response_model=StudyRequest)
async def complete_study_request(
    request_id: UUID,
    body: CompleteStudyRequest,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    return await services.studies.complete(request_id, body.deliverables, identity)


@router.put("/{request_id}/reject", response_model=StudyRequest)
async def reject_study_request(
    request_id: UUID,
    body: RejectStudyRequest | None = Body(default=None),
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    return await services.studies.reject(request_id, identity, reason=body.reason if body else None)
