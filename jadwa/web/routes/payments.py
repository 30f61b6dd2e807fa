"""Payment ledger routes."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from jadwa.container import Services
from jadwa.models import Identity, Payment
from jadwa.web.dependencies import get_current_identity, get_services
from jadwa.web.schemas import CreatePaymentRequest

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post("/create", response_model=Payment, status_code=status.HTTP_201_CREATED)
async def create_payment(
    body: CreatePaymentRequest,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    return await services.payments.create_payment(
        body.consultation_id,
        body.amount,
        identity,
        payment_method=body.payment_method,
        transaction_id=body.transaction_id,
    )


@router.put("/{payment_id}/confirm", response_model=Payment)
async def confirm_payment(
    payment_id: UUID,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    """Admin marks a payment completed. Does not change the consultation."""
    return await services.consultations.confirm_payment(payment_id, identity)


@router.get("/consultation/{consultation_id}", response_model=list[Payment])
async def consultation_payments(
    consultation_id: UUID,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    return await services.payments.list_for_engagement(consultation_id, identity)
