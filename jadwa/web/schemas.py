"""Request bodies for the Jadwa JSON API.

Fields accept both snake_case and the camelCase names used by the web and
mobile clients (``consultantId``, ``durationMinutes``...).

Usage:
    from jadwa.web.schemas import BookConsultationRequest

    @router.post("/book")
    async def book(body: BookConsultationRequest):
        ...
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Consultations
# ============================================================================


class BookConsultationRequest(_Request):
    """Used by: POST /api/consultations/book"""

    type: str
    price: Decimal
    duration_minutes: int = 60
    consultant_id: UUID | None = None
    scheduled_at: datetime | None = None
    notes: str | None = None


class UpdateStatusRequest(_Request):
    """Used by: PUT /api/consultations/{id}/status"""

    status: str
    meeting_link: str | None = None


class AssignConsultantRequest(_Request):
    """Used by: PUT /api/consultations/{id}/assign-consultant"""

    consultant_id: UUID


class ApproveConsultationRequest(_Request):
    """Used by: PUT /api/admin/consultations/{id}/approve"""

    consultant_id: UUID | None = None


# ============================================================================
# Payments
# ============================================================================


class CreatePaymentRequest(_Request):
    """Used by: POST /api/payments/create"""

    consultation_id: UUID
    amount: Decimal
    payment_method: str | None = None
    transaction_id: str | None = None


# ============================================================================
# Study requests
# ============================================================================


class CreateStudyRequest(_Request):
    """Used by: POST /api/study-requests"""

    type: str
    title: str
    description: str
    details: dict[str, Any] = Field(default_factory=dict)
    attachments: list[Any] = Field(default_factory=list)


class QuoteStudyRequest(_Request):
    price: Decimal
    duration_days: int


class CompleteStudyRequest(_Request):
    deliverables: list[Any] = Field(default_factory=list)


class RejectStudyRequest(_Request):
    reason: str | None = None
