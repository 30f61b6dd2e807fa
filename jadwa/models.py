"""Jadwa Pydantic models for type-safe engagement data.

Enums mirror the string values stored in the ledger; views are built from
ORM rows with ``model_validate(row)`` and are what the engine returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    CLIENT = "client"
    CONSULTANT = "consultant"
    ADMIN = "admin"


class UserStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    SUSPENDED = "suspended"


class ConsultationType(str, Enum):
    VIDEO = "video"
    CHAT = "chat"


class ConsultationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class StudyType(str, Enum):
    FEASIBILITY_STUDY = "feasibility_study"
    ECONOMIC_ANALYSIS = "economic_analysis"
    FINANCIAL_REPORT = "financial_report"


class StudyStatus(str, Enum):
    PENDING = "pending"
    QUOTED = "quoted"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class RelatedType(str, Enum):
    """Kind of engagement a payment belongs to."""

    CONSULTATION = "consultation"
    STUDY = "study"


class AdminConsultationView(str, Enum):
    REQUESTS = "requests"
    ACTIVE = "active"
    ALL = "all"


@dataclass(frozen=True, slots=True)
class Identity:
    """Authenticated caller, as resolved by the identity provider."""

    user_id: UUID
    role: Role
    status: UserStatus = UserStatus.ACTIVE
    full_name: str | None = None
    avatar_url: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_active_admin(self) -> bool:
        return self.role == Role.ADMIN and self.status == UserStatus.ACTIVE

    @property
    def is_consultant(self) -> bool:
        return self.role == Role.CONSULTANT

    @property
    def is_client(self) -> bool:
        return self.role == Role.CLIENT


class _View(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class UserSummary(_View):
    id: UUID
    full_name: str
    avatar_url: str | None = None


class Consultation(_View):
    id: UUID
    client_id: UUID
    consultant_id: UUID | None = None
    type: ConsultationType
    status: ConsultationStatus
    scheduled_at: datetime | None = None
    duration_minutes: int
    price: Decimal
    notes: str | None = None
    meeting_link: str | None = None
    completed_at: datetime | None = None
    version: int
    created_at: datetime
    updated_at: datetime | None = None


class Payment(_View):
    id: UUID
    user_id: UUID
    related_id: UUID
    related_type: RelatedType
    amount: Decimal
    currency: str
    status: PaymentStatus
    payment_method: str | None = None
    transaction_id: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class BookingResult(BaseModel):
    consultation: Consultation
    payment: Payment


class AdminConsultationRow(BaseModel):
    """Consultation paired with its most recent payment (any status)."""

    consultation: Consultation
    payment: Payment | None = None


class StudyRequest(_View):
    id: UUID
    client_id: UUID
    consultant_id: UUID | None = None
    type: StudyType
    title: str
    description: str
    details: dict[str, Any] = Field(default_factory=dict)
    attachments: list[Any] = Field(default_factory=list)
    price: Decimal | None = None
    duration_days: int | None = None
    status: StudyStatus
    deliverables: list[Any] = Field(default_factory=list)
    rejection_reason: str | None = None
    completed_at: datetime | None = None
    version: int
    created_at: datetime
    updated_at: datetime | None = None


class Message(_View):
    id: UUID
    consultation_id: UUID
    sender_id: UUID
    sender: UserSummary | None = None
    message: str
    file_url: str | None = None
    file_name: str | None = None
    read: bool = False
    seq: int
    created_at: datetime
