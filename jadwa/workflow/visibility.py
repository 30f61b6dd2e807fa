"""Who may see a consultation.

Shared by "my consultations" listings, single fetches, message history and
relay room admission so that all of them apply the same gate.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from jadwa.db import ledger
from jadwa.db.models import ConsultationModel
from jadwa.models import ConsultationStatus, ConsultationType, Identity, PaymentStatus, RelatedType

CHAT_VISIBLE_STATUSES = frozenset(
    {
        ConsultationStatus.CONFIRMED.value,
        ConsultationStatus.IN_PROGRESS.value,
        ConsultationStatus.COMPLETED.value,
    }
)


def is_visible(consultation: ConsultationModel, identity: Identity, payment_completed: bool) -> bool:
    """Chat threads stay hidden until paid and assigned, whatever the row's status says."""
    if identity.is_admin:
        return True

    is_chat = consultation.type == ConsultationType.CHAT.value

    if identity.is_consultant and consultation.consultant_id == identity.user_id:
        if is_chat:
            return consultation.status in CHAT_VISIBLE_STATUSES
        return True

    if identity.is_client and consultation.client_id == identity.user_id:
        if is_chat:
            return consultation.consultant_id is not None and payment_completed
        return True

    return False


async def check_visibility(
    session: AsyncSession,
    consultation: ConsultationModel,
    identity: Identity,
) -> bool:
    payment = await ledger.latest_payment(
        session,
        consultation.id,
        RelatedType.CONSULTATION.value,
        status=PaymentStatus.COMPLETED.value,
    )
    return is_visible(consultation, identity, payment is not None)


async def filter_visible(
    session: AsyncSession,
    consultations: list[ConsultationModel],
    identity: Identity,
) -> list[ConsultationModel]:
    paid = await ledger.related_ids_with_status(
        session,
        [c.id for c in consultations],
        RelatedType.CONSULTATION.value,
        PaymentStatus.COMPLETED.value,
    )
    return [c for c in consultations if is_visible(c, identity, c.id in paid)]
