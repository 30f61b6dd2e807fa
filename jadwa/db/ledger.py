"""Ledger queries: engagements, payments and messages.

Pure data access. Business rules live in ``jadwa.workflow`` and
``jadwa.payments``; this module only reads rows and applies guarded writes.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from jadwa.db.models import (
    Base,
    ConsultationModel,
    MessageModel,
    PaymentModel,
    StudyRequestModel,
    UserModel,
    utcnow,
)
from jadwa.errors import ConflictError, NotFoundError
from jadwa.models import Message, UserSummary

VersionedModel = TypeVar("VersionedModel", ConsultationModel, StudyRequestModel)


# ============================================================================
# Users
# ============================================================================


async def get_user(session: AsyncSession, user_id: UUID) -> UserModel | None:
    return await session.get(UserModel, user_id)


async def get_users(session: AsyncSession, user_ids: Iterable[UUID]) -> dict[UUID, UserModel]:
    ids = {uid for uid in user_ids if uid is not None}
    if not ids:
        return {}
    rows = await session.execute(select(UserModel).where(UserModel.id.in_(ids)))
    return {user.id: user for user in rows.scalars()}


# ============================================================================
# Versioned engagement rows
# ============================================================================


async def compare_and_swap(
    session: AsyncSession,
    row: VersionedModel,
    seen_version: int,
    **values: Any,
) -> VersionedModel:
    """Apply ``values`` only if the row is still at ``seen_version``.

    Bumps ``version`` and ``updated_at``. Raises ConflictError when another
    writer got there first; the caller's transaction is left for rollback.
    """
    model = type(row)
    stmt = (
        update(model)
        .where(and_(model.id == row.id, model.version == seen_version))
        .values(version=seen_version + 1, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if result.rowcount != 1:
        raise ConflictError(
            f"{model.__tablename__} row {row.id} changed concurrently; re-read and retry",
            details={"id": str(row.id), "seen_version": seen_version},
        )

    refreshed = await session.get(model, row.id, populate_existing=True)
    if refreshed is None:
        raise NotFoundError(f"{model.__tablename__} row {row.id} no longer exists")
    return refreshed


async def insert_row(session: AsyncSession, row: Base) -> Base:
    session.add(row)
    await session.flush()
    return row


# ============================================================================
# Consultations
# ============================================================================


async def get_consultation(session: AsyncSession, consultation_id: UUID) -> ConsultationModel | None:
    return await session.get(ConsultationModel, consultation_id, populate_existing=True)


async def list_consultations(
    session: AsyncSession,
    *,
    client_id: UUID | None = None,
    consultant_id: UUID | None = None,
    type: str | None = None,
    statuses: Sequence[str] | None = None,
) -> list[ConsultationModel]:
    """Newest first."""
    stmt = select(ConsultationModel)
    if client_id is not None:
        stmt = stmt.where(ConsultationModel.client_id == client_id)
    if consultant_id is not None:
        stmt = stmt.where(ConsultationModel.consultant_id == consultant_id)
    if type is not None:
        stmt = stmt.where(ConsultationModel.type == type)
    if statuses:
        stmt = stmt.where(ConsultationModel.status.in_(list(statuses)))
    stmt = stmt.order_by(ConsultationModel.created_at.desc())

    rows = await session.execute(stmt)
    return list(rows.scalars())


# ============================================================================
# Study requests
# ============================================================================


async def get_study_request(session: AsyncSession, request_id: UUID) -> StudyRequestModel | None:
    return await session.get(StudyRequestModel, request_id, populate_existing=True)


async def list_study_requests(
    session: AsyncSession,
    *,
    client_id: UUID | None = None,
    consultant_id: UUID | None = None,
) -> list[StudyRequestModel]:
    stmt = select(StudyRequestModel)
    if client_id is not None:
        stmt = stmt.where(StudyRequestModel.client_id == client_id)
    if consultant_id is not None:
        stmt = stmt.where(StudyRequestModel.consultant_id == consultant_id)
    stmt = stmt.order_by(StudyRequestModel.created_at.desc())

    rows = await session.execute(stmt)
    return list(rows.scalars())


# ============================================================================
# Payments
# ============================================================================


async def get_payment(session: AsyncSession, payment_id: UUID) -> PaymentModel | None:
    return await session.get(PaymentModel, payment_id, populate_existing=True)


async def list_payments(
    session: AsyncSession,
    related_id: UUID,
    related_type: str,
) -> list[PaymentModel]:
    """All payments for an engagement, newest first."""
    stmt = (
        select(PaymentModel)
        .where(
            PaymentModel.related_id == related_id,
            PaymentModel.related_type == related_type,
        )
        .order_by(PaymentModel.created_at.desc())
    )
    rows = await session.execute(stmt)
    return list(rows.scalars())


async def latest_payment(
    session: AsyncSession,
    related_id: UUID,
    related_type: str,
    status: str | None = None,
) -> PaymentModel | None:
    stmt = select(PaymentModel).where(
        PaymentModel.related_id == related_id,
        PaymentModel.related_type == related_type,
    )
    if status is not None:
        stmt = stmt.where(PaymentModel.status == status)
    stmt = stmt.order_by(PaymentModel.created_at.desc()).limit(1)

    rows = await session.execute(stmt)
    return rows.scalars().first()


async def latest_payments_by_related(
    session: AsyncSession,
    related_ids: Sequence[UUID],
    related_type: str,
) -> dict[UUID, PaymentModel]:
    """Most recent payment (any status) per engagement id."""
    if not related_ids:
        return {}
    stmt = (
        select(PaymentModel)
        .where(
            PaymentModel.related_id.in_(list(related_ids)),
            PaymentModel.related_type == related_type,
        )
        .order_by(PaymentModel.created_at.asc())
    )
    rows = await session.execute(stmt)
    latest: dict[UUID, PaymentModel] = {}
    for payment in rows.scalars():
        latest[payment.related_id] = payment
    return latest


async def related_ids_with_status(
    session: AsyncSession,
    related_ids: Sequence[UUID],
    related_type: str,
    status: str,
) -> set[UUID]:
    if not related_ids:
        return set()
    stmt = select(PaymentModel.related_id).where(
        PaymentModel.related_id.in_(list(related_ids)),
        PaymentModel.related_type == related_type,
        PaymentModel.status == status,
    )
    rows = await session.execute(stmt)
    return set(rows.scalars())


async def set_payment_status(
    session: AsyncSession,
    payment: PaymentModel,
    seen_status: str,
    new_status: str,
) -> PaymentModel:
    """Guarded status write: only applies while the row still has ``seen_status``."""
    stmt = (
        update(PaymentModel)
        .where(PaymentModel.id == payment.id, PaymentModel.status == seen_status)
        .values(status=new_status, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if result.rowcount != 1:
        raise ConflictError(
            f"Payment {payment.id} changed concurrently; re-read and retry",
            details={"id": str(payment.id), "seen_status": seen_status},
        )
    refreshed = await session.get(PaymentModel, payment.id, populate_existing=True)
    if refreshed is None:
        raise NotFoundError(f"Payment {payment.id} no longer exists")
    return refreshed


# ============================================================================
# Messages
# ============================================================================


async def append_message(
    session: AsyncSession,
    consultation_id: UUID,
    sender_id: UUID,
    text: str,
    file_url: str | None = None,
    file_name: str | None = None,
) -> MessageModel:
    """Append a message at the next sequence position for the consultation.

    The (consultation_id, seq) unique constraint rejects a concurrent append
    that computed the same position.
    """
    next_seq_stmt = select(func.coalesce(func.max(MessageModel.seq), 0)).where(
        MessageModel.consultation_id == consultation_id
    )
    next_seq = (await session.execute(next_seq_stmt)).scalar_one() + 1

    row = MessageModel(
        consultation_id=consultation_id,
        sender_id=sender_id,
        seq=next_seq,
        message=text,
        file_url=file_url,
        file_name=file_name,
        read=False,
    )
    session.add(row)
    await session.flush()
    return row


async def fetch_history(session: AsyncSession, consultation_id: UUID) -> list[Message]:
    """All messages for a consultation, oldest first."""
    stmt = (
        select(MessageModel, UserModel)
        .outerjoin(UserModel, UserModel.id == MessageModel.sender_id)
        .where(MessageModel.consultation_id == consultation_id)
        .order_by(MessageModel.seq.asc())
    )
    rows = await session.execute(stmt)
    return [to_message(row.MessageModel, row.UserModel) for row in rows.all()]


async def get_message(session: AsyncSession, message_id: UUID) -> MessageModel | None:
    return await session.get(MessageModel, message_id)


async def mark_message_read(session: AsyncSession, message_id: UUID) -> bool:
    stmt = (
        update(MessageModel)
        .where(MessageModel.id == message_id)
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1


async def count_unread(session: AsyncSession, consultation_id: UUID, reader_id: UUID) -> int:
    stmt = select(func.count(MessageModel.id)).where(
        MessageModel.consultation_id == consultation_id,
        MessageModel.sender_id != reader_id,
        MessageModel.read.is_(False),
    )
    return (await session.execute(stmt)).scalar_one()


def to_message(model: MessageModel, sender: UserModel | None) -> Message:
    return Message(
        id=model.id,
        consultation_id=model.consultation_id,
        sender_id=model.sender_id,
        sender=UserSummary.model_validate(sender) if sender is not None else None,
        message=model.message,
        file_url=model.file_url,
        file_name=model.file_name,
        read=model.read,
        seq=model.seq,
        created_at=model.created_at,
    )


def as_decimal(value: Decimal | float | int | str) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))
