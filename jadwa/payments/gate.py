"""Payment Gate: the internal payment status ledger.

Answers one question for the workflows ("is this engagement paid?") and owns
the admin confirmation step. No money moves here.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from jadwa.core.audit_logger import AuditLog
from jadwa.core.background import BackgroundDispatcher
from jadwa.core.locks import KeyedLock
from jadwa.db import ledger
from jadwa.db.connection import get_session_factory, session_scope
from jadwa.db.models import PaymentModel
from jadwa.errors import (
    AuthorizationError,
    InvalidTransition,
    NotFoundError,
    PreconditionFailed,
    ValidationError,
)
from jadwa.models import Identity, Payment, PaymentStatus, RelatedType

logger = structlog.get_logger(__name__)


def parse_amount(value: Decimal | float | int | str | None, field: str = "amount") -> Decimal:
    if value is None:
        raise ValidationError(f"{field} is required")
    try:
        amount = ledger.as_decimal(value)
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} must be a number") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{field} must be positive")
    return amount


class PaymentGate:
    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        *,
        audit: AuditLog | None = None,
        dispatcher: BackgroundDispatcher | None = None,
        locks: KeyedLock | None = None,
        currency: str = "SAR",
    ):
        self._session_factory = session_factory
        self.audit = audit or AuditLog(session_factory)
        self.dispatcher = dispatcher or BackgroundDispatcher()
        self.locks = locks or KeyedLock()
        self.currency = currency

    def _sessions(self) -> sessionmaker:
        return self._session_factory or get_session_factory()

    # ------------------------------------------------------------------
    # Predicate used by the workflows (inside their own transaction)
    # ------------------------------------------------------------------

    async def effective_payment(
        self,
        session: AsyncSession,
        related_id: UUID,
        related_type: RelatedType = RelatedType.CONSULTATION,
    ) -> PaymentModel | None:
        """Most recently created completed payment, if any."""
        return await ledger.latest_payment(
            session, related_id, related_type.value, status=PaymentStatus.COMPLETED.value
        )

    async def is_completed(
        self,
        session: AsyncSession,
        related_id: UUID,
        related_type: RelatedType = RelatedType.CONSULTATION,
    ) -> bool:
        return await self.effective_payment(session, related_id, related_type) is not None

    async def require_completed(self, session: AsyncSession, related_id: UUID) -> PaymentModel:
        payment = await self.effective_payment(session, related_id)
        if payment is None:
            raise PreconditionFailed(
                "Payment must be confirmed before this step",
                details={"engagement_id": str(related_id)},
            )
        return payment

    async def open_pending(
        self,
        session: AsyncSession,
        user_id: UUID,
        related_id: UUID,
        amount: Decimal,
        related_type: RelatedType = RelatedType.CONSULTATION,
        payment_method: str | None = None,
        transaction_id: str | None = None,
    ) -> PaymentModel:
        """Add a pending payment inside the caller's transaction."""
        payment = PaymentModel(
            user_id=user_id,
            related_id=related_id,
            related_type=related_type.value,
            amount=amount,
            currency=self.currency,
            status=PaymentStatus.PENDING.value,
            payment_method=payment_method,
            transaction_id=transaction_id,
        )
        await ledger.insert_row(session, payment)
        return payment

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create_payment(
        self,
        consultation_id: UUID,
        amount: Decimal | float | int | str | None,
        actor: Identity,
        payment_method: str | None = None,
        transaction_id: str | None = None,
    ) -> Payment:
        """Client registers another pending payment for a consultation they own."""
        if not actor.is_client:
            raise AuthorizationError("Only clients can create payments")
        value = parse_amount(amount)

        async with session_scope(self._sessions()) as session:
            consultation = await ledger.get_consultation(session, consultation_id)
            if consultation is None or consultation.client_id != actor.user_id:
                raise NotFoundError("Consultation not found")

            payment = await self.open_pending(
                session,
                actor.user_id,
                consultation_id,
                value,
                payment_method=payment_method,
                transaction_id=transaction_id,
            )
            result = Payment.model_validate(payment)

        logger.info("payment_created", payment_id=str(result.id), consultation_id=str(consultation_id))
        return result

    async def confirm_payment(self, payment_id: UUID, actor: Identity) -> Payment:
        """Admin marks a pending payment completed.

        Does not touch the engagement; it only unblocks approval/assignment.
        Confirming an already-completed payment is a no-op.
        """
        if not actor.is_active_admin:
            raise AuthorizationError("Admin access required")

        async with session_scope(self._sessions()) as session:
            payment = await ledger.get_payment(session, payment_id)
            if payment is None:
                raise NotFoundError("Payment not found")
            related_id = payment.related_id

        async with self.locks.acquire(related_id):
            async with session_scope(self._sessions()) as session:
                payment = await ledger.get_payment(session, payment_id)
                if payment is None:
                    raise NotFoundError("Payment not found")

                if payment.status == PaymentStatus.COMPLETED.value:
                    return Payment.model_validate(payment)
                if payment.status != PaymentStatus.PENDING.value:
                    raise InvalidTransition("payment", payment.status, PaymentStatus.COMPLETED.value)

                payment = await ledger.set_payment_status(
                    session,
                    payment,
                    seen_status=PaymentStatus.PENDING.value,
                    new_status=PaymentStatus.COMPLETED.value,
                )
                result = Payment.model_validate(payment)

        logger.info("payment_confirmed", payment_id=str(payment_id), related_id=str(related_id))
        self.dispatcher.dispatch(
            self.audit.record(
                actor.user_id,
                "confirm_payment",
                "payment",
                payment_id,
                {"payment_id": str(payment_id), "amount": str(result.amount)},
            ),
            name="audit:confirm_payment",
        )
        return result

    async def list_for_engagement(self, consultation_id: UUID, actor: Identity) -> list[Payment]:
        """Payments for a consultation, newest first."""
        async with session_scope(self._sessions()) as session:
            consultation = await ledger.get_consultation(session, consultation_id)
            if consultation is None:
                raise NotFoundError("Consultation not found")

            # Participants see their own billing even before the chat gate opens
            participant = actor.user_id in (consultation.client_id, consultation.consultant_id)
            if not (actor.is_admin or participant):
                raise AuthorizationError("Not allowed to view payments for this consultation")

            payments = await ledger.list_payments(
                session, consultation_id, RelatedType.CONSULTATION.value
            )
            return [Payment.model_validate(p) for p in payments]
