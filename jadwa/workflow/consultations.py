"""Consultation workflow (video and chat engagements).

Booking, payment-gated approval and consultant assignment, actor-scoped
status updates and participant listings. Every operation on an existing
consultation runs under that consultation's lock and writes through a
compare-and-swap on its version, so concurrent callers never both act on a
stale status.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from jadwa.core.audit_logger import AuditLog
from jadwa.core.background import BackgroundDispatcher
from jadwa.core.locks import KeyedLock
from jadwa.db import ledger
from jadwa.db.connection import get_session_factory, session_scope
from jadwa.db.models import ConsultationModel, UserModel, utcnow
from jadwa.errors import AuthorizationError, NotFoundError, PreconditionFailed, ValidationError
from jadwa.models import (
    AdminConsultationRow,
    AdminConsultationView,
    BookingResult,
    Consultation,
    ConsultationStatus,
    ConsultationType,
    Identity,
    Payment,
    RelatedType,
    Role,
    UserStatus,
)
from jadwa.notifications.notifier import DatabaseNotifier, Notifier
from jadwa.payments.gate import PaymentGate, parse_amount
from jadwa.workflow.transitions import ConsultationStateValidator
from jadwa.workflow.visibility import CHAT_VISIBLE_STATUSES, check_visibility, filter_visible

logger = structlog.get_logger(__name__)

CONSULTANT_TARGETS = frozenset(
    {
        ConsultationStatus.CONFIRMED,
        ConsultationStatus.IN_PROGRESS,
        ConsultationStatus.COMPLETED,
        ConsultationStatus.CANCELLED,
    }
)
CLIENT_TARGETS = frozenset({ConsultationStatus.CANCELLED})


def _parse_type(value: str | ConsultationType | None) -> ConsultationType:
    try:
        return ConsultationType(value)
    except ValueError:
        raise ValidationError(f"Unknown consultation type: {value!r}") from None


def _parse_status(value: str | ConsultationStatus | None) -> ConsultationStatus:
    try:
        return ConsultationStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown consultation status: {value!r}") from None


class ConsultationWorkflow:
    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        *,
        payments: PaymentGate | None = None,
        notifier: Notifier | None = None,
        audit: AuditLog | None = None,
        dispatcher: BackgroundDispatcher | None = None,
        locks: KeyedLock | None = None,
    ):
        self._session_factory = session_factory
        self.payments = payments or PaymentGate(
            session_factory, audit=audit, dispatcher=dispatcher, locks=locks
        )
        self.audit = audit or self.payments.audit
        self.dispatcher = dispatcher or self.payments.dispatcher
        self.locks = locks or self.payments.locks
        self.notifier = notifier or DatabaseNotifier(session_factory)

    def _sessions(self) -> sessionmaker:
        return self._session_factory or get_session_factory()

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    async def book(
        self,
        actor: Identity,
        type: str | ConsultationType,
        price: Decimal | float | int | str | None,
        duration_minutes: int = 60,
        consultant_id: UUID | None = None,
        scheduled_at: datetime | None = None,
        notes: str | None = None,
    ) -> BookingResult:
        """Create a pending consultation and its pending payment atomically.

        Video bookings name their consultant up front; chat bookings wait for
        an admin to assign one, so any consultant passed for chat is ignored.
        """
        if not actor.is_client:
            raise AuthorizationError("Only clients can book consultations")

        kind = _parse_type(type)
        amount = parse_amount(price, "price")
        if duration_minutes is None or int(duration_minutes) <= 0:
            raise ValidationError("duration_minutes must be positive")
        if kind == ConsultationType.VIDEO and consultant_id is None:
            raise ValidationError("consultant_id is required for video consultations")

        async with session_scope(self._sessions()) as session:
            if kind == ConsultationType.VIDEO:
                await self._require_assignable_consultant(session, consultant_id)

            row = ConsultationModel(
                client_id=actor.user_id,
                consultant_id=consultant_id if kind == ConsultationType.VIDEO else None,
                type=kind.value,
                status=ConsultationStatus.PENDING.value,
                scheduled_at=scheduled_at,
                duration_minutes=int(duration_minutes),
                price=amount,
                notes=notes or None,
                version=1,
            )
            await ledger.insert_row(session, row)
            payment = await self.payments.open_pending(session, actor.user_id, row.id, amount)

            result = BookingResult(
                consultation=Consultation.model_validate(row),
                payment=Payment.model_validate(payment),
            )

        logger.info(
            "consultation_booked",
            consultation_id=str(result.consultation.id),
            type=kind.value,
            payment_id=str(result.payment.id),
        )
        return result

    # ------------------------------------------------------------------
    # Admin gate
    # ------------------------------------------------------------------

    async def confirm_payment(self, payment_id: UUID, actor: Identity) -> Payment:
        return await self.payments.confirm_payment(payment_id, actor)

    async def approve_or_assign(
        self,
        consultation_id: UUID,
        actor: Identity,
        consultant_id: UUID | None = None,
    ) -> Consultation:
        """Admin approval: requires a completed payment, optionally binds a consultant."""
        _require_admin(actor)

        async with self.locks.acquire(consultation_id):
            async with session_scope(self._sessions()) as session:
                consultation = await self._load(session, consultation_id)
                await self.payments.require_completed(session, consultation.id)

                assigning = consultant_id is not None and consultation.consultant_id is None
                if not (
                    consultation.status == ConsultationStatus.PENDING.value
                    or (assigning and consultation.status == ConsultationStatus.CONFIRMED.value)
                ):
                    ConsultationStateValidator.validate(
                        consultation.status, ConsultationStatus.CONFIRMED.value, is_admin=True
                    )

                values: dict = {"status": ConsultationStatus.CONFIRMED.value}
                if assigning:
                    await self._require_assignable_consultant(session, consultant_id)
                    values["consultant_id"] = consultant_id
                elif consultation.consultant_id is None:
                    raise PreconditionFailed(
                        "A consultant must be assigned before a chat consultation can be confirmed"
                    )

                consultation = await ledger.compare_and_swap(
                    session, consultation, consultation.version, **values
                )
                result = Consultation.model_validate(consultation)

        logger.info(
            "consultation_approved",
            consultation_id=str(consultation_id),
            assigned=assigning,
            consultant_id=str(result.consultant_id),
        )

        kind = result.type.value
        if assigning:
            self._notify(
                result.client_id,
                "Consultation Approved",
                f"Your {kind} consultation has been approved and a consultant has been assigned.",
                f"/dashboard/client/{kind}",
            )
            self._notify_assignment(result)
            details = {"consultant_id": str(consultant_id), "consultation_id": str(consultation_id)}
        else:
            self._notify(
                result.client_id,
                "Consultation Approved",
                f"Your {kind} consultation has been approved.",
                f"/dashboard/client/{kind}",
            )
            details = {"consultation_id": str(consultation_id)}

        self._audit(actor, "approve_consultation", consultation_id, details)
        return result

    async def assign_consultant(
        self,
        consultation_id: UUID,
        consultant_id: UUID | None,
        actor: Identity,
    ) -> Consultation:
        """Bind a consultant to a paid chat consultation that has none yet."""
        _require_admin(actor)
        if consultant_id is None:
            raise ValidationError("consultant_id is required")

        async with self.locks.acquire(consultation_id):
            async with session_scope(self._sessions()) as session:
                consultation = await self._load(session, consultation_id)
                await self.payments.require_completed(session, consultation.id)

                if consultation.consultant_id is not None:
                    raise PreconditionFailed(
                        "Consultation already has a consultant",
                        details={"consultant_id": str(consultation.consultant_id)},
                    )
                if consultation.status not in (
                    ConsultationStatus.PENDING.value,
                    ConsultationStatus.CONFIRMED.value,
                ):
                    ConsultationStateValidator.validate(
                        consultation.status, ConsultationStatus.CONFIRMED.value, is_admin=True
                    )

                await self._require_assignable_consultant(session, consultant_id)
                consultation = await ledger.compare_and_swap(
                    session,
                    consultation,
                    consultation.version,
                    consultant_id=consultant_id,
                    status=ConsultationStatus.CONFIRMED.value,
                )
                result = Consultation.model_validate(consultation)

        logger.info(
            "consultant_assigned",
            consultation_id=str(consultation_id),
            consultant_id=str(consultant_id),
        )

        kind = result.type.value
        self._notify(
            result.client_id,
            "Consultant Assigned",
            f"A consultant has been assigned to your {kind} consultation.",
            f"/dashboard/client/{kind}",
        )
        self._notify_assignment(result)
        self._audit(
            actor,
            "assign_consultant",
            consultation_id,
            {"consultant_id": str(consultant_id), "consultation_id": str(consultation_id)},
        )
        return result

    # ------------------------------------------------------------------
    # Status updates
    # ------------------------------------------------------------------

    async def update_status(
        self,
        consultation_id: UUID,
        new_status: str | ConsultationStatus,
        actor: Identity,
        meeting_link: str | None = None,
    ) -> Consultation:
        """Actor-scoped status change.

        Owning consultant: confirmed, in_progress, completed, cancelled.
        Owning client: cancelled. Admin: any forward status.
        """
        target = _parse_status(new_status)

        async with self.locks.acquire(consultation_id):
            async with session_scope(self._sessions()) as session:
                consultation = await self._load(session, consultation_id)
                previous = consultation.status

                as_admin = actor.is_active_admin
                as_consultant = (
                    actor.is_consultant
                    and consultation.consultant_id == actor.user_id
                    and target in CONSULTANT_TARGETS
                )
                as_client = (
                    actor.is_client
                    and consultation.client_id == actor.user_id
                    and target in CLIENT_TARGETS
                )
                if not (as_admin or as_consultant or as_client):
                    raise AuthorizationError("Not allowed to update status")

                ConsultationStateValidator.validate(previous, target.value, is_admin=as_admin)

                if (
                    previous == ConsultationStatus.PENDING.value
                    and target.value in ConsultationStateValidator.ENGAGED_STATUSES
                ):
                    await self.payments.require_completed(session, consultation.id)
                    if consultation.consultant_id is None:
                        raise PreconditionFailed(
                            "A consultant must be assigned before the consultation can proceed"
                        )

                values: dict = {"status": target.value}
                if meeting_link is not None:
                    values["meeting_link"] = meeting_link
                if target == ConsultationStatus.COMPLETED:
                    values["completed_at"] = utcnow()

                consultation = await ledger.compare_and_swap(
                    session, consultation, consultation.version, **values
                )
                result = Consultation.model_validate(consultation)

        logger.info(
            "consultation_status_updated",
            consultation_id=str(consultation_id),
            previous=previous,
            status=target.value,
            actor_role=actor.role.value,
        )
        self._audit(
            actor,
            "update_consultation_status",
            consultation_id,
            {"from": previous, "to": target.value},
        )
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_mine(
        self,
        actor: Identity,
        type: str | ConsultationType | None = None,
    ) -> list[Consultation]:
        """The caller's consultations, newest first.

        Chat rows only appear once paid and assigned (client) or once
        confirmed (consultant).
        """
        kind = _parse_type(type) if type is not None else None

        async with session_scope(self._sessions()) as session:
            if actor.role == Role.CONSULTANT:
                rows = await ledger.list_consultations(
                    session,
                    consultant_id=actor.user_id,
                    type=kind.value if kind else None,
                    statuses=sorted(CHAT_VISIBLE_STATUSES) if kind == ConsultationType.CHAT else None,
                )
            else:
                rows = await ledger.list_consultations(
                    session,
                    client_id=actor.user_id,
                    type=kind.value if kind else None,
                )
            visible = await filter_visible(session, rows, actor)
            return [Consultation.model_validate(row) for row in visible]

    async def get(self, consultation_id: UUID, actor: Identity) -> Consultation:
        async with session_scope(self._sessions()) as session:
            consultation = await self._load(session, consultation_id)
            if not await check_visibility(session, consultation, actor):
                raise AuthorizationError("Not allowed to view this consultation")
            return Consultation.model_validate(consultation)

    async def admin_list(
        self,
        actor: Identity,
        view: str | AdminConsultationView = AdminConsultationView.ALL,
    ) -> list[AdminConsultationRow]:
        """All consultations for the admin console, each with its latest payment."""
        _require_admin(actor)
        try:
            view = AdminConsultationView(view)
        except ValueError:
            raise ValidationError(f"Unknown view: {view!r}") from None

        statuses: list[str] | None = None
        if view == AdminConsultationView.REQUESTS:
            statuses = [ConsultationStatus.PENDING.value]
        elif view == AdminConsultationView.ACTIVE:
            statuses = sorted(CHAT_VISIBLE_STATUSES)

        async with session_scope(self._sessions()) as session:
            rows = await ledger.list_consultations(session, statuses=statuses)
            latest = await ledger.latest_payments_by_related(
                session, [row.id for row in rows], RelatedType.CONSULTATION.value
            )
            return [
                AdminConsultationRow(
                    consultation=Consultation.model_validate(row),
                    payment=Payment.model_validate(latest[row.id]) if row.id in latest else None,
                )
                for row in rows
            ]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load(self, session: AsyncSession, consultation_id: UUID) -> ConsultationModel:
        consultation = await ledger.get_consultation(session, consultation_id)
        if consultation is None:
            raise NotFoundError("Consultation not found", details={"id": str(consultation_id)})
        return consultation

    async def _require_assignable_consultant(
        self, session: AsyncSession, consultant_id: UUID | None
    ) -> UserModel:
        consultant = await ledger.get_user(session, consultant_id) if consultant_id else None
        if (
            consultant is None
            or consultant.role != Role.CONSULTANT.value
            or consultant.status != UserStatus.ACTIVE.value
        ):
            raise ValidationError(
                "Invalid or inactive consultant",
                details={"consultant_id": str(consultant_id)},
            )
        return consultant

    def _notify(self, user_id: UUID, title: str, message: str, action_ref: str) -> None:
        self.dispatcher.dispatch(
            self.notifier.notify(user_id, title, message, "booking", action_ref),
            name=f"notify:{title}",
        )

    def _notify_assignment(self, consultation: Consultation) -> None:
        kind = consultation.type.value
        self._notify(
            consultation.consultant_id,
            "New Consultation Assignment",
            f"You have been assigned to a {kind} consultation.",
            f"/dashboard/consultant/{kind}",
        )

    def _audit(self, actor: Identity, action: str, consultation_id: UUID, details: dict) -> None:
        self.dispatcher.dispatch(
            self.audit.record(actor.user_id, action, "consultation", consultation_id, details),
            name=f"audit:{action}",
        )


def _require_admin(actor: Identity) -> None:
    if not actor.is_active_admin:
        raise AuthorizationError("Admin access required")
