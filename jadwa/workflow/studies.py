"""Study request workflow: request, quote, client approval, completion."""

from __future__ import annotations

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from jadwa.core.audit_logger import AuditLog
from jadwa.core.background import BackgroundDispatcher
from jadwa.core.locks import KeyedLock
from jadwa.db import ledger
from jadwa.db.connection import get_session_factory, session_scope
from jadwa.db.models import StudyRequestModel, utcnow
from jadwa.errors import AuthorizationError, NotFoundError, ValidationError
from jadwa.models import Identity, Role, StudyRequest, StudyStatus, StudyType, UserStatus
from jadwa.payments.gate import parse_amount
from jadwa.workflow.transitions import StudyStateValidator

logger = structlog.get_logger(__name__)


class StudyWorkflow:
    """Study requests carry no payment gate; billing for them is handled offline."""

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        *,
        audit: AuditLog | None = None,
        dispatcher: BackgroundDispatcher | None = None,
        locks: KeyedLock | None = None,
    ):
        self._session_factory = session_factory
        self.audit = audit or AuditLog(session_factory)
        self.dispatcher = dispatcher or BackgroundDispatcher()
        self.locks = locks or KeyedLock()

    def _sessions(self) -> sessionmaker:
        return self._session_factory or get_session_factory()

    async def create(
        self,
        actor: Identity,
        type: str | StudyType,
        title: str,
        description: str,
        details: dict[str, Any] | None = None,
        attachments: list[Any] | None = None,
    ) -> StudyRequest:
        if not actor.is_client:
            raise AuthorizationError("Only clients can submit study requests")
        try:
            kind = StudyType(type)
        except ValueError:
            raise ValidationError(f"Unknown study type: {type!r}") from None
        if not title or not title.strip():
            raise ValidationError("title is required")
        if not description or not description.strip():
            raise ValidationError("description is required")

        async with session_scope(self._sessions()) as session:
            row = StudyRequestModel(
                client_id=actor.user_id,
                type=kind.value,
                title=title.strip(),
                description=description,
                details=details or {},
                attachments=attachments or [],
                status=StudyStatus.PENDING.value,
                deliverables=[],
                version=1,
            )
            await ledger.insert_row(session, row)
            result = StudyRequest.model_validate(row)

        logger.info("study_request_created", request_id=str(result.id), type=kind.value)
        return result

    async def quote(
        self,
        request_id: UUID,
        price: Any,
        duration_days: int | None,
        actor: Identity,
    ) -> StudyRequest:
        """Price a request.

        An unbound request is claimed by the first active consultant to quote
        it; from then on only that consultant (or an admin) may re-quote.
        """
        amount = parse_amount(price, "price")
        if duration_days is None or int(duration_days) <= 0:
            raise ValidationError("duration_days must be positive")

        async with self.locks.acquire(request_id):
            async with session_scope(self._sessions()) as session:
                row = await self._load(session, request_id)

                values: dict[str, Any] = {}
                if actor.role == Role.CONSULTANT:
                    if row.consultant_id is None:
                        if actor.status != UserStatus.ACTIVE:
                            raise AuthorizationError("Only active consultants can claim study requests")
                        values["consultant_id"] = actor.user_id
                    elif row.consultant_id != actor.user_id:
                        raise AuthorizationError("Study request is bound to another consultant")
                elif not actor.is_active_admin:
                    raise AuthorizationError("Only consultants or admins can quote study requests")

                StudyStateValidator.validate(row.status, StudyStatus.QUOTED.value)
                previous = row.status

                values.update(
                    price=amount,
                    duration_days=int(duration_days),
                    status=StudyStatus.QUOTED.value,
                )
                row = await ledger.compare_and_swap(session, row, row.version, **values)
                result = StudyRequest.model_validate(row)

        logger.info(
            "study_request_quoted",
            request_id=str(request_id),
            requote=previous == StudyStatus.QUOTED.value,
            claimed="consultant_id" in values,
        )
        self._audit(
            actor,
            "quote_study_request",
            request_id,
            {"price": str(amount), "duration_days": int(duration_days)},
        )
        return result

    async def approve(self, request_id: UUID, actor: Identity) -> StudyRequest:
        async with self.locks.acquire(request_id):
            async with session_scope(self._sessions()) as session:
                row = await self._load(session, request_id)
                owner = actor.is_client and row.client_id == actor.user_id
                if not (owner or actor.is_active_admin):
                    raise AuthorizationError("Only the requesting client can approve this quote")

                StudyStateValidator.validate(row.status, StudyStatus.APPROVED.value)
                row = await ledger.compare_and_swap(
                    session, row, row.version, status=StudyStatus.APPROVED.value
                )
                result = StudyRequest.model_validate(row)

        logger.info("study_request_approved", request_id=str(request_id))
        self._audit(actor, "approve_study_request", request_id, {"price": str(result.price)})
        return result

    async def complete(
        self,
        request_id: UUID,
        deliverables: list[Any] | None,
        actor: Identity,
    ) -> StudyRequest:
        async with self.locks.acquire(request_id):
            async with session_scope(self._sessions()) as session:
                row = await self._load(session, request_id)
                bound = actor.is_consultant and row.consultant_id == actor.user_id
                if not (bound or actor.is_active_admin):
                    raise AuthorizationError("Only the assigned consultant can complete this request")

                StudyStateValidator.validate(row.status, StudyStatus.COMPLETED.value)
                row = await ledger.compare_and_swap(
                    session,
                    row,
                    row.version,
                    status=StudyStatus.COMPLETED.value,
                    deliverables=list(deliverables or []),
                    completed_at=utcnow(),
                )
                result = StudyRequest.model_validate(row)

        logger.info(
            "study_request_completed",
            request_id=str(request_id),
            deliverables=len(result.deliverables),
        )
        self._audit(
            actor,
            "complete_study_request",
            request_id,
            {"deliverables": len(result.deliverables)},
        )
        return result

    async def reject(
        self,
        request_id: UUID,
        actor: Identity,
        reason: str | None = None,
    ) -> StudyRequest:
        async with self.locks.acquire(request_id):
            async with session_scope(self._sessions()) as session:
                row = await self._load(session, request_id)
                owner = actor.is_client and row.client_id == actor.user_id
                bound = actor.is_consultant and row.consultant_id == actor.user_id
                if not (owner or bound or actor.is_active_admin):
                    raise AuthorizationError("Not allowed to reject this study request")

                StudyStateValidator.validate(row.status, StudyStatus.REJECTED.value)
                row = await ledger.compare_and_swap(
                    session,
                    row,
                    row.version,
                    status=StudyStatus.REJECTED.value,
                    rejection_reason=reason or None,
                )
                result = StudyRequest.model_validate(row)

        logger.info("study_request_rejected", request_id=str(request_id), actor_role=actor.role.value)
        self._audit(actor, "reject_study_request", request_id, {"reason": reason})
        return result

    async def get(self, request_id: UUID, actor: Identity) -> StudyRequest:
        async with session_scope(self._sessions()) as session:
            row = await self._load(session, request_id)
            if not (
                actor.is_admin
                or (actor.is_client and row.client_id == actor.user_id)
                or (actor.is_consultant and row.consultant_id == actor.user_id)
            ):
                raise AuthorizationError("Not allowed to view this study request")
            return StudyRequest.model_validate(row)

    async def list_mine(self, actor: Identity) -> list[StudyRequest]:
        """Consultants see requests bound to them, clients their own; admins see all."""
        async with session_scope(self._sessions()) as session:
            if actor.is_consultant:
                rows = await ledger.list_study_requests(session, consultant_id=actor.user_id)
            elif actor.is_client:
                rows = await ledger.list_study_requests(session, client_id=actor.user_id)
            else:
                rows = await ledger.list_study_requests(session)
            return [StudyRequest.model_validate(row) for row in rows]

    async def _load(self, session: AsyncSession, request_id: UUID) -> StudyRequestModel:
        row = await ledger.get_study_request(session, request_id)
        if row is None:
            raise NotFoundError("Study request not found", details={"id": str(request_id)})
        return row

    def _audit(self, actor: Identity, action: str, request_id: UUID, details: dict) -> None:
        self.dispatcher.dispatch(
            self.audit.record(actor.user_id, action, "study_request", request_id, details),
            name=f"audit:{action}",
        )
