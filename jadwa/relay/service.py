"""Message Relay for chat consultations.

Messages are persisted first and only then fanned out to the room, one send
at a time per room, so live delivery order always equals history order.
"""

from __future__ import annotations

from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from jadwa.config import RelayConfig, get_config
from jadwa.core.identity import TokenIdentityProvider
from jadwa.core.locks import KeyedLock
from jadwa.db import ledger
from jadwa.db.connection import get_session_factory, session_scope
from jadwa.db.models import ConsultationModel
from jadwa.errors import AuthorizationError, NotFoundError, PersistenceError, ValidationError
from jadwa.models import Identity, Message
from jadwa.relay.connection import Connection
from jadwa.relay.registry import InMemoryRoomRegistry, RoomRegistry
from jadwa.workflow.visibility import check_visibility

logger = structlog.get_logger(__name__)

NEW_MESSAGE = "new-message"
ERROR = "error"


class MessageRelay:
    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        *,
        identity_provider: TokenIdentityProvider | None = None,
        registry: RoomRegistry | None = None,
        settings: RelayConfig | None = None,
    ):
        self._session_factory = session_factory
        self.identity_provider = identity_provider or TokenIdentityProvider(session_factory)
        self._settings = settings
        self.registry = registry or InMemoryRoomRegistry(send_timeout=self.settings.send_timeout)
        self._send_locks = KeyedLock()

    @property
    def settings(self) -> RelayConfig:
        return self._settings or get_config().relay

    def _sessions(self) -> sessionmaker:
        return self._session_factory or get_session_factory()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def authenticate(self, connection: Connection, credential: str | None) -> Identity:
        identity = await self.identity_provider.authenticate(credential)
        connection.identity = identity
        logger.info(
            "relay_authenticated",
            connection_id=connection.connection_id,
            user_id=str(identity.user_id),
            role=identity.role.value,
        )
        return identity

    async def subscribe(self, connection: Connection, consultation_id: UUID) -> None:
        """Join the consultation's room after re-checking that the caller may see it."""
        identity = _require_identity(connection)
        async with session_scope(self._sessions()) as session:
            await self._check_access(session, consultation_id, identity)

        await self.registry.subscribe(consultation_id, connection)
        logger.info(
            "relay_joined",
            connection_id=connection.connection_id,
            consultation_id=str(consultation_id),
        )

    async def unsubscribe(self, connection: Connection, consultation_id: UUID) -> bool:
        left = await self.registry.unsubscribe(consultation_id, connection)
        if left:
            logger.info(
                "relay_left",
                connection_id=connection.connection_id,
                consultation_id=str(consultation_id),
            )
        return left

    async def disconnect(self, connection: Connection) -> None:
        rooms = await self.registry.remove_connection(connection)
        logger.info("relay_disconnected", connection_id=connection.connection_id, rooms=len(rooms))

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def send_message(
        self,
        connection: Connection,
        consultation_id: UUID,
        text: str,
        file_url: str | None = None,
        file_name: str | None = None,
    ) -> Message | None:
        """Persist a message, then broadcast it to the room (sender included).

        A storage failure is reported to the sending connection only, as an
        ``error`` event, and nothing is broadcast. Returns the stored message,
        or ``None`` when it could not be stored.
        """
        identity = _require_identity(connection)
        text = text or ""
        if not text.strip() and not file_url:
            raise ValidationError("Message must contain text or a file")
        if len(text) > self.settings.max_message_length:
            raise ValidationError(
                "Message is too long",
                details={"max_length": self.settings.max_message_length},
            )

        async with self._send_locks.acquire(consultation_id):
            try:
                async with session_scope(self._sessions()) as session:
                    await self._check_access(session, consultation_id, identity)
                    row = await ledger.append_message(
                        session, consultation_id, identity.user_id, text, file_url, file_name
                    )
                    sender = await ledger.get_user(session, identity.user_id)
                    message = ledger.to_message(row, sender)
            except SQLAlchemyError as exc:
                error = PersistenceError(
                    "Message could not be saved; please resend",
                    details={"consultation_id": str(consultation_id)},
                )
                logger.error(
                    "message_persist_failed",
                    consultation_id=str(consultation_id),
                    sender_id=str(identity.user_id),
                    error=str(exc),
                )
                await connection.send(ERROR, error.to_dict())
                return None

            delivered = await self.registry.broadcast(
                consultation_id, NEW_MESSAGE, message.model_dump(mode="json")
            )

        logger.info(
            "message_broadcast",
            consultation_id=str(consultation_id),
            message_id=str(message.id),
            seq=message.seq,
            delivered=delivered,
        )
        return message

    async def mark_read(self, message_id: UUID, actor: Identity | None) -> None:
        if actor is None:
            raise AuthorizationError("Authenticate before marking messages read")
        async with session_scope(self._sessions()) as session:
            message = await ledger.get_message(session, message_id)
            if message is None:
                raise NotFoundError("Message not found", details={"id": str(message_id)})
            await self._check_access(session, message.consultation_id, actor)
            await ledger.mark_message_read(session, message_id)

    async def history(self, consultation_id: UUID, actor: Identity) -> list[Message]:
        """All messages for the consultation, oldest first."""
        async with session_scope(self._sessions()) as session:
            await self._check_access(session, consultation_id, actor)
            return await ledger.fetch_history(session, consultation_id)

    async def unread_count(self, consultation_id: UUID, actor: Identity) -> int:
        async with session_scope(self._sessions()) as session:
            await self._check_access(session, consultation_id, actor)
            return await ledger.count_unread(session, consultation_id, actor.user_id)

    async def _check_access(
        self, session: AsyncSession, consultation_id: UUID, identity: Identity
    ) -> ConsultationModel:
        consultation = await ledger.get_consultation(session, consultation_id)
        if consultation is None:
            raise NotFoundError("Consultation not found", details={"id": str(consultation_id)})
        if self.settings.enforce_visibility and not await check_visibility(
            session, consultation, identity
        ):
            raise AuthorizationError("Not allowed to access this consultation's messages")
        return consultation


def _require_identity(connection: Connection) -> Identity:
    if connection.identity is None:
        raise AuthorizationError("Authenticate before using the relay")
    return connection.identity
