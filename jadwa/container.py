"""
Service wiring.

Builds one shared set of engines and services for a process: the web app
builds it in its lifespan, tests build it against a throwaway database.
All services share one session factory, one side-effect dispatcher and one
per-engagement lock table.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import sessionmaker

from jadwa.config import AppConfig, get_config
from jadwa.core.audit_logger import AuditLog
from jadwa.core.background import BackgroundDispatcher
from jadwa.core.identity import TokenIdentityProvider
from jadwa.core.locks import KeyedLock
from jadwa.db.connection import build_engine, build_session_factory
from jadwa.notifications.notifier import DatabaseNotifier, Notifier
from jadwa.payments.gate import PaymentGate
from jadwa.relay.registry import InMemoryRoomRegistry, RoomRegistry
from jadwa.relay.service import MessageRelay
from jadwa.workflow.consultations import ConsultationWorkflow
from jadwa.workflow.studies import StudyWorkflow

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    config: AppConfig
    engine: AsyncEngine
    session_factory: sessionmaker
    dispatcher: BackgroundDispatcher
    identity: TokenIdentityProvider
    payments: PaymentGate
    consultations: ConsultationWorkflow
    studies: StudyWorkflow
    relay: MessageRelay

    async def aclose(self) -> None:
        """Flush pending side effects, drop relay rooms and dispose the engine."""
        await self.dispatcher.drain()
        await self.relay.registry.close()
        await self.engine.dispose()
        logger.info("services_closed")


def build_services(
    config: AppConfig | None = None,
    *,
    engine: AsyncEngine | None = None,
    notifier: Notifier | None = None,
    registry: RoomRegistry | None = None,
) -> Services:
    """Create the service graph.

    Args:
        config: Application config (defaults to ``get_config()``)
        engine: Existing engine to reuse; built from ``config.db`` otherwise
        notifier: Notification sink; database notifier by default
        registry: Room registry for the relay; in-memory by default
    """
    config = config or get_config()
    engine = engine or build_engine(config.db)
    session_factory = build_session_factory(engine)

    dispatcher = BackgroundDispatcher()
    locks = KeyedLock()
    audit = AuditLog(session_factory)
    identity = TokenIdentityProvider(session_factory, settings=config.auth)

    payments = PaymentGate(
        session_factory,
        audit=audit,
        dispatcher=dispatcher,
        locks=locks,
        currency=config.payments.currency,
    )
    consultations = ConsultationWorkflow(
        session_factory,
        payments=payments,
        notifier=notifier or DatabaseNotifier(session_factory, settings=config.notifications),
        audit=audit,
        dispatcher=dispatcher,
        locks=locks,
    )
    studies = StudyWorkflow(session_factory, audit=audit, dispatcher=dispatcher, locks=locks)
    relay = MessageRelay(
        session_factory,
        identity_provider=identity,
        registry=registry or InMemoryRoomRegistry(send_timeout=config.relay.send_timeout),
        settings=config.relay,
    )

    logger.info("services_built", environment=config.environment)
    return Services(
        config=config,
        engine=engine,
        session_factory=session_factory,
        dispatcher=dispatcher,
        identity=identity,
        payments=payments,
        consultations=consultations,
        studies=studies,
        relay=relay,
    )
